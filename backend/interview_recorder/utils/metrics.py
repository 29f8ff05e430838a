"""
Metrics Collection and Monitoring

Provides Prometheus-style metrics for monitoring uploads, interviews and scoring.
"""

import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, Gauge


# Upload Metrics
uploads_total = Counter(
    "uploads_total",
    "Total recording upload attempts",
    ["status"]  # status: success, failure, timeout
)

upload_retries_total = Counter(
    "upload_retries_total",
    "Total number of upload retry attempts"
)

uploads_abandoned_total = Counter(
    "uploads_abandoned_total",
    "Uploads dropped after exhausting their retry budget"
)

upload_failure_logs_total = Counter(
    "upload_failure_logs_total",
    "Upload failure reports received by the logging sink",
    ["source"]  # source: pipeline, api
)

upload_duration_seconds = Histogram(
    "upload_duration_seconds",
    "Recording upload duration in seconds",
    buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
)

upload_size_bytes = Histogram(
    "upload_size_bytes",
    "Recording size in bytes",
    buckets=(1e5, 1e6, 5e6, 1e7, 5e7, 1e8)
)

retry_queue_depth = Gauge(
    "retry_queue_depth",
    "Uploads currently waiting in retry queues"
)


# Interview Metrics
active_interviews = Gauge(
    "active_interviews",
    "Number of interviews currently in progress"
)

interviews_completed_total = Counter(
    "interviews_completed_total",
    "Interviews that reached a terminal state",
    ["reason"]  # reason: completed, timeout, exited, failed
)

interview_duration_seconds = Histogram(
    "interview_duration_seconds",
    "Interview duration in seconds",
    buckets=(60, 300, 600, 900, 1200, 1800, 2400, 3000)
)

capture_errors_total = Counter(
    "capture_errors_total",
    "Camera/microphone acquisition failures",
    ["kind"]
)


# Scoring Metrics
scoring_requests_total = Counter(
    "scoring_requests_total",
    "Total answer scoring requests",
    ["status"]  # status: success, fallback, skipped
)

scoring_latency_seconds = Histogram(
    "scoring_latency_seconds",
    "Scoring LLM call latency in seconds",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)
)


# API Endpoint Metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"]
)

websocket_connections_total = Counter(
    "websocket_connections_total",
    "Total WebSocket connections",
    ["endpoint", "status"]  # status: connected, disconnected, error
)


# Utility Functions

@contextmanager
def track_upload():
    """
    Context manager to track one upload attempt.

    Example:
        with track_upload():
            url = await storage.put(path, blob)
            # Metrics automatically recorded
    """
    start_time = time.time()
    status = "success"

    try:
        yield
    except Exception:
        status = "failure"
        raise
    finally:
        uploads_total.labels(status=status).inc()
        upload_duration_seconds.observe(time.time() - start_time)


def record_interview_outcome(reason: str, duration_seconds: float):
    """
    Record a terminal interview transition.

    Args:
        reason: completed, timeout, exited or failed
        duration_seconds: Total elapsed interview time
    """
    interviews_completed_total.labels(reason=reason).inc()
    interview_duration_seconds.observe(duration_seconds)
