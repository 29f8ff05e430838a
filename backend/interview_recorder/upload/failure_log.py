"""
Upload Failure Logging Sink
Durable record of uploads that exhausted their retries. Never blocks or fails the caller.
"""

from typing import Optional

from interview_recorder.core.models import UploadFailureLog
from interview_recorder.utils.logging_config import get_logger
from interview_recorder.utils.metrics import upload_failure_logs_total

logger = get_logger(__name__, sink="upload_failure")


class UploadFailureLogger:
    """Writes abandoned-upload reports to the structured log."""

    def __init__(self, interview_id: str = "", candidate_id: str = ""):
        self.interview_id = interview_id
        self.candidate_id = candidate_id

    def log(self, entry: UploadFailureLog, source: str = "pipeline"):
        upload_failure_logs_total.labels(source=source).inc()
        logger.error(
            f"Upload failure: interview={entry.interview_id} candidate={entry.candidate_id} "
            f"question={entry.question_index} attempts={entry.attempts}",
            extra={
                "event": "upload_failure",
                "interview_id": entry.interview_id,
                "candidate_id": entry.candidate_id,
                "question_index": entry.question_index,
                "attempts": entry.attempts,
                "pending_uploads": entry.pending_uploads,
                "error": entry.error,
                "reported_at": entry.timestamp,
                "source": source,
            }
        )

    async def report(self, question_index: int, attempts: int, pending_uploads: Optional[int] = None):
        """Pipeline hook: called once per abandoned upload."""
        try:
            self.log(UploadFailureLog(
                interview_id=self.interview_id,
                candidate_id=self.candidate_id,
                question_index=question_index,
                attempts=attempts,
                pending_uploads=pending_uploads,
                error=f"Upload failed after {attempts} attempts",
            ))
        except Exception as e:
            logger.error(f"Failed to log upload failure: {e}")
