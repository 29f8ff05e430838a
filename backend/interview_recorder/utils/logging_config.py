"""
Structured Logging Configuration

JSON log output for production, plain text for development. Session and
upload events carry their identifiers as top-level fields so a single
candidate's interview can be followed across log lines.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging import LogRecord
from typing import Any, Dict, Optional


# Attributes every LogRecord carries; anything else came in through `extra`
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime", "taskName", "context"}

_PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_NOISY_LOGGERS = {
    "uvicorn": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "azure": logging.WARNING,
    "google": logging.WARNING,
}


def _json_safe(value: Any) -> Any:
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return str(value)


class JSONFormatter(logging.Formatter):
    """One JSON object per line: standard fields, logger context, then `extra` fields."""

    def format(self, record: LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(getattr(record, "context", {}))
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS:
                entry[key] = _json_safe(value)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class ContextFilter(logging.Filter):
    """Stamps fixed fields (e.g. sink name) on every record passing through a logger."""

    def __init__(self, **context):
        super().__init__()
        self.context = context

    def filter(self, record: LogRecord) -> bool:
        record.context = {**getattr(record, "context", {}), **self.context}
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure root logging.

    Args:
        level: Log level name
        json_format: JSON lines on stdout instead of the plain format
        log_file: Optional file that always receives JSON lines
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(_PLAIN_FORMAT))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    for name, noisy_level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)


def get_logger(name: str, **context) -> logging.Logger:
    """
    Logger whose records all carry `context`.

    Example:
        logger = get_logger(__name__, sink="upload_failure")
    """
    logger = logging.getLogger(name)
    if context and not any(isinstance(f, ContextFilter) and f.context == context for f in logger.filters):
        logger.addFilter(ContextFilter(**context))
    return logger


def log_session_event(
    logger: logging.Logger,
    session_id: str,
    event_type: str,
    **extra
) -> None:
    """
    Log a flow controller transition.

    Args:
        logger: The logger instance
        session_id: "{interview_id}/{candidate_id}"
        event_type: loaded, started, question_entered, advanced, timeout, exited, completed, disconnected
        **extra: Additional fields (question_index, reason, uploaded_count, ...)
    """
    logger.info(
        f"[{session_id}] {event_type}",
        extra={"event": "session_event", "session_id": session_id, "event_type": event_type, **extra}
    )


_UPLOAD_LOG_LEVELS = {
    "succeeded": logging.INFO,
    "abandoned": logging.ERROR,
}


def log_upload_event(
    logger: logging.Logger,
    question_index: int,
    outcome: str,
    attempts: int = 1,
    error: Optional[str] = None,
    **extra
) -> None:
    """
    Log one upload outcome for a question.

    Args:
        outcome: succeeded, failed, retrying, abandoned or timeout
        attempts: Attempts made so far
        error: Failure message, if any
    """
    fields = {"event": "upload", "question_index": question_index, "outcome": outcome, "attempts": attempts}
    if error:
        fields["error"] = error
    fields.update(extra)

    message = f"Upload {outcome} for question {question_index} (attempt {attempts})"
    logger.log(_UPLOAD_LOG_LEVELS.get(outcome, logging.WARNING), message, extra=fields)
