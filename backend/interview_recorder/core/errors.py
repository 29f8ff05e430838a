"""
Error Taxonomy
Exceptions raised by the capture, recording, upload and session layers.
"""

from enum import Enum
from typing import Optional


class CaptureErrorKind(str, Enum):
    """Classified camera/microphone acquisition failures"""
    PERMISSION_DENIED = "permission_denied"
    DEVICE_NOT_FOUND = "device_not_found"
    DEVICE_BUSY = "device_busy"  # Held by another app or blocked by OS privacy settings
    UNKNOWN = "unknown"


class InterviewRecorderError(Exception):
    """Base class for all interview recorder errors"""
    pass


class MediaDeviceError(InterviewRecorderError):
    """Raw platform error reported by a media device backend (before classification)"""

    def __init__(self, name: str, message: str = ""):
        super().__init__(f"{name}: {message}" if message else name)
        self.name = name
        self.message = message


class CaptureError(InterviewRecorderError):
    """Camera/microphone acquisition failed; terminal for the whole session"""

    def __init__(self, kind: CaptureErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class UnsupportedCodecError(InterviewRecorderError):
    """No candidate container/codec is supported by the recorder backend"""
    pass


class MinDurationNotMetError(InterviewRecorderError):
    """Manual stop requested before the minimum answer length"""

    def __init__(self, elapsed_seconds: int, minimum_seconds: int):
        super().__init__(
            f"Answer must be at least {minimum_seconds}s long (recorded {elapsed_seconds}s)"
        )
        self.elapsed_seconds = elapsed_seconds
        self.minimum_seconds = minimum_seconds


class UploadFailedError(InterviewRecorderError):
    """A single upload attempt failed (transient, retried by the pipeline)"""

    def __init__(self, question_index: int, cause: Optional[BaseException] = None):
        detail = f": {cause}" if cause else ""
        super().__init__(f"Upload failed for question {question_index}{detail}")
        self.question_index = question_index
        self.cause = cause


class UploadAbandonedError(InterviewRecorderError):
    """An upload exhausted its retry budget (permanent)"""

    def __init__(self, question_index: int, attempts: int):
        super().__init__(f"Upload for question {question_index} abandoned after {attempts} attempts")
        self.question_index = question_index
        self.attempts = attempts


class SessionLoadFailedError(InterviewRecorderError):
    """Interview definition or candidate could not be loaded (fatal, no retry)"""
    pass


class StorageError(InterviewRecorderError):
    """Blob storage or recording store operation failed"""
    pass


class NotFoundError(StorageError):
    """Requested interview or candidate does not exist"""
    pass


class ScoringError(InterviewRecorderError):
    """Scoring service is unavailable or returned an unusable result"""
    pass
