"""
Timing and Upload Policies
Immutable parameter sets handed to the flow controller and upload pipeline.
"""

from dataclasses import dataclass

from interview_recorder.core import constants


@dataclass(frozen=True)
class TimingPolicy:
    """Per-question and global timer parameters (seconds)."""
    max_answer_seconds: int = constants.MAX_ANSWER_SECONDS
    min_answer_seconds: int = constants.MIN_ANSWER_SECONDS
    finish_visible_after_seconds: int = constants.FINISH_VISIBLE_AFTER_SECONDS
    reading_words_per_second: float = constants.READING_WORDS_PER_SECOND
    reading_buffer_seconds: int = constants.READING_BUFFER_SECONDS
    fallback_countdown_seconds: int = constants.FALLBACK_COUNTDOWN_SECONDS
    seconds_per_question: int = constants.SECONDS_PER_QUESTION
    advance_delay_seconds: float = constants.ADVANCE_DELAY_SECONDS
    recorder_timeslice_ms: int = constants.RECORDER_TIMESLICE_MS


@dataclass(frozen=True)
class UploadPolicy:
    """Retry, backoff and last-question wait parameters."""
    max_attempts: int = constants.MAX_UPLOAD_ATTEMPTS
    backoff_base_ms: int = constants.BACKOFF_BASE_MS
    backoff_cap_ms: int = constants.BACKOFF_CAP_MS
    last_upload_timeout_seconds: float = constants.LAST_UPLOAD_TIMEOUT_SECONDS
    final_wait_seconds: float = constants.FINAL_WAIT_SECONDS
    final_settle_seconds: float = constants.FINAL_SETTLE_SECONDS
