"""
Data Models Module
Pydantic models for interview state, store records and API request/response schemas.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with a Z suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# ==================== State Enums ====================

class PermissionState(str, Enum):
    PENDING = "pending"
    GRANTED = "granted"
    DENIED = "denied"
    DEVICE_MISSING = "device_missing"
    DEVICE_BUSY = "device_busy"
    UNKNOWN = "unknown"


class RecorderState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    FINALIZING = "finalizing"
    COMPLETE = "complete"


class TimerPhase(str, Enum):
    PREPARING = "preparing"
    RECORDING = "recording"
    DONE = "done"


class UploadState(str, Enum):
    NOT_STARTED = "not_started"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RETRYING = "retrying"
    ABANDONED = "abandoned"


class FlowState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    EXITED = "exited"
    FAILED = "failed"


class CompletionReason(str, Enum):
    COMPLETED = "completed"
    TIMEOUT = "timeout"
    EXITED = "exited"


TERMINAL_FLOW_STATES = frozenset({
    FlowState.COMPLETED,
    FlowState.TIMED_OUT,
    FlowState.EXITED,
    FlowState.FAILED,
})


# ==================== Media ====================

@dataclass(frozen=True)
class MediaBlob:
    """One finalized, immutable recording."""
    data: bytes
    mime_type: str
    duration: float = 0.0  # Recorded length in seconds

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def content_type(self) -> str:
        """Container type without codec parameters (e.g. video/webm)."""
        return self.mime_type.split(";", 1)[0].strip()


# ==================== Store Records ====================

class InterviewData(BaseModel):
    """Interview definition stored in the recording store."""
    interview_id: str
    job_title: str
    questions: List[str] = Field(..., min_length=1)
    seniority: Optional[str] = None
    industry: Optional[str] = None
    role_template: Optional[str] = None
    key_responsibilities: List[str] = Field(default_factory=list)
    required_skills: List[str] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_now_iso)


class CandidateData(BaseModel):
    """Registered candidate with a fixed, per-candidate question order."""
    candidate_id: str
    interview_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    years_experience: float = 0.0
    question_order: Optional[List[int]] = None
    created_at: str = Field(default_factory=utc_now_iso)


class RecordingRecord(BaseModel):
    """Metadata for one uploaded answer, filed under its original question index."""
    question_index: int = Field(..., ge=0)
    video_url: str
    duration: float = 0.0
    uploaded_at: str = Field(default_factory=utc_now_iso)


class UploadFailureLog(BaseModel):
    """Durable record of an upload that exhausted its retries."""
    interview_id: str = ""
    candidate_id: str = ""
    question_index: Optional[int] = None
    attempts: Optional[int] = None
    pending_uploads: Optional[int] = None
    error: Optional[str] = None
    timestamp: str = Field(default_factory=utc_now_iso)


# ==================== Flow State ====================

class QuestionAttempt(BaseModel):
    """Per-question record created when the flow controller enters a question."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    question_index: int  # Original (pre-shuffle) index
    display_index: int  # Position in the shuffled order
    countdown_remaining: Optional[int] = None
    recording_elapsed: int = 0
    blob: Optional[MediaBlob] = None
    upload_state: UploadState = UploadState.NOT_STARTED

    def attach_blob(self, blob: MediaBlob) -> None:
        """Set the finalized recording. May only happen once per attempt."""
        if self.blob is not None:
            raise RuntimeError(f"Question {self.question_index} already has a recording")
        self.blob = blob


class InterviewProgress(BaseModel):
    """Single source of truth for progress shown to the candidate."""
    current_index: int = 0
    total_questions: int = 0
    uploaded_count: int = 0
    total_elapsed_seconds: int = 0
    remaining_global_seconds: Optional[int] = None

    def advance_to(self, index: int) -> None:
        if index < self.current_index:
            raise ValueError(f"current_index cannot decrease ({self.current_index} -> {index})")
        if index > self.total_questions:
            raise ValueError(f"current_index {index} exceeds total questions {self.total_questions}")
        self.current_index = index

    def record_uploaded(self, count: int) -> None:
        # Never decreases and never exceeds the question count
        self.uploaded_count = max(self.uploaded_count, min(count, self.total_questions))

    def tick(self, remaining_global_seconds: Optional[int]) -> None:
        self.total_elapsed_seconds += 1
        self.remaining_global_seconds = remaining_global_seconds


class InterviewOutcome(BaseModel):
    """Terminal result of one interview attempt."""
    reason: CompletionReason
    redirect_url: str
    uploaded_count: int
    total_questions: int
    pending_uploads: int = 0


# ==================== API Schemas ====================

class CreateInterviewRequest(BaseModel):
    job_title: str
    questions: List[str] = Field(..., min_length=1)
    seniority: Optional[str] = None
    industry: Optional[str] = None
    role_template: Optional[str] = None
    key_responsibilities: List[str] = Field(default_factory=list)
    required_skills: List[str] = Field(default_factory=list)


class RegisterCandidateRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    years_experience: float = Field(default=0.0, ge=0)


class UploadResponse(BaseModel):
    url: str
    question_index: int
    content_type: str
    size: int


class RecordingsResponse(BaseModel):
    recordings: List[RecordingRecord]


class LogResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None


class ScoreInterviewRequest(BaseModel):
    """Transcripts keyed by original question index."""
    transcripts: Dict[int, str]


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str
    detail: Optional[str] = None


class InterviewEvent(BaseModel):
    """WebSocket message sent from the flow controller to the browser."""
    type: str = Field(..., description="session_loaded, question, countdown, recording, upload_status, progress, completed, error")
    data: Dict[str, Any] = Field(default_factory=dict)
