"""
Application Configuration Module
Handles environment variable loading and application settings.
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

from interview_recorder.core.policies import TimingPolicy, UploadPolicy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Question Timer
    max_answer_seconds: int = 180  # Hard recording cap per question
    min_answer_seconds: int = 5  # Manual stop is refused before this
    finish_visible_after_seconds: int = 10  # Stop control shown after this
    reading_words_per_second: float = 3.0  # Countdown reading-speed heuristic
    reading_buffer_seconds: int = 5  # Added on top of the reading time
    fallback_countdown_seconds: int = 30  # Used when question text is unavailable
    advance_delay_seconds: float = 0.8  # Cosmetic pause before the next question

    # Global deadline
    seconds_per_question: int = 300

    # Upload pipeline
    max_upload_attempts: int = 3
    backoff_base_ms: int = 1000
    backoff_cap_ms: int = 5000
    last_upload_timeout_seconds: float = 5.0  # Race window for the final answer
    final_wait_seconds: float = 10.0  # Max wait for the retry queue to drain
    final_settle_seconds: float = 2.0  # Pause before completion when nothing is pending

    # Recorder
    recorder_timeslice_ms: int = 1000

    # Storage
    storage_backend: str = "local"  # "local" or "azure"
    storage_dir: str = "storage/media"
    data_file: str = "storage/interviews.json"
    public_base_url: str = "http://localhost:8000"
    azure_storage_connection_string: Optional[str] = None
    azure_container_name: Optional[str] = None

    # Scoring (disabled when no API key is configured)
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    gemini_temperature: float = 0.3
    scoring_delay_seconds: float = 0.5  # Pause between per-question scoring calls

    # Logging
    log_level: str = "INFO"
    log_format: str = ""  # "json" for structured output

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    def timing_policy(self) -> TimingPolicy:
        """Build the timer policy consumed by the flow controller."""
        return TimingPolicy(
            max_answer_seconds=self.max_answer_seconds,
            min_answer_seconds=self.min_answer_seconds,
            finish_visible_after_seconds=self.finish_visible_after_seconds,
            reading_words_per_second=self.reading_words_per_second,
            reading_buffer_seconds=self.reading_buffer_seconds,
            fallback_countdown_seconds=self.fallback_countdown_seconds,
            seconds_per_question=self.seconds_per_question,
            advance_delay_seconds=self.advance_delay_seconds,
            recorder_timeslice_ms=self.recorder_timeslice_ms,
        )

    def upload_policy(self) -> UploadPolicy:
        """Build the retry/timeout policy consumed by the upload pipeline."""
        return UploadPolicy(
            max_attempts=self.max_upload_attempts,
            backoff_base_ms=self.backoff_base_ms,
            backoff_cap_ms=self.backoff_cap_ms,
            last_upload_timeout_seconds=self.last_upload_timeout_seconds,
            final_wait_seconds=self.final_wait_seconds,
            final_settle_seconds=self.final_settle_seconds,
        )
