"""
Tests for progress/attempt invariants and settings-derived policies.
"""

import pytest

from interview_recorder.config import Settings
from interview_recorder.core.models import InterviewProgress, MediaBlob, QuestionAttempt


def test_progress_index_only_moves_forward():
    progress = InterviewProgress(total_questions=3)
    progress.advance_to(1)
    progress.advance_to(1)

    with pytest.raises(ValueError):
        progress.advance_to(0)
    with pytest.raises(ValueError):
        progress.advance_to(4)


def test_uploaded_count_is_monotonic_and_bounded():
    progress = InterviewProgress(total_questions=3)
    progress.record_uploaded(2)
    progress.record_uploaded(1)
    assert progress.uploaded_count == 2
    progress.record_uploaded(7)
    assert progress.uploaded_count == 3


def test_attempt_blob_is_set_once():
    attempt = QuestionAttempt(question_index=4, display_index=0)
    attempt.attach_blob(MediaBlob(data=b"x", mime_type="video/webm"))
    with pytest.raises(RuntimeError):
        attempt.attach_blob(MediaBlob(data=b"y", mime_type="video/webm"))


def test_blob_content_type_drops_codecs():
    blob = MediaBlob(data=b"abc", mime_type="video/webm;codecs=vp8,opus")
    assert blob.content_type == "video/webm"
    assert blob.size == 3


def test_settings_build_policies(monkeypatch):
    monkeypatch.setenv("MAX_ANSWER_SECONDS", "120")
    monkeypatch.setenv("MAX_UPLOAD_ATTEMPTS", "5")
    settings = Settings(_env_file=None)

    assert settings.timing_policy().max_answer_seconds == 120
    assert settings.timing_policy().seconds_per_question == 300
    assert settings.upload_policy().max_attempts == 5
    assert settings.upload_policy().backoff_cap_ms == 5000
