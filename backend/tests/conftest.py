"""
Shared fixtures: in-memory store seeded with one interview, fake devices and event capture.
"""

import pytest

from interview_recorder.core.models import CreateInterviewRequest, MediaBlob, RegisterCandidateRequest
from interview_recorder.core.policies import TimingPolicy, UploadPolicy
from interview_recorder.storage.json_store import JsonRecordingStore

from fakes import EventLog, FakeBlobStorage, FakeMediaDevices

QUESTIONS = [
    "Tell me about yourself.",
    "Describe a difficult bug you fixed.",
    "How do you prioritize competing deadlines?",
    "Walk me through a system you designed.",
    "Why do you want this role?",
]


@pytest.fixture
def timing_policy():
    return TimingPolicy(
        max_answer_seconds=3,
        min_answer_seconds=1,
        finish_visible_after_seconds=2,
        reading_words_per_second=3.0,
        reading_buffer_seconds=0,
        fallback_countdown_seconds=2,
        seconds_per_question=20,
        advance_delay_seconds=0,
        recorder_timeslice_ms=100,
    )


@pytest.fixture
def upload_policy():
    return UploadPolicy(
        max_attempts=3,
        backoff_base_ms=1000,
        backoff_cap_ms=5000,
        last_upload_timeout_seconds=1.0,
        final_wait_seconds=1.0,
        final_settle_seconds=0,
    )


@pytest.fixture
def store():
    return JsonRecordingStore(None)


@pytest.fixture
async def interview(store):
    return await store.create_interview(
        CreateInterviewRequest(job_title="Backend Engineer", questions=QUESTIONS[:3], seniority="Senior")
    )


@pytest.fixture
async def candidate(store, interview):
    return await store.create_candidate(
        interview.interview_id,
        RegisterCandidateRequest(name="Sam", years_experience=6),
        [2, 0, 1]
    )


@pytest.fixture
def devices():
    return FakeMediaDevices()


@pytest.fixture
def blob_storage():
    return FakeBlobStorage()


@pytest.fixture
def events():
    return EventLog()


@pytest.fixture
def blob():
    return MediaBlob(data=b"answer-bytes", mime_type="video/webm;codecs=vp8,opus")
