"""
Tests for the upload pipeline: backoff, retry queue, abandonment and the last-question path.
"""

import asyncio

import pytest

from interview_recorder.core.models import UploadState
from interview_recorder.core.policies import UploadPolicy
from interview_recorder.upload.pipeline import UploadPipeline, backoff_delay_ms

from fakes import RecordingSleep, fast_sleep, wait_until


class FlakyUpload:
    """Fails the first `failures` calls, then succeeds."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls = []

    async def __call__(self, blob, question_index):
        self.calls.append(question_index)
        if len(self.calls) <= self.failures:
            raise ConnectionError("network down")
        return f"url-{question_index}"


def test_backoff_delays():
    assert [backoff_delay_ms(n) for n in (1, 2, 3, 4, 5)] == [1000, 2000, 4000, 5000, 5000]
    assert backoff_delay_ms(0) == 1000
    assert backoff_delay_ms(2, base_ms=500, cap_ms=800) == 800


async def test_first_attempt_success(blob, upload_policy):
    upload = FlakyUpload()
    pipeline = UploadPipeline(upload, upload_policy, sleep=fast_sleep)

    assert await pipeline.upload(blob, 0) is True
    assert pipeline.uploaded_count == 1
    assert pipeline.pending_count == 0
    assert pipeline.state_of(0) is UploadState.SUCCEEDED
    assert pipeline.advisory is None


async def test_enqueue_does_not_block(blob, upload_policy):
    gate = asyncio.Event()

    async def slow_upload(b, qi):
        await gate.wait()

    pipeline = UploadPipeline(slow_upload, upload_policy, sleep=fast_sleep)
    task = pipeline.enqueue(blob, 3)
    await asyncio.sleep(0)
    assert pipeline.state_of(3) is UploadState.IN_FLIGHT
    gate.set()
    assert await task is True
    assert pipeline.uploaded_count == 1


async def test_failed_upload_is_retried_until_success(blob, upload_policy):
    upload = FlakyUpload(failures=1)
    sleep = RecordingSleep()
    pipeline = UploadPipeline(upload, upload_policy, sleep=sleep)

    assert await pipeline.upload(blob, 2) is False
    assert pipeline.pending_count == 1
    assert pipeline.advisory == "1 upload(s) retrying in background..."

    assert await pipeline.wait_for_drain(1.0) is True
    assert upload.calls == [2, 2]
    assert sleep.delays == [1.0]
    assert pipeline.state_of(2) is UploadState.SUCCEEDED
    assert pipeline.abandoned_indices == []


async def test_upload_abandoned_after_max_attempts(blob, upload_policy):
    upload = FlakyUpload(failures=100)
    sleep = RecordingSleep()
    reports = []

    async def report(question_index, attempts):
        reports.append((question_index, attempts))

    pipeline = UploadPipeline(upload, upload_policy, report_failure=report, sleep=sleep)

    assert await pipeline.upload(blob, 1) is False
    assert await pipeline.wait_for_drain(1.0) is True
    await wait_until(lambda: reports)

    assert len(upload.calls) == 3
    assert sleep.delays == [1.0, 2.0]
    assert pipeline.abandoned_indices == [1]
    assert pipeline.state_of(1) is UploadState.ABANDONED
    assert pipeline.uploaded_count == 0
    assert reports == [(1, 3)]


async def test_failure_reporter_errors_are_contained(blob, upload_policy):
    async def broken_report(question_index, attempts):
        raise RuntimeError("log sink offline")

    pipeline = UploadPipeline(FlakyUpload(failures=100), upload_policy, report_failure=broken_report, sleep=fast_sleep)
    await pipeline.upload(blob, 0)
    assert await pipeline.wait_for_drain(1.0) is True
    assert pipeline.abandoned_indices == [0]


async def test_one_retry_entry_per_question(blob, upload_policy):
    hold = asyncio.Event()

    async def stalled_sleep(_seconds):
        await hold.wait()

    pipeline = UploadPipeline(FlakyUpload(failures=100), upload_policy, sleep=stalled_sleep)
    await pipeline.upload(blob, 4)
    await pipeline.upload(blob, 4)
    await pipeline.upload(blob, 5)

    assert [t.question_index for t in pipeline.retry_queue] == [4, 5]
    assert all(t.attempts == 1 for t in pipeline.retry_queue)
    assert pipeline.retrying

    await pipeline.close()
    assert pipeline.pending_count == 0
    assert not pipeline.retrying


async def test_last_upload_waits_for_retries(blob, upload_policy):
    upload = FlakyUpload(failures=2)
    pipeline = UploadPipeline(upload, upload_policy, sleep=fast_sleep)

    assert await pipeline.upload_last(blob, 4) is True
    assert len(upload.calls) == 3
    assert pipeline.pending_count == 0
    assert pipeline.state_of(4) is UploadState.SUCCEEDED


async def test_last_upload_gives_up_after_final_wait(blob):
    policy = UploadPolicy(last_upload_timeout_seconds=0.05, final_wait_seconds=0.05, final_settle_seconds=0)
    hold = asyncio.Event()

    async def stalled_sleep(_seconds):
        await hold.wait()

    pipeline = UploadPipeline(FlakyUpload(failures=100), policy, sleep=stalled_sleep)

    assert await pipeline.upload_last(blob, 0) is False
    assert pipeline.pending_count == 1
    await pipeline.close()


async def test_late_success_clears_retry_entry(blob):
    policy = UploadPolicy(last_upload_timeout_seconds=0.05, final_wait_seconds=0.05, final_settle_seconds=0)
    gate = asyncio.Event()
    hold = asyncio.Event()
    calls = []

    async def slow_upload(b, qi):
        calls.append(qi)
        await gate.wait()

    async def stalled_sleep(_seconds):
        await hold.wait()

    pipeline = UploadPipeline(slow_upload, policy, sleep=stalled_sleep)

    assert await pipeline.upload_last(blob, 4) is False
    assert pipeline.pending_count == 1

    gate.set()
    assert await pipeline.wait_for_drain(1.0) is True
    assert pipeline.uploaded_count == 1
    assert pipeline.state_of(4) is UploadState.SUCCEEDED
    assert calls == [4]

    await pipeline.close()


async def test_listener_sees_state_changes(blob, upload_policy):
    seen = []
    pipeline = UploadPipeline(FlakyUpload(failures=1), upload_policy, sleep=fast_sleep)
    pipeline.add_listener(lambda qi, state: seen.append((qi, state)))

    await pipeline.upload(blob, 0)
    await pipeline.wait_for_drain(1.0)

    assert seen == [
        (0, UploadState.IN_FLIGHT),
        (0, UploadState.FAILED),
        (0, UploadState.RETRYING),
        (0, UploadState.IN_FLIGHT),
        (0, UploadState.SUCCEEDED),
    ]


async def test_closed_pipeline_does_not_queue(blob, upload_policy):
    pipeline = UploadPipeline(FlakyUpload(failures=100), upload_policy, sleep=fast_sleep)
    await pipeline.close()
    assert await pipeline.upload(blob, 0) is False
    assert pipeline.pending_count == 0


@pytest.mark.parametrize("attempts,expected", [(1, 1000), (3, 4000), (10, 5000)])
def test_backoff_is_capped(attempts, expected):
    assert backoff_delay_ms(attempts) == expected
