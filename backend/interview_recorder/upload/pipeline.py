"""
Upload Pipeline Module
Uploads finalized recordings, retrying failures in the background with capped exponential backoff.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from interview_recorder.core.constants import BACKOFF_BASE_MS, BACKOFF_CAP_MS
from interview_recorder.core.errors import UploadAbandonedError
from interview_recorder.core.models import MediaBlob, UploadState
from interview_recorder.core.policies import UploadPolicy
from interview_recorder.utils.logging_config import log_upload_event
from interview_recorder.utils.metrics import (
    retry_queue_depth,
    track_upload,
    upload_retries_total,
    uploads_abandoned_total,
    uploads_total,
)

logger = logging.getLogger(__name__)

# Performs one remote transfer; raises on failure
UploadFn = Callable[[MediaBlob, int], Awaitable[Any]]
# Receives (question_index, attempts) once an upload is abandoned
FailureReporter = Callable[[int, int], Awaitable[None]]
# Receives (question_index, new_state) on every state change
UploadListener = Callable[[int, UploadState], None]


def backoff_delay_ms(attempts: int, base_ms: int = BACKOFF_BASE_MS, cap_ms: int = BACKOFF_CAP_MS) -> int:
    """
    Delay before the next retry of an upload that has failed `attempts` times.

    min(base * 2^(attempts-1), cap): 1000, 2000, 4000, 5000, 5000, ...
    """
    exponent = max(attempts, 1) - 1
    return min(base_ms * (2 ** exponent), cap_ms)


@dataclass(frozen=True)
class UploadTask:
    """A failed upload waiting in the retry queue."""
    blob: MediaBlob
    question_index: int
    attempts: int
    next_attempt_at: float


class UploadPipeline:
    """
    Per-interview upload pipeline.

    Non-final answers go through enqueue() and never block the caller. Failed
    uploads land in a retry queue drained by a single worker task; the queue is
    only ever replaced as a whole list. Success for a question index clears any
    retry entry for it, so a soft-timed-out upload that later succeeds is never
    uploaded twice by the worker.
    """

    def __init__(
        self,
        upload_fn: UploadFn,
        policy: Optional[UploadPolicy] = None,
        report_failure: Optional[FailureReporter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        self.upload_fn = upload_fn
        self.policy = policy or UploadPolicy()
        self.report_failure = report_failure
        self._sleep = sleep
        self._clock = clock

        self._retry_queue: List[UploadTask] = []
        self._uploaded: Set[int] = set()
        self._abandoned: Set[int] = set()
        self._states: Dict[int, UploadState] = {}
        self._listeners: List[UploadListener] = []

        self._retry_worker: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self._drained = asyncio.Event()
        self._drained.set()
        self._closed = False

    # ==================== Observation ====================

    @property
    def retry_queue(self) -> List[UploadTask]:
        """Snapshot of the retry queue."""
        return list(self._retry_queue)

    @property
    def pending_count(self) -> int:
        return len(self._retry_queue)

    @property
    def uploaded_count(self) -> int:
        """Number of distinct question indices uploaded successfully."""
        return len(self._uploaded)

    @property
    def abandoned_indices(self) -> List[int]:
        return sorted(self._abandoned)

    @property
    def retrying(self) -> bool:
        return self._retry_worker is not None and not self._retry_worker.done()

    @property
    def advisory(self) -> Optional[str]:
        """Non-blocking message for the candidate, or None when nothing is pending."""
        if not self._retry_queue:
            return None
        return f"{len(self._retry_queue)} upload(s) retrying in background..."

    def state_of(self, question_index: int) -> UploadState:
        return self._states.get(question_index, UploadState.NOT_STARTED)

    def add_listener(self, listener: UploadListener):
        self._listeners.append(listener)

    def _set_state(self, question_index: int, state: UploadState):
        self._states[question_index] = state
        for listener in list(self._listeners):
            try:
                listener(question_index, state)
            except Exception as e:
                logger.error(f"Upload listener failed: {e}", exc_info=True)

    # ==================== Upload Paths ====================

    def enqueue(self, blob: MediaBlob, question_index: int) -> asyncio.Task:
        """
        Start a background upload and return immediately.

        Returns:
            Task resolving to True on first-attempt success, False if it was queued for retry
        """
        return self._spawn(self.upload(blob, question_index))

    async def upload(self, blob: MediaBlob, question_index: int) -> bool:
        """
        Attempt one upload; on failure queue it for retry. Never raises.

        Returns:
            True if the upload succeeded
        """
        if await self._attempt(blob, question_index, attempt_number=1):
            return True
        self._queue_retry(blob, question_index, attempts=1)
        return False

    async def upload_last(self, blob: MediaBlob, question_index: int) -> bool:
        """
        Final-question path: race the upload against a short timeout, then wait
        a bounded time for the retry queue to drain.

        A timed-out upload is not cancelled; it keeps running and clears its own
        retry entry if it succeeds later.

        Returns:
            True if the final answer was uploaded by the time this returns
        """
        policy = self.policy
        upload_task = self._spawn(self.upload(blob, question_index))
        done, _ = await asyncio.wait({upload_task}, timeout=policy.last_upload_timeout_seconds)

        if not done:
            uploads_total.labels(status="timeout").inc()
            log_upload_event(
                logger, question_index, "timeout",
                timeout_seconds=policy.last_upload_timeout_seconds
            )
            self._queue_retry(blob, question_index, attempts=1)

        if self._retry_queue:
            logger.info(f"Finalizing {len(self._retry_queue)} upload(s)...")
            drained = await self.wait_for_drain(policy.final_wait_seconds)
            if not drained:
                logger.warning(f"{len(self._retry_queue)} upload(s) still retrying")
        else:
            await self._sleep(policy.final_settle_seconds)

        return question_index in self._uploaded

    async def wait_for_drain(self, timeout: float) -> bool:
        """
        Wait until the retry queue is empty.

        Returns:
            True if drained within the timeout
        """
        if not self._retry_queue:
            return True
        try:
            await asyncio.wait_for(self._drained.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def close(self):
        """Cancel background work (connection teardown). Pending retries are dropped."""
        self._closed = True
        tasks = list(self._background)
        if self._retry_worker is not None:
            tasks.append(self._retry_worker)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._replace_queue([])

    # ==================== Internals ====================

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _attempt(self, blob: MediaBlob, question_index: int, attempt_number: int) -> bool:
        self._set_state(question_index, UploadState.IN_FLIGHT)
        try:
            with track_upload():
                await self.upload_fn(blob, question_index)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log_upload_event(logger, question_index, "failed", attempts=attempt_number, error=str(e))
            if question_index not in self._uploaded:
                self._set_state(question_index, UploadState.FAILED)
            return False

        self._mark_succeeded(question_index, attempt_number)
        return True

    def _mark_succeeded(self, question_index: int, attempts: int):
        first_time = question_index not in self._uploaded
        self._uploaded.add(question_index)
        self._abandoned.discard(question_index)
        if any(t.question_index == question_index for t in self._retry_queue):
            # Late success of a soft-timed-out upload
            self._replace_queue([t for t in self._retry_queue if t.question_index != question_index])
        if first_time:
            log_upload_event(logger, question_index, "succeeded", attempts=attempts)
        self._set_state(question_index, UploadState.SUCCEEDED)

    def _queue_retry(self, blob: MediaBlob, question_index: int, attempts: int):
        if self._closed or question_index in self._uploaded:
            return
        if any(t.question_index == question_index for t in self._retry_queue):
            return
        delay_ms = backoff_delay_ms(attempts, self.policy.backoff_base_ms, self.policy.backoff_cap_ms)
        task = UploadTask(
            blob=blob,
            question_index=question_index,
            attempts=attempts,
            next_attempt_at=self._clock() + delay_ms / 1000
        )
        self._replace_queue(self._retry_queue + [task])
        self._set_state(question_index, UploadState.RETRYING)
        log_upload_event(logger, question_index, "retrying", attempts=attempts, pending=len(self._retry_queue))
        self._ensure_retry_worker()

    def _replace_queue(self, new_queue: List[UploadTask]):
        retry_queue_depth.inc(len(new_queue) - len(self._retry_queue))
        self._retry_queue = new_queue
        if new_queue:
            self._drained.clear()
        else:
            self._drained.set()

    def _ensure_retry_worker(self):
        if self.retrying or self._closed:
            return
        self._retry_worker = asyncio.create_task(self._drain_retry_queue())

    async def _drain_retry_queue(self):
        """Single retry worker: passes over the queue until it is empty."""
        while self._retry_queue and not self._closed:
            for entry in list(self._retry_queue):
                current = self._find(entry.question_index)
                if current is None:
                    continue

                if current.attempts >= self.policy.max_attempts:
                    self._abandon(current)
                    continue

                delay_ms = backoff_delay_ms(current.attempts, self.policy.backoff_base_ms, self.policy.backoff_cap_ms)
                await self._sleep(delay_ms / 1000)

                # A late success may have cleared the entry while we slept
                if self._find(current.question_index) is None:
                    continue

                upload_retries_total.inc()
                success = await self._attempt(current.blob, current.question_index, current.attempts + 1)
                if success:
                    continue

                latest = self._find(current.question_index)
                if latest is None:
                    continue
                next_attempts = latest.attempts + 1
                next_delay = backoff_delay_ms(next_attempts, self.policy.backoff_base_ms, self.policy.backoff_cap_ms)
                bumped = replace(latest, attempts=next_attempts, next_attempt_at=self._clock() + next_delay / 1000)
                self._replace_queue([
                    bumped if t.question_index == latest.question_index else t
                    for t in self._retry_queue
                ])
                self._set_state(current.question_index, UploadState.RETRYING)

        if self._retry_queue:
            logger.info(f"{len(self._retry_queue)} upload(s) retrying in background...")

    def _find(self, question_index: int) -> Optional[UploadTask]:
        for task in self._retry_queue:
            if task.question_index == question_index:
                return task
        return None

    def _abandon(self, task: UploadTask):
        self._replace_queue([t for t in self._retry_queue if t.question_index != task.question_index])
        self._abandoned.add(task.question_index)
        uploads_abandoned_total.inc()
        error = UploadAbandonedError(task.question_index, task.attempts)
        log_upload_event(logger, task.question_index, "abandoned", attempts=task.attempts, error=str(error))
        self._set_state(task.question_index, UploadState.ABANDONED)
        if self.report_failure is not None:
            self._spawn(self._report(task.question_index, task.attempts))

    async def _report(self, question_index: int, attempts: int):
        try:
            await self.report_failure(question_index, attempts)
        except Exception as e:
            logger.error(f"Failed to log upload failure for question {question_index}: {e}")
