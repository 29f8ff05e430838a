"""
Question Timer Module
Governs the prepare -> record -> done lifecycle of a single question.
"""

import logging
import math
from typing import Any, Awaitable, Callable, Optional

from interview_recorder.core.errors import MinDurationNotMetError
from interview_recorder.core.models import MediaBlob, TimerPhase
from interview_recorder.core.policies import TimingPolicy

logger = logging.getLogger(__name__)


def compute_countdown_seconds(question_text: Optional[str], policy: TimingPolicy) -> int:
    """
    Pre-roll length from a reading-speed heuristic.

    ceil(words / words_per_second) + buffer, or the fallback when no text is available.
    """
    if not question_text or not question_text.strip():
        return policy.fallback_countdown_seconds
    words = len(question_text.split())
    return math.ceil(words / policy.reading_words_per_second) + policy.reading_buffer_seconds


class QuestionTimer:
    """
    Per-question lifecycle: Preparing(countdown) -> Recording(elapsed) -> Done.

    The timer never touches the recorder directly. It asks the owner to start and
    stop capture through callbacks, and hands the finalized blob to on_done exactly once.
    The minimum answer length is enforced here, not in the recorder.

    With a `spawn` callable, finalization after the cap runs as a separate task
    so tick() returns without waiting on the recorder.
    """

    def __init__(
        self,
        question_text: Optional[str],
        policy: TimingPolicy,
        start_capture: Callable[[], Awaitable[None]],
        stop_capture: Callable[[], Awaitable[MediaBlob]],
        on_done: Callable[[MediaBlob], None],
        countdown_seconds: Optional[int] = None,
        spawn: Optional[Callable[[Awaitable[None]], Any]] = None
    ):
        self.policy = policy
        self.start_capture = start_capture
        self.stop_capture = stop_capture
        self.on_done = on_done
        self.spawn = spawn

        self.phase = TimerPhase.PREPARING
        self.countdown_remaining = (
            countdown_seconds if countdown_seconds is not None
            else compute_countdown_seconds(question_text, policy)
        )
        self.recording_elapsed = 0
        self.blob: Optional[MediaBlob] = None
        self._emitted = False

    @property
    def finish_visible(self) -> bool:
        """Whether the stop control should be shown."""
        return (
            self.phase is TimerPhase.RECORDING
            and self.recording_elapsed >= self.policy.finish_visible_after_seconds
        )

    @property
    def can_finish(self) -> bool:
        return (
            self.phase is TimerPhase.RECORDING
            and self.recording_elapsed >= self.policy.min_answer_seconds
        )

    async def tick(self):
        """Advance one second."""
        if self.phase is TimerPhase.PREPARING:
            self.countdown_remaining = max(0, self.countdown_remaining - 1)
            if self.countdown_remaining == 0:
                await self._begin_recording()
        elif self.phase is TimerPhase.RECORDING:
            self.recording_elapsed += 1
            if self.recording_elapsed >= self.policy.max_answer_seconds:
                logger.info(f"Recording cap reached ({self.policy.max_answer_seconds}s), stopping")
                self.phase = TimerPhase.DONE
                if self.spawn is not None:
                    self.spawn(self._collect(emit=True))
                else:
                    await self._collect(emit=True)

    async def skip_countdown(self):
        """Explicit user action: start recording immediately."""
        if self.phase is not TimerPhase.PREPARING:
            return
        self.countdown_remaining = 0
        await self._begin_recording()

    async def request_stop(self):
        """
        Manual stop from the candidate.

        Raises:
            MinDurationNotMetError: If the answer is shorter than the configured minimum
        """
        if self.phase is not TimerPhase.RECORDING:
            return
        if self.recording_elapsed < self.policy.min_answer_seconds:
            raise MinDurationNotMetError(self.recording_elapsed, self.policy.min_answer_seconds)
        await self._finish(emit=True)

    async def abort(self) -> Optional[MediaBlob]:
        """
        Forced termination (global deadline). Returns whatever was recorded
        without emitting it through on_done.
        """
        if self.phase is TimerPhase.PREPARING:
            self.phase = TimerPhase.DONE
            return None
        if self.phase is TimerPhase.RECORDING:
            await self._finish(emit=False)
        return self.blob

    async def _begin_recording(self):
        self.phase = TimerPhase.RECORDING
        self.recording_elapsed = 0
        await self.start_capture()

    async def _finish(self, emit: bool):
        # Phase flips before awaiting so concurrent stop requests become no-ops
        self.phase = TimerPhase.DONE
        await self._collect(emit)

    async def _collect(self, emit: bool):
        self.blob = await self.stop_capture()
        if emit and not self._emitted:
            self._emitted = True
            self.on_done(self.blob)
