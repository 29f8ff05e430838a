"""
Interview Flow Controller
Sequences the questions of one interview attempt and decides when it ends.

Wires CaptureSession -> Recorder -> QuestionTimer -> UploadPipeline together
and drives them from a one-second ticker. Only one question is ever active;
a previous answer may still be uploading or retrying while the next one records.
"""

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from interview_recorder.core.constants import RECORDER_FINALIZE_TIMEOUT_SECONDS
from interview_recorder.core.errors import (
    CaptureError,
    InterviewRecorderError,
    MinDurationNotMetError,
    SessionLoadFailedError,
    StorageError,
    UnsupportedCodecError,
)
from interview_recorder.core.models import (
    TERMINAL_FLOW_STATES,
    CandidateData,
    CompletionReason,
    FlowState,
    InterviewData,
    InterviewOutcome,
    InterviewProgress,
    MediaBlob,
    QuestionAttempt,
    RecorderState,
    TimerPhase,
    UploadState,
)
from interview_recorder.core.policies import TimingPolicy
from interview_recorder.core.question_order import resolve_question_order
from interview_recorder.flow.deadline import GlobalDeadlineTimer
from interview_recorder.flow.question_timer import QuestionTimer
from interview_recorder.flow.ticker import Ticker
from interview_recorder.media.base_media_service import MediaDevices
from interview_recorder.media.capture_session import CaptureSession
from interview_recorder.media.recorder import Recorder, select_mime_type
from interview_recorder.storage.base_store import RecordingStore
from interview_recorder.upload.pipeline import UploadPipeline
from interview_recorder.utils.logging_config import log_session_event
from interview_recorder.utils.metrics import active_interviews, record_interview_outcome

logger = logging.getLogger(__name__)

# Sends one event (type, data) to the candidate's browser
EventEmitter = Callable[[str, Dict[str, Any]], Awaitable[None]]

_TERMINAL_STATES = {
    CompletionReason.COMPLETED: FlowState.COMPLETED,
    CompletionReason.TIMEOUT: FlowState.TIMED_OUT,
    CompletionReason.EXITED: FlowState.EXITED,
}


class InterviewFlowController:
    """
    One interview attempt for one candidate.

    Lifecycle: load_session() -> start() -> ticks and commands -> terminal outcome.
    Terminal states are completed, timed_out, exited (each with an outcome and
    redirect URL) and failed (capture, codec or load errors; manual reload required).
    All state lives in memory; a dropped connection loses progress but uploaded
    recordings survive.
    """

    def __init__(
        self,
        interview_id: str,
        candidate_id: str,
        store: RecordingStore,
        devices: MediaDevices,
        pipeline: UploadPipeline,
        emit: EventEmitter,
        policy: Optional[TimingPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        auto_tick: bool = True
    ):
        self.interview_id = interview_id
        self.candidate_id = candidate_id
        self.session_id = f"{interview_id}/{candidate_id}"
        self.store = store
        self.devices = devices
        self.pipeline = pipeline
        self.emit = emit
        self.policy = policy or TimingPolicy()
        self._sleep = sleep
        self._clock = clock
        self.auto_tick = auto_tick

        self.state = FlowState.LOADING
        self.interview: Optional[InterviewData] = None
        self.candidate: Optional[CandidateData] = None
        self.question_order: List[int] = []
        self.progress = InterviewProgress()
        self.deadline: Optional[GlobalDeadlineTimer] = None
        self.capture = CaptureSession(devices)

        self.attempt: Optional[QuestionAttempt] = None
        self.attempts: Dict[int, QuestionAttempt] = {}
        self.timer: Optional[QuestionTimer] = None
        self.recorder: Optional[Recorder] = None

        self.outcome: Optional[InterviewOutcome] = None
        self.error: Optional[InterviewRecorderError] = None
        self._finished = asyncio.Event()
        self._finalizing = False
        self._started_at: Optional[float] = None
        self._ticker = Ticker(self.tick, interval=1.0)
        self._tasks: Set[asyncio.Task] = set()

        self.pipeline.add_listener(self._on_upload_state)

    # ==================== Properties ====================

    @property
    def total_questions(self) -> int:
        return len(self.question_order)

    @property
    def is_last_question(self) -> bool:
        return self.progress.current_index == self.total_questions - 1

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_FLOW_STATES

    def question_text(self, question_index: int) -> Optional[str]:
        if self.interview is None or not (0 <= question_index < len(self.interview.questions)):
            return None
        return self.interview.questions[question_index]

    def completion_url(self, reason: CompletionReason) -> str:
        if reason is CompletionReason.EXITED:
            return f"/interview/{self.interview_id}"
        return f"/interview/{self.interview_id}/complete?candidate_id={self.candidate_id}&reason={reason.value}"

    # ==================== Session ====================

    async def load_session(self):
        """
        Fetch the interview definition and the candidate's fixed question order.

        Raises:
            SessionLoadFailedError: If either fetch fails (fatal, not retried)
        """
        try:
            self.interview = await self.store.get_interview(self.interview_id)
            self.candidate = await self.store.get_candidate(self.interview_id, self.candidate_id)
            self.question_order = resolve_question_order(
                self.candidate.question_order,
                len(self.interview.questions)
            )
        except (StorageError, SessionLoadFailedError) as e:
            error = e if isinstance(e, SessionLoadFailedError) else SessionLoadFailedError(str(e))
            await self._fail(error)
            raise error from e

        self.progress = InterviewProgress(total_questions=self.total_questions)
        self.deadline = GlobalDeadlineTimer(self.total_questions, self.policy.seconds_per_question)
        self.progress.remaining_global_seconds = self.deadline.remaining_seconds
        self.state = FlowState.READY

        log_session_event(
            logger, self.session_id, "loaded",
            total_questions=self.total_questions,
            budget_seconds=self.deadline.budget_seconds
        )
        await self._emit("session_loaded", {
            "job_title": self.interview.job_title,
            "total_questions": self.total_questions,
            "time_budget_seconds": self.deadline.budget_seconds,
            "max_answer_seconds": self.policy.max_answer_seconds,
        })

    async def start(self):
        """
        Acquire camera/microphone and enter the first question.

        Raises:
            CaptureError: Camera/microphone unavailable (terminal)
            UnsupportedCodecError: No supported recording format (terminal)
        """
        if self.state is not FlowState.READY:
            raise RuntimeError(f"Cannot start from state {self.state.value}")

        try:
            stream = await self.capture.acquire()
            select_mime_type(self.devices.create_recorder_backend(stream))
        except (CaptureError, UnsupportedCodecError) as e:
            await self._fail(e)
            raise

        self.state = FlowState.IN_PROGRESS
        self._started_at = self._clock()
        active_interviews.inc()
        log_session_event(logger, self.session_id, "started")

        await self._enter_question(0)
        if self.auto_tick:
            self._ticker.start()

    async def wait_for_outcome(self, timeout: Optional[float] = None) -> Optional[InterviewOutcome]:
        """
        Wait for the terminal transition.

        Returns:
            The outcome, or None if the session failed
        """
        await asyncio.wait_for(self._finished.wait(), timeout)
        return self.outcome

    # ==================== Questions ====================

    async def _enter_question(self, display_index: int):
        self.progress.advance_to(display_index)
        question_index = self.question_order[display_index]
        text = self.question_text(question_index)

        self.recorder = None
        self.timer = QuestionTimer(
            text,
            self.policy,
            start_capture=self._start_capture,
            stop_capture=self._stop_capture,
            on_done=self._on_question_done,
            spawn=self._spawn
        )
        self.attempt = QuestionAttempt(
            question_index=question_index,
            display_index=display_index,
            countdown_remaining=self.timer.countdown_remaining
        )
        self.attempts[question_index] = self.attempt

        log_session_event(
            logger, self.session_id, "question_entered",
            question_index=question_index,
            display_index=display_index
        )
        await self._emit("question", {
            "display_index": display_index,
            "question_index": question_index,
            "text": text,
            "total_questions": self.total_questions,
            "countdown_seconds": self.timer.countdown_remaining,
            "is_last": self.is_last_question,
        })

    async def _start_capture(self):
        stream = self.capture.stream
        if stream is None or not stream.active:
            stream = await self.capture.acquire()
        self.recorder = Recorder(
            self.devices.create_recorder_backend(stream),
            timeslice_ms=self.policy.recorder_timeslice_ms,
            clock=self._clock
        )
        await self.recorder.start()
        await self._emit("recording", {
            "elapsed": 0,
            "max_seconds": self.policy.max_answer_seconds,
            "finish_visible": False,
            "can_finish": False,
        })

    async def _stop_capture(self) -> MediaBlob:
        recorder = self.recorder
        if recorder is None:
            return MediaBlob(data=b"", mime_type="")
        try:
            blob = await recorder.stop_and_wait(RECORDER_FINALIZE_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning(f"Recorder did not finalize within {RECORDER_FINALIZE_TIMEOUT_SECONDS}s, using partial data")
            blob = MediaBlob(data=b"".join(recorder.chunks), mime_type=recorder.mime_type or "")
        elapsed = self.timer.recording_elapsed if self.timer is not None else recorder.elapsed_seconds
        return replace(blob, duration=float(elapsed))

    def _on_question_done(self, blob: MediaBlob):
        attempt = self.attempt
        if attempt is None or attempt.blob is not None:
            return
        attempt.attach_blob(blob)
        attempt.recording_elapsed = self.timer.recording_elapsed if self.timer else 0
        if self._finalizing:
            # The timeout path owns this answer
            return
        self._spawn(self.advance(attempt))

    async def advance(self, attempt: QuestionAttempt):
        """
        Hand the finished answer to the upload pipeline and move on.

        The last question waits (bounded) for its upload and any retries, then
        completes. Earlier questions upload in the background while the next
        question is shown after a short cosmetic delay.
        """
        if self.finished:
            return

        # An empty recording can never pass the upload endpoint
        has_media = attempt.blob is not None and attempt.blob.size > 0
        if not has_media:
            logger.warning(f"Question {attempt.question_index} produced no media; not uploading")

        if attempt.display_index >= self.total_questions - 1:
            self._finalizing = True
            self.state = FlowState.FINALIZING
            if has_media:
                await self._handoff_last(attempt)
            await self._complete(CompletionReason.COMPLETED)
            return

        if has_media:
            attempt.upload_state = UploadState.IN_FLIGHT
            self.pipeline.enqueue(attempt.blob, attempt.question_index)
        log_session_event(
            logger, self.session_id, "advanced",
            question_index=attempt.question_index,
            display_index=attempt.display_index
        )
        await self._sleep(self.policy.advance_delay_seconds)
        if self.state is FlowState.IN_PROGRESS and not self._finalizing:
            await self._enter_question(attempt.display_index + 1)

    async def _handoff_last(self, attempt: QuestionAttempt):
        attempt.upload_state = UploadState.IN_FLIGHT
        await self._emit("upload_status", {
            "question_index": attempt.question_index,
            "state": UploadState.IN_FLIGHT.value,
            "finalizing": True,
            "pending_uploads": self.pipeline.pending_count,
        })
        uploaded = await self.pipeline.upload_last(attempt.blob, attempt.question_index)
        if not uploaded:
            logger.warning(
                f"Final answer (question {attempt.question_index}) not confirmed uploaded; "
                f"{self.pipeline.pending_count} upload(s) still retrying"
            )

    # ==================== Ticks and Commands ====================

    async def tick(self):
        """One second of wall time: global deadline, active question timer, progress."""
        if self.state not in (FlowState.IN_PROGRESS, FlowState.FINALIZING):
            return

        expired = self.deadline.tick()
        self.progress.tick(self.deadline.remaining_seconds)
        if expired:
            self._spawn(self.on_global_timeout())
            await self._emit_progress()
            return

        timer = self.timer
        if self.state is FlowState.IN_PROGRESS and timer is not None:
            phase = timer.phase
            try:
                await timer.tick()
            except (CaptureError, UnsupportedCodecError) as e:
                await self._fail(e)
                return
            self._sync_attempt()
            if phase is TimerPhase.PREPARING and timer.phase is TimerPhase.PREPARING:
                await self._emit("countdown", {"remaining": timer.countdown_remaining})
            elif timer.phase is TimerPhase.RECORDING:
                await self._emit("recording", {
                    "elapsed": timer.recording_elapsed,
                    "max_seconds": self.policy.max_answer_seconds,
                    "finish_visible": timer.finish_visible,
                    "can_finish": timer.can_finish,
                })

        await self._emit_progress()

    async def skip_countdown(self):
        if self.state is not FlowState.IN_PROGRESS or self.timer is None:
            return
        try:
            await self.timer.skip_countdown()
        except (CaptureError, UnsupportedCodecError) as e:
            await self._fail(e)
            return
        self._sync_attempt()

    async def request_stop(self):
        """Candidate pressed stop. Refused with an advisory before the minimum length."""
        if self.state is not FlowState.IN_PROGRESS or self.timer is None:
            return
        try:
            await self.timer.request_stop()
        except MinDurationNotMetError as e:
            await self._emit("error", {
                "code": "min_duration_not_met",
                "message": f"Please record at least {e.minimum_seconds} seconds.",
                "fatal": False,
            })

    async def exit(self, confirmed: bool = False) -> bool:
        """
        Early termination. Discards the current answer and any unuploaded progress for it.

        Returns:
            False if confirmation is still required
        """
        if self.finished:
            return True
        if not confirmed:
            await self._emit("error", {
                "code": "confirmation_required",
                "message": "Are you sure you want to exit? Your progress on this question will be lost.",
                "fatal": False,
            })
            return False

        self._finalizing = True
        if self.timer is not None:
            await self.timer.abort()
        log_session_event(logger, self.session_id, "exited", display_index=self.progress.current_index)
        await self._complete(CompletionReason.EXITED)
        return True

    async def handle_command(self, command: Dict[str, Any]):
        name = command.get("command")
        if name == "skip_countdown":
            await self.skip_countdown()
        elif name == "stop_answer":
            await self.request_stop()
        elif name == "exit":
            await self.exit(confirmed=bool(command.get("confirmed")))
        else:
            logger.warning(f"Unknown command: {name}")

    async def on_global_timeout(self):
        """
        The interview budget ran out: stop the current answer, give it a
        best-effort upload like a last question, then complete with reason timeout.
        """
        if self._finalizing or self.finished:
            return
        self._finalizing = True
        self.state = FlowState.FINALIZING
        log_session_event(
            logger, self.session_id, "timeout",
            display_index=self.progress.current_index,
            elapsed_seconds=self.deadline.elapsed_seconds
        )

        attempt = self.attempt
        blob = None
        if self.timer is not None:
            blob = await self.timer.abort()
        recorder = self.recorder
        if blob is None and recorder is not None and recorder.state in (RecorderState.RECORDING, RecorderState.FINALIZING):
            # A manual stop or the cap was already finalizing this answer
            blob = await self._stop_capture()

        if attempt is not None and attempt.upload_state is UploadState.NOT_STARTED:
            if attempt.blob is None and blob is not None:
                attempt.attach_blob(blob)
            if attempt.blob is not None and attempt.blob.size > 0:
                await self._handoff_last(attempt)
        if self.pipeline.pending_count:
            await self.pipeline.wait_for_drain(self.pipeline.policy.final_wait_seconds)

        await self._complete(CompletionReason.TIMEOUT)

    # ==================== Terminal ====================

    async def _complete(self, reason: CompletionReason):
        if self.finished:
            return
        self.state = _TERMINAL_STATES[reason]
        self.progress.record_uploaded(self.pipeline.uploaded_count)
        self.outcome = InterviewOutcome(
            reason=reason,
            redirect_url=self.completion_url(reason),
            uploaded_count=self.progress.uploaded_count,
            total_questions=self.total_questions,
            pending_uploads=self.pipeline.pending_count,
        )

        await self._ticker.stop()
        await self.capture.release()
        duration = self._clock() - self._started_at if self._started_at is not None else 0.0
        record_interview_outcome(reason.value, duration)
        active_interviews.dec()

        log_session_event(
            logger, self.session_id, "completed",
            reason=reason.value,
            uploaded_count=self.outcome.uploaded_count,
            total_questions=self.total_questions,
            pending_uploads=self.outcome.pending_uploads
        )
        await self._emit("completed", self.outcome.model_dump(mode="json"))
        self._finished.set()

    async def _fail(self, error: InterviewRecorderError):
        if self.finished:
            return
        was_running = self._started_at is not None
        self.state = FlowState.FAILED
        self.error = error
        await self._ticker.stop()
        await self.capture.release()
        if was_running:
            active_interviews.dec()
        record_interview_outcome("failed", self._clock() - self._started_at if was_running else 0.0)

        payload = {"code": type(error).__name__, "message": str(error), "fatal": True}
        if isinstance(error, CaptureError):
            payload["kind"] = error.kind.value
            payload["message"] = error.message
        logger.error(f"Session {self.session_id} failed: {error}")
        await self._emit("error", payload)
        self._finished.set()

    async def teardown(self):
        """Connection closed: stop timers and release the camera. Uploads already handed off keep running."""
        await self._ticker.stop()
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        await self.capture.release()
        if self.state in (FlowState.IN_PROGRESS, FlowState.FINALIZING, FlowState.READY):
            if self._started_at is not None:
                active_interviews.dec()
            log_session_event(logger, self.session_id, "disconnected", display_index=self.progress.current_index)
            self.state = FlowState.FAILED
            self._finished.set()

    # ==================== Helpers ====================

    def _sync_attempt(self):
        if self.attempt is None or self.timer is None:
            return
        self.attempt.countdown_remaining = (
            self.timer.countdown_remaining if self.timer.phase is TimerPhase.PREPARING else None
        )
        self.attempt.recording_elapsed = self.timer.recording_elapsed

    def _on_upload_state(self, question_index: int, state: UploadState):
        attempt = self.attempts.get(question_index)
        if attempt is not None:
            attempt.upload_state = state
        self.progress.record_uploaded(self.pipeline.uploaded_count)
        if not self.finished:
            self._spawn(self._emit("upload_status", {
                "question_index": question_index,
                "state": state.value,
                "uploaded_count": self.progress.uploaded_count,
                "pending_uploads": self.pipeline.pending_count,
                "advisory": self.pipeline.advisory,
            }))

    async def _emit_progress(self):
        await self._emit("progress", {
            **self.progress.model_dump(),
            "pending_uploads": self.pipeline.pending_count,
            "advisory": self.pipeline.advisory,
        })

    async def _emit(self, event_type: str, data: Dict[str, Any]):
        try:
            await self.emit(event_type, data)
        except Exception as e:
            logger.warning(f"Failed to send {event_type} event: {e}")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
