"""
Recorder Module
Wraps a single recording attempt on top of a borrowed capture stream.
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional, Sequence

from interview_recorder.core.constants import MIME_TYPE_PREFERENCES, RECORDER_TIMESLICE_MS
from interview_recorder.core.errors import UnsupportedCodecError
from interview_recorder.core.models import MediaBlob, RecorderState
from interview_recorder.media.base_media_service import MediaRecorderBackend

logger = logging.getLogger(__name__)


def select_mime_type(backend: MediaRecorderBackend, preferences: Sequence[str] = MIME_TYPE_PREFERENCES) -> str:
    """
    Pick the first container/codec the backend supports.

    Raises:
        UnsupportedCodecError: If no preference is supported (fatal, not retried)
    """
    for mime_type in preferences:
        if backend.is_type_supported(mime_type):
            return mime_type
    raise UnsupportedCodecError("Browser recording not supported.")


class Recorder:
    """
    One recording attempt: Idle -> Recording -> Finalizing -> Complete.

    A Recorder is never reused across questions; the flow controller discards it
    and creates a new one when advancing. The completion callback fires exactly
    once, only after stop() has been requested.
    """

    def __init__(
        self,
        backend: MediaRecorderBackend,
        on_complete: Optional[Callable[[MediaBlob], None]] = None,
        mime_preferences: Sequence[str] = MIME_TYPE_PREFERENCES,
        timeslice_ms: int = RECORDER_TIMESLICE_MS,
        clock: Callable[[], float] = time.monotonic
    ):
        self.backend = backend
        self.on_complete = on_complete
        self.mime_preferences = tuple(mime_preferences)
        self.timeslice_ms = timeslice_ms
        self.clock = clock

        self.state = RecorderState.IDLE
        self.chunks: List[bytes] = []
        self.mime_type: Optional[str] = None
        self.started_at: Optional[float] = None
        self.result_blob: Optional[MediaBlob] = None
        self._done: Optional[asyncio.Future] = None

    @property
    def elapsed_seconds(self) -> int:
        if self.started_at is None:
            return 0
        return int(self.clock() - self.started_at)

    async def start(self):
        """
        Negotiate the container/codec and begin recording.

        Raises:
            UnsupportedCodecError: No supported container/codec
            RuntimeError: If this recorder has already been started
        """
        if self.state is not RecorderState.IDLE:
            raise RuntimeError(f"Recorder already used (state={self.state.value})")

        self.mime_type = select_mime_type(self.backend, self.mime_preferences)

        self.chunks = []
        self._done = asyncio.get_running_loop().create_future()
        self.started_at = self.clock()
        self.state = RecorderState.RECORDING

        await self.backend.start(
            self.mime_type,
            self.timeslice_ms,
            self._on_data_available,
            self._on_stop
        )
        logger.info(f"Recording started ({self.mime_type})")

    def _on_data_available(self, chunk: bytes):
        if not chunk:
            return
        if self.state not in (RecorderState.RECORDING, RecorderState.FINALIZING):
            logger.warning(f"Dropping {len(chunk)} byte fragment received in state {self.state.value}")
            return
        self.chunks.append(chunk)

    async def stop(self):
        """Request finalization. A no-op unless currently recording."""
        if self.state is not RecorderState.RECORDING:
            return
        self.state = RecorderState.FINALIZING
        await self.backend.stop()

    def _on_stop(self):
        if self.state is RecorderState.RECORDING:
            logger.warning("Platform recorder stopped before a stop was requested; ignoring")
            return
        if self.state is not RecorderState.FINALIZING:
            return
        self._finalize()

    def _finalize(self):
        blob = MediaBlob(data=b"".join(self.chunks), mime_type=self.mime_type or "")
        self.result_blob = blob
        self.state = RecorderState.COMPLETE
        logger.info(f"Recording finalized: {len(self.chunks)} fragments, {blob.size} bytes")

        if self._done is not None and not self._done.done():
            self._done.set_result(blob)
        if self.on_complete:
            self.on_complete(blob)

    async def wait_for_blob(self, timeout: Optional[float] = None) -> MediaBlob:
        """
        Wait for the finalized blob.

        Raises:
            asyncio.TimeoutError: If finalization does not complete in time
            RuntimeError: If the recorder was never started
        """
        if self.result_blob is not None:
            return self.result_blob
        if self._done is None:
            raise RuntimeError("Recorder was never started")
        return await asyncio.wait_for(asyncio.shield(self._done), timeout)

    async def stop_and_wait(self, timeout: Optional[float] = None) -> MediaBlob:
        await self.stop()
        return await self.wait_for_blob(timeout)
