"""
In-memory stand-ins for the browser media backends, blob storage and the LLM.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence

from interview_recorder.core.errors import MediaDeviceError, StorageError
from interview_recorder.media.base_media_service import MediaDevices, MediaRecorderBackend, MediaStream
from interview_recorder.scoring.schemas import AnswerEvaluation
from interview_recorder.storage.blob_storage import BlobStorage


async def fast_sleep(_seconds: float):
    await asyncio.sleep(0)


class RecordingSleep:
    """Sleep stand-in that records requested delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)
        await asyncio.sleep(0)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.005)


class EventLog:
    """Collects (type, data) events sent by the flow controller."""

    def __init__(self):
        self.events: List[tuple] = []

    async def __call__(self, event_type: str, data: Dict[str, Any]):
        self.events.append((event_type, data))

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [data for kind, data in self.events if kind == event_type]

    @property
    def types(self) -> List[str]:
        return [kind for kind, _ in self.events]


class FakeMediaStream(MediaStream):
    def __init__(self, track_kinds: Sequence[str] = ("video", "audio")):
        self._track_kinds = list(track_kinds)
        self.stopped = False
        self.stop_calls = 0

    @property
    def track_kinds(self) -> List[str]:
        return list(self._track_kinds)

    @property
    def active(self) -> bool:
        return not self.stopped

    async def stop(self):
        self.stop_calls += 1
        self.stopped = True


class FakeRecorderBackend(MediaRecorderBackend):
    """
    Delivers the first fragment on start and the rest on stop, then signals
    completion (unless finalize=False).
    """

    def __init__(
        self,
        supported: Sequence[str] = ("video/webm",),
        chunks: Sequence[bytes] = (b"frame-1", b"frame-2"),
        finalize: bool = True
    ):
        self.supported = set(supported)
        self.chunks = list(chunks)
        self.finalize = finalize
        self.on_data: Optional[Callable[[bytes], None]] = None
        self.on_stop: Optional[Callable[[], None]] = None
        self.started_with: Optional[tuple] = None
        self.stop_calls = 0

    def is_type_supported(self, mime_type: str) -> bool:
        return mime_type in self.supported

    async def start(self, mime_type, timeslice_ms, on_data, on_stop):
        self.started_with = (mime_type, timeslice_ms)
        self.on_data = on_data
        self.on_stop = on_stop
        if self.chunks:
            on_data(self.chunks[0])

    async def stop(self):
        self.stop_calls += 1
        for chunk in self.chunks[1:]:
            self.on_data(chunk)
        if self.finalize:
            self.on_stop()


class FakeMediaDevices(MediaDevices):
    def __init__(
        self,
        error_name: Optional[str] = None,
        supported: Sequence[str] = ("video/webm",),
        chunks: Sequence[bytes] = (b"frame-1", b"frame-2"),
        finalize: bool = True
    ):
        self.error_name = error_name
        self.supported = supported
        self.chunks = chunks
        self.finalize = finalize
        self.streams: List[FakeMediaStream] = []
        self.backends: List[FakeRecorderBackend] = []
        self.requests: List[Dict[str, Any]] = []

    async def get_user_media(self, constraints=None) -> MediaStream:
        self.requests.append(constraints)
        if self.error_name:
            raise MediaDeviceError(self.error_name, "device refused")
        stream = FakeMediaStream()
        self.streams.append(stream)
        return stream

    def create_recorder_backend(self, stream: MediaStream) -> MediaRecorderBackend:
        backend = FakeRecorderBackend(self.supported, self.chunks, self.finalize)
        self.backends.append(backend)
        return backend


class FakeBlobStorage(BlobStorage):
    """Stores blobs in a dict; paths containing any of `fail_on` raise StorageError."""

    def __init__(self, fail_on: Sequence[str] = ()):
        self.blobs: Dict[str, bytes] = {}
        self.fail_on = list(fail_on)
        self.put_calls: List[str] = []

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        self.put_calls.append(path)
        if any(fragment in path for fragment in self.fail_on):
            raise StorageError(f"Simulated outage for {path}")
        self.blobs[path] = data
        return f"https://blobs.test/{path}"

    async def delete(self, path: str):
        self.blobs.pop(path, None)


class FakeStructuredLLM:
    def __init__(self, result, calls: list):
        self.result = result
        self.calls = calls

    async def ainvoke(self, messages):
        self.calls.append(messages)
        return self.result


class FakeLLM:
    """Answers with_structured_output() with canned results per schema."""

    def __init__(self, answer=None, feedback=None, fail: bool = False):
        self.answer = answer
        self.feedback = feedback
        self.fail = fail
        self.calls: list = []

    def with_structured_output(self, schema):
        if self.fail:
            raise ValueError("model unavailable")
        result = self.answer if schema is AnswerEvaluation else self.feedback
        return FakeStructuredLLM(result, self.calls)
