"""
Tests for the single-attempt recorder and container/codec negotiation.
"""

import asyncio

import pytest

from interview_recorder.core.errors import UnsupportedCodecError
from interview_recorder.core.models import RecorderState
from interview_recorder.media.recorder import Recorder, select_mime_type

from fakes import FakeRecorderBackend


def test_select_mime_type_prefers_vp8_opus():
    backend = FakeRecorderBackend(supported=("video/mp4", "video/webm;codecs=vp8,opus"))
    assert select_mime_type(backend) == "video/webm;codecs=vp8,opus"


def test_select_mime_type_falls_back_to_mp4():
    backend = FakeRecorderBackend(supported=("video/mp4",))
    assert select_mime_type(backend) == "video/mp4"


def test_select_mime_type_unsupported():
    with pytest.raises(UnsupportedCodecError):
        select_mime_type(FakeRecorderBackend(supported=()))


async def test_record_and_finalize():
    completed = []
    backend = FakeRecorderBackend(chunks=(b"a", b"b", b"c"))
    recorder = Recorder(backend, on_complete=completed.append, timeslice_ms=250)

    await recorder.start()
    assert recorder.state is RecorderState.RECORDING
    assert backend.started_with == ("video/webm", 250)

    blob = await recorder.stop_and_wait(timeout=1)

    assert recorder.state is RecorderState.COMPLETE
    assert blob.data == b"abc"
    assert blob.mime_type == "video/webm"
    assert completed == [blob]


async def test_platform_stop_without_request_is_ignored():
    completed = []
    backend = FakeRecorderBackend()
    recorder = Recorder(backend, on_complete=completed.append)
    await recorder.start()

    backend.on_stop()

    assert recorder.state is RecorderState.RECORDING
    assert completed == []

    await recorder.stop()
    assert completed and recorder.state is RecorderState.COMPLETE


async def test_completion_fires_once():
    completed = []
    backend = FakeRecorderBackend()
    recorder = Recorder(backend, on_complete=completed.append)
    await recorder.start()
    await recorder.stop()

    backend.on_stop()
    await recorder.stop()

    assert len(completed) == 1
    assert backend.stop_calls == 1


async def test_recorder_is_single_use():
    recorder = Recorder(FakeRecorderBackend())
    await recorder.start()
    await recorder.stop()

    with pytest.raises(RuntimeError):
        await recorder.start()


async def test_fragments_after_completion_are_dropped():
    backend = FakeRecorderBackend(chunks=(b"a", b"b"))
    recorder = Recorder(backend)
    await recorder.start()
    blob = await recorder.stop_and_wait(timeout=1)

    backend.on_data(b"late")
    backend.on_data(b"")

    assert recorder.chunks == [b"a", b"b"]
    assert blob.data == b"ab"


async def test_wait_for_blob_times_out_without_platform_stop():
    recorder = Recorder(FakeRecorderBackend(finalize=False))
    await recorder.start()

    with pytest.raises(asyncio.TimeoutError):
        await recorder.stop_and_wait(timeout=0.01)
    assert recorder.state is RecorderState.FINALIZING


async def test_wait_for_blob_before_start():
    with pytest.raises(RuntimeError):
        await Recorder(FakeRecorderBackend()).wait_for_blob()


async def test_elapsed_uses_clock():
    now = [100.0]
    recorder = Recorder(FakeRecorderBackend(), clock=lambda: now[0])
    assert recorder.elapsed_seconds == 0
    await recorder.start()
    now[0] = 104.6
    assert recorder.elapsed_seconds == 4
