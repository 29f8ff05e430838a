"""
Browser Channel
WebSocket media proxy: the browser owns the camera and MediaRecorder, this side owns every decision.

Server -> browser messages:
    {"type": "get_user_media", "request_id", "constraints"}
    {"type": "recorder_start", "mime_type", "timeslice_ms"}
    {"type": "recorder_stop"}
    {"type": "stop_tracks"}
    plus flow events ({"type": "question" | "countdown" | ..., "data": {...}})

Browser -> server messages:
    {"type": "media_granted", "request_id", "track_kinds", "supported_mime_types"}
    {"type": "media_error", "request_id", "name", "message"}
    binary frames: recorder fragments, in order
    {"type": "recording_stopped"}: sent after the last fragment
    {"type": "tracks_ended"}
    {"type": "command", "command": "skip_countdown" | "stop_answer" | "exit", "confirmed": bool}
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from fastapi import WebSocket

from interview_recorder.core.errors import MediaDeviceError
from interview_recorder.core.models import InterviewEvent
from interview_recorder.media.base_media_service import (
    MediaDevices,
    MediaRecorderBackend,
    MediaStream,
    default_media_constraints,
)

logger = logging.getLogger(__name__)

COMMANDS = {"skip_countdown", "stop_answer", "exit"}


class RemoteMediaStream(MediaStream):
    """Handle for the camera+microphone stream living in the browser."""

    def __init__(self, channel: "BrowserChannel", track_kinds: List[str], supported_mime_types: List[str]):
        self.channel = channel
        self._track_kinds = list(track_kinds)
        self.supported_mime_types = list(supported_mime_types)
        self._active = True

    @property
    def track_kinds(self) -> List[str]:
        return list(self._track_kinds)

    @property
    def active(self) -> bool:
        return self._active and not self.channel.closed

    def mark_ended(self):
        self._active = False

    async def stop(self):
        if not self._active:
            return
        self._active = False
        if not self.channel.closed:
            await self.channel.send_message({"type": "stop_tracks"})


class RemoteRecorderBackend(MediaRecorderBackend):
    """Drives the browser's MediaRecorder for one recording attempt."""

    def __init__(self, channel: "BrowserChannel", stream: RemoteMediaStream):
        self.channel = channel
        self.stream = stream
        self._on_data: Optional[Callable[[bytes], None]] = None
        self._on_stop: Optional[Callable[[], None]] = None

    def is_type_supported(self, mime_type: str) -> bool:
        return mime_type in self.stream.supported_mime_types

    async def start(
        self,
        mime_type: str,
        timeslice_ms: int,
        on_data: Callable[[bytes], None],
        on_stop: Callable[[], None]
    ):
        self._on_data = on_data
        self._on_stop = on_stop
        self.channel.attach_recorder(self)
        await self.channel.send_message({
            "type": "recorder_start",
            "mime_type": mime_type,
            "timeslice_ms": timeslice_ms,
        })

    async def stop(self):
        if self.channel.closed:
            # No more fragments can arrive; finalize with what we have
            self.stopped()
            return
        await self.channel.send_message({"type": "recorder_stop"})

    def deliver(self, chunk: bytes):
        if self._on_data is not None:
            self._on_data(chunk)

    def stopped(self):
        self.channel.detach_recorder(self)
        if self._on_stop is not None:
            on_stop, self._on_stop = self._on_stop, None
            on_stop()


class BrowserChannel(MediaDevices):
    """
    One candidate connection.

    receive_loop() must run as a task for the lifetime of the connection: it
    resolves permission requests, routes binary frames to the active recorder
    and queues user commands for the flow controller.
    """

    def __init__(self, websocket: WebSocket, permission_timeout: Optional[float] = None):
        self.websocket = websocket
        self.permission_timeout = permission_timeout
        self.closed = False
        self._pending: Dict[str, asyncio.Future] = {}
        self._recorder: Optional[RemoteRecorderBackend] = None
        self._streams: List[RemoteMediaStream] = []
        self._commands: asyncio.Queue = asyncio.Queue()

    # ==================== Outbound ====================

    async def send_message(self, payload: Dict[str, Any]):
        if self.closed:
            return
        await self.websocket.send_json(payload)

    async def send_event(self, event_type: str, data: Optional[Dict[str, Any]] = None):
        event = InterviewEvent(type=event_type, data=data or {})
        await self.send_message(event.model_dump())

    # ==================== MediaDevices ====================

    async def get_user_media(self, constraints: Optional[Dict[str, Any]] = None) -> MediaStream:
        if self.closed:
            raise MediaDeviceError("AbortError", "Connection closed")

        request_id = uuid.uuid4().hex
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self.send_message({
                "type": "get_user_media",
                "request_id": request_id,
                "constraints": constraints or default_media_constraints(),
            })
            reply = await asyncio.wait_for(future, timeout=self.permission_timeout)
        except asyncio.TimeoutError:
            raise MediaDeviceError("TimeoutError", "No response to the camera/microphone request")
        finally:
            self._pending.pop(request_id, None)

        if reply.get("type") == "media_error":
            raise MediaDeviceError(reply.get("name") or "Error", reply.get("message") or "")

        stream = RemoteMediaStream(
            self,
            reply.get("track_kinds") or ["video", "audio"],
            reply.get("supported_mime_types") or []
        )
        self._streams.append(stream)
        return stream

    def create_recorder_backend(self, stream: MediaStream) -> MediaRecorderBackend:
        if not isinstance(stream, RemoteMediaStream):
            raise TypeError("BrowserChannel can only record its own streams")
        return RemoteRecorderBackend(self, stream)

    def attach_recorder(self, recorder: RemoteRecorderBackend):
        if self._recorder is not None and self._recorder is not recorder:
            logger.warning("Replacing an active recorder; its remaining fragments will be dropped")
        self._recorder = recorder

    def detach_recorder(self, recorder: RemoteRecorderBackend):
        if self._recorder is recorder:
            self._recorder = None

    # ==================== Inbound ====================

    async def next_command(self) -> Optional[Dict[str, Any]]:
        """Next user command, or None once the connection has closed."""
        return await self._commands.get()

    async def receive_loop(self):
        try:
            while True:
                message = await self.websocket.receive()
                if message.get("type") == "websocket.disconnect":
                    logger.info(f"Browser disconnected (code={message.get('code')})")
                    break
                if message.get("bytes") is not None:
                    self._on_binary(message["bytes"])
                elif message.get("text") is not None:
                    self._on_text(message["text"])
        finally:
            self._close()

    def _on_binary(self, chunk: bytes):
        if self._recorder is None:
            logger.warning(f"Dropping {len(chunk)} byte fragment with no active recorder")
            return
        self._recorder.deliver(chunk)

    def _on_text(self, text: str):
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring malformed message: {text[:100]}")
            return
        if not isinstance(payload, dict):
            logger.warning("Ignoring non-object message")
            return

        message_type = payload.get("type")
        if message_type in ("media_granted", "media_error"):
            future = self._pending.get(payload.get("request_id", ""))
            if future is None or future.done():
                logger.warning(f"Unexpected {message_type} for request {payload.get('request_id')}")
                return
            future.set_result(payload)
        elif message_type == "recording_stopped":
            if self._recorder is not None:
                self._recorder.stopped()
        elif message_type == "tracks_ended":
            for stream in self._streams:
                stream.mark_ended()
        elif message_type == "command":
            if payload.get("command") not in COMMANDS:
                logger.warning(f"Unknown command: {payload.get('command')}")
                return
            self._commands.put_nowait(payload)
        else:
            logger.debug(f"Ignoring message type: {message_type}")

    def _close(self):
        if self.closed:
            return
        self.closed = True
        for future in self._pending.values():
            if not future.done():
                future.set_exception(MediaDeviceError("AbortError", "Connection closed"))
        for stream in self._streams:
            stream.mark_ended()
        if self._recorder is not None:
            self._recorder.stopped()
        self._commands.put_nowait(None)
