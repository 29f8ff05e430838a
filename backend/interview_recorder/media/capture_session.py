"""
Capture Session Module
Owns the single camera/microphone stream for an interview attempt.
"""

import logging
from typing import Any, Callable, Dict, Optional

from interview_recorder.core.errors import CaptureError, CaptureErrorKind, MediaDeviceError
from interview_recorder.core.models import PermissionState
from interview_recorder.media.base_media_service import (
    MediaDevices,
    MediaStream,
    default_media_constraints,
)
from interview_recorder.utils.metrics import capture_errors_total

logger = logging.getLogger(__name__)


# Platform error names grouped by classification
_PERMISSION_ERRORS = {"NotAllowedError", "PermissionDeniedError"}
_NOT_FOUND_ERRORS = {"NotFoundError", "DevicesNotFoundError"}
_BUSY_ERRORS = {"NotReadableError", "TrackStartError"}

CAPTURE_ERROR_MESSAGES = {
    CaptureErrorKind.PERMISSION_DENIED: (
        "Camera/microphone access denied. Please click the lock icon in your "
        "browser address bar to allow access."
    ),
    CaptureErrorKind.DEVICE_NOT_FOUND: (
        "No camera or microphone found. Please connect a device."
    ),
    CaptureErrorKind.DEVICE_BUSY: (
        "Camera is in use by another app (like Zoom/Teams) or blocked by your "
        "system privacy settings. Please close other apps and check your privacy settings."
    ),
}

_PERMISSION_STATES = {
    CaptureErrorKind.PERMISSION_DENIED: PermissionState.DENIED,
    CaptureErrorKind.DEVICE_NOT_FOUND: PermissionState.DEVICE_MISSING,
    CaptureErrorKind.DEVICE_BUSY: PermissionState.DEVICE_BUSY,
    CaptureErrorKind.UNKNOWN: PermissionState.UNKNOWN,
}


def classify_capture_error(name: Optional[str], message: Optional[str] = None) -> CaptureError:
    """
    Map a platform media error onto the CaptureError taxonomy.

    Args:
        name: Platform error name (e.g. "NotAllowedError")
        message: Platform error message

    Returns:
        CaptureError carrying its kind and a user-facing message
    """
    if name in _PERMISSION_ERRORS:
        kind = CaptureErrorKind.PERMISSION_DENIED
    elif name in _NOT_FOUND_ERRORS:
        kind = CaptureErrorKind.DEVICE_NOT_FOUND
    elif name in _BUSY_ERRORS:
        kind = CaptureErrorKind.DEVICE_BUSY
    else:
        kind = CaptureErrorKind.UNKNOWN

    if kind is CaptureErrorKind.UNKNOWN:
        user_message = f"System Error: {message or 'Failed to access camera/microphone'}"
    else:
        user_message = CAPTURE_ERROR_MESSAGES[kind]

    return CaptureError(kind, user_message)


class CaptureSession:
    """
    Camera+microphone handle shared across the whole interview.

    The flow controller owns the session; recorders only borrow the stream.
    Use as an async context manager to guarantee the tracks are stopped:

        async with CaptureSession(devices) as capture:
            stream = await capture.acquire()
    """

    def __init__(
        self,
        devices: MediaDevices,
        constraints: Optional[Dict[str, Any]] = None,
        preview_sink: Optional[Callable[[MediaStream], None]] = None
    ):
        self.devices = devices
        self.constraints = constraints or default_media_constraints()
        self.preview_sink = preview_sink

        self.media_stream: Optional[MediaStream] = None
        self.permission_state = PermissionState.PENDING
        self.error_message: Optional[str] = None

    async def acquire(self) -> MediaStream:
        """
        Request camera and microphone access.

        Returns:
            The live stream (the existing one if already acquired)

        Raises:
            CaptureError: Classified acquisition failure
        """
        if self.media_stream is not None and self.media_stream.active:
            return self.media_stream

        try:
            stream = await self.devices.get_user_media(self.constraints)
        except MediaDeviceError as e:
            logger.error(f"Camera setup error: {e.name} {e.message}")
            error = classify_capture_error(e.name, e.message)
            self._fail(error)
            raise error from e

        self.media_stream = stream
        self.permission_state = PermissionState.GRANTED
        self.error_message = None
        logger.info(f"Capture session acquired ({', '.join(stream.track_kinds)})")

        if self.preview_sink:
            self.preview_sink(stream)

        return stream

    def _fail(self, error: CaptureError):
        self.permission_state = _PERMISSION_STATES[error.kind]
        self.error_message = error.message
        capture_errors_total.labels(kind=error.kind.value).inc()

    @property
    def stream(self) -> Optional[MediaStream]:
        return self.media_stream

    async def release(self):
        """Stop all underlying tracks. Safe to call more than once."""
        stream, self.media_stream = self.media_stream, None
        if stream is None:
            return
        try:
            await stream.stop()
            logger.info("Capture session released")
        except Exception as e:
            logger.error(f"Error stopping media tracks: {e}")

    async def __aenter__(self) -> "CaptureSession":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.release()
