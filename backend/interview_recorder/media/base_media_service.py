"""
Abstract Base Media Service Module
Defines the interface for camera/microphone backends (browser WebSocket proxy, test fakes, etc.)
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from interview_recorder.core.constants import DEFAULT_VIDEO_CONSTRAINTS


def default_media_constraints() -> Dict[str, Any]:
    """Camera (ideal 1280x720, front-facing) and microphone in one request."""
    return {"video": dict(DEFAULT_VIDEO_CONSTRAINTS), "audio": True}


class MediaStream(ABC):
    """
    Abstract live camera+microphone stream.
    Implementations: RemoteMediaStream (browser proxy)
    """

    @property
    @abstractmethod
    def track_kinds(self) -> List[str]:
        """Kinds of the live tracks (e.g. ["video", "audio"])."""
        pass

    @property
    @abstractmethod
    def active(self) -> bool:
        """True until every track has been stopped."""
        pass

    @abstractmethod
    async def stop(self):
        """Stop every underlying track. Must be idempotent."""
        pass


class MediaRecorderBackend(ABC):
    """
    Abstract platform recorder bound to one MediaStream.

    The backend delivers encoded fragments through on_data while recording and,
    after stop(), flushes any remaining fragments and then calls on_stop.
    """

    @abstractmethod
    def is_type_supported(self, mime_type: str) -> bool:
        """
        Check whether the backend can record the given container/codec.

        Args:
            mime_type: Candidate type, e.g. "video/webm;codecs=vp8,opus"

        Returns:
            True if supported
        """
        pass

    @abstractmethod
    async def start(
        self,
        mime_type: str,
        timeslice_ms: int,
        on_data: Callable[[bytes], None],
        on_stop: Callable[[], None]
    ):
        """
        Begin recording.

        Args:
            mime_type: Negotiated container/codec
            timeslice_ms: Fragment interval requested from the platform
            on_data: Called with each encoded fragment in arrival order
            on_stop: Called once after the final fragment has been delivered
        """
        pass

    @abstractmethod
    async def stop(self):
        """Request the platform recorder to stop; completion is signalled via on_stop."""
        pass


class MediaDevices(ABC):
    """
    Abstract device access point.
    Implementations: BrowserChannel
    """

    @abstractmethod
    async def get_user_media(self, constraints: Optional[Dict[str, Any]] = None) -> MediaStream:
        """
        Request camera and microphone as one atomic permission request.

        Args:
            constraints: Media constraints (defaults to default_media_constraints())

        Returns:
            Live MediaStream

        Raises:
            MediaDeviceError: With the platform error name (NotAllowedError, NotFoundError, ...)
        """
        pass

    @abstractmethod
    def create_recorder_backend(self, stream: MediaStream) -> MediaRecorderBackend:
        """
        Create a platform recorder for one recording attempt on the given stream.

        Args:
            stream: Stream borrowed from the capture session

        Returns:
            Fresh MediaRecorderBackend
        """
        pass
