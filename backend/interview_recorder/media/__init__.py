"""
Media Modules
Camera/microphone capture and per-answer recording over pluggable device backends.
"""

from .base_media_service import MediaDevices, MediaRecorderBackend, MediaStream
from .capture_session import CaptureSession, classify_capture_error
from .recorder import Recorder, select_mime_type

__all__ = [
    'MediaDevices',
    'MediaRecorderBackend',
    'MediaStream',
    'CaptureSession',
    'classify_capture_error',
    'Recorder',
    'select_mime_type',
]
