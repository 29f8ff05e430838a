"""
Upload Modules
Background upload pipeline with retry, the remote transfer and the failure-logging sink.
"""

from .failure_log import UploadFailureLogger
from .pipeline import UploadPipeline, UploadTask, backoff_delay_ms
from .transfer import RecordingUploader

__all__ = [
    'UploadFailureLogger',
    'UploadPipeline',
    'UploadTask',
    'backoff_delay_ms',
    'RecordingUploader',
]
