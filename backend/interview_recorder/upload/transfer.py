"""
Recording Transfer
Performs one remote upload: blob storage write followed by the recording store update.
"""

import logging

from interview_recorder.core.errors import StorageError, UploadFailedError
from interview_recorder.core.models import MediaBlob, RecordingRecord
from interview_recorder.storage.base_store import RecordingStore
from interview_recorder.storage.blob_storage import (
    BlobStorage,
    is_allowed_content_type,
    recording_blob_path,
)
from interview_recorder.utils.metrics import upload_size_bytes

logger = logging.getLogger(__name__)


class RecordingUploader:
    """Uploads the answers of one candidate, filed by original question index."""

    def __init__(
        self,
        blob_storage: BlobStorage,
        store: RecordingStore,
        interview_id: str,
        candidate_id: str
    ):
        self.blob_storage = blob_storage
        self.store = store
        self.interview_id = interview_id
        self.candidate_id = candidate_id

    async def __call__(self, blob: MediaBlob, question_index: int) -> str:
        """
        Upload one answer.

        Args:
            blob: Finalized recording (its duration is stored with the record)
            question_index: Original (pre-shuffle) question index

        Returns:
            Durable URL of the stored recording

        Raises:
            UploadFailedError: If the content type is refused or any storage call fails
        """
        if not is_allowed_content_type(blob.mime_type):
            raise UploadFailedError(
                question_index,
                StorageError(f"Content type not allowed: {blob.mime_type}")
            )

        try:
            path = recording_blob_path(self.interview_id, self.candidate_id, question_index, blob.content_type)
            url = await self.blob_storage.put(path, blob.data, blob.content_type)
            await self.store.save_recording(
                self.interview_id,
                self.candidate_id,
                RecordingRecord(question_index=question_index, video_url=url, duration=blob.duration)
            )
        except StorageError as e:
            raise UploadFailedError(question_index, e) from e

        upload_size_bytes.observe(blob.size)
        logger.info(f"Uploaded question {question_index} ({blob.size} bytes) -> {url}")
        return url
