"""
Blob Storage Module
Stores finalized recordings on the local filesystem or in Azure Blob Storage.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path

from interview_recorder.core.constants import ALLOWED_CONTENT_TYPES, CONTENT_TYPE_EXTENSIONS
from interview_recorder.core.errors import StorageError

logger = logging.getLogger(__name__)

_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9_-]+$")


def normalize_content_type(content_type: str) -> str:
    """Strip codec parameters: 'video/webm;codecs=vp8,opus' -> 'video/webm'."""
    return (content_type or "").split(";", 1)[0].strip().lower()


def is_allowed_content_type(content_type: str) -> bool:
    return normalize_content_type(content_type) in ALLOWED_CONTENT_TYPES


def extension_for(content_type: str) -> str:
    return CONTENT_TYPE_EXTENSIONS.get(normalize_content_type(content_type), "webm")


def recording_blob_path(interview_id: str, candidate_id: str, question_index: int, content_type: str) -> str:
    """
    Build the storage path for one answer.

    The original question index is part of the path, so re-uploads of the same
    question overwrite rather than duplicate.

    Raises:
        StorageError: If an id contains characters outside [A-Za-z0-9_-]
    """
    for segment in (interview_id, candidate_id):
        if not _SAFE_SEGMENT.match(segment or ""):
            raise StorageError(f"Invalid path segment: {segment!r}")
    if question_index < 0:
        raise StorageError(f"Invalid question index: {question_index}")
    return f"interviews/{interview_id}/{candidate_id}/question-{question_index}.{extension_for(content_type)}"


class BlobStorage(ABC):
    """
    Abstract base class for recording blob storage.
    Implementations: LocalBlobStorage, AzureBlobStorage
    """

    @abstractmethod
    async def put(self, path: str, data: bytes, content_type: str) -> str:
        """
        Store a blob, overwriting any existing blob at the same path.

        Returns:
            Public URL of the stored blob

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, path: str):
        pass


class LocalBlobStorage(BlobStorage):
    """Writes blobs under a directory served by the API at /media."""

    def __init__(self, root_dir: str, public_base_url: str = ""):
        self.root_dir = Path(root_dir).resolve()
        self.public_base_url = public_base_url.rstrip("/")

    def resolve(self, path: str) -> Path:
        """
        Absolute filesystem path for a blob.

        Raises:
            StorageError: If the path escapes the storage root
        """
        target = (self.root_dir / path).resolve()
        if self.root_dir not in target.parents:
            raise StorageError(f"Path escapes storage root: {path}")
        return target

    def _write(self, target: Path, data: bytes):
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        target = self.resolve(path)
        try:
            await asyncio.to_thread(self._write, target, data)
        except OSError as e:
            raise StorageError(f"Local write failed for {path}: {e}") from e
        logger.debug(f"Stored {len(data)} bytes at {target}")
        return f"{self.public_base_url}/media/{path}"

    async def delete(self, path: str):
        target = self.resolve(path)
        await asyncio.to_thread(target.unlink, True)


class AzureBlobStorage(BlobStorage):
    """Uploads blobs to an Azure Storage container."""

    def __init__(self, connection_string: str, container_name: str):
        if not connection_string or not container_name:
            raise ValueError("Missing Azure Storage configuration (connection string and container name)")

        from azure.storage.blob import BlobServiceClient

        self.container_name = container_name
        self.blob_service_client = BlobServiceClient.from_connection_string(connection_string)
        self.container_client = self.blob_service_client.get_container_client(container_name)

    def _upload(self, path: str, data: bytes, content_type: str) -> str:
        from azure.storage.blob import ContentSettings

        blob_client = self.container_client.get_blob_client(path)
        blob_client.upload_blob(
            data,
            overwrite=True,
            content_settings=ContentSettings(content_type=normalize_content_type(content_type))
        )
        return blob_client.url

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        try:
            return await asyncio.to_thread(self._upload, path, data, content_type)
        except Exception as e:
            raise StorageError(f"Azure upload failed for {path}: {e}") from e

    async def delete(self, path: str):
        blob_client = self.container_client.get_blob_client(path)
        try:
            await asyncio.to_thread(blob_client.delete_blob)
            logger.info(f"Deleted {path} from Azure container {self.container_name}")
        except Exception as e:
            logger.error(f"Error deleting blob {path}: {e}")
