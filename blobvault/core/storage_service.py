import logging
from typing import BinaryIO, Optional

from blobvault.core.blob_index import BlobIndex, unix_now
from blobvault.core.retention import PruneResult, RetentionSweeper
from blobvault.core.upload import UploadDetails, read_upload, remove_upload
from blobvault.models import Blob, StoragePointer
from blobvault.storage import StorageBackend

logger = logging.getLogger(__name__)


class StorageService:
    """
    Keeps the metadata index and the storage backend in step.

    Bytes are always written before the index row is created, and the index
    row is always removed before the bytes, so a crash leaves at worst an
    untracked object in the backend rather than an index row without bytes.
    """

    def __init__(self, index: BlobIndex, backend: StorageBackend, settings=None):
        """
        Args:
            index: Metadata index bound to a database session
            backend: Storage backend that has already been set up
            settings: StorageSettings with retention rules (needed for prune_storage)
        """
        self.index = index
        self.backend = backend
        self.settings = settings

    def search_storage(self, sha256: str) -> Optional[StoragePointer]:
        """
        Resolve a hash to a storage pointer.

        A pointer is only returned when the index has a row and the backend
        has the bytes. Type and size come from the index, falling back to the
        backend.

        Returns:
            StoragePointer or None if the blob is not available
        """
        blob = self.index.get_blob(sha256)
        if blob is None:
            return None

        if not self.backend.has_blob(sha256):
            logger.warning(f"Blob {sha256} is in the index but missing from storage")
            return None

        type = blob.type or self.backend.get_blob_type(sha256)
        size = blob.size or self.backend.get_blob_size(sha256)
        logger.debug(f"Found {sha256}")
        return StoragePointer(hash=sha256, type=type, size=size)

    def read_storage_pointer(self, pointer: StoragePointer) -> BinaryIO:
        """Open the bytes a pointer refers to"""
        return self.backend.read_blob(pointer.hash)

    def get_storage_redirect(self, pointer: StoragePointer) -> Optional[str]:
        """Public URL for a pointer, if the backend serves objects directly"""
        return self.backend.get_public_url(pointer.hash)

    def add_from_upload(self, upload: UploadDetails, type: Optional[str] = None) -> Blob:
        """
        Commit a staged upload.

        New content is written to the backend, the staged file is discarded,
        then the index row and an access record are created. Content that is
        already indexed is not written again.

        Args:
            upload: Staged upload with a verified sha256
            type: MIME type overriding the one reported with the upload

        Returns:
            The Blob row for the content
        """
        type = type or upload.type

        if self.index.has_blob(upload.sha256):
            blob = self.index.get_blob(upload.sha256)
            remove_upload(upload)
            return blob

        logger.info(f"Saving {upload.sha256} {type} {upload.size}")
        with read_upload(upload) as stream:
            self.backend.write_blob(upload.sha256, stream, type)
        remove_upload(upload)

        now = unix_now()
        blob = self.index.add_blob(upload.sha256, upload.size, type, now)
        self.index.update_access(upload.sha256, now)
        return blob

    def delete_blob(self, sha256: str) -> bool:
        """
        Delete a blob: index row (and its owners), then bytes, then access record.

        Returns:
            True if anything was deleted
        """
        removed = self.index.remove_blob(sha256)

        try:
            if self.backend.has_blob(sha256):
                self.backend.remove_blob(sha256)
                removed = True
            elif removed:
                logger.warning(f"Blob {sha256} was indexed but missing from storage")
        finally:
            self.index.forget_access(sha256)
        return removed

    def prune_storage(self, now: Optional[int] = None) -> PruneResult:
        """Run one retention sweep and return when it is complete"""
        if self.settings is None:
            raise ValueError("prune_storage requires storage settings")
        return RetentionSweeper(self, self.settings).prune(now)
