from abc import ABC, abstractmethod
from typing import BinaryIO, List, Optional, Union

BlobData = Union[bytes, bytearray, BinaryIO]


class StorageBackend(ABC):
    """
    Abstract base class for storage backends.
    Blobs are addressed by the sha256 of their content; implementations store
    them under the hash plus an extension derived from the MIME type.
    """

    def setup(self) -> None:
        """
        Prepare the backend for use (create directories, verify connectivity,
        load caches). Called once at startup.

        Raises:
            BackendUnreachableError: If the backend cannot be used
        """

    def close(self) -> None:
        """Release resources held by the backend"""

    @abstractmethod
    def has_blob(self, sha256: str) -> bool:
        """
        Check if an object for the hash exists.

        Args:
            sha256: SHA-256 hash of the content

        Returns:
            True if exists, False otherwise
        """
        pass

    @abstractmethod
    def list_blobs(self) -> List[str]:
        """
        List the hashes of all stored objects.

        Returns:
            List of SHA-256 hashes
        """
        pass

    @abstractmethod
    def write_blob(self, sha256: str, data: BlobData, type: Optional[str] = None) -> None:
        """
        Store content under a hash.

        Args:
            sha256: SHA-256 hash of the content (trusted, not recomputed)
            data: Bytes or a readable binary stream
            type: Optional MIME type, used to pick the object extension
        """
        pass

    @abstractmethod
    def read_blob(self, sha256: str) -> BinaryIO:
        """
        Open the content of a blob for reading.

        Args:
            sha256: SHA-256 hash of the content

        Returns:
            Readable binary stream; the caller closes it

        Raises:
            BlobNotFoundError: If no object exists for the hash
        """
        pass

    @abstractmethod
    def get_blob_size(self, sha256: str) -> int:
        """
        Size of a stored blob in bytes.

        Raises:
            BlobNotFoundError: If no object exists for the hash
        """
        pass

    @abstractmethod
    def get_blob_type(self, sha256: str) -> Optional[str]:
        """
        MIME type of a stored blob, derived from its object name.

        Raises:
            BlobNotFoundError: If no object exists for the hash
        """
        pass

    @abstractmethod
    def remove_blob(self, sha256: str) -> None:
        """
        Delete the object for a hash.

        Raises:
            BlobNotFoundError: If no object exists for the hash
        """
        pass

    def get_public_url(self, sha256: str) -> Optional[str]:
        """
        URL clients can be redirected to for downloading the blob.

        Returns:
            URL, or None if the backend does not serve objects publicly
        """
        return None
