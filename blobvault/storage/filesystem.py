import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO, List, Optional

from blobvault.errors import BlobNotFoundError
from blobvault.utils.mime import is_sha256, object_name, type_for
from .base import BlobData, StorageBackend

logger = logging.getLogger(__name__)


class FilesystemStorage(StorageBackend):
    """
    Filesystem-based storage backend.
    Stores blobs in a local directory with git-like structure:
    base/first2/<hash>[.ext]
    """

    def __init__(self, base_path: str = './data/blobs'):
        """
        Initialize filesystem storage.

        Args:
            base_path: Base directory for storing objects
        """
        self.base_path = Path(base_path)

    def setup(self) -> None:
        """Create the base directory if it does not exist"""
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Using local storage at {self.base_path.absolute()}")

    def _shard(self, sha256: str) -> Path:
        return self.base_path / sha256[:2]

    def _find_path(self, sha256: str) -> Optional[Path]:
        """Path of the stored object for a hash, whatever its extension"""
        shard = self._shard(sha256)
        if not shard.is_dir():
            return None
        for path in sorted(shard.glob(f"{sha256}*")):
            if path.is_file() and (path.name == sha256 or path.name.startswith(f"{sha256}.")):
                return path
        return None

    def _require_path(self, sha256: str) -> Path:
        path = self._find_path(sha256)
        if path is None:
            raise BlobNotFoundError(sha256)
        return path

    def has_blob(self, sha256: str) -> bool:
        return self._find_path(sha256) is not None

    def list_blobs(self) -> List[str]:
        hashes = []
        if not self.base_path.is_dir():
            return hashes
        for shard in sorted(self.base_path.iterdir()):
            if not shard.is_dir():
                continue
            for path in sorted(shard.iterdir()):
                candidate = path.name[:64]
                if path.is_file() and is_sha256(candidate):
                    hashes.append(candidate)
        return hashes

    def write_blob(self, sha256: str, data: BlobData, type: Optional[str] = None) -> None:
        """
        Write content to a temporary file and move it into place.

        An existing object for the hash keeps its name, so each hash has a
        single file.
        """
        path = self._find_path(sha256) or self._shard(sha256) / object_name(sha256, type)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix='.tmp-', dir=path.parent)
        try:
            with os.fdopen(fd, 'wb') as f:
                if isinstance(data, (bytes, bytearray)):
                    f.write(data)
                else:
                    shutil.copyfileobj(data, f)
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    def read_blob(self, sha256: str) -> BinaryIO:
        return self._require_path(sha256).open('rb')

    def get_blob_size(self, sha256: str) -> int:
        return self._require_path(sha256).stat().st_size

    def get_blob_type(self, sha256: str) -> Optional[str]:
        return type_for(self._require_path(sha256).name)

    def remove_blob(self, sha256: str) -> None:
        path = self._require_path(sha256)
        path.unlink()
        # Try to remove empty parent directories
        try:
            path.parent.rmdir()
        except OSError:
            pass  # Directory not empty
