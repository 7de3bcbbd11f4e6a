"""Staged uploads - a validated temporary file whose hash is already known"""
import hashlib
import os
import tempfile
from dataclasses import dataclass
from typing import BinaryIO, Optional

CHUNK_SIZE = 64 * 1024


@dataclass
class UploadDetails:
    """An upload staged in a temporary file"""
    sha256: str
    size: int
    type: Optional[str]
    temp_file: str


def stage_upload(stream: BinaryIO, type: Optional[str] = None, directory: Optional[str] = None) -> UploadDetails:
    """
    Copy a stream into a temporary file, hashing it on the way.

    Args:
        stream: Readable binary stream
        type: MIME type reported by the uploader
        directory: Directory for the temporary file (system default if None)

    Returns:
        UploadDetails for the staged file
    """
    digest = hashlib.sha256()
    size = 0
    fd, path = tempfile.mkstemp(prefix='upload-', dir=directory)
    try:
        with os.fdopen(fd, 'wb') as f:
            for chunk in iter(lambda: stream.read(CHUNK_SIZE), b''):
                digest.update(chunk)
                size += len(chunk)
                f.write(chunk)
    except BaseException:
        os.unlink(path)
        raise

    return UploadDetails(sha256=digest.hexdigest(), size=size, type=type, temp_file=path)


def read_upload(upload: UploadDetails) -> BinaryIO:
    """Open a staged upload for reading"""
    return open(upload.temp_file, 'rb')


def remove_upload(upload: UploadDetails) -> None:
    """Delete the temporary file of a staged upload"""
    try:
        os.unlink(upload.temp_file)
    except FileNotFoundError:
        pass
