from .base import StorageBackend
from .s3_storage import S3Storage
from .filesystem import FilesystemStorage

__all__ = ['StorageBackend', 'S3Storage', 'FilesystemStorage']
