from .base import Base
from .blob import Blob, Owner, Accessed
from .api_schemas import BlobInfo, UserInfo, StoragePointer, ErrorResponse

__all__ = ['Base', 'Blob', 'Owner', 'Accessed', 'BlobInfo', 'UserInfo', 'StoragePointer', 'ErrorResponse']
