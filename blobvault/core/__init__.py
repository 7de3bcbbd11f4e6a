from .blob_index import BlobIndex
from .retention import RetentionRule, RetentionSweeper, PruneResult, get_expiration_time
from .storage_service import StorageService
from .upload import UploadDetails, stage_upload, read_upload, remove_upload

__all__ = ['BlobIndex', 'RetentionRule', 'RetentionSweeper', 'PruneResult', 'get_expiration_time',
           'StorageService', 'UploadDetails', 'stage_upload', 'read_upload', 'remove_upload']
