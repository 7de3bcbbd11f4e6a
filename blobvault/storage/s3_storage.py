import logging
import threading
from typing import BinaryIO, Dict, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from blobvault.errors import BackendUnreachableError, BlobNotFoundError
from blobvault.utils.mime import is_sha256, object_name, type_for
from .base import BlobData, StorageBackend

logger = logging.getLogger(__name__)


class S3Storage(StorageBackend):
    """
    Stores blobs in an S3-compatible bucket.

    The bucket listing is loaded once at setup into an in-memory object
    index (name -> size) that is kept up to date by write_blob and
    remove_blob. Existence, size and type lookups only consult that index;
    the remote store is not queried on those paths.
    """

    def __init__(self, settings, client=None, control_client=None):
        """
        Args:
            settings: S3Settings (endpoint, credentials, bucket, flags)
            client: Optional preconfigured boto3 S3 client for data operations
            control_client: Optional client for HeadBucket/ListObjects; defaults to `client`
        """
        self.settings = settings
        self.bucket = settings.bucket
        self.public_url = settings.public_url

        if client is None:
            client, control_client = self._create_clients(settings)
        self.s3_client = client
        self.control_client = control_client or client

        self._lock = threading.Lock()
        self.objects: Dict[str, int] = {}
        self._names_by_hash: Dict[str, List[str]] = {}

    @staticmethod
    def _create_clients(settings):
        """Build the data and control clients; acceleration needs a separate control client"""
        credentials = {
            'aws_access_key_id': settings.access_key,
            'aws_secret_access_key': settings.secret_key,
            'region_name': settings.region,
        }
        timeouts = {
            'connect_timeout': settings.connect_timeout,
            'read_timeout': settings.read_timeout,
        }
        addressing_style = 'path' if settings.path_style else 'virtual'

        control_client = boto3.client(
            's3',
            endpoint_url=settings.endpoint_url,
            use_ssl=settings.use_ssl,
            config=BotoConfig(s3={'addressing_style': addressing_style}, **timeouts),
            **credentials
        )
        if not settings.use_accelerate_endpoint:
            return control_client, control_client

        # Accelerated endpoints cannot be combined with a custom endpoint or path-style addressing
        client = boto3.client(
            's3',
            config=BotoConfig(s3={'use_accelerate_endpoint': True, 'addressing_style': 'virtual'}, **timeouts),
            **credentials
        )
        return client, control_client

    def setup(self) -> None:
        """
        Verify the bucket is reachable and load the object index.

        Raises:
            BackendUnreachableError: If the bucket cannot be found or reached
        """
        try:
            self.control_client.head_bucket(Bucket=self.bucket)
        except (ClientError, BotoCoreError) as e:
            raise BackendUnreachableError(f"Can't find bucket {self.bucket}: {e}") from e
        logger.info(f"Found bucket {self.bucket}")
        self.reload()

    def reload(self) -> None:
        """Rebuild the object index from a full bucket listing"""
        logger.info("Loading objects...")
        objects: Dict[str, int] = {}

        paginator = self.control_client.get_paginator('list_objects_v2')
        for page in paginator.paginate(Bucket=self.bucket):
            for obj in page.get('Contents', []):
                if obj.get('Key'):
                    objects[obj['Key']] = obj.get('Size', 0)

        names_by_hash: Dict[str, List[str]] = {}
        for name in objects:
            if is_sha256(name[:64]):
                names_by_hash.setdefault(name[:64], []).append(name)

        with self._lock:
            self.objects = objects
            self._names_by_hash = names_by_hash

        logger.info(f"Finished loading objects ({len(objects)})")

    def close(self) -> None:
        clients = [self.s3_client]
        if self.control_client is not self.s3_client:
            clients.append(self.control_client)
        for client in clients:
            close = getattr(client, 'close', None)
            if close:
                close()

    def _get_object_name(self, sha256: str) -> Optional[str]:
        """First cached object name for a hash"""
        with self._lock:
            names = self._names_by_hash.get(sha256)
            return names[0] if names else None

    def _require_object_name(self, sha256: str) -> str:
        name = self._get_object_name(sha256)
        if name is None:
            raise BlobNotFoundError(sha256)
        return name

    def has_blob(self, sha256: str) -> bool:
        return self._get_object_name(sha256) is not None

    def list_blobs(self) -> List[str]:
        with self._lock:
            return list(self._names_by_hash)

    def write_blob(self, sha256: str, data: BlobData, type: Optional[str] = None) -> None:
        """
        Upload content as a single object.

        Streams are read fully into memory first. An existing object for the
        hash keeps its name, so each hash has a single object.
        """
        name = self._get_object_name(sha256) or object_name(sha256, type)
        body = bytes(data) if isinstance(data, (bytes, bytearray)) else data.read()

        params = {'Bucket': self.bucket, 'Key': name, 'Body': body}
        if type:
            params['ContentType'] = type
        self.s3_client.put_object(**params)

        with self._lock:
            if name not in self.objects:
                self._names_by_hash.setdefault(sha256, []).append(name)
            self.objects[name] = len(body)

    def read_blob(self, sha256: str) -> BinaryIO:
        name = self._require_object_name(sha256)
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=name)
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in ('NoSuchKey', '404'):
                raise BlobNotFoundError(sha256) from e
            raise
        return response['Body']

    def get_blob_size(self, sha256: str) -> int:
        with self._lock:
            names = self._names_by_hash.get(sha256)
            if names:
                return self.objects[names[0]]
        raise BlobNotFoundError(sha256)

    def get_blob_type(self, sha256: str) -> Optional[str]:
        return type_for(self._require_object_name(sha256))

    def remove_blob(self, sha256: str) -> None:
        name = self._require_object_name(sha256)
        self.s3_client.delete_object(Bucket=self.bucket, Key=name)

        with self._lock:
            self.objects.pop(name, None)
            names = self._names_by_hash.get(sha256, [])
            if name in names:
                names.remove(name)
            if not names:
                self._names_by_hash.pop(sha256, None)

    def get_public_url(self, sha256: str) -> Optional[str]:
        if not self.public_url:
            return None
        name = self._get_object_name(sha256)
        return self.public_url + name if name else None
