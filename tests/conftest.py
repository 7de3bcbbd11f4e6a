"""
Pytest configuration and shared fixtures.
"""

import io
import shutil
import tempfile

import pytest
from botocore.exceptions import ClientError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from blobvault.core import BlobIndex, StorageService, stage_upload
from blobvault.core.storage_config import S3Settings, StorageSettings
from blobvault.models.base import Base
from blobvault.storage import FilesystemStorage, S3Storage


class FakePaginator:
    """Follows continuation tokens the way botocore's paginator does"""

    def __init__(self, client):
        self.client = client

    def paginate(self, Bucket):
        token = None
        while True:
            kwargs = {'Bucket': Bucket}
            if token:
                kwargs['ContinuationToken'] = token
            page = self.client.list_objects_v2(**kwargs)
            yield page
            if not page.get('IsTruncated'):
                break
            token = page['NextContinuationToken']


class FakeS3Client:
    """In-memory stand-in for a boto3 S3 client, recording every call"""

    def __init__(self, buckets=('test-bucket',), page_size=1000):
        self.buckets = {bucket: {} for bucket in buckets}
        self.page_size = page_size
        self.calls = []
        self.closed = False

    def _error(self, code, operation):
        return ClientError({'Error': {'Code': code, 'Message': code}}, operation)

    def head_bucket(self, Bucket):
        self.calls.append('head_bucket')
        if Bucket not in self.buckets:
            raise self._error('404', 'HeadBucket')
        return {}

    def get_paginator(self, operation_name):
        assert operation_name == 'list_objects_v2'
        return FakePaginator(self)

    def list_objects_v2(self, Bucket, ContinuationToken=None):
        self.calls.append('list_objects_v2')
        keys = sorted(self.buckets[Bucket])
        start = int(ContinuationToken or 0)
        page = keys[start:start + self.page_size]
        response = {'KeyCount': len(page), 'IsTruncated': start + len(page) < len(keys)}
        if page:
            response['Contents'] = [{'Key': key, 'Size': len(self.buckets[Bucket][key][0])} for key in page]
        if response['IsTruncated']:
            response['NextContinuationToken'] = str(start + len(page))
        return response

    def put_object(self, Bucket, Key, Body, ContentType=None):
        self.calls.append('put_object')
        self.buckets[Bucket][Key] = (Body, ContentType)
        return {}

    def get_object(self, Bucket, Key):
        self.calls.append('get_object')
        if Key not in self.buckets[Bucket]:
            raise self._error('NoSuchKey', 'GetObject')
        body, content_type = self.buckets[Bucket][Key]
        return {'Body': io.BytesIO(body), 'ContentLength': len(body), 'ContentType': content_type}

    def delete_object(self, Bucket, Key):
        self.calls.append('delete_object')
        self.buckets[Bucket].pop(Key, None)
        return {}

    def close(self):
        self.closed = True


@pytest.fixture
def temp_dir():
    """Fixture that provides a temporary directory and cleans it up after test"""
    tmp = tempfile.mkdtemp()
    yield tmp
    shutil.rmtree(tmp)


@pytest.fixture
def db():
    """In-memory SQLite session with all tables created"""
    engine = create_engine('sqlite:///:memory:', echo=False)
    Base.metadata.create_all(engine)

    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def index(db):
    return BlobIndex(db)


@pytest.fixture
def storage(temp_dir):
    """Local storage backend under the temp dir, already set up"""
    backend = FilesystemStorage(base_path=f"{temp_dir}/objects")
    backend.setup()
    return backend


@pytest.fixture
def settings():
    return StorageSettings()


@pytest.fixture
def service(index, storage, settings):
    return StorageService(index, storage, settings)


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def s3_storage(s3_client):
    """S3 backend over the fake client, already set up"""
    backend = S3Storage(S3Settings(bucket='test-bucket', public_url='https://cdn.example.com/'), client=s3_client)
    backend.setup()
    return backend


@pytest.fixture
def make_upload(temp_dir):
    """Factory staging bytes as an upload"""
    def _make(content: bytes, type=None):
        return stage_upload(io.BytesIO(content), type=type, directory=temp_dir)
    return _make
