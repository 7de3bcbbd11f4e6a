"""
Tests for the storage service: committing uploads, lookups and deletion.
"""
import hashlib
import os

import pytest

from blobvault.core import StorageService
from blobvault.models import Accessed, Owner

ALICE = 'a1' * 32
BOB = 'b2' * 32


def test_add_from_upload_writes_then_indexes(service, storage, make_upload):
    content = b"Hello, World!"
    upload = make_upload(content, 'text/plain')

    blob = service.add_from_upload(upload)

    assert blob.sha256 == hashlib.sha256(content).hexdigest()
    assert blob.size == len(content)
    assert blob.type == 'text/plain'
    assert storage.has_blob(blob.sha256)
    assert service.index.get_access(blob.sha256) == blob.uploaded
    # The staged file is discarded
    assert not os.path.exists(upload.temp_file)


def test_type_argument_overrides_upload_type(service, make_upload):
    blob = service.add_from_upload(make_upload(b"png bytes", 'application/octet-stream'), type='image/png')
    assert blob.type == 'image/png'


def test_duplicate_upload_skips_backend_write(service, storage, make_upload, monkeypatch):
    content = b"same content twice"
    first = service.add_from_upload(make_upload(content, 'text/plain'))

    writes = []
    monkeypatch.setattr(storage, 'write_blob', lambda *args, **kwargs: writes.append(args))

    second_upload = make_upload(content, 'image/png')
    second = service.add_from_upload(second_upload)

    assert writes == []
    assert second.sha256 == first.sha256
    assert second.type == 'text/plain'
    assert not os.path.exists(second_upload.temp_file)
    assert storage.list_blobs() == [first.sha256]
    assert service.index.list_blobs()[1] == 1


def test_failed_write_records_nothing(service, storage, make_upload, monkeypatch):
    def broken_write(*args, **kwargs):
        raise IOError("disk full")
    monkeypatch.setattr(storage, 'write_blob', broken_write)

    upload = make_upload(b"will fail", 'text/plain')
    with pytest.raises(IOError, match="disk full"):
        service.add_from_upload(upload)

    assert not service.index.has_blob(upload.sha256)
    assert service.index.get_access(upload.sha256) is None


def test_search_storage_returns_pointer(service, make_upload):
    blob = service.add_from_upload(make_upload(b"findable", 'text/plain'))

    pointer = service.search_storage(blob.sha256)

    assert pointer.hash == blob.sha256
    assert pointer.type == 'text/plain'
    assert pointer.size == len(b"findable")
    with service.read_storage_pointer(pointer) as f:
        assert f.read() == b"findable"
    assert service.get_storage_redirect(pointer) is None


def test_search_storage_requires_index_row(service, storage):
    content = b"only in storage"
    sha256 = hashlib.sha256(content).hexdigest()
    storage.write_blob(sha256, content)

    assert service.search_storage(sha256) is None


def test_search_storage_requires_backend_object(service, storage, make_upload):
    blob = service.add_from_upload(make_upload(b"bytes go missing", 'text/plain'))
    storage.remove_blob(blob.sha256)

    assert service.search_storage(blob.sha256) is None


def test_search_storage_falls_back_to_backend_type(service, storage, index):
    content = b"untyped in the index"
    sha256 = hashlib.sha256(content).hexdigest()
    storage.write_blob(sha256, content, 'image/png')
    index.add_blob(sha256, len(content), None, 100)

    pointer = service.search_storage(sha256)
    assert pointer.type == 'image/png'


def test_delete_blob_cascades(service, storage, db, make_upload):
    blob = service.add_from_upload(make_upload(b"delete me", 'text/plain'))
    service.index.add_owner(blob.sha256, ALICE)
    service.index.add_owner(blob.sha256, BOB)

    assert service.delete_blob(blob.sha256) is True

    assert not service.index.has_blob(blob.sha256)
    assert not storage.has_blob(blob.sha256)
    assert not service.index.has_owner(blob.sha256, ALICE)
    assert not service.index.has_owner(blob.sha256, BOB)
    assert db.query(Owner).count() == 0
    assert db.query(Accessed).count() == 0


def test_delete_blob_tolerates_missing_bytes(service, storage, make_upload):
    blob = service.add_from_upload(make_upload(b"half gone", 'text/plain'))
    storage.remove_blob(blob.sha256)

    assert service.delete_blob(blob.sha256) is True
    assert service.delete_blob(blob.sha256) is False


def test_delete_blob_forgets_access_when_backend_fails(service, storage, make_upload, monkeypatch):
    blob = service.add_from_upload(make_upload(b"stuck bytes", 'text/plain'))

    def failing_remove(sha256):
        raise IOError("permission denied")
    monkeypatch.setattr(storage, 'remove_blob', failing_remove)

    with pytest.raises(IOError):
        service.delete_blob(blob.sha256)

    assert not service.index.has_blob(blob.sha256)
    assert service.index.get_access(blob.sha256) is None
    assert storage.has_blob(blob.sha256)


def test_works_with_s3_backend(index, s3_storage, s3_client, make_upload):
    service = StorageService(index, s3_storage)
    blob = service.add_from_upload(make_upload(b"to the cloud", 'image/png'))

    pointer = service.search_storage(blob.sha256)
    assert service.get_storage_redirect(pointer) == f"https://cdn.example.com/{blob.sha256}.png"

    service.delete_blob(blob.sha256)
    assert s3_client.buckets['test-bucket'] == {}


def test_prune_storage_requires_settings(index, storage):
    with pytest.raises(ValueError):
        StorageService(index, storage).prune_storage()
