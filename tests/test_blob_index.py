"""
Tests for the metadata index: blobs, owners, access records and the list/search surface.
"""
import pytest

from blobvault.errors import InvalidColumnError, InvalidQueryError
from blobvault.models import Accessed, Owner

ALICE = 'a1' * 32
BOB = 'b2' * 32

HASH_A = 'aa' * 32
HASH_B = 'bb' * 32
HASH_C = 'cc' * 32


def test_add_and_get_blob(index):
    blob = index.add_blob(HASH_A, 10, 'image/png', 1000)

    assert blob.sha256 == HASH_A
    assert blob.size == 10
    assert blob.type == 'image/png'
    assert blob.uploaded == 1000
    assert index.has_blob(HASH_A)
    assert not index.has_blob(HASH_B)
    assert index.get_blob(HASH_B) is None


def test_add_blob_first_writer_wins(index, db):
    index.add_blob(HASH_A, 10, 'image/png', 1000)
    blob = index.add_blob(HASH_A, 99, 'text/plain', 2000)

    # The second insert is ignored and the stored row is returned
    assert blob.size == 10
    assert blob.type == 'image/png'
    assert blob.uploaded == 1000
    assert len(index.list_blobs()[0]) == 1


def test_add_blob_rejects_negative_size(index):
    with pytest.raises(ValueError):
        index.add_blob(HASH_A, -1)


def test_add_blob_defaults_uploaded_to_now(index):
    blob = index.add_blob(HASH_A, 1)
    assert blob.uploaded > 1_600_000_000
    assert blob.type is None


def test_remove_blob_cascades_owners(index, db):
    index.add_blob(HASH_A, 10, None, 1000)
    index.add_owner(HASH_A, ALICE)
    index.add_owner(HASH_A, BOB)

    assert index.remove_blob(HASH_A) is True
    assert not index.has_blob(HASH_A)
    assert not index.has_owner(HASH_A, ALICE)
    assert not index.has_owner(HASH_A, BOB)
    assert db.query(Owner).count() == 0

    assert index.remove_blob(HASH_A) is False


def test_owners(index):
    index.add_blob(HASH_A, 10, None, 1000)
    index.add_owner(HASH_A, ALICE)
    index.add_owner(HASH_A, ALICE)  # duplicates are allowed
    index.add_owner(HASH_A, BOB)

    assert index.has_owner(HASH_A, ALICE)
    assert index.list_owners(HASH_A) == {ALICE, BOB}

    assert index.remove_owner(HASH_A, ALICE) is True
    assert not index.has_owner(HASH_A, ALICE)
    assert index.remove_owner(HASH_A, ALICE) is False
    assert index.list_owners(HASH_A) == {BOB}


def test_get_owner_blobs_window(index):
    index.add_blob(HASH_A, 1, None, 100)
    index.add_blob(HASH_B, 2, None, 200)
    index.add_blob(HASH_C, 3, None, 300)
    for h in (HASH_A, HASH_B, HASH_C):
        index.add_owner(h, ALICE)
    index.add_owner(HASH_B, ALICE)  # duplicate edge must not duplicate the blob
    index.add_owner(HASH_C, BOB)

    assert [b.sha256 for b in index.get_owner_blobs(ALICE)] == [HASH_C, HASH_B, HASH_A]
    assert [b.sha256 for b in index.get_owner_blobs(ALICE, since=200)] == [HASH_C, HASH_B]
    assert [b.sha256 for b in index.get_owner_blobs(ALICE, until=200)] == [HASH_B, HASH_A]
    assert [b.sha256 for b in index.get_owner_blobs(ALICE, since=150, until=250)] == [HASH_B]
    assert [b.sha256 for b in index.get_owner_blobs(BOB)] == [HASH_C]


def test_update_access_upserts(index, db):
    index.add_blob(HASH_A, 1, None, 100)

    index.update_access(HASH_A, 500)
    assert index.get_access(HASH_A) == 500

    index.update_access(HASH_A, 700)
    assert index.get_access(HASH_A) == 700
    assert db.query(Accessed).count() == 1

    index.forget_access(HASH_A)
    assert index.get_access(HASH_A) is None


def test_remove_blobs_batch(index, db):
    for h in (HASH_A, HASH_B, HASH_C):
        index.add_blob(h, 1, None, 100)
        index.update_access(h, 200)
    index.add_owner(HASH_A, ALICE)

    assert index.remove_blobs([HASH_A, HASH_B]) == 2
    assert index.filter_existing([HASH_A, HASH_B, HASH_C]) == {HASH_C}
    assert db.query(Owner).count() == 0
    assert index.get_access(HASH_A) is None
    assert index.get_access(HASH_C) == 200


def test_find_orphans(index):
    index.add_blob(HASH_A, 1, None, 100)
    index.add_blob(HASH_B, 1, None, 100)
    index.add_owner(HASH_B, ALICE)

    assert index.find_orphans() == [HASH_A]


def test_find_rule_candidates(index):
    index.add_blob(HASH_A, 1, 'image/png', 100)
    index.add_blob(HASH_B, 1, 'video/mp4', 200)
    index.add_blob(HASH_C, 1, None, 300)
    index.update_access(HASH_A, 150)
    index.add_owner(HASH_B, ALICE)

    assert index.find_rule_candidates('image/*') == [(HASH_A, 'image/png', 100, 150)]
    assert [c[0] for c in index.find_rule_candidates('*')] == [HASH_A, HASH_B, HASH_C]
    assert [c[0] for c in index.find_rule_candidates('*', [ALICE])] == [HASH_B]
    assert index.find_rule_candidates('image/*', [BOB]) == []
    # Underscores are literal, not single-character wildcards
    assert index.find_rule_candidates('image_png') == []


class TestListBlobs:
    """Search, filtering, sorting and pagination of blobs"""

    @pytest.fixture(autouse=True)
    def populate(self, index):
        index.add_blob(HASH_A, 30, 'image/png', 100)
        index.add_blob(HASH_B, 10, 'image/jpeg', 300)
        index.add_blob(HASH_C, 20, 'text/plain', 200)
        index.add_owner(HASH_A, ALICE)
        index.add_owner(HASH_A, BOB)

    def test_default_order_newest_first(self, index):
        blobs, total = index.list_blobs()
        assert total == 3
        assert [b.sha256 for b in blobs] == [HASH_B, HASH_C, HASH_A]

    def test_owners_are_sets(self, index):
        blobs, _ = index.list_blobs(filter={'sha256': HASH_A})
        assert blobs[0].owners == {ALICE, BOB}

        blobs, _ = index.list_blobs(filter={'sha256': HASH_B})
        assert blobs[0].owners == set()

    def test_search(self, index):
        blobs, total = index.list_blobs(filter={'q': 'image'})
        assert total == 2
        assert {b.sha256 for b in blobs} == {HASH_A, HASH_B}

        blobs, total = index.list_blobs(filter={'q': 'cccc'})
        assert [b.sha256 for b in blobs] == [HASH_C]

    def test_filters(self, index):
        blobs, total = index.list_blobs(filter={'type': 'text/plain'})
        assert [b.sha256 for b in blobs] == [HASH_C]

        blobs, total = index.list_blobs(filter={'sha256': [HASH_A, HASH_C]})
        assert total == 2

    def test_sort_and_range(self, index):
        blobs, total = index.list_blobs(sort=('size', 'ASC'), range=(0, 1))
        assert total == 3
        assert [b.sha256 for b in blobs] == [HASH_B, HASH_C]

        blobs, _ = index.list_blobs(sort=('size', 'desc'), range=(2, 5))
        assert [b.sha256 for b in blobs] == [HASH_B]

    def test_rejects_unknown_filter_column(self, index):
        with pytest.raises(InvalidColumnError):
            index.list_blobs(filter={'pubkey': ALICE})

    def test_rejects_injection_in_column_name(self, index):
        with pytest.raises(InvalidColumnError):
            index.list_blobs(sort=('size; DROP TABLE blobs', 'ASC'))
        assert index.has_blob(HASH_A)

    def test_rejects_bad_direction_and_range(self, index):
        with pytest.raises(InvalidQueryError):
            index.list_blobs(sort=('size', 'SIDEWAYS'))
        with pytest.raises(InvalidQueryError):
            index.list_blobs(range=(5, 2))

    def test_rejects_structured_filter_values(self, index):
        with pytest.raises(InvalidQueryError):
            index.list_blobs(filter={'size': {'gt': 1}})
        with pytest.raises(InvalidQueryError):
            index.list_blobs(filter={'sha256': [HASH_A, {'like': '%'}]})
        blobs, total = index.list_blobs(filter={'type': None})
        assert total == 0


class TestListUsers:
    """Listing of owners"""

    @pytest.fixture(autouse=True)
    def populate(self, index):
        index.add_blob(HASH_A, 1, None, 100)
        index.add_blob(HASH_B, 1, None, 100)
        index.add_owner(HASH_A, ALICE)
        index.add_owner(HASH_B, ALICE)
        index.add_owner(HASH_B, BOB)

    def test_lists_distinct_pubkeys_with_blob_sets(self, index):
        users, total = index.list_users()
        assert total == 2
        assert [u.pubkey for u in users] == [ALICE, BOB]
        assert users[0].blobs == {HASH_A, HASH_B}
        assert users[1].blobs == {HASH_B}

    def test_filter_and_sort(self, index):
        users, total = index.list_users(filter={'pubkey': [BOB]})
        assert total == 1
        assert users[0].pubkey == BOB

        users, _ = index.list_users(filter={'q': 'a1a1'})
        assert [u.pubkey for u in users] == [ALICE]

        users, _ = index.list_users(sort=('pubkey', 'DESC'), range=(0, 0))
        assert [u.pubkey for u in users] == [BOB]

    def test_rejects_unknown_columns(self, index):
        with pytest.raises(InvalidColumnError):
            index.list_users(filter={'blob': HASH_A})
        with pytest.raises(InvalidColumnError):
            index.list_users(sort=('blob', 'ASC'))
        with pytest.raises(InvalidQueryError):
            index.list_users(filter={'pubkey': {'in': [ALICE]}})
