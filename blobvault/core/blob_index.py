"""Metadata index - blob rows, ownership edges and access timestamps"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import asc, desc, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from blobvault.errors import InvalidColumnError, InvalidQueryError
from blobvault.models import Blob, Owner, Accessed, BlobInfo, UserInfo

logger = logging.getLogger(__name__)

# Columns the list/search surface may filter and sort on. Anything else is rejected.
BLOB_COLUMNS = {
    'sha256': Blob.sha256,
    'type': Blob.type,
    'size': Blob.size,
    'uploaded': Blob.uploaded,
}
BLOB_SEARCH_FIELDS = ('sha256', 'type')

USER_COLUMNS = {
    'pubkey': Owner.pubkey,
}

# Maximum number of bound parameters per IN (...) clause
CHUNK_SIZE = 500


def unix_now() -> int:
    """Current time as a unix timestamp"""
    return int(datetime.now(timezone.utc).timestamp())


def _chunks(items: List[str], size: int = CHUNK_SIZE):
    for i in range(0, len(items), size):
        yield items[i:i + size]


def safe_column(columns: Dict[str, Any], name: str):
    """Resolve an allow-listed column or fail closed"""
    if not isinstance(name, str) or name not in columns:
        raise InvalidColumnError(str(name))
    return columns[name]


def _order(column, direction: str):
    direction = str(direction).upper()
    if direction == 'ASC':
        return asc(column)
    if direction == 'DESC':
        return desc(column)
    raise InvalidQueryError(f"Invalid sort direction: {direction}")


def _page(range: Optional[Tuple[int, int]]) -> Optional[Tuple[int, int]]:
    """Convert an inclusive (start, end) range into (offset, limit)"""
    if range is None:
        return None
    start, end = range
    if start < 0 or end < start:
        raise InvalidQueryError(f"Invalid range: [{start}, {end}]")
    return start, end - start + 1


SCALAR_TYPES = (str, int, float, type(None))


def _filter_value(key: str, value):
    """Accept a scalar or a list of scalars as a filter value"""
    if isinstance(value, (list, tuple, set)):
        if all(isinstance(v, SCALAR_TYPES) for v in value):
            return list(value)
    elif isinstance(value, SCALAR_TYPES):
        return value
    raise InvalidQueryError(f"Invalid filter value for {key}")


def like_pattern(glob: str) -> str:
    """Translate a MIME glob ("image/*") into a LIKE pattern escaped with backslash"""
    escaped = glob.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
    return escaped.replace('*', '%')


class BlobIndex:
    """
    Relational index of stored blobs.

    Single-statement conditional writes (insert-or-skip, upsert) are used
    wherever two uploads of the same hash could race.
    """

    def __init__(self, db: Session):
        self.db = db

    def _insert(self, table):
        """Dialect-specific INSERT supporting ON CONFLICT clauses"""
        dialect = self.db.get_bind().dialect.name
        if dialect == 'postgresql':
            return postgresql.insert(table)
        if dialect == 'sqlite':
            return sqlite.insert(table)
        raise NotImplementedError(f"Unsupported database dialect: {dialect}")

    def rollback(self):
        """Discard a failed transaction so the session can be reused"""
        self.db.rollback()

    # ------------------------------------------------------------------
    # Blobs
    # ------------------------------------------------------------------

    def has_blob(self, sha256: str) -> bool:
        """Check if a blob row exists"""
        return self.db.query(Blob.sha256).filter(Blob.sha256 == sha256).first() is not None

    def get_blob(self, sha256: str) -> Optional[Blob]:
        """Get a blob row by hash"""
        return self.db.query(Blob).filter(Blob.sha256 == sha256).first()

    def add_blob(
        self,
        sha256: str,
        size: int,
        type: Optional[str] = None,
        uploaded: Optional[int] = None
    ) -> Blob:
        """
        Insert a blob row unless one already exists.

        The first writer wins: size and type of a later insert with the same
        hash are ignored.

        Args:
            sha256: Content hash
            size: Size in bytes
            type: Optional MIME type
            uploaded: Upload timestamp (defaults to now)

        Returns:
            The stored Blob row
        """
        if size < 0:
            raise ValueError(f"Blob size must not be negative: {size}")

        stmt = self._insert(Blob.__table__).values(
            sha256=sha256,
            type=type,
            size=size,
            uploaded=uploaded if uploaded is not None else unix_now(),
        ).on_conflict_do_nothing(index_elements=['sha256'])
        self.db.execute(stmt)
        self.db.commit()

        return self.get_blob(sha256)

    def remove_blob(self, sha256: str) -> bool:
        """
        Delete a blob row and all of its ownership edges.

        Returns:
            True if a blob row was deleted
        """
        self.db.query(Owner).filter(Owner.blob == sha256).delete(synchronize_session=False)
        deleted = self.db.query(Blob).filter(Blob.sha256 == sha256).delete(synchronize_session=False)
        self.db.commit()
        self.db.expire_all()
        return deleted > 0

    def remove_blobs(self, hashes: Iterable[str]) -> int:
        """
        Delete many blob rows at once, with their ownership edges and access records.

        Returns:
            Number of blob rows deleted
        """
        hashes = list(hashes)
        deleted = 0
        for chunk in _chunks(hashes):
            self.db.query(Owner).filter(Owner.blob.in_(chunk)).delete(synchronize_session=False)
            self.db.query(Accessed).filter(Accessed.blob.in_(chunk)).delete(synchronize_session=False)
            deleted += self.db.query(Blob).filter(Blob.sha256.in_(chunk)).delete(synchronize_session=False)
        self.db.commit()
        self.db.expire_all()
        return deleted

    def filter_existing(self, hashes: Iterable[str]) -> Set[str]:
        """Subset of the given hashes that have a blob row"""
        found = set()
        for chunk in _chunks(list(hashes)):
            found.update(row[0] for row in self.db.query(Blob.sha256).filter(Blob.sha256.in_(chunk)))
        return found

    # ------------------------------------------------------------------
    # Owners
    # ------------------------------------------------------------------

    def has_owner(self, sha256: str, pubkey: str) -> bool:
        """Check if a pubkey owns a blob"""
        return self.db.query(Owner.id).filter(
            Owner.blob == sha256,
            Owner.pubkey == pubkey
        ).first() is not None

    def add_owner(self, sha256: str, pubkey: str) -> bool:
        """Add an ownership edge (duplicates are not checked)"""
        self.db.add(Owner(blob=sha256, pubkey=pubkey))
        self.db.commit()
        return True

    def remove_owner(self, sha256: str, pubkey: str) -> bool:
        """
        Remove every edge between a blob and a pubkey.

        Returns:
            True if any edge was removed
        """
        deleted = self.db.query(Owner).filter(
            Owner.blob == sha256,
            Owner.pubkey == pubkey
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted > 0

    def list_owners(self, sha256: str) -> Set[str]:
        """Set of pubkeys owning a blob"""
        return {row[0] for row in self.db.query(Owner.pubkey).filter(Owner.blob == sha256)}

    def get_owner_blobs(
        self,
        pubkey: str,
        since: Optional[int] = None,
        until: Optional[int] = None
    ) -> List[Blob]:
        """
        List blobs owned by a pubkey, newest first.

        Args:
            pubkey: Owner public key
            since: Only blobs uploaded at or after this timestamp
            until: Only blobs uploaded at or before this timestamp
        """
        owned = select(Owner.blob).where(Owner.pubkey == pubkey)
        query = self.db.query(Blob).filter(Blob.sha256.in_(owned))
        if since is not None:
            query = query.filter(Blob.uploaded >= since)
        if until is not None:
            query = query.filter(Blob.uploaded <= until)
        return query.order_by(Blob.uploaded.desc(), Blob.sha256).all()

    # ------------------------------------------------------------------
    # Access records
    # ------------------------------------------------------------------

    def update_access(self, sha256: str, timestamp: Optional[int] = None):
        """Record that a blob was accessed (insert or update)"""
        timestamp = timestamp if timestamp is not None else unix_now()
        stmt = self._insert(Accessed.__table__).values(blob=sha256, timestamp=timestamp)
        stmt = stmt.on_conflict_do_update(index_elements=['blob'], set_={'timestamp': timestamp})
        self.db.execute(stmt)
        self.db.commit()

    def forget_access(self, sha256: str):
        """Drop the access record of a blob"""
        self.db.query(Accessed).filter(Accessed.blob == sha256).delete(synchronize_session=False)
        self.db.commit()

    def get_access(self, sha256: str) -> Optional[int]:
        """Last access timestamp of a blob, if any"""
        row = self.db.query(Accessed.timestamp).filter(Accessed.blob == sha256).first()
        return row[0] if row else None

    # ------------------------------------------------------------------
    # Retention queries
    # ------------------------------------------------------------------

    def find_rule_candidates(
        self,
        type_pattern: str,
        pubkeys: Optional[List[str]] = None
    ) -> List[Tuple[str, Optional[str], int, Optional[int]]]:
        """
        Blobs matching a retention rule.

        Args:
            type_pattern: MIME glob; "*" alone also matches blobs without a type
            pubkeys: If given, only blobs owned by one of these keys

        Returns:
            List of (sha256, type, uploaded, accessed) tuples
        """
        query = self.db.query(
            Blob.sha256, Blob.type, Blob.uploaded, Accessed.timestamp
        ).outerjoin(Accessed, Accessed.blob == Blob.sha256)

        if type_pattern != '*':
            query = query.filter(Blob.type.like(like_pattern(type_pattern), escape='\\'))
        if pubkeys:
            query = query.filter(Blob.sha256.in_(
                select(Owner.blob).where(Owner.pubkey.in_(pubkeys))
            ))

        return [tuple(row) for row in query.order_by(Blob.uploaded, Blob.sha256)]

    def find_orphans(self) -> List[str]:
        """Hashes of blobs without any owner"""
        rows = self.db.query(Blob.sha256).outerjoin(
            Owner, Owner.blob == Blob.sha256
        ).filter(Owner.id.is_(None))
        return [row[0] for row in rows]

    # ------------------------------------------------------------------
    # List / search surface
    # ------------------------------------------------------------------

    def _blob_conditions(self, filter: Optional[Dict[str, Any]]) -> list:
        conditions = []
        if not filter:
            return conditions

        for key, value in filter.items():
            if key == 'q':
                term = str(value)
                conditions.append(or_(*[
                    safe_column(BLOB_COLUMNS, field).contains(term, autoescape=True)
                    for field in BLOB_SEARCH_FIELDS
                ]))
            else:
                column = safe_column(BLOB_COLUMNS, key)
                value = _filter_value(key, value)
                conditions.append(column.in_(value) if isinstance(value, list) else column == value)
        return conditions

    def _owner_sets(self, hashes: List[str]) -> Dict[str, Set[str]]:
        owners = {h: set() for h in hashes}
        for chunk in _chunks(hashes):
            for blob, pubkey in self.db.query(Owner.blob, Owner.pubkey).filter(Owner.blob.in_(chunk)):
                owners[blob].add(pubkey)
        return owners

    def get_blob_info(self, sha256: str) -> Optional[BlobInfo]:
        """A blob row with its owners"""
        blob = self.get_blob(sha256)
        if blob is None:
            return None
        return BlobInfo(
            sha256=blob.sha256, type=blob.type, size=blob.size,
            uploaded=blob.uploaded, owners=self.list_owners(sha256)
        )

    def list_blobs(
        self,
        filter: Optional[Dict[str, Any]] = None,
        sort: Optional[Tuple[str, str]] = None,
        range: Optional[Tuple[int, int]] = None
    ) -> Tuple[List[BlobInfo], int]:
        """
        Search blobs.

        Args:
            filter: {"q": substring} and/or column filters; list values mean IN
            sort: (column, "ASC" | "DESC")
            range: Inclusive (start, end) positions

        Returns:
            Tuple of (page of BlobInfo, total number of matches)

        Raises:
            InvalidColumnError: If a filter or sort column is not allow-listed
            InvalidQueryError: If the sort direction or range is malformed
        """
        # Validate everything before touching the database
        conditions = self._blob_conditions(filter)
        if sort:
            order = [_order(safe_column(BLOB_COLUMNS, sort[0]), sort[1]), asc(Blob.sha256)]
        else:
            order = [desc(Blob.uploaded), asc(Blob.sha256)]
        page = _page(range)

        total = self.db.query(func.count(Blob.sha256)).filter(*conditions).scalar()

        query = self.db.query(Blob).filter(*conditions).order_by(*order)
        if page:
            query = query.offset(page[0]).limit(page[1])
        blobs = query.all()

        owners = self._owner_sets([b.sha256 for b in blobs])
        return [
            BlobInfo(sha256=b.sha256, type=b.type, size=b.size, uploaded=b.uploaded, owners=owners[b.sha256])
            for b in blobs
        ], total

    def list_users(
        self,
        filter: Optional[Dict[str, Any]] = None,
        sort: Optional[Tuple[str, str]] = None,
        range: Optional[Tuple[int, int]] = None
    ) -> Tuple[List[UserInfo], int]:
        """
        Search owners (distinct pubkeys).

        Accepts filter keys "q" and "pubkey" and sorting by "pubkey" only.

        Returns:
            Tuple of (page of UserInfo, total number of distinct pubkeys)
        """
        conditions = []
        for key, value in (filter or {}).items():
            if key == 'q':
                conditions.append(Owner.pubkey.contains(str(value), autoescape=True))
            else:
                column = safe_column(USER_COLUMNS, key)
                value = _filter_value(key, value)
                conditions.append(column.in_(value) if isinstance(value, list) else column == value)

        if sort:
            order = _order(safe_column(USER_COLUMNS, sort[0]), sort[1])
        else:
            order = asc(Owner.pubkey)
        page = _page(range)

        total = self.db.query(func.count(func.distinct(Owner.pubkey))).filter(*conditions).scalar()

        query = self.db.query(Owner.pubkey).filter(*conditions).group_by(Owner.pubkey).order_by(order)
        if page:
            query = query.offset(page[0]).limit(page[1])
        pubkeys = [row[0] for row in query]

        blobs = {pubkey: set() for pubkey in pubkeys}
        for chunk in _chunks(pubkeys):
            for pubkey, blob in self.db.query(Owner.pubkey, Owner.blob).filter(Owner.pubkey.in_(chunk)):
                blobs[pubkey].add(blob)

        return [UserInfo(pubkey=p, blobs=blobs[p]) for p in pubkeys], total
