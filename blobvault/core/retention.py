"""
Retention rules and the garbage-collection sweep.

A sweep is a single pass: rules are applied in order, each blob is checked
against at most one rule, and blobs whose last access (or upload) is older
than the rule's expiration are removed.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Set, Union

from pydantic import AliasChoices, BaseModel, Field, field_validator

from blobvault.core.blob_index import unix_now
from blobvault.utils.mime import is_sha256

logger = logging.getLogger(__name__)

DURATION_UNITS = {
    's': 1, 'sec': 1, 'secs': 1, 'second': 1, 'seconds': 1,
    'm': 60, 'min': 60, 'mins': 60, 'minute': 60, 'minutes': 60,
    'h': 3600, 'hr': 3600, 'hrs': 3600, 'hour': 3600, 'hours': 3600,
    'd': 86400, 'day': 86400, 'days': 86400,
    'w': 604800, 'week': 604800, 'weeks': 604800,
    'month': 2592000, 'months': 2592000,
    'y': 31536000, 'year': 31536000, 'years': 31536000,
}

DURATION_RE = re.compile(r'^(\d+)\s*([a-z]+)$')


def parse_duration(value: Union[int, str]) -> int:
    """
    Convert an expiration into seconds.

    Accepts a non-negative integer number of seconds, a string of digits, or
    "<n> <unit>" such as "12 hours", "1 week" or "1 month" (30 days).

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid expiration: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Expiration must not be negative: {value}")
        return value

    text = str(value).strip().lower()
    if text.isdigit():
        return int(text)

    match = DURATION_RE.match(text)
    if not match or match.group(2) not in DURATION_UNITS:
        raise ValueError(f"Invalid expiration: {value!r}")
    return int(match.group(1)) * DURATION_UNITS[match.group(2)]


class RetentionRule(BaseModel):
    """
    A retention rule: blobs whose type matches `type` (and, if `pubkeys` is
    set, that are owned by one of them) expire `expiration` after their last
    access or upload.
    """
    type: str = Field(default="*", description="MIME type glob, e.g. 'image/*'")
    pubkeys: Optional[List[str]] = Field(default=None, description="Limit the rule to blobs owned by these keys")
    expiration: Union[int, str] = Field(
        ...,
        validation_alias=AliasChoices('expiration', 'max_age', 'maxAge'),
        description="Seconds, or a duration such as '1 week'"
    )

    @field_validator('type')
    @classmethod
    def validate_type(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Rule type cannot be empty")
        return v.strip()

    @field_validator('pubkeys')
    @classmethod
    def validate_pubkeys(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        keys = [key.strip().lower() for key in v]
        invalid = [key for key in keys if not is_sha256(key)]
        if invalid:
            raise ValueError(f"Invalid pubkeys: {', '.join(invalid)}")
        return keys

    @field_validator('expiration')
    @classmethod
    def validate_expiration(cls, v: Union[int, str]) -> Union[int, str]:
        parse_duration(v)
        return v

    @property
    def seconds(self) -> int:
        """Expiration in seconds"""
        return parse_duration(self.expiration)


def get_expiration_time(rule: RetentionRule, now: int) -> int:
    """Cutoff timestamp: blobs last seen before it are expired under `rule`"""
    return now - rule.seconds


@dataclass
class PruneResult:
    """Outcome of one sweep"""
    checked: int = 0
    removed: List[str] = field(default_factory=list)
    orphans_removed: List[str] = field(default_factory=list)
    untracked_removed: List[str] = field(default_factory=list)
    errors: int = 0

    @property
    def total_removed(self) -> int:
        return len(self.removed) + len(self.orphans_removed) + len(self.untracked_removed)


class RetentionSweeper:
    """
    Applies retention rules to the index and removes expired blobs.

    Failures on a single blob are logged and skipped; the sweep carries on
    with the next hash.
    """

    def __init__(self, service, settings):
        """
        Args:
            service: StorageService used for removals
            settings: StorageSettings with the rules and cleanup flags
        """
        self.service = service
        self.settings = settings

    @property
    def index(self):
        return self.service.index

    @property
    def backend(self):
        return self.service.backend

    def prune(self, now: Optional[int] = None) -> PruneResult:
        """
        Run one sweep.

        Args:
            now: Reference time (defaults to the current time)

        Returns:
            PruneResult describing what was checked and removed
        """
        now = now if now is not None else unix_now()
        result = PruneResult()
        checked: Set[str] = set()

        for number, rule in enumerate(self.settings.rules):
            self._apply_rule(number, rule, now, checked, result)

        if self.settings.remove_when_no_owners:
            self._remove_orphans(result)

        if self.settings.remove_untracked_objects:
            self._remove_untracked(result)

        if result.total_removed or result.errors:
            logger.info(
                f"Prune finished: checked {result.checked}, removed {len(result.removed)} expired, "
                f"{len(result.orphans_removed)} orphaned, {len(result.untracked_removed)} untracked, "
                f"{result.errors} errors"
            )
        return result

    def _apply_rule(self, number: int, rule: RetentionRule, now: int, checked: Set[str], result: PruneResult):
        expiration = get_expiration_time(rule, now)
        candidates = self.index.find_rule_candidates(rule.type, rule.pubkeys)

        n = 0
        for sha256, type, uploaded, accessed in candidates:
            if sha256 in checked:
                continue

            last_seen = accessed if accessed is not None else uploaded
            if last_seen < expiration:
                logger.info(f"Removing {sha256} ({type}) because of rule #{number} ({rule.type}, {rule.expiration})")
                try:
                    self.service.delete_blob(sha256)
                    result.removed.append(sha256)
                except Exception:
                    logger.exception(f"Failed to remove {sha256}")
                    self.index.rollback()
                    result.errors += 1

            n += 1
            checked.add(sha256)

        result.checked += n
        if n > 0:
            logger.debug(f"Checked {n} blobs for rule #{number}")

    def _remove_orphans(self, result: PruneResult):
        """Delete blobs without owners from the index, then their bytes from the backend"""
        orphans = self.index.find_orphans()
        if not orphans:
            return

        logger.info(f"Removing {len(orphans)} blobs because they have no owners")
        try:
            self.index.remove_blobs(orphans)
        except Exception:
            logger.exception("Failed to remove orphaned blobs from the index")
            self.index.rollback()
            result.errors += 1
            return

        for sha256 in orphans:
            try:
                if self.backend.has_blob(sha256):
                    self.backend.remove_blob(sha256)
                result.orphans_removed.append(sha256)
            except Exception:
                logger.exception(f"Failed to remove orphaned object {sha256}")
                result.errors += 1

    def _remove_untracked(self, result: PruneResult):
        """Delete backend objects that have no index row (left behind by an interrupted upload)"""
        stored = self.backend.list_blobs()
        tracked = self.index.filter_existing(stored)

        for sha256 in stored:
            if sha256 in tracked:
                continue
            logger.warning(f"Removing untracked object {sha256}")
            try:
                self.backend.remove_blob(sha256)
                result.untracked_removed.append(sha256)
            except Exception:
                logger.exception(f"Failed to remove untracked object {sha256}")
                result.errors += 1
