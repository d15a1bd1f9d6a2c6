"""
Ledger Store - centralized write operations for ledger records.

Direction transition policy
---------------------------
Direction hierarchy: seen (2) > watchlist (1) > skipped (0).

- Promotions are applied (skipped -> watchlist, skipped -> seen, watchlist -> seen).
- Demotions and same-direction re-encounters change nothing; the existing
  record is returned as-is.

A provider re-surfacing an already-seen item (e.g. with "show previously
swiped" on) therefore can never erase a rating or push a seen item back to
skipped.
"""
import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

import structlog

from watchvault.catalog import CatalogItem
from watchvault.constants import RATING_MAX, RATING_MIN
from watchvault.db import storage_errors, unit_of_work
from watchvault.exceptions import NotFoundException, RemoteWriteException, ValidationException
from watchvault.metrics import ledger_deletes_total, ledger_writes_total
from watchvault.models.ledger_record import Direction, LedgerRecord
from watchvault.repositories.ledger_repository import LedgerRepository
from watchvault.repositories.list_entry_repository import ListEntryRepository
from watchvault.repositories.user_list_repository import UserListRepository
from watchvault.utils import now_utc

logger = structlog.get_logger('ledger')

# Fields besides direction and date_changed that a promotion can overwrite
PROMOTABLE_FIELDS = (
    "title", "overview", "poster_path", "release_date", "community_rating", "genre_ids", "source_platform",
)


def _snapshot_fields(record):
    return {name: copy.deepcopy(getattr(record, name)) for name in PROMOTABLE_FIELDS}


@dataclass
class UpsertResult:
    """Outcome of a guarded direction write"""

    record: LedgerRecord
    previous_direction: Optional[Direction]
    previous_date_changed: Optional[datetime]
    created: bool
    promoted: bool
    # Values of the fields a promotion may overwrite, as they were before this write
    previous_fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def applied(self) -> bool:
        return self.created or self.promoted


class LedgerStore:
    """Upsert-with-guard access to the ledger"""

    def __init__(self, publisher=None):
        # Optional ListPublisher; published lists losing entries are pushed again
        self.publisher = publisher

    # Write Operations

    def apply_direction(self, item: CatalogItem, direction: Direction, source_platform=None) -> UpsertResult:
        """Insert the item with `direction`, or promote the existing record if that outranks it."""
        with unit_of_work(f"Writing {direction.value} for {item.unique_key}"):
            existing = LedgerRepository.get_by_unique_key(item.unique_key)
            if existing is None:
                record = LedgerRepository.add(LedgerRecord.from_item(item, direction, source_platform))
                result = UpsertResult(record, None, None, created=True, promoted=False)
            else:
                previous_direction = existing.direction
                previous_date_changed = existing.date_changed
                previous_fields = _snapshot_fields(existing)
                promoted = direction.outranks(previous_direction)
                if promoted:
                    self._promote(existing, direction, item=item, source_platform=source_platform)
                result = UpsertResult(existing, previous_direction, previous_date_changed, False, promoted,
                                      previous_fields=previous_fields)

        outcome = "created" if result.created else ("promoted" if result.promoted else "unchanged")
        ledger_writes_total.labels(direction=direction.value, outcome=outcome).inc()
        logger.debug(f"{item.unique_key}: {direction.value} -> {outcome}")
        return result

    def mark_seen(self, item: CatalogItem, source_platform=None) -> LedgerRecord:
        return self.apply_direction(item, Direction.SEEN, source_platform).record

    def save_to_watchlist(self, item: CatalogItem, source_platform=None) -> LedgerRecord:
        return self.apply_direction(item, Direction.WATCHLIST, source_platform).record

    def skip(self, item: CatalogItem, source_platform=None) -> LedgerRecord:
        return self.apply_direction(item, Direction.SKIPPED, source_platform).record

    def move_watchlist_to_seen(self, record: LedgerRecord) -> LedgerRecord:
        with unit_of_work(f"Moving {record.unique_key} to seen"):
            current = self._require(record.unique_key)
            if Direction.SEEN.outranks(current.direction):
                self._promote(current, Direction.SEEN)
        ledger_writes_total.labels(direction=Direction.SEEN.value, outcome="moved").inc()
        return current

    def set_personal_rating(self, stars: Optional[int], record: LedgerRecord) -> LedgerRecord:
        """Set (1-5) or clear (None) the personal rating. Direction is not touched."""
        if stars is not None and (isinstance(stars, bool) or not isinstance(stars, int)
                                  or not RATING_MIN <= stars <= RATING_MAX):
            raise ValidationException(f"Rating must be between {RATING_MIN} and {RATING_MAX} stars, got {stars!r}")

        with unit_of_work(f"Rating {record.unique_key}"):
            current = self._require(record.unique_key)
            current.personal_rating = stars
        return current

    def remove(self, record: LedgerRecord) -> bool:
        return self.remove_by_key(record.unique_key)

    def remove_by_key(self, unique_key: str, reason: str = "remove") -> bool:
        """Delete the record and every list entry referencing it. Returns False if absent."""
        with unit_of_work(f"Removing {unique_key}"):
            records = LedgerRepository.get_all_by_unique_key(unique_key)
            if not records:
                return False
            list_ids = ListEntryRepository.get_list_ids_for_items([unique_key])
            ListEntryRepository.delete_by_item_keys([unique_key])
            for record in records:
                LedgerRepository.delete(record)

        ledger_deletes_total.labels(reason=reason).inc(len(records))
        logger.info(f"Removed {unique_key} from ledger")
        self._sync_lists(list_ids)
        return True

    def restore_direction(self, unique_key: str, direction: Direction, date_changed=None,
                          fields=None) -> Optional[LedgerRecord]:
        """Put a record back to an earlier direction (undo of a guarded write).

        `fields` are the values captured in UpsertResult.previous_fields; they
        replace whatever the promotion wrote.
        """
        with unit_of_work(f"Restoring {unique_key} to {direction.value}"):
            record = LedgerRepository.get_by_unique_key(unique_key)
            if record is None:
                logger.warning(f"Cannot restore {unique_key}: record no longer exists")
                return None
            record.direction = direction
            if date_changed is not None:
                record.date_changed = date_changed
            for name, value in (fields or {}).items():
                if name in PROMOTABLE_FIELDS:
                    setattr(record, name, value)
        return record

    # Bulk purges

    def reset_skipped(self) -> int:
        return self._purge(Direction.SKIPPED, reason="reset_skipped")

    def reset_watchlist(self) -> int:
        return self._purge(Direction.WATCHLIST, reason="reset_watchlist")

    def reset_all(self) -> int:
        return self._purge(None, reason="reset_all")

    def _purge(self, direction, reason):
        label = direction.value if direction else "all"
        with unit_of_work(f"Resetting {label} records"):
            keys = LedgerRepository.delete_by_direction(direction)
            list_ids = ListEntryRepository.get_list_ids_for_items(keys)
            ListEntryRepository.delete_by_item_keys(keys)

        ledger_deletes_total.labels(reason=reason).inc(len(keys))
        logger.info(f"Reset {len(keys)} {label} records")
        self._sync_lists(list_ids)
        return len(keys)

    # Lookup

    def get(self, unique_key: str) -> Optional[LedgerRecord]:
        with storage_errors(f"Looking up {unique_key}"):
            return LedgerRepository.get_by_unique_key(unique_key)

    def all_keys(self, direction: Optional[Direction] = None) -> Set[str]:
        with storage_errors("Loading ledger keys"):
            return LedgerRepository.get_unique_keys(direction)

    def records(self, direction: Optional[Direction] = None) -> List[LedgerRecord]:
        with storage_errors("Loading ledger records"):
            return LedgerRepository.get_all(direction)

    def count(self, direction: Optional[Direction] = None) -> int:
        with storage_errors("Counting ledger records"):
            return LedgerRepository.count(direction)

    # Internal

    @staticmethod
    def _require(unique_key):
        record = LedgerRepository.get_by_unique_key(unique_key)
        if record is None:
            raise NotFoundException(f"No ledger record for {unique_key}")
        return record

    @staticmethod
    def _promote(record, direction, item=None, source_platform=None):
        record.direction = direction
        record.date_changed = now_utc()
        if item is not None:
            record.title = item.title or record.title
            if item.overview:
                record.overview = item.overview
            if item.poster_path:
                record.poster_path = item.poster_path
            if item.release_date:
                record.release_date = item.release_date
            if item.rating is not None:
                record.community_rating = item.rating
            if item.genre_ids:
                record.genre_ids = sorted(set(item.genre_ids))
        if source_platform is not None:
            record.source_platform = source_platform

    def _sync_lists(self, list_ids):
        """Best-effort push of published lists that lost entries; failures are logged, never raised."""
        if self.publisher is None or not list_ids:
            return
        with storage_errors("Loading lists to re-sync"):
            lists = [UserListRepository.get_by_id(list_id) for list_id in list_ids]
        for user_list in lists:
            if user_list is None or not user_list.is_published:
                continue
            try:
                self.publisher.sync_if_published(user_list)
            except RemoteWriteException as e:
                logger.warning(f"Background sync of list {user_list.id} failed: {e.message}")
