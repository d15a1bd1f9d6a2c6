"""
List Membership Store - many-to-many relation between user lists and ledger records.

Every mutation re-reads the list's current entries right before applying its
deltas and finishes with a duplicate sweep, so two surfaces editing the same
list concurrently cannot leave two entries for one item behind.
"""
from typing import Iterable, List, Optional

import structlog

from watchvault.db import storage_errors, unit_of_work
from watchvault.exceptions import NotFoundException, RemoteWriteException, ValidationException
from watchvault.models.list_entry import ListEntry
from watchvault.models.user_list import UserList
from watchvault.repositories.ledger_repository import LedgerRepository
from watchvault.repositories.list_entry_repository import ListEntryRepository
from watchvault.repositories.user_list_repository import UserListRepository

logger = structlog.get_logger('lists')


class ListMembershipStore:
    """Lists, their entries, and the orphan/duplicate invariants between them"""

    def __init__(self, publisher=None):
        # Optional ListPublisher; published lists are re-synced after each change
        self.publisher = publisher

    # Lists

    def create_list(self, name: str) -> UserList:
        name = self._clean_name(name)
        with unit_of_work(f"Creating list {name!r}"):
            user_list = UserListRepository.add(UserList(name=name, sort_order=UserListRepository.next_sort_order()))
        logger.info(f"Created list {user_list.id} ({name!r})")
        return user_list

    def rename_list(self, list_id: str, name: str) -> UserList:
        name = self._clean_name(name)
        with unit_of_work(f"Renaming list {list_id}"):
            user_list = self._require_list(list_id)
            user_list.name = name
        self._sync_published(user_list)
        return user_list

    def delete_list(self, list_id: str) -> bool:
        """Delete a list and its entries. A published list is unpublished first, best effort."""
        with storage_errors(f"Loading list {list_id}"):
            user_list = UserListRepository.get_by_id(list_id)
        if user_list is None:
            return False

        if user_list.is_published and self.publisher is not None:
            try:
                self.publisher.unpublish(user_list)
            except RemoteWriteException as e:
                # Continue with the local delete even if the remote soft delete failed
                logger.warning(f"Failed to unpublish list {list_id} during delete: {e.message}")

        with unit_of_work(f"Deleting list {list_id}"):
            removed = ListEntryRepository.delete_by_list(list_id)
            UserListRepository.delete(user_list)
        logger.info(f"Deleted list {list_id} with {removed} entries")
        return True

    def all_lists(self) -> List[UserList]:
        with storage_errors("Loading lists"):
            return UserListRepository.get_all()

    def get_list(self, list_id: str) -> Optional[UserList]:
        with storage_errors(f"Loading list {list_id}"):
            return UserListRepository.get_by_id(list_id)

    # Membership

    def add(self, item_keys: Iterable[str], list_id: str) -> int:
        """Add items to a list, skipping those already present. Returns entries created."""
        item_keys = _ordered_unique(item_keys)
        with unit_of_work(f"Adding {len(item_keys)} items to list {list_id}"):
            user_list = self._require_list(list_id)
            created = self._insert_missing(list_id, item_keys)
            self._dedupe(list_id)
        if created:
            self._sync_published(user_list)
        return created

    def remove(self, item_keys: Iterable[str], list_id: str) -> int:
        """Remove items from a list. Returns entries deleted."""
        item_keys = set(item_keys)
        with unit_of_work(f"Removing {len(item_keys)} items from list {list_id}"):
            user_list = self._require_list(list_id)
            removed = self._delete_matching(list_id, item_keys)
            self._dedupe(list_id)
        if removed:
            self._sync_published(user_list)
        return removed

    def toggle(self, item_key: str, list_id: str) -> bool:
        """Flip membership of one item. Returns True if the item is now in the list."""
        with unit_of_work(f"Toggling {item_key} in list {list_id}"):
            user_list = self._require_list(list_id)
            matches = ListEntryRepository.get_by_list_and_item(list_id, item_key)
            if matches:
                for entry in matches:
                    ListEntryRepository.delete(entry)
                now_member = False
            else:
                self._insert_missing(list_id, [item_key])
                now_member = True
        self._sync_published(user_list)
        return now_member

    def reconcile(self, selected_keys: Iterable[str], list_id: str) -> dict:
        """Make the list contain exactly `selected_keys`.

        Additions are ``selected - current`` and removals ``current - selected``,
        with ``current`` re-read inside the same unit of work.
        """
        selected = _ordered_unique(selected_keys)
        selected_set = set(selected)
        with unit_of_work(f"Reconciling list {list_id}"):
            user_list = self._require_list(list_id)
            current = {entry.item_key for entry in ListEntryRepository.get_by_list(list_id)}
            to_add = [key for key in selected if key not in current]
            to_remove = current - selected_set
            added = self._insert_missing(list_id, to_add)
            removed = self._delete_matching(list_id, to_remove)
            duplicates = self._dedupe(list_id)

        if added or removed:
            logger.info(f"Reconciled list {list_id}: +{added} -{removed}")
            self._sync_published(user_list)
        return {"added": added, "removed": removed, "duplicates_removed": duplicates}

    def cleanup_orphans(self, item_keys: Iterable[str]) -> int:
        """Delete every entry, in any list, referencing one of `item_keys`."""
        item_keys = list(item_keys)
        with unit_of_work(f"Cleaning up entries for {len(item_keys)} items"):
            removed = ListEntryRepository.delete_by_item_keys(item_keys)
        return removed

    def repair_duplicates(self, list_id: str) -> int:
        with unit_of_work(f"Repairing list {list_id}"):
            return self._dedupe(list_id)

    # Reads

    def entries(self, list_id: str) -> List[ListEntry]:
        with storage_errors(f"Loading entries of list {list_id}"):
            return ListEntryRepository.get_by_list(list_id)

    def items(self, list_id: str, directions=None):
        """Ledger records of a list in entry order; dangling keys are skipped."""
        with storage_errors(f"Resolving items of list {list_id}"):
            entries = ListEntryRepository.get_by_list(list_id)
            resolved = []
            seen_keys = set()
            for entry in entries:
                if entry.item_key in seen_keys:
                    continue
                seen_keys.add(entry.item_key)
                record = LedgerRepository.get_by_unique_key(entry.item_key)
                if record is None:
                    continue
                if directions is not None and record.direction not in directions:
                    continue
                resolved.append((entry, record))
            return resolved

    def item_count(self, list_id: str) -> int:
        return len(self.items(list_id))

    def lists_containing(self, item_key: str) -> List[str]:
        with storage_errors(f"Loading lists for {item_key}"):
            return ListEntryRepository.get_list_ids_for_item(item_key)

    # Internal

    @staticmethod
    def _clean_name(name):
        name = (name or "").strip()
        if not name:
            raise ValidationException("List name cannot be blank")
        return name

    @staticmethod
    def _require_list(list_id):
        user_list = UserListRepository.get_by_id(list_id)
        if user_list is None:
            raise NotFoundException(f"List {list_id} does not exist")
        return user_list

    @staticmethod
    def _insert_missing(list_id, item_keys):
        current = {entry.item_key for entry in ListEntryRepository.get_by_list(list_id)}
        sort_order = ListEntryRepository.next_sort_order(list_id)
        created = 0
        for key in item_keys:
            if key in current:
                continue
            ListEntryRepository.add(ListEntry(list_id=list_id, item_key=key, sort_order=sort_order))
            current.add(key)
            sort_order += 1
            created += 1
        return created

    @staticmethod
    def _delete_matching(list_id, item_keys):
        removed = 0
        for entry in ListEntryRepository.get_by_list(list_id):
            if entry.item_key in item_keys:
                ListEntryRepository.delete(entry)
                removed += 1
        return removed

    @staticmethod
    def _dedupe(list_id):
        """Keep the earliest entry of every (list, item) pair."""
        kept = set()
        removed = 0
        for entry in ListEntryRepository.get_by_list(list_id):
            if entry.item_key in kept:
                ListEntryRepository.delete(entry)
                removed += 1
            else:
                kept.add(entry.item_key)
        if removed:
            logger.warning(f"Removed {removed} duplicate entries from list {list_id}")
        return removed

    def _sync_published(self, user_list):
        """Best-effort push of a published list; failures are logged, never raised."""
        if self.publisher is None or not user_list.is_published:
            return
        try:
            self.publisher.sync_if_published(user_list)
        except RemoteWriteException as e:
            logger.warning(f"Background sync of list {user_list.id} failed: {e.message}")


def _ordered_unique(keys):
    seen = set()
    result = []
    for key in keys:
        if key not in seen:
            seen.add(key)
            result.append(key)
    return result
