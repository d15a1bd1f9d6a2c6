"""
Publish Sync - one-way push of a local list to the remote document store.

A published list is a denormalized snapshot: owner, name and the embedded
items (Seen and Watchlist records only). Followers never read the local
ledger. Every push overwrites the remote items wholesale, so the last writer
wins. Remote failures raise RemoteWriteException before any local state is
touched; nothing is queued or retried.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import structlog

from watchvault.constants import DEFAULT_DEEP_LINK_BASE, PUBLISHED_LISTS_COLLECTION
from watchvault.db import unit_of_work
from watchvault.deep_link import share_link
from watchvault.display_name import DisplayNameValidator
from watchvault.document_store import DocumentNotFoundError, DocumentStoreError
from watchvault.exceptions import NotFoundException, RemoteWriteException
from watchvault.metrics import remote_writes_total
from watchvault.models.ledger_record import Direction
from watchvault.models.user_list import UserList
from watchvault.repositories.user_list_repository import UserListRepository
from watchvault.services.list_membership import ListMembershipStore
from watchvault.utils import ensure_utc, isoformat_utc, now_utc

logger = structlog.get_logger('publish')

PUBLISHABLE_DIRECTIONS = (Direction.SEEN, Direction.WATCHLIST)


@dataclass
class PublishedListItem:
    catalog_id: int
    catalog_kind: str
    title: str
    poster_path: Optional[str] = None
    date_added: Optional[datetime] = None

    def to_document(self):
        doc = {
            "catalogID": self.catalog_id,
            "catalogKind": self.catalog_kind,
            "title": self.title,
            "dateAdded": isoformat_utc(self.date_added),
        }
        if self.poster_path:
            doc["posterPath"] = self.poster_path
        return doc


@dataclass
class PublishedListSnapshot:
    """A published list document as read back from the remote store"""

    doc_id: str
    owner_id: str
    owner_display_name: str
    name: str
    description: str = ""
    items: List[PublishedListItem] = field(default_factory=list)
    item_count: int = 0
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def parse_published_list(doc_id, data) -> PublishedListSnapshot:
    """Lenient parse of a published list document; missing fields get defaults"""
    items = [
        PublishedListItem(
            catalog_id=int(raw.get("catalogID") or 0),
            catalog_kind=raw.get("catalogKind") or "movie",
            title=raw.get("title") or "Unknown",
            poster_path=raw.get("posterPath"),
            date_added=ensure_utc(raw.get("dateAdded")),
        )
        for raw in (data.get("items") or [])
        if isinstance(raw, dict)
    ]
    item_count = data.get("itemCount")
    return PublishedListSnapshot(
        doc_id=doc_id,
        owner_id=data.get("ownerID") or "",
        owner_display_name=data.get("ownerDisplayName") or "Unknown",
        name=data.get("name") or "Untitled",
        description=data.get("description") or "",
        items=items,
        item_count=item_count if isinstance(item_count, int) else len(items),
        is_active=data.get("isActive", True) is not False,
        created_at=ensure_utc(data.get("createdAt")),
        updated_at=ensure_utc(data.get("updatedAt")),
    )


class ListPublisher:
    def __init__(self, store, membership=None, deep_link_base=DEFAULT_DEEP_LINK_BASE, name_validator=None):
        self.store = store
        # Reads only; a publisher-less store so reads never trigger a sync
        self.membership = membership or ListMembershipStore()
        self.deep_link_base = deep_link_base
        self.name_validator = name_validator or DisplayNameValidator()

    def share_link(self, user_list: UserList) -> Optional[str]:
        if not user_list.is_published or not user_list.remote_doc_id:
            return None
        return share_link(user_list.remote_doc_id, self.deep_link_base)

    def publish(self, user_list: UserList, owner_id: str, owner_display_name: str) -> str:
        """Publish a list and return its share link.

        An already published list is re-synced and keeps its link.
        """
        display_name = self.name_validator.validate(owner_display_name)

        if user_list.is_published and user_list.remote_doc_id:
            self.sync_if_published(user_list)
            return self.share_link(user_list)

        items = self._snapshot_items(user_list.id)
        timestamp = isoformat_utc(now_utc())
        doc_id = self.store.new_document_id()
        document = {
            "ownerID": owner_id,
            "ownerDisplayName": display_name,
            "name": user_list.name,
            "description": "",
            "items": [item.to_document() for item in items],
            "itemCount": len(items),
            "createdAt": timestamp,
            "updatedAt": timestamp,
            "isActive": True,
        }
        self._remote_write("publish", lambda: self.store.set(PUBLISHED_LISTS_COLLECTION, doc_id, document))

        with unit_of_work(f"Marking list {user_list.id} published"):
            current = self._require_list(user_list.id)
            current.remote_doc_id = doc_id
            current.is_published = True
            current.last_synced_at = now_utc()

        link = share_link(doc_id, self.deep_link_base)
        logger.info(f"Published {user_list.name!r} -> {link}")
        return link

    def sync_if_published(self, user_list: UserList) -> bool:
        """Push name and items of a published list. Returns False if it is not published."""
        if not user_list.is_published or not user_list.remote_doc_id:
            return False

        doc_id = user_list.remote_doc_id
        items = self._snapshot_items(user_list.id)
        fields = {
            "name": user_list.name,
            "items": [item.to_document() for item in items],
            "itemCount": len(items),
            "updatedAt": isoformat_utc(now_utc()),
        }
        self._remote_write("sync", lambda: self.store.update(PUBLISHED_LISTS_COLLECTION, doc_id, fields))

        with unit_of_work(f"Recording sync of list {user_list.id}"):
            current = self._require_list(user_list.id)
            current.last_synced_at = now_utc()

        logger.info(f"Synced {user_list.name!r} to {doc_id} ({len(items)} items)")
        return True

    def unpublish(self, user_list: UserList) -> bool:
        """Soft-delete the remote document and clear the local publish state"""
        doc_id = user_list.remote_doc_id
        if not doc_id:
            logger.warning(f"List {user_list.id} is not published, nothing to unpublish")
            return False

        fields = {"isActive": False, "updatedAt": isoformat_utc(now_utc())}
        try:
            self._remote_write("unpublish", lambda: self.store.update(PUBLISHED_LISTS_COLLECTION, doc_id, fields))
        except RemoteWriteException as e:
            if not isinstance(e.__cause__, DocumentNotFoundError):
                raise
            logger.warning(f"Remote document {doc_id} already gone, clearing local publish state")

        with unit_of_work(f"Clearing publish state of list {user_list.id}"):
            current = UserListRepository.get_by_id(user_list.id)
            if current is not None:
                current.remote_doc_id = None
                current.is_published = False
                current.last_synced_at = None

        logger.info(f"Unpublished {user_list.name!r} (was {doc_id})")
        return True

    def _snapshot_items(self, list_id):
        return [
            PublishedListItem(
                catalog_id=record.catalog_id,
                catalog_kind=record.catalog_kind,
                title=record.title,
                poster_path=record.poster_path,
                date_added=record.date_changed,
            )
            for _, record in self.membership.items(list_id, directions=PUBLISHABLE_DIRECTIONS)
        ]

    @staticmethod
    def _require_list(list_id):
        user_list = UserListRepository.get_by_id(list_id)
        if user_list is None:
            raise NotFoundException(f"List {list_id} does not exist")
        return user_list

    @staticmethod
    def _remote_write(operation, write):
        try:
            write()
        except DocumentStoreError as e:
            remote_writes_total.labels(operation=operation, status="failure").inc()
            raise RemoteWriteException(f"Remote {operation} failed: {e}") from e
        remote_writes_total.labels(operation=operation, status="success").inc()
