"""
Follow Sync - mirrors followed remote lists into the local read-only cache.

One change listener is attached per followed list while a user is signed in.
Each snapshot overwrites the local FollowedList metadata and replaces all of
its items. A missing document, ``isActive == False`` or a listener error
marks the local list inactive; its cached items are kept so the user still
sees what the list contained.

Listener callbacks can arrive on a transport thread, so every local write
runs inside an application context.
"""
import threading
from typing import Dict, List, Optional

import structlog
from flask import current_app, has_app_context

from watchvault.constants import FOLLOWS_COLLECTION, PUBLISHED_LISTS_COLLECTION
from watchvault.db import storage_errors, unit_of_work
from watchvault.document_store import DocumentStoreError, ListenerRegistration, WriteOp
from watchvault.exceptions import (
    AuthenticationException,
    LocalStorageException,
    NotFoundException,
    RemoteWriteException,
    ValidationException,
)
from watchvault.metrics import followed_list_updates_total, remote_writes_total
from watchvault.models.followed_list import FollowedList
from watchvault.models.followed_list_item import FollowedListItem
from watchvault.repositories.followed_list_repository import FollowedListRepository
from watchvault.services.publish_sync import PublishedListSnapshot, parse_published_list
from watchvault.utils import isoformat_utc, now_utc

logger = structlog.get_logger('follow')


class FollowedListSyncService:
    def __init__(self, store, app=None):
        self.store = store
        self.app = app or (current_app._get_current_object() if has_app_context() else None)
        self.user_id: Optional[str] = None
        self._listeners: Dict[str, ListenerRegistration] = {}
        self._lock = threading.RLock()

    @property
    def is_active(self):
        return self.user_id is not None

    @property
    def listening_to(self) -> List[str]:
        with self._lock:
            return sorted(self._listeners)

    # Lifecycle

    def activate(self, user_id: str):
        """Start listening to every locally followed list"""
        if not user_id:
            raise AuthenticationException("Follow sync requires a signed-in user")
        if self.is_active:
            return

        # Stay inactive if the local cache cannot be read, so activate() can be retried
        with storage_errors("Loading followed lists"):
            doc_ids = [followed.remote_doc_id for followed in FollowedListRepository.get_all()]
        self.user_id = user_id
        for doc_id in doc_ids:
            self._start_listening(doc_id)
        logger.info(f"Follow sync active for {user_id}: {len(doc_ids)} listeners")

    def deactivate(self):
        """Tear down every listener (sign-out)"""
        if not self.is_active:
            return
        with self._lock:
            registrations = list(self._listeners.items())
            self._listeners.clear()
        for doc_id, registration in registrations:
            registration.remove()
            logger.debug(f"Detached listener for {doc_id}")
        self.user_id = None
        logger.info("Follow sync deactivated")

    def attach_listener(self, doc_id: str):
        if not self.is_active:
            return
        self._start_listening(doc_id)

    def detach_listener(self, doc_id: str):
        with self._lock:
            registration = self._listeners.pop(doc_id, None)
        if registration is not None:
            registration.remove()
            logger.info(f"Detached listener for {doc_id}")

    # Follow relationships

    def follow(self, doc_id: str) -> FollowedList:
        """Follow a published list and cache it locally"""
        user_id = self._require_user()
        data = self._fetch(doc_id)
        if data is None:
            raise NotFoundException(f"Published list {doc_id} does not exist")

        snapshot = parse_published_list(doc_id, data)
        if snapshot.owner_id == user_id:
            raise ValidationException("You cannot follow your own list")
        if not snapshot.is_active:
            raise NotFoundException(f"Published list {doc_id} is no longer available")

        if not self._follow_doc_ids(user_id, doc_id):
            follow_doc = {"followerID": user_id, "listID": doc_id, "followedAt": isoformat_utc(now_utc())}
            self._remote_write("follow", lambda: self.store.set(
                FOLLOWS_COLLECTION, self.store.new_document_id(), follow_doc))

        with unit_of_work(f"Caching followed list {doc_id}"):
            followed = FollowedListRepository.get_by_remote_doc_id(doc_id)
            if followed is None:
                followed = FollowedListRepository.add(FollowedList(remote_doc_id=doc_id, name=snapshot.name))
            self._apply_snapshot(followed, snapshot)

        self.attach_listener(doc_id)
        logger.info(f"Followed {doc_id} ({snapshot.name!r} by {snapshot.owner_display_name})")
        return followed

    def unfollow(self, doc_id: str) -> bool:
        """Drop the remote relationship, the listener and the local cache"""
        user_id = self._require_user()
        follow_ids = self._follow_doc_ids(user_id, doc_id)
        if follow_ids:
            ops = [WriteOp("delete", FOLLOWS_COLLECTION, follow_id) for follow_id in follow_ids]
            self._remote_write("unfollow", lambda: self.store.batch_write(ops))

        self.detach_listener(doc_id)
        with unit_of_work(f"Removing followed list {doc_id}"):
            followed = FollowedListRepository.get_by_remote_doc_id(doc_id)
            if followed is not None:
                FollowedListRepository.delete(followed)

        logger.info(f"Unfollowed {doc_id}")
        return followed is not None

    def is_following(self, doc_id: str) -> bool:
        return bool(self._follow_doc_ids(self._require_user(), doc_id))

    def restore_follows(self) -> int:
        """Rebuild the local cache from the signed-in user's remote follow relationships.

        Returns the number of lists restored.
        """
        user_id = self._require_user()
        try:
            follows = self.store.query(FOLLOWS_COLLECTION, followerID=user_id)
        except DocumentStoreError as e:
            raise RemoteWriteException(f"Loading follows of {user_id} failed: {e}") from e

        restored = 0
        for _, follow_doc in follows:
            doc_id = follow_doc.get("listID")
            if not doc_id:
                continue
            with storage_errors(f"Looking up followed list {doc_id}"):
                if FollowedListRepository.get_by_remote_doc_id(doc_id) is not None:
                    continue
            data = self._fetch(doc_id)
            if data is None:
                logger.warning(f"Followed list {doc_id} no longer exists, skipping restore")
                continue
            with unit_of_work(f"Restoring followed list {doc_id}"):
                followed = FollowedListRepository.add(FollowedList(remote_doc_id=doc_id, name=""))
                self._apply_snapshot(followed, parse_published_list(doc_id, data))
            self.attach_listener(doc_id)
            restored += 1

        logger.info(f"Restored {restored} followed lists for {user_id}")
        return restored

    # Reads

    def followed_lists(self) -> List[FollowedList]:
        with storage_errors("Loading followed lists"):
            return FollowedListRepository.get_all()

    def items(self, doc_id: str) -> List[FollowedListItem]:
        with storage_errors(f"Loading items of followed list {doc_id}"):
            return FollowedListRepository.get_items(doc_id)

    # Snapshot handling

    def handle_snapshot(self, doc_id: str, data: Optional[dict], error: Optional[Exception] = None):
        """Apply one listener event to the local cache"""
        if has_app_context() or self.app is None:
            self._apply_event(doc_id, data, error)
        else:
            with self.app.app_context():
                self._apply_event(doc_id, data, error)

    def _apply_event(self, doc_id, data, error):
        try:
            with unit_of_work(f"Applying snapshot of {doc_id}"):
                followed = FollowedListRepository.get_by_remote_doc_id(doc_id)
                if followed is None:
                    logger.warning(f"Received update for {doc_id} but it is not followed locally")
                    return

                if error is not None or data is None:
                    followed.is_active = False
                    status = "error" if error is not None else "missing"
                    logger.info(f"List {doc_id} marked inactive ({error or 'document missing'})")
                else:
                    snapshot = parse_published_list(doc_id, data)
                    if snapshot.is_active:
                        self._apply_snapshot(followed, snapshot)
                        status = "updated"
                    else:
                        followed.is_active = False
                        status = "inactive"
                        logger.info(f"List {doc_id} was unpublished by its owner")
        except LocalStorageException as e:
            # Listener threads have no caller to report to
            followed_list_updates_total.labels(status="failed").inc()
            logger.error(f"Failed to save snapshot of {doc_id}: {e.message}")
            return
        followed_list_updates_total.labels(status=status).inc()

    @staticmethod
    def _apply_snapshot(followed: FollowedList, snapshot: PublishedListSnapshot):
        followed.name = snapshot.name
        followed.owner_display_name = snapshot.owner_display_name
        followed.owner_id = snapshot.owner_id
        followed.item_count = snapshot.item_count
        followed.is_active = snapshot.is_active
        followed.last_fetched_at = now_utc()

        FollowedListRepository.replace_items(snapshot.doc_id, [
            FollowedListItem(
                followed_list_id=snapshot.doc_id,
                catalog_kind=item.catalog_kind,
                catalog_id=item.catalog_id,
                title=item.title,
                poster_path=item.poster_path,
                sort_order=index,
            )
            for index, item in enumerate(snapshot.items)
        ])

    # Internal

    def _start_listening(self, doc_id):
        with self._lock:
            if doc_id in self._listeners:
                return
            # Reserve the slot so a snapshot delivered during registration is not a second attach
            self._listeners[doc_id] = ListenerRegistration(lambda: None)

        registration = self.store.add_listener(
            PUBLISHED_LISTS_COLLECTION,
            doc_id,
            lambda data, error: self.handle_snapshot(doc_id, data, error),
        )
        with self._lock:
            if doc_id in self._listeners:
                self._listeners[doc_id] = registration
                logger.debug(f"Listening to {doc_id}")
                return
        # Detached while registering
        registration.remove()

    def _require_user(self):
        if not self.user_id:
            raise AuthenticationException("Follow sync requires a signed-in user")
        return self.user_id

    def _fetch(self, doc_id):
        try:
            return self.store.get(PUBLISHED_LISTS_COLLECTION, doc_id)
        except DocumentStoreError as e:
            raise RemoteWriteException(f"Fetching published list {doc_id} failed: {e}") from e

    def _follow_doc_ids(self, user_id, doc_id):
        try:
            return [follow_id for follow_id, _ in
                    self.store.query(FOLLOWS_COLLECTION, followerID=user_id, listID=doc_id)]
        except DocumentStoreError as e:
            raise RemoteWriteException(f"Loading follow state of {doc_id} failed: {e}") from e

    def _remote_write(self, operation, write):
        try:
            write()
        except DocumentStoreError as e:
            remote_writes_total.labels(operation=operation, status="failure").inc()
            raise RemoteWriteException(f"Remote {operation} failed: {e}") from e
        remote_writes_total.labels(operation=operation, status="success").inc()
