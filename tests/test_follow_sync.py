"""
Tests for following published lists and mirroring them locally
"""
import pytest
from unittest.mock import patch
from sqlalchemy.exc import SQLAlchemyError

from watchvault.constants import FOLLOWS_COLLECTION, PUBLISHED_LISTS_COLLECTION
from watchvault.exceptions import (
    AuthenticationException,
    LocalStorageException,
    NotFoundException,
    ValidationException,
)
from watchvault.repositories.followed_list_repository import FollowedListRepository
from watchvault.services.follow_sync import FollowedListSyncService
from watchvault.services.list_membership import ListMembershipStore
from watchvault.services.publish_sync import ListPublisher


@pytest.fixture
def owner_store(app, document_store):
    return ListMembershipStore(publisher=ListPublisher(document_store))


@pytest.fixture
def published(ledger, owner_store, fight_club, breaking_bad):
    """Owner list 'Classics' with two items, published as owner-1"""
    ledger.mark_seen(fight_club)
    ledger.save_to_watchlist(breaking_bad)
    user_list = owner_store.create_list("Classics")
    owner_store.add(["movie_550", "tvShow_1396"], user_list.id)
    owner_store.publisher.publish(user_list, "owner-1", "Alice")
    return user_list


@pytest.fixture
def sync(app, document_store):
    service = FollowedListSyncService(document_store)
    service.activate("follower-1")
    yield service
    service.deactivate()


def follows_of(document_store, user_id):
    return document_store.query(FOLLOWS_COLLECTION, followerID=user_id)


class TestActivation:
    """Tests for sign-in and sign-out"""

    def test_requires_user(self, app, document_store):
        service = FollowedListSyncService(document_store)
        with pytest.raises(AuthenticationException):
            service.follow("abc")
        with pytest.raises(AuthenticationException):
            service.activate("")

    def test_deactivate_detaches_everything(self, sync, document_store, published):
        sync.follow(published.remote_doc_id)

        sync.deactivate()

        assert not sync.is_active
        assert document_store.listener_count() == 0

    def test_activate_listens_to_cached_lists(self, sync, document_store, published):
        doc_id = published.remote_doc_id
        sync.follow(doc_id)
        sync.deactivate()

        sync.activate("follower-1")

        assert sync.listening_to == [doc_id]
        assert document_store.listener_count(PUBLISHED_LISTS_COLLECTION, doc_id) == 1

    def test_failed_activation_can_be_retried(self, app, document_store):
        service = FollowedListSyncService(document_store)
        with patch.object(FollowedListRepository, "get_all", side_effect=SQLAlchemyError("disk I/O error")):
            with pytest.raises(LocalStorageException):
                service.activate("user-1")

        assert not service.is_active
        service.activate("user-1")
        assert service.is_active
        service.deactivate()


class TestFollow:
    """Tests for follow and unfollow"""

    def test_follow_caches_list(self, sync, document_store, published):
        doc_id = published.remote_doc_id

        followed = sync.follow(doc_id)

        assert followed.name == "Classics"
        assert followed.owner_display_name == "Alice"
        assert followed.item_count == 2
        assert [item.unique_key for item in sync.items(doc_id)] == ["movie_550", "tvShow_1396"]
        assert len(follows_of(document_store, "follower-1")) == 1
        assert document_store.listener_count(PUBLISHED_LISTS_COLLECTION, doc_id) == 1
        assert sync.is_following(doc_id)

    def test_follow_twice_writes_one_relationship(self, sync, document_store, published):
        sync.follow(published.remote_doc_id)
        sync.follow(published.remote_doc_id)

        assert len(follows_of(document_store, "follower-1")) == 1
        assert len(sync.followed_lists()) == 1
        assert document_store.listener_count() == 1

    def test_cannot_follow_own_list(self, app, document_store, published):
        service = FollowedListSyncService(document_store)
        service.activate("owner-1")
        with pytest.raises(ValidationException):
            service.follow(published.remote_doc_id)
        assert follows_of(document_store, "owner-1") == []

    def test_follow_missing_list(self, sync):
        with pytest.raises(NotFoundException):
            sync.follow("does-not-exist")

    def test_follow_unpublished_list(self, sync, owner_store, published):
        doc_id = published.remote_doc_id
        owner_store.publisher.unpublish(published)
        with pytest.raises(NotFoundException):
            sync.follow(doc_id)

    def test_unfollow(self, sync, document_store, published):
        doc_id = published.remote_doc_id
        sync.follow(doc_id)

        assert sync.unfollow(doc_id)

        assert follows_of(document_store, "follower-1") == []
        assert document_store.listener_count() == 0
        assert sync.followed_lists() == []
        assert sync.items(doc_id) == []
        assert sync.unfollow(doc_id) is False


class TestSnapshots:
    """Tests for listener-driven updates of the local cache"""

    def test_owner_changes_propagate(self, ledger, sync, owner_store, published, item_factory):
        doc_id = published.remote_doc_id
        sync.follow(doc_id)
        ledger.mark_seen(item_factory(42, title="Heat"))

        owner_store.add(["movie_42"], published.id)
        owner_store.rename_list(published.id, "Classics II")

        followed = FollowedListRepository.get_by_remote_doc_id(doc_id)
        assert followed.name == "Classics II"
        assert followed.item_count == 3
        assert [item.title for item in sync.items(doc_id)] == ["Fight Club", "Breaking Bad", "Heat"]

    def test_unpublish_marks_inactive_and_keeps_items(self, sync, owner_store, published):
        doc_id = published.remote_doc_id
        sync.follow(doc_id)

        owner_store.publisher.unpublish(published)

        followed = FollowedListRepository.get_by_remote_doc_id(doc_id)
        assert followed.is_active is False
        assert len(sync.items(doc_id)) == 2

    def test_deleted_document_marks_inactive(self, sync, document_store, published):
        doc_id = published.remote_doc_id
        sync.follow(doc_id)

        document_store.delete(PUBLISHED_LISTS_COLLECTION, doc_id)

        assert FollowedListRepository.get_by_remote_doc_id(doc_id).is_active is False
        assert len(sync.items(doc_id)) == 2

    def test_listener_error_marks_inactive(self, sync, document_store, published):
        doc_id = published.remote_doc_id
        sync.follow(doc_id)

        document_store.notify_error(PUBLISHED_LISTS_COLLECTION, doc_id, RuntimeError("permission denied"))

        assert FollowedListRepository.get_by_remote_doc_id(doc_id).is_active is False

    def test_snapshot_for_unknown_list_is_ignored(self, sync):
        sync.handle_snapshot("nobody", {"name": "Ghost", "items": []})
        assert sync.followed_lists() == []

    def test_storage_failure_is_contained(self, sync, published):
        doc_id = published.remote_doc_id
        sync.follow(doc_id)
        with patch.object(FollowedListRepository, "get_by_remote_doc_id", side_effect=SQLAlchemyError("locked")):
            sync.handle_snapshot(doc_id, {"name": "Changed", "items": []})
        assert FollowedListRepository.get_by_remote_doc_id(doc_id).name == "Classics"


class TestRestoreFollows:
    """Tests for rebuilding the cache from remote follow relationships"""

    def test_restore(self, sync, document_store, published):
        doc_id = published.remote_doc_id
        document_store.set(FOLLOWS_COLLECTION, "f1", {"followerID": "follower-1", "listID": doc_id})
        document_store.set(FOLLOWS_COLLECTION, "f2", {"followerID": "follower-1", "listID": "gone"})
        document_store.set(FOLLOWS_COLLECTION, "f3", {"followerID": "someone-else", "listID": doc_id})

        assert sync.restore_follows() == 1

        assert [followed.remote_doc_id for followed in sync.followed_lists()] == [doc_id]
        assert len(sync.items(doc_id)) == 2
        assert sync.listening_to == [doc_id]

    def test_restore_skips_cached_lists(self, sync, published):
        sync.follow(published.remote_doc_id)
        assert sync.restore_follows() == 0
