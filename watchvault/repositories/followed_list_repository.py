"""
Repository for FollowedList and FollowedListItem database operations
"""

from watchvault.db import db
from watchvault.models.followed_list import FollowedList
from watchvault.models.followed_list_item import FollowedListItem


class FollowedListRepository:
    """Repository for the followed-list cache"""

    @staticmethod
    def get_all():
        """Get all FollowedLists, most recently followed first"""
        return FollowedList.query.order_by(FollowedList.followed_at.desc()).all()

    @staticmethod
    def get_by_remote_doc_id(remote_doc_id):
        """Get FollowedList by remote document ID"""
        return FollowedList.query.filter_by(remote_doc_id=remote_doc_id).first()

    @staticmethod
    def get_items(remote_doc_id):
        """Get the cached items of a followed list in owner order"""
        return (
            FollowedListItem.query.filter_by(followed_list_id=remote_doc_id)
            .order_by(FollowedListItem.sort_order)
            .all()
        )

    @staticmethod
    def add(followed_list):
        """Stage a new FollowedList"""
        db.session.add(followed_list)
        return followed_list

    @staticmethod
    def replace_items(remote_doc_id, items):
        """Stage a full replacement of a followed list's items"""
        FollowedListItem.query.filter_by(followed_list_id=remote_doc_id).delete(synchronize_session="fetch")
        for item in items:
            db.session.add(item)

    @staticmethod
    def delete(followed_list):
        """Stage deletion of a FollowedList and its items"""
        FollowedListItem.query.filter_by(followed_list_id=followed_list.remote_doc_id).delete(
            synchronize_session="fetch"
        )
        db.session.delete(followed_list)
