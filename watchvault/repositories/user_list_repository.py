"""
Repository for UserList database operations
"""

from sqlalchemy import func

from watchvault.db import db
from watchvault.models.user_list import UserList


class UserListRepository:
    """Repository for UserList database operations"""

    @staticmethod
    def get_all():
        """Get all UserLists in display order"""
        return UserList.query.order_by(UserList.sort_order, UserList.created_date).all()

    @staticmethod
    def get_by_id(id):
        """Get UserList by ID"""
        return db.session.get(UserList, id)

    @staticmethod
    def get_by_remote_doc_id(remote_doc_id):
        """Get the local UserList published under a remote document ID"""
        return UserList.query.filter_by(remote_doc_id=remote_doc_id).first()

    @staticmethod
    def next_sort_order():
        """Sort order for a list appended after the existing ones"""
        current = db.session.query(func.max(UserList.sort_order)).scalar()
        return 0 if current is None else current + 1

    @staticmethod
    def add(user_list):
        """Stage a new UserList"""
        db.session.add(user_list)
        return user_list

    @staticmethod
    def delete(user_list):
        """Stage deletion of a UserList"""
        db.session.delete(user_list)

    @staticmethod
    def count():
        """Count total UserLists"""
        return UserList.query.count()
