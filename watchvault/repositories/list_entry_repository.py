"""
Repository for ListEntry database operations
"""

from sqlalchemy import func

from watchvault.db import db
from watchvault.models.list_entry import ListEntry


class ListEntryRepository:
    """Repository for ListEntry database operations"""

    @staticmethod
    def get_by_list(list_id):
        """Get the entries of a list, oldest first within sort order"""
        return (
            ListEntry.query.filter_by(list_id=list_id)
            .order_by(ListEntry.sort_order, ListEntry.date_added, ListEntry.id)
            .all()
        )

    @staticmethod
    def get_by_list_and_item(list_id, item_key):
        """Get every entry for one (list, item) pair"""
        return (
            ListEntry.query.filter_by(list_id=list_id, item_key=item_key)
            .order_by(ListEntry.date_added, ListEntry.id)
            .all()
        )

    @staticmethod
    def get_list_ids_for_item(item_key):
        """Get IDs of every list containing an item"""
        rows = db.session.query(ListEntry.list_id).filter(ListEntry.item_key == item_key).distinct().all()
        return [row[0] for row in rows]

    @staticmethod
    def get_list_ids_for_items(item_keys):
        """Get IDs of every list containing one of `item_keys`"""
        item_keys = list(item_keys)
        if not item_keys:
            return []
        rows = db.session.query(ListEntry.list_id).filter(ListEntry.item_key.in_(item_keys)).distinct().all()
        return [row[0] for row in rows]

    @staticmethod
    def next_sort_order(list_id):
        """Sort order for an entry appended to a list"""
        current = db.session.query(func.max(ListEntry.sort_order)).filter(ListEntry.list_id == list_id).scalar()
        return 0 if current is None else current + 1

    @staticmethod
    def add(entry):
        """Stage a new ListEntry"""
        db.session.add(entry)
        return entry

    @staticmethod
    def delete(entry):
        """Stage deletion of a ListEntry"""
        db.session.delete(entry)

    @staticmethod
    def delete_by_list(list_id):
        """Stage deletion of every entry of a list. Returns the number of entries."""
        return ListEntry.query.filter_by(list_id=list_id).delete(synchronize_session="fetch")

    @staticmethod
    def delete_by_item_keys(item_keys):
        """Stage deletion of every entry referencing one of `item_keys`, across all lists"""
        item_keys = list(item_keys)
        if not item_keys:
            return 0
        return ListEntry.query.filter(ListEntry.item_key.in_(item_keys)).delete(synchronize_session="fetch")

    @staticmethod
    def count(list_id=None):
        """Count ListEntries (optionally of one list)"""
        query = ListEntry.query
        if list_id is not None:
            query = query.filter_by(list_id=list_id)
        return query.count()
