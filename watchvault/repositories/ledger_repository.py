"""
Repository for LedgerRecord database operations
"""

from watchvault.db import db
from watchvault.models.ledger_record import LedgerRecord


class LedgerRepository:
    """Repository for LedgerRecord database operations"""

    @staticmethod
    def get_all(direction=None):
        """Get all LedgerRecords, most recently changed first"""
        query = LedgerRecord.query
        if direction is not None:
            query = query.filter_by(direction=direction)
        return query.order_by(LedgerRecord.date_changed.desc()).all()

    @staticmethod
    def get_by_unique_key(unique_key):
        """Get LedgerRecord by composite unique key"""
        return LedgerRecord.query.filter_by(unique_key=unique_key).first()

    @staticmethod
    def get_all_by_unique_key(unique_key):
        """Get every LedgerRecord sharing a unique key"""
        return LedgerRecord.query.filter_by(unique_key=unique_key).all()

    @staticmethod
    def get_unique_keys(direction=None):
        """Get the set of unique keys currently in the ledger"""
        query = db.session.query(LedgerRecord.unique_key)
        if direction is not None:
            query = query.filter(LedgerRecord.direction == direction)
        return {row[0] for row in query.all()}

    @staticmethod
    def add(record):
        """Stage a new LedgerRecord"""
        db.session.add(record)
        return record

    @staticmethod
    def delete(record):
        """Stage deletion of a LedgerRecord"""
        db.session.delete(record)

    @staticmethod
    def delete_by_direction(direction=None):
        """Stage deletion of every record (optionally of one direction). Returns deleted keys."""
        query = LedgerRecord.query
        if direction is not None:
            query = query.filter_by(direction=direction)
        records = query.all()
        keys = [r.unique_key for r in records]
        for record in records:
            db.session.delete(record)
        return keys

    @staticmethod
    def count(direction=None):
        """Count LedgerRecords"""
        query = LedgerRecord.query
        if direction is not None:
            query = query.filter_by(direction=direction)
        return query.count()
