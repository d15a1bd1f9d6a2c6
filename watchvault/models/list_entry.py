"""
Model: ListEntry
Join row linking a UserList to a LedgerRecord by unique key.
Plain ID references instead of relationships; duplicates are repaired by the
list membership service rather than prevented by a constraint.
"""
import uuid

from watchvault.db import db, now_utc


class ListEntry(db.Model):
    __tablename__ = "list_entry"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    list_id = db.Column(db.String(36), nullable=False)
    item_key = db.Column(db.String, nullable=False)  # LedgerRecord.unique_key
    date_added = db.Column(db.DateTime(timezone=True), default=now_utc)
    sort_order = db.Column(db.Integer, default=0)

    __table_args__ = (
        db.Index("idx_list_entry_list_item", "list_id", "item_key"),
        db.Index("idx_list_entry_item", "item_key"),
    )
