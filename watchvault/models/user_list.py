"""
Model: UserList
A user-created named collection of ledger records, optionally published.
"""
import uuid

from watchvault.db import db, now_utc


class UserList(db.Model):
    __tablename__ = "user_list"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = db.Column(db.String, nullable=False)
    created_date = db.Column(db.DateTime(timezone=True), default=now_utc)
    sort_order = db.Column(db.Integer, default=0)

    # Publish state. remote_doc_id is cleared on unpublish; a re-publish gets a new one.
    remote_doc_id = db.Column(db.String, index=True)
    is_published = db.Column(db.Boolean, default=False, nullable=False)
    last_synced_at = db.Column(db.DateTime(timezone=True))

    def __repr__(self):
        return f"<UserList {self.id} {self.name!r}>"
