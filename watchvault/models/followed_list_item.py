"""
Model: FollowedListItem
A display-only item of a followed list, linked by the remote document ID.
"""
import uuid

from watchvault.catalog import make_unique_key
from watchvault.db import db


class FollowedListItem(db.Model):
    __tablename__ = "followed_list_item"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    followed_list_id = db.Column(db.String, nullable=False, index=True)  # FollowedList.remote_doc_id
    catalog_kind = db.Column(db.String(16), nullable=False)
    catalog_id = db.Column(db.Integer, nullable=False)
    title = db.Column(db.String, nullable=False)
    poster_path = db.Column(db.String)
    sort_order = db.Column(db.Integer, default=0)

    @property
    def unique_key(self):
        """Same format as LedgerRecord.unique_key, to check local library membership"""
        return make_unique_key(self.catalog_kind, self.catalog_id)
