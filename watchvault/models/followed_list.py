"""
Model: FollowedList
Local read-only cache of another user's published list.
"""
from watchvault.db import db, now_utc


class FollowedList(db.Model):
    __tablename__ = "followed_list"

    id = db.Column(db.Integer, primary_key=True)
    remote_doc_id = db.Column(db.String, unique=True, nullable=False, index=True)
    name = db.Column(db.String, nullable=False)
    owner_display_name = db.Column(db.String, default="")
    owner_id = db.Column(db.String, default="")
    item_count = db.Column(db.Integer, default=0)
    followed_at = db.Column(db.DateTime(timezone=True), default=now_utc)
    last_fetched_at = db.Column(db.DateTime(timezone=True))
    # False once the owner unpublished/deleted the list or its listener failed
    is_active = db.Column(db.Boolean, default=True, nullable=False)
