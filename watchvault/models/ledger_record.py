"""
Model: LedgerRecord
One row per catalog item the user has ever marked (seen, watchlist or skipped).
"""
import enum

from watchvault.constants import TMDB_IMAGE_BASE_URL
from watchvault.db import db, now_utc


class Direction(enum.Enum):
    """Swipe direction, totally ordered by commitment level"""

    SKIPPED = "skipped"
    WATCHLIST = "watchlist"
    SEEN = "seen"

    @property
    def rank(self) -> int:
        return _DIRECTION_RANKS[self]

    def outranks(self, other: "Direction") -> bool:
        return self.rank > other.rank


_DIRECTION_RANKS = {
    Direction.SKIPPED: 0,
    Direction.WATCHLIST: 1,
    Direction.SEEN: 2,
}


class LedgerRecord(db.Model):
    __tablename__ = "ledger_record"

    id = db.Column(db.Integer, primary_key=True)
    unique_key = db.Column(db.String, unique=True, nullable=False, index=True)
    catalog_kind = db.Column(db.String(16), nullable=False)
    catalog_id = db.Column(db.Integer, nullable=False)

    direction = db.Column(
        db.Enum(Direction, native_enum=False, length=16, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    date_changed = db.Column(db.DateTime(timezone=True), default=now_utc, nullable=False)

    # Denormalized display fields
    title = db.Column(db.String, nullable=False)
    overview = db.Column(db.Text, default="")
    poster_path = db.Column(db.String)
    release_date = db.Column(db.String)
    community_rating = db.Column(db.Float)

    personal_rating = db.Column(db.Integer)  # 1-5
    genre_ids = db.Column(db.JSON, default=list)
    source_platform = db.Column(db.String)  # streaming filter active when swiped

    @classmethod
    def from_item(cls, item, direction, source_platform=None):
        return cls(
            unique_key=item.unique_key,
            catalog_kind=item.catalog_kind.value,
            catalog_id=item.catalog_id,
            direction=direction,
            date_changed=now_utc(),
            title=item.title,
            overview=item.overview or "",
            poster_path=item.poster_path,
            release_date=item.release_date,
            community_rating=item.rating,
            genre_ids=sorted(set(item.genre_ids or [])),
            source_platform=source_platform,
        )

    @property
    def thumbnail_url(self):
        if not self.poster_path:
            return None
        return f"{TMDB_IMAGE_BASE_URL}/w185{self.poster_path}"

    def __repr__(self):
        return f"<LedgerRecord {self.unique_key} {self.direction.value if self.direction else None}>"
