"""
Smart collections - derived groupings of the seen library, rebuilt on every read.
"""
import enum
from collections import OrderedDict
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from watchvault.catalog import CatalogKind, genre_name
from watchvault.models.ledger_record import Direction
from watchvault.utils import ensure_utc, now_utc

FAVORITE_MIN_RATING = 4
MIN_GENRE_COUNT = 2
MAX_GENRE_COLLECTIONS = 10
RECENT_DAYS = 30


class CollectionKind(enum.Enum):
    FAVORITES = "favorites"
    MOVIES = "movies"
    TV_SHOWS = "tvShows"
    GENRE = "genre"
    PLATFORM = "platform"
    RECENT = "recent"


@dataclass(frozen=True)
class SmartCollection:
    id: str
    title: str
    kind: CollectionKind
    count: int
    value: Optional[object] = None  # genre ID or platform name
    cover_poster_path: Optional[str] = None


def _matches(record, kind, value=None, now=None):
    if kind is CollectionKind.FAVORITES:
        return (record.personal_rating or 0) >= FAVORITE_MIN_RATING
    if kind is CollectionKind.MOVIES:
        return record.catalog_kind == CatalogKind.MOVIE.value
    if kind is CollectionKind.TV_SHOWS:
        return record.catalog_kind == CatalogKind.TV_SHOW.value
    if kind is CollectionKind.GENRE:
        return value in (record.genre_ids or [])
    if kind is CollectionKind.PLATFORM:
        return record.source_platform == value
    if kind is CollectionKind.RECENT:
        cutoff = (now or now_utc()) - timedelta(days=RECENT_DAYS)
        changed = ensure_utc(record.date_changed)
        return changed is not None and changed >= cutoff
    return True


def build_collections(seen_records, now=None) -> List[SmartCollection]:
    """Collections over seen records, which must be ordered most recent first"""
    result = []

    favorites = [r for r in seen_records if _matches(r, CollectionKind.FAVORITES)]
    if favorites:
        result.append(SmartCollection("favorites", "My Favorites", CollectionKind.FAVORITES,
                                      len(favorites), cover_poster_path=favorites[0].poster_path))

    # Only worth splitting when the library has both kinds
    movies = [r for r in seen_records if _matches(r, CollectionKind.MOVIES)]
    tv_shows = [r for r in seen_records if _matches(r, CollectionKind.TV_SHOWS)]
    if movies and tv_shows:
        result.append(SmartCollection("movies", "Movies", CollectionKind.MOVIES,
                                      len(movies), cover_poster_path=movies[0].poster_path))
        result.append(SmartCollection("tvshows", "TV Shows", CollectionKind.TV_SHOWS,
                                      len(tv_shows), cover_poster_path=tv_shows[0].poster_path))

    result.extend(_grouped(seen_records, lambda r: r.genre_ids or [], CollectionKind.GENRE))
    result.extend(_grouped(seen_records, lambda r: [r.source_platform] if r.source_platform else [],
                           CollectionKind.PLATFORM))

    recent = [r for r in seen_records if _matches(r, CollectionKind.RECENT, now=now)]
    if recent:
        result.append(SmartCollection("recent", "Recently Added", CollectionKind.RECENT,
                                      len(recent), cover_poster_path=recent[0].poster_path))
    return result


def _grouped(records, values_of, kind):
    counts = OrderedDict()
    for record in records:
        for value in values_of(record):
            if value not in counts:
                counts[value] = [0, record.poster_path]
            counts[value][0] += 1

    ranked = sorted(counts.items(), key=lambda pair: pair[1][0], reverse=True)
    if kind is CollectionKind.GENRE:
        collections = []
        for genre_id, (count, cover) in ranked:
            name = genre_name(genre_id)
            if count < MIN_GENRE_COUNT or name is None:
                continue
            collections.append(SmartCollection(f"genre_{genre_id}", name, kind, count, genre_id, cover))
        return collections[:MAX_GENRE_COLLECTIONS]

    return [
        SmartCollection(f"platform_{platform}", platform, kind, count, platform, cover)
        for platform, (count, cover) in ranked
    ]


class SmartCollectionService:
    def __init__(self, ledger):
        self.ledger = ledger

    def collections(self, now=None) -> List[SmartCollection]:
        return build_collections(self.ledger.records(Direction.SEEN), now=now)

    def records_for(self, collection: SmartCollection, now=None):
        """Seen records belonging to a collection, most recent first"""
        return [
            record for record in self.ledger.records(Direction.SEEN)
            if _matches(record, collection.kind, collection.value, now=now)
        ]
