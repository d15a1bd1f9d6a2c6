"""
Tests for smart collections over the seen library
"""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from watchvault.services.smart_collections import CollectionKind, SmartCollectionService, build_collections

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def record(key, kind="movie", rating=None, genres=(18,), platform=None, days_ago=100, poster=None):
    return SimpleNamespace(
        unique_key=key,
        catalog_kind=kind,
        personal_rating=rating,
        genre_ids=list(genres),
        source_platform=platform,
        date_changed=NOW - timedelta(days=days_ago),
        poster_path=poster or f"/{key}.jpg",
    )


def by_id(collections):
    return {collection.id: collection for collection in collections}


class TestBuildCollections:
    def test_favorites_need_four_stars(self):
        records = [record("movie_1", rating=5), record("movie_2", rating=4), record("movie_3", rating=3),
                   record("movie_4")]
        favorites = by_id(build_collections(records, now=NOW))["favorites"]
        assert favorites.count == 2
        assert favorites.cover_poster_path == "/movie_1.jpg"

    def test_kind_split_only_with_both_kinds(self):
        movies_only = [record("movie_1"), record("movie_2")]
        assert "movies" not in by_id(build_collections(movies_only, now=NOW))

        mixed = movies_only + [record("tvShow_3", kind="tvShow")]
        collections = by_id(build_collections(mixed, now=NOW))
        assert collections["movies"].count == 2
        assert collections["tvshows"].count == 1

    def test_genres_need_two_titles_and_rank_by_count(self):
        records = [
            record("movie_1", genres=(35, 18)),
            record("movie_2", genres=(35,)),
            record("movie_3", genres=(35, 27)),
            record("movie_4", genres=(18, 99999)),
            record("movie_5", genres=(99999,)),
        ]
        genres = [c for c in build_collections(records, now=NOW) if c.kind is CollectionKind.GENRE]

        # 27 appears once; 99999 has no name
        assert [(c.title, c.count) for c in genres] == [("Comedy", 3), ("Drama", 2)]
        assert genres[0].value == 35

    def test_genre_collections_are_capped(self):
        genre_ids = [28, 12, 16, 35, 80, 99, 18, 10751, 14, 36, 27, 10402]
        records = [record(f"movie_{i}", genres=genre_ids) for i in range(2)]
        genres = [c for c in build_collections(records, now=NOW) if c.kind is CollectionKind.GENRE]
        assert len(genres) == 10

    def test_platforms(self):
        records = [record("movie_1", platform="Netflix"), record("movie_2", platform="Netflix"),
                   record("movie_3", platform="Hulu"), record("movie_4")]
        platforms = [c for c in build_collections(records, now=NOW) if c.kind is CollectionKind.PLATFORM]
        assert [(c.title, c.count) for c in platforms] == [("Netflix", 2), ("Hulu", 1)]

    def test_recent_is_last_thirty_days(self):
        records = [record("movie_1", days_ago=1), record("movie_2", days_ago=29), record("movie_3", days_ago=31)]
        assert by_id(build_collections(records, now=NOW))["recent"].count == 2

    def test_empty_library(self):
        assert build_collections([], now=NOW) == []


class TestSmartCollectionService:
    def test_only_seen_records_count(self, ledger, item_factory):
        seen = ledger.mark_seen(item_factory(1))
        ledger.set_personal_rating(5, seen)
        watch = ledger.save_to_watchlist(item_factory(2))
        ledger.set_personal_rating(5, watch)

        service = SmartCollectionService(ledger)
        favorites = by_id(service.collections())["favorites"]

        assert favorites.count == 1
        assert [r.unique_key for r in service.records_for(favorites)] == ["movie_1"]

    def test_records_for_platform(self, ledger, item_factory):
        ledger.mark_seen(item_factory(1), source_platform="Netflix")
        ledger.mark_seen(item_factory(2))

        service = SmartCollectionService(ledger)
        netflix = by_id(service.collections())["platform_Netflix"]

        assert [r.unique_key for r in service.records_for(netflix)] == ["movie_1"]
