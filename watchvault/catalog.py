"""
Catalog types shared by the discovery loop, the content provider and the ledger.

A catalog item is identified by its kind and its numeric provider ID. The two
are serialized into a single ``unique_key`` (``movie_550``, ``tvShow_1399``)
so that a movie and a series sharing a numeric ID never collide.
"""
import enum
from dataclasses import dataclass, field
from typing import List, Optional

from watchvault.constants import TMDB_IMAGE_BASE_URL
from watchvault.utils import parse_release_year


class CatalogKind(enum.Enum):
    MOVIE = "movie"
    TV_SHOW = "tvShow"

    @property
    def display_name(self):
        return "Movie" if self is CatalogKind.MOVIE else "TV Show"


def make_unique_key(catalog_kind, catalog_id):
    kind = catalog_kind.value if isinstance(catalog_kind, CatalogKind) else catalog_kind
    return f"{kind}_{catalog_id}"


@dataclass(eq=False)
class CatalogItem:
    """A title as returned by the content provider"""

    catalog_kind: CatalogKind
    catalog_id: int
    title: str
    overview: str = ""
    poster_path: Optional[str] = None
    release_date: Optional[str] = None
    rating: Optional[float] = None
    genre_ids: List[int] = field(default_factory=list)

    @property
    def unique_key(self) -> str:
        return make_unique_key(self.catalog_kind, self.catalog_id)

    @property
    def release_year(self) -> Optional[int]:
        return parse_release_year(self.release_date)

    @property
    def poster_url(self) -> Optional[str]:
        if not self.poster_path:
            return None
        return f"{TMDB_IMAGE_BASE_URL}/w500{self.poster_path}"

    def __eq__(self, other):
        if not isinstance(other, CatalogItem):
            return NotImplemented
        return self.unique_key == other.unique_key

    def __hash__(self):
        return hash(self.unique_key)


class ContentTypeFilter(enum.Enum):
    ALL = "all"
    MOVIES = "movies"
    TV_SHOWS = "tvShows"

    @property
    def includes_movies(self):
        return self is not ContentTypeFilter.TV_SHOWS

    @property
    def includes_tv(self):
        return self is not ContentTypeFilter.MOVIES


class StreamingSort(enum.Enum):
    POPULAR = "popular"
    TOP_RATED = "topRated"
    NEWEST = "newest"

    @property
    def movie_sort_param(self):
        return {
            StreamingSort.POPULAR: "popularity.desc",
            StreamingSort.TOP_RATED: "vote_average.desc",
            StreamingSort.NEWEST: "primary_release_date.desc",
        }[self]

    @property
    def tv_sort_param(self):
        return {
            StreamingSort.POPULAR: "popularity.desc",
            StreamingSort.TOP_RATED: "vote_average.desc",
            StreamingSort.NEWEST: "first_air_date.desc",
        }[self]


class DiscoveryMethod(enum.Enum):
    # General discovery
    TOP_RATED = "Top Rated"
    POPULAR = "Popular"
    TRENDING = "Trending"
    NOW_PLAYING = "Now Playing"
    UPCOMING = "Upcoming"

    # Streaming services
    NETFLIX = "Netflix"
    AMAZON_PRIME = "Prime Video"
    DISNEY_PLUS = "Disney+"
    MAX = "Max"
    APPLE_TV_PLUS = "Apple TV+"
    HULU = "Hulu"
    PARAMOUNT_PLUS = "Paramount+"
    PEACOCK = "Peacock"
    TUBI = "Tubi (Free)"
    PLUTO_TV = "Pluto TV (Free)"
    CRUNCHYROLL = "Crunchyroll"

    @property
    def watch_provider_id(self) -> Optional[int]:
        """TMDB watch provider ID (US region) for streaming methods"""
        return _WATCH_PROVIDER_IDS.get(self)

    @property
    def is_streaming_service(self) -> bool:
        return self.watch_provider_id is not None

    @classmethod
    def from_name(cls, value, default=None):
        try:
            return cls(value)
        except ValueError:
            return default if default is not None else cls.POPULAR


_WATCH_PROVIDER_IDS = {
    DiscoveryMethod.NETFLIX: 8,
    DiscoveryMethod.AMAZON_PRIME: 9,
    DiscoveryMethod.DISNEY_PLUS: 337,
    DiscoveryMethod.MAX: 1899,
    DiscoveryMethod.APPLE_TV_PLUS: 350,
    DiscoveryMethod.HULU: 15,
    DiscoveryMethod.PARAMOUNT_PLUS: 2303,
    DiscoveryMethod.PEACOCK: 386,
    DiscoveryMethod.TUBI: 73,
    DiscoveryMethod.PLUTO_TV: 300,
    DiscoveryMethod.CRUNCHYROLL: 283,
}


@dataclass(frozen=True)
class DiscoveryFilters:
    """Active filters of a discovery session, passed to the content provider"""

    method: DiscoveryMethod = DiscoveryMethod.POPULAR
    content_type: ContentTypeFilter = ContentTypeFilter.ALL
    genre_id: Optional[int] = None
    sort: StreamingSort = StreamingSort.POPULAR
    year_min: Optional[int] = None
    year_max: Optional[int] = None

    @property
    def has_year_filter(self) -> bool:
        return self.year_min is not None or self.year_max is not None

    def accepts_year(self, item: CatalogItem) -> bool:
        if not self.has_year_filter:
            return True
        year = item.release_year
        if year is None:
            return False
        if self.year_min is not None and year < self.year_min:
            return False
        if self.year_max is not None and year > self.year_max:
            return False
        return True


MOVIE_GENRES = {
    28: "Action", 12: "Adventure", 16: "Animation",
    35: "Comedy", 80: "Crime", 99: "Documentary",
    18: "Drama", 10751: "Family", 14: "Fantasy",
    36: "History", 27: "Horror", 10402: "Music",
    9648: "Mystery", 10749: "Romance", 878: "Sci-Fi",
    10770: "TV Movie", 53: "Thriller", 10752: "War",
    37: "Western",
}

TV_GENRES = {
    10759: "Action & Adventure", 16: "Animation",
    35: "Comedy", 80: "Crime", 99: "Documentary",
    18: "Drama", 10751: "Family", 10762: "Kids",
    9648: "Mystery", 10763: "News", 10764: "Reality",
    10765: "Sci-Fi & Fantasy", 10766: "Soap",
    10767: "Talk", 10768: "War & Politics", 37: "Western",
}


def genre_name(genre_id):
    """Look up a genre name in the movie table, then the TV table"""
    return MOVIE_GENRES.get(genre_id) or TV_GENRES.get(genre_id)
