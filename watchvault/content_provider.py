"""
Content provider - paged catalog candidates for the discovery loop.

Pages carry no overlap guarantee: the same title can appear on several pages
(or under several discovery methods), so callers must deduplicate.
"""
import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

import requests

from watchvault.catalog import CatalogItem, CatalogKind, DiscoveryFilters, DiscoveryMethod, StreamingSort
from watchvault.constants import TMDB_BASE_URL
from watchvault.exceptions import ProviderFetchException

logger = logging.getLogger('main')

# Movie genres that live under a combined TV genre
_TV_GENRE_MAP = {
    28: 10759,   # Action -> Action & Adventure
    12: 10759,   # Adventure -> Action & Adventure
    878: 10765,  # Sci-Fi -> Sci-Fi & Fantasy
    14: 10765,   # Fantasy -> Sci-Fi & Fantasy
}

_MAX_RETRY_AFTER = 10.0


@dataclass
class ContentPage:
    items: List[CatalogItem] = field(default_factory=list)
    is_last_page: bool = False


class ContentProvider(ABC):
    @abstractmethod
    def fetch_page(self, filters: DiscoveryFilters, page: int) -> ContentPage:
        """Fetch one page of candidates for the active filters (pages start at 1)"""
        pass


class TMDBContentProvider(ContentProvider):
    """Client for the TMDB v3 API"""

    def __init__(self, api_token: str, language: str = "en-US", region: str = "US",
                 timeout: int = 15, shuffle: bool = True):
        if not api_token:
            raise ProviderFetchException("TMDB API token not configured")
        self.language = language
        self.region = region
        self.timeout = timeout
        self.shuffle = shuffle
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {api_token}",
            "Accept": "application/json",
            "User-Agent": "WatchVault",
        })

    @classmethod
    def from_settings(cls, settings):
        tmdb = settings.get("tmdb", {})
        return cls(
            api_token=tmdb.get("api_token"),
            language=tmdb.get("language", "en-US"),
            region=tmdb.get("region", "US"),
            timeout=tmdb.get("timeout", 15),
        )

    def fetch_page(self, filters, page):
        requests_to_make = self._plan(filters)
        items = []
        last_pages = []
        for kind, endpoint, params in requests_to_make:
            fetched, is_last = self._fetch(kind, endpoint, page, params)
            items.extend(fetched)
            last_pages.append(is_last)

        # Streaming sorted by rating or date keeps provider order
        keep_order = filters.method.is_streaming_service and filters.sort is not StreamingSort.POPULAR
        if self.shuffle and not keep_order and filters.method is not DiscoveryMethod.TRENDING:
            random.shuffle(items)

        return ContentPage(items=items, is_last_page=bool(last_pages) and all(last_pages))

    def _plan(self, filters):
        """List of (kind, endpoint, params) requests that make up one page.

        A kind of None means a mixed endpoint whose results carry ``media_type``.
        """
        content_type = filters.content_type
        method = filters.method
        plan = []

        if filters.genre_id is not None:
            movie_params, tv_params = self._genre_params(filters)
            if content_type.includes_movies:
                plan.append((CatalogKind.MOVIE, "/discover/movie", movie_params))
            if content_type.includes_tv:
                plan.append((CatalogKind.TV_SHOW, "/discover/tv", tv_params))
            return plan

        if method.is_streaming_service:
            base = {
                "with_watch_providers": str(method.watch_provider_id),
                "watch_region": self.region,
            }
            if filters.sort is StreamingSort.TOP_RATED:
                base["vote_count.gte"] = "50"
            if content_type.includes_movies:
                plan.append((CatalogKind.MOVIE, "/discover/movie",
                             dict(base, sort_by=filters.sort.movie_sort_param)))
            if content_type.includes_tv:
                plan.append((CatalogKind.TV_SHOW, "/discover/tv",
                             dict(base, sort_by=filters.sort.tv_sort_param)))
            return plan

        if method is DiscoveryMethod.TRENDING and content_type.includes_movies and content_type.includes_tv:
            return [(None, "/trending/all/day", {})]

        if method is DiscoveryMethod.UPCOMING:
            today = date.today().isoformat()
            if content_type.includes_movies:
                plan.append((CatalogKind.MOVIE, "/discover/movie", {
                    "primary_release_date.gte": today,
                    "sort_by": "primary_release_date.asc",
                    "with_release_type": "2|3",
                }))
            if content_type.includes_tv:
                plan.append((CatalogKind.TV_SHOW, "/discover/tv", {
                    "first_air_date.gte": today,
                    "sort_by": "first_air_date.asc",
                }))
            return plan

        movie_endpoint, tv_endpoint = {
            DiscoveryMethod.TOP_RATED: ("/movie/top_rated", "/tv/top_rated"),
            DiscoveryMethod.POPULAR: ("/movie/popular", "/tv/popular"),
            DiscoveryMethod.TRENDING: ("/trending/movie/day", "/trending/tv/day"),
            DiscoveryMethod.NOW_PLAYING: ("/movie/now_playing", "/tv/on_the_air"),
        }[method]
        if content_type.includes_movies:
            plan.append((CatalogKind.MOVIE, movie_endpoint, {}))
        if content_type.includes_tv:
            plan.append((CatalogKind.TV_SHOW, tv_endpoint, {}))
        return plan

    def _genre_params(self, filters):
        sort_by = {
            DiscoveryMethod.TOP_RATED: "vote_average.desc",
            DiscoveryMethod.NOW_PLAYING: "primary_release_date.desc",
            DiscoveryMethod.UPCOMING: "primary_release_date.asc",
        }.get(filters.method, "popularity.desc")

        movie_params = {"with_genres": str(filters.genre_id), "sort_by": sort_by, "vote_count.gte": "50"}
        tv_params = {
            "with_genres": str(_TV_GENRE_MAP.get(filters.genre_id, filters.genre_id)),
            "sort_by": sort_by,
            "vote_count.gte": "50",
        }
        if filters.method.is_streaming_service:
            for params in (movie_params, tv_params):
                params["with_watch_providers"] = str(filters.method.watch_provider_id)
                params["watch_region"] = self.region
        if filters.method is DiscoveryMethod.UPCOMING:
            today = date.today().isoformat()
            movie_params["primary_release_date.gte"] = today
            tv_params["first_air_date.gte"] = today
        return movie_params, tv_params

    def _fetch(self, kind, endpoint, page, params):
        params = dict(params, page=str(page), language=self.language)
        data = self._request(endpoint, params)
        results = data.get("results", [])
        total_pages = data.get("total_pages") or 0

        items = []
        for result in results:
            item = self._parse(result, kind)
            if item is not None:
                items.append(item)
        return items, page >= total_pages

    def _request(self, endpoint: str, params: Dict[str, str]) -> Dict[str, Any]:
        url = f"{TMDB_BASE_URL}{endpoint}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            if response.status_code == 429:
                # Rate limited: wait once for Retry-After, then give up
                retry_after = _retry_after_seconds(response.headers.get("Retry-After"))
                logger.warning(f"TMDB rate limited on {endpoint}, retrying in {retry_after}s")
                time.sleep(retry_after)
                response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.ConnectionError as e:
            logger.error(f"TMDB unreachable for {endpoint}: {e}")
            raise ProviderFetchException(f"TMDB unreachable: {e}", offline=True) from e
        except requests.RequestException as e:
            logger.error(f"TMDB API error for {endpoint}: {e}")
            raise ProviderFetchException(f"TMDB API failed: {e}") from e
        except ValueError as e:
            raise ProviderFetchException(f"TMDB returned invalid JSON for {endpoint}: {e}") from e

    @staticmethod
    def _parse(result: Dict[str, Any], kind: Optional[CatalogKind]) -> Optional[CatalogItem]:
        if kind is None:
            media_type = result.get("media_type")
            if media_type == "movie":
                kind = CatalogKind.MOVIE
            elif media_type == "tv":
                kind = CatalogKind.TV_SHOW
            else:
                return None

        if result.get("id") is None:
            return None

        if kind is CatalogKind.MOVIE:
            title = result.get("title") or result.get("original_title") or ""
            release_date = result.get("release_date") or None
        else:
            title = result.get("name") or result.get("original_name") or ""
            release_date = result.get("first_air_date") or None

        return CatalogItem(
            catalog_kind=kind,
            catalog_id=int(result["id"]),
            title=title,
            overview=result.get("overview") or "",
            poster_path=result.get("poster_path"),
            release_date=release_date,
            rating=result.get("vote_average"),
            genre_ids=list(result.get("genre_ids") or []),
        )


def _retry_after_seconds(header):
    try:
        return min(float(header), _MAX_RETRY_AFTER)
    except (TypeError, ValueError):
        return 2.0
