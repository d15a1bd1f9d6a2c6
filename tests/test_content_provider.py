"""
Tests for the TMDB content provider
"""
import pytest
import requests
from unittest.mock import MagicMock, patch

from watchvault.catalog import CatalogKind, ContentTypeFilter, DiscoveryFilters, DiscoveryMethod, StreamingSort
from watchvault.content_provider import TMDBContentProvider
from watchvault.exceptions import ProviderFetchException


def tmdb_response(results, page=1, total_pages=10, status_code=200, headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.json.return_value = {"page": page, "results": results, "total_pages": total_pages}
    return response


def movie(tmdb_id, title="A Movie", release_date="2001-01-01"):
    return {"id": tmdb_id, "title": title, "release_date": release_date, "genre_ids": [18], "vote_average": 7.1}


def show(tmdb_id, name="A Show", first_air_date="2010-02-02"):
    return {"id": tmdb_id, "name": name, "first_air_date": first_air_date, "genre_ids": [35]}


@pytest.fixture
def provider():
    return TMDBContentProvider("token", shuffle=False)


def requested(provider):
    """(endpoint, params) of every GET made"""
    return [
        (c[0][0].split("/3", 1)[1], c[1]["params"])
        for c in provider.session.get.call_args_list
    ]


class TestConfiguration:
    def test_missing_token(self):
        with pytest.raises(ProviderFetchException):
            TMDBContentProvider(None)

    def test_bearer_header(self, provider):
        assert provider.session.headers["Authorization"] == "Bearer token"

    def test_from_settings(self):
        provider = TMDBContentProvider.from_settings({"tmdb": {"api_token": "abc", "region": "GB"}})
        assert provider.region == "GB"
        assert provider.language == "en-US"


class TestEndpoints:
    """Tests for which endpoints a filter combination hits"""

    def test_popular_fetches_movies_and_tv(self, provider):
        with patch.object(provider.session, "get", side_effect=[
            tmdb_response([movie(1)]), tmdb_response([show(2)]),
        ]):
            page = provider.fetch_page(DiscoveryFilters(), 3)
            calls = requested(provider)

        assert [endpoint for endpoint, _ in calls] == ["/movie/popular", "/tv/popular"]
        assert calls[0][1]["page"] == "3"
        assert [(item.catalog_kind, item.catalog_id) for item in page.items] == [
            (CatalogKind.MOVIE, 1), (CatalogKind.TV_SHOW, 2),
        ]
        assert page.items[1].title == "A Show"
        assert page.items[1].release_year == 2010

    def test_movies_only(self, provider):
        with patch.object(provider.session, "get", return_value=tmdb_response([movie(1)])):
            provider.fetch_page(DiscoveryFilters(method=DiscoveryMethod.TOP_RATED,
                                                 content_type=ContentTypeFilter.MOVIES), 1)
            assert [endpoint for endpoint, _ in requested(provider)] == ["/movie/top_rated"]

    def test_now_playing_tv_uses_on_the_air(self, provider):
        with patch.object(provider.session, "get", return_value=tmdb_response([show(1)])):
            provider.fetch_page(DiscoveryFilters(method=DiscoveryMethod.NOW_PLAYING,
                                                 content_type=ContentTypeFilter.TV_SHOWS), 1)
            assert [endpoint for endpoint, _ in requested(provider)] == ["/tv/on_the_air"]

    def test_trending_all_uses_mixed_endpoint(self, provider):
        results = [
            dict(movie(1), media_type="movie"),
            dict(show(2), media_type="tv"),
            {"id": 3, "name": "Someone", "media_type": "person"},
        ]
        with patch.object(provider.session, "get", return_value=tmdb_response(results)):
            page = provider.fetch_page(DiscoveryFilters(method=DiscoveryMethod.TRENDING), 1)
            assert [endpoint for endpoint, _ in requested(provider)] == ["/trending/all/day"]

        assert [item.unique_key for item in page.items] == ["movie_1", "tvShow_2"]

    def test_streaming_service_discovers_with_provider(self, provider):
        filters = DiscoveryFilters(method=DiscoveryMethod.NETFLIX, sort=StreamingSort.TOP_RATED,
                                   content_type=ContentTypeFilter.MOVIES)
        with patch.object(provider.session, "get", return_value=tmdb_response([movie(1)])):
            provider.fetch_page(filters, 1)
            endpoint, params = requested(provider)[0]

        assert endpoint == "/discover/movie"
        assert params["with_watch_providers"] == "8"
        assert params["watch_region"] == "US"
        assert params["vote_count.gte"] == "50"
        assert params["sort_by"] == filters.sort.movie_sort_param

    def test_genre_maps_to_tv_genre(self, provider):
        filters = DiscoveryFilters(genre_id=878)
        with patch.object(provider.session, "get", return_value=tmdb_response([])):
            provider.fetch_page(filters, 1)
            calls = requested(provider)

        assert [endpoint for endpoint, _ in calls] == ["/discover/movie", "/discover/tv"]
        assert calls[0][1]["with_genres"] == "878"
        assert calls[1][1]["with_genres"] == "10765"

    def test_upcoming_filters_by_date(self, provider):
        with patch.object(provider.session, "get", return_value=tmdb_response([])):
            provider.fetch_page(DiscoveryFilters(method=DiscoveryMethod.UPCOMING,
                                                 content_type=ContentTypeFilter.MOVIES), 1)
            endpoint, params = requested(provider)[0]
        assert endpoint == "/discover/movie"
        assert "primary_release_date.gte" in params


class TestPaging:
    def test_last_page_requires_every_request_exhausted(self, provider):
        with patch.object(provider.session, "get", side_effect=[
            tmdb_response([movie(1)], page=4, total_pages=4),
            tmdb_response([show(2)], page=4, total_pages=9),
        ]):
            assert not provider.fetch_page(DiscoveryFilters(), 4).is_last_page

    def test_last_page(self, provider):
        with patch.object(provider.session, "get", return_value=tmdb_response([], total_pages=2)):
            assert provider.fetch_page(DiscoveryFilters(), 2).is_last_page

    def test_results_without_id_are_skipped(self, provider):
        with patch.object(provider.session, "get", return_value=tmdb_response([{"title": "No id"}, movie(5)])):
            page = provider.fetch_page(DiscoveryFilters(content_type=ContentTypeFilter.MOVIES), 1)
        assert [item.catalog_id for item in page.items] == [5]


class TestErrors:
    """Tests for failure translation"""

    def test_connection_error_is_offline(self, provider):
        with patch.object(provider.session, "get", side_effect=requests.ConnectionError("no route")):
            with pytest.raises(ProviderFetchException) as exc_info:
                provider.fetch_page(DiscoveryFilters(), 1)
        assert exc_info.value.offline

    def test_http_error_is_not_offline(self, provider):
        response = tmdb_response([], status_code=401)
        response.raise_for_status.side_effect = requests.HTTPError("401 Unauthorized")
        with patch.object(provider.session, "get", return_value=response):
            with pytest.raises(ProviderFetchException) as exc_info:
                provider.fetch_page(DiscoveryFilters(), 1)
        assert not exc_info.value.offline

    def test_rate_limit_retries_once(self, provider):
        limited = tmdb_response([], status_code=429, headers={"Retry-After": "3"})
        with patch.object(provider.session, "get", side_effect=[limited, tmdb_response([movie(1)])]), \
                patch("watchvault.content_provider.time.sleep") as sleep:
            page = provider.fetch_page(DiscoveryFilters(content_type=ContentTypeFilter.MOVIES), 1)

        sleep.assert_called_once_with(3.0)
        assert [item.catalog_id for item in page.items] == [1]

    def test_rate_limit_wait_is_capped(self, provider):
        limited = tmdb_response([], status_code=429, headers={"Retry-After": "120"})
        with patch.object(provider.session, "get", side_effect=[limited, tmdb_response([])]), \
                patch("watchvault.content_provider.time.sleep") as sleep:
            provider.fetch_page(DiscoveryFilters(content_type=ContentTypeFilter.MOVIES), 1)
        sleep.assert_called_once_with(10.0)
