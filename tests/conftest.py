"""
Pytest fixtures and configuration for WatchVault tests
"""
import pytest
from unittest.mock import MagicMock

from watchvault import settings as app_settings
from watchvault.app import create_app
from watchvault.catalog import CatalogItem, CatalogKind
from watchvault.content_provider import ContentPage, ContentProvider
from watchvault.db import db
from watchvault.document_store import InMemoryDocumentStore
from watchvault.services.ledger_store import LedgerStore
from watchvault.services.list_membership import ListMembershipStore


class FakeProvider(ContentProvider):
    """Serves canned pages and records every fetch.

    `pages` maps page number -> ContentPage (missing pages are empty and last);
    `factory(filters, page, call_index)` overrides it when given.
    """

    def __init__(self, pages=None, factory=None, error=None):
        self.pages = pages or {}
        self.factory = factory
        self.error = error
        self.calls = []

    def fetch_page(self, filters, page):
        self.calls.append((filters, page))
        if self.error is not None:
            raise self.error
        if self.factory is not None:
            return self.factory(filters, page, len(self.calls))
        return self.pages.get(page, ContentPage(items=[], is_last_page=True))


def make_item(catalog_id, kind=CatalogKind.MOVIE, title=None, release_date="2020-05-01", genre_ids=None,
              poster_path=None, rating=7.5):
    return CatalogItem(
        catalog_kind=kind,
        catalog_id=catalog_id,
        title=title or f"Title {catalog_id}",
        overview="",
        poster_path=poster_path if poster_path is not None else f"/poster{catalog_id}.jpg",
        release_date=release_date,
        rating=rating,
        genre_ids=genre_ids if genre_ids is not None else [18],
    )


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    """Point the settings module at a throwaway settings.yaml"""
    monkeypatch.setattr(app_settings, "CONFIG_FILE", str(tmp_path / "settings.yaml"))
    monkeypatch.setattr(app_settings, "_cached_settings", None)
    return tmp_path


@pytest.fixture
def app(config_dir):
    """App bound to an in-memory database, with an app context pushed"""
    app = create_app({
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "TESTING": True,
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ledger(app):
    return LedgerStore()


@pytest.fixture
def membership(app):
    return ListMembershipStore()


@pytest.fixture
def document_store():
    return InMemoryDocumentStore()


@pytest.fixture
def item_factory():
    return make_item


@pytest.fixture
def provider_factory():
    return FakeProvider


@pytest.fixture
def fight_club():
    """movie_550"""
    return make_item(550, title="Fight Club", release_date="1999-10-15", genre_ids=[18, 53])


@pytest.fixture
def breaking_bad():
    """tvShow_1396"""
    return make_item(1396, kind=CatalogKind.TV_SHOW, title="Breaking Bad", release_date="2008-01-20",
                     genre_ids=[18, 80])


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing"""
    logger = MagicMock()
    logger.info = MagicMock()
    logger.error = MagicMock()
    logger.warning = MagicMock()
    logger.debug = MagicMock()
    return logger
