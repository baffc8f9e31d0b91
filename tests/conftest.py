import pytest
from fastapi.testclient import TestClient

from streamcheck import config
from streamcheck.models import CatalogCandidate, WatchProviders


class FakeCatalog:
    """In-memory stand-in for CatalogClient.

    ``search`` maps ``(title, year)`` to a list of records or an exception;
    ``release_dates`` maps a movie id to ``{territory: [dates]}`` or an exception.
    """

    def __init__(self, search=None, release_dates=None, providers=None):
        self.search = search or {}
        self.release_dates = release_dates or {}
        self.providers = providers or {}
        self.search_calls: list[tuple] = []
        self.release_calls: list[int] = []

    async def search_by_title(self, title, year=None):
        self.search_calls.append((title, year))
        value = self.search.get((title, year), [])
        if isinstance(value, Exception):
            raise value
        return [CatalogCandidate(**v) if isinstance(v, dict) else v for v in value]

    async def get_release_dates_by_territory(self, movie_id):
        self.release_calls.append(movie_id)
        value = self.release_dates.get(movie_id, {})
        if isinstance(value, Exception):
            raise value
        return value

    async def get_watch_providers(self, movie_id, region):
        value = self.providers.get(movie_id)
        if isinstance(value, Exception):
            raise value
        return WatchProviders.model_validate(value) if value is not None else None


@pytest.fixture
def fake_catalog():
    return FakeCatalog()


@pytest.fixture
def client(monkeypatch, tmp_path):
    from streamcheck.main import app

    monkeypatch.setattr(config, "WATCHLIST_PATH", tmp_path / "watchlist.json")
    monkeypatch.setattr(config, "CATALOG_BASE_URL", "")
    with TestClient(app) as test_client:
        yield test_client
