from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from .catalog import CatalogClient
from .importer import ImportSession
from .matching import MatchEngine
from .watchlist import WatchlistStore

limiter = Limiter(key_func=get_remote_address)


def get_watchlist(request: Request) -> WatchlistStore:
    return request.app.state.watchlist


def get_catalog(request: Request) -> CatalogClient:
    return request.app.state.catalog


def get_import_session(request: Request) -> ImportSession:
    return request.app.state.import_session


def get_match_engine(request: Request) -> MatchEngine:
    return MatchEngine(request.app.state.catalog)
