import os
from pathlib import Path

TMDB_BASE_URL = os.environ.get("TMDB_BASE_URL", "https://api.themoviedb.org/3")
TMDB_TIMEOUT = float(os.environ.get("TMDB_TIMEOUT", "10"))
DEFAULT_REGION = os.environ.get("DEFAULT_REGION", "NO")
DEFAULT_LANGUAGE = os.environ.get("DEFAULT_LANGUAGE", "en-US")

WATCHLIST_PATH = Path(os.environ.get("WATCHLIST_PATH", "watchlist.json"))

# Empty means the import pipeline talks to this app's own /api/movies routes.
CATALOG_BASE_URL = os.environ.get("CATALOG_BASE_URL", "").strip()

IMPORT_RATE_LIMIT = os.environ.get("IMPORT_RATE_LIMIT", "10/minute")

SEARCH_CACHE_TTL = 5 * 60
DETAILS_CACHE_TTL = 60 * 60
RELEASE_DATES_CACHE_TTL = 24 * 60 * 60
WATCH_PROVIDER_TTL = 6 * 60 * 60
GENRE_CACHE_TTL = 24 * 60 * 60
PROVIDER_ID_TTL = 24 * 60 * 60
DISCOVER_CACHE_TTL = 10 * 60


def get_api_key() -> str:
    return os.environ.get("TMDB_API_KEY", "").strip()


def cors_origins() -> list[str]:
    origins = os.environ.get("CORS_ORIGINS", "").split(",")
    return [o.strip() for o in origins if o.strip()]
