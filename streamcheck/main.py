import logging
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
load_dotenv()

import httpx
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from . import config, tmdb
from .cache import TTLCache
from .catalog import CatalogClient
from .dependencies import limiter
from .importer import ImportSession
from .routes_import import router as import_router
from .routes_watchlist import router as watchlist_router
from .watchlist import WatchlistStore

logger = logging.getLogger(__name__)

SORT_FIELDS = ("rating", "popularity", "year")
NETFLIX_SORT_OPTIONS = (
    "popularity.desc",
    "popularity.asc",
    "release_date.desc",
    "release_date.asc",
    "vote_average.desc",
)


def build_caches(clock=time.time) -> dict[str, TTLCache]:
    return {
        "search": TTLCache(config.SEARCH_CACHE_TTL, clock),
        "popular": TTLCache(config.SEARCH_CACHE_TTL, clock),
        "details": TTLCache(config.DETAILS_CACHE_TTL, clock),
        "release_dates": TTLCache(config.RELEASE_DATES_CACHE_TTL, clock),
        "watch_providers": TTLCache(config.WATCH_PROVIDER_TTL, clock),
        "similar": TTLCache(config.DETAILS_CACHE_TTL, clock),
        "genres": TTLCache(config.GENRE_CACHE_TTL, clock),
        "provider_ids": TTLCache(config.PROVIDER_ID_TTL, clock),
        "discover": TTLCache(config.DISCOVER_CACHE_TTL, clock),
    }


def _build_catalog(app: FastAPI) -> CatalogClient:
    if config.CATALOG_BASE_URL:
        http = httpx.AsyncClient(base_url=config.CATALOG_BASE_URL, timeout=config.TMDB_TIMEOUT)
    else:
        http = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://streamcheck/api/movies",
            timeout=config.TMDB_TIMEOUT,
        )
    return CatalogClient(http)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.caches = build_caches()
    app.state.watchlist = WatchlistStore(config.WATCHLIST_PATH)
    app.state.import_session = ImportSession()
    app.state.catalog = _build_catalog(app)
    yield
    await app.state.catalog.aclose()
    await tmdb.close_client()


app = FastAPI(lifespan=lifespan)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(status_code=429, content={"detail": "Too many requests. Please try again later."})


@app.exception_handler(httpx.HTTPStatusError)
async def upstream_status_handler(request: Request, exc: httpx.HTTPStatusError):
    status = exc.response.status_code
    logger.warning("Upstream request failed with %s: %s", status, exc.request.url.path)
    return JSONResponse(status_code=502, content={"detail": f"TMDB request failed with {status}"})


@app.exception_handler(httpx.HTTPError)
async def upstream_transport_handler(request: Request, exc: httpx.HTTPError):
    logger.warning("Upstream request failed: %s", exc)
    return JSONResponse(status_code=502, content={"detail": "TMDB is unreachable"})


@app.exception_handler(tmdb.TmdbError)
async def upstream_config_handler(request: Request, exc: tmdb.TmdbError):
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


ALLOWED_ORIGINS = config.cors_origins()
if ALLOWED_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type"],
    )

app.include_router(watchlist_router)
app.include_router(import_router)


def _cache(request: Request, name: str) -> TTLCache:
    return request.app.state.caches[name]


def _sort_value(movie: dict, field: str) -> tuple[bool, float]:
    if field == "year":
        raw = str(movie.get("release_date") or "")
        value = int(raw[:4]) if raw[:4].isdigit() else None
    elif field == "rating":
        value = movie.get("vote_average")
    else:
        value = movie.get("popularity")
    if not isinstance(value, (int, float)):
        return (True, 0.0)
    return (False, -float(value))


def sort_results(results: list, sort: str) -> list:
    """Stable sort, descending on ``sort`` then on the remaining fields; missing values last."""
    order = [sort] + [f for f in SORT_FIELDS if f != sort]
    return sorted(results, key=lambda m: tuple(_sort_value(m, f) for f in order))


def _normalize_name(name: str) -> str:
    return "".join(ch for ch in name.lower() if ch.isalnum())


async def _resolve_provider_id(request: Request, name: str, region: str) -> int | None:
    async def _fetch():
        providers = await tmdb.get_provider_list(region)
        wanted = _normalize_name(name)
        for p in providers:
            if _normalize_name(str(p.get("provider_name") or "")) == wanted and p.get("provider_id"):
                return {"provider_id": int(p["provider_id"])}
        return {"provider_id": None}

    found = await _cache(request, "provider_ids").get_or_fetch((name, region), _fetch)
    return found["provider_id"]


@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.get("/api/movies/popular")
async def popular_movies(request: Request, page: int = Query(1, ge=1, le=500), language: str | None = None):
    language = language or config.DEFAULT_LANGUAGE
    return await _cache(request, "popular").get_or_fetch(
        (page, language), lambda: tmdb.get_popular(page=page, language=language)
    )


@app.get("/api/movies/search")
async def search_movies(
    request: Request,
    q: str = Query(..., min_length=1),
    year: int | None = Query(None, ge=1800, le=2200),
    page: int = Query(1, ge=1, le=500),
    language: str | None = None,
    region: str | None = None,
    sort: str | None = None,
):
    language = language or config.DEFAULT_LANGUAGE
    region = region or config.DEFAULT_REGION
    data = await _cache(request, "search").get_or_fetch(
        (q, year, page, language, region),
        lambda: tmdb.search_movie(q, page=page, year=year, language=language, region=region),
    )
    if sort in SORT_FIELDS:
        data = {**data, "results": sort_results(data.get("results", []), sort)}
    return data


@app.get("/api/movies/genres")
async def movie_genres(request: Request, language: str | None = None):
    language = language or config.DEFAULT_LANGUAGE
    genres = await _cache(request, "genres").get_or_fetch(
        language, lambda: tmdb.get_genres(language=language)
    )
    return {"genres": genres}


@app.get("/api/movies/netflix")
async def netflix_movies(
    request: Request,
    region: str | None = None,
    page: int = Query(1, ge=1, le=500),
    genres: str | None = None,
    sort: str | None = None,
):
    region = region or config.DEFAULT_REGION
    sort_by = sort if sort in NETFLIX_SORT_OPTIONS else "popularity.desc"
    genre_ids = ",".join(g.strip() for g in (genres or "").split(",") if g.strip().isdigit())
    provider_id = await _resolve_provider_id(request, "Netflix", region)
    if provider_id is None:
        return {"page": page, "results": [], "total_pages": 0, "total_results": 0}

    params = {
        "with_watch_providers": provider_id,
        "watch_region": region,
        "with_watch_monetization_types": "flatrate",
        "sort_by": sort_by,
    }
    if genre_ids:
        params["with_genres"] = genre_ids
    return await _cache(request, "discover").get_or_fetch(
        (provider_id, region, page, genre_ids, sort_by),
        lambda: tmdb.discover(params, page=page),
    )


@app.get("/api/movies/{movie_id}")
async def movie_details(request: Request, movie_id: int, language: str | None = None):
    language = language or config.DEFAULT_LANGUAGE
    return await _cache(request, "details").get_or_fetch(
        (movie_id, language), lambda: tmdb.get_movie_details(movie_id, language=language)
    )


@app.get("/api/movies/{movie_id}/release-dates")
async def movie_release_dates(request: Request, movie_id: int):
    return await _cache(request, "release_dates").get_or_fetch(
        movie_id, lambda: tmdb.get_release_dates(movie_id)
    )


@app.get("/api/movies/{movie_id}/watch-providers")
async def movie_watch_providers(request: Request, movie_id: int, watch_region: str | None = None):
    results = await _cache(request, "watch_providers").get_or_fetch(
        movie_id, lambda: tmdb.get_watch_providers(movie_id)
    )
    if watch_region:
        regional = results.get(watch_region)
        results = {watch_region: regional} if regional else {}
    return {"id": movie_id, "results": results}


@app.get("/api/movies/{movie_id}/similar")
async def similar_movies(
    request: Request,
    movie_id: int,
    page: int = Query(1, ge=1, le=500),
    language: str | None = None,
):
    language = language or config.DEFAULT_LANGUAGE
    return await _cache(request, "similar").get_or_fetch(
        (movie_id, page, language), lambda: tmdb.get_similar(movie_id, page=page, language=language)
    )
