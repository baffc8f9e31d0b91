import httpx

from . import config

_client: httpx.AsyncClient | None = None


class TmdbError(RuntimeError):
    pass


def _get_api_key() -> str:
    key = config.get_api_key()
    if not key:
        raise TmdbError("TMDB_API_KEY environment variable not set.")
    return key


async def _get_client() -> httpx.AsyncClient:
    global _client
    if _client is None:
        _client = httpx.AsyncClient(timeout=config.TMDB_TIMEOUT)
    return _client


async def close_client() -> None:
    global _client
    if _client:
        await _client.aclose()
        _client = None


async def _get(path: str, params: dict | None = None) -> dict:
    params = {k: v for k, v in (params or {}).items() if v is not None}
    params["api_key"] = _get_api_key()
    client = await _get_client()
    resp = await client.get(f"{config.TMDB_BASE_URL}{path}", params=params)
    resp.raise_for_status()
    return resp.json()


async def search_movie(
    query: str,
    page: int = 1,
    year: int | None = None,
    language: str | None = None,
    region: str | None = None,
) -> dict:
    return await _get(
        "/search/movie",
        {
            "query": query,
            "page": page,
            "year": year,
            "include_adult": "false",
            "language": language,
            "region": region,
        },
    )


async def get_movie_details(movie_id: int, language: str | None = None) -> dict:
    return await _get(f"/movie/{movie_id}", {"language": language})


async def get_release_dates(movie_id: int) -> dict:
    return await _get(f"/movie/{movie_id}/release_dates")


async def get_watch_providers(movie_id: int) -> dict:
    data = await _get(f"/movie/{movie_id}/watch/providers")
    return data.get("results", {})


async def get_similar(movie_id: int, page: int = 1, language: str | None = None) -> dict:
    return await _get(f"/movie/{movie_id}/similar", {"page": page, "language": language})


async def get_genres(language: str | None = None) -> list:
    data = await _get("/genre/movie/list", {"language": language})
    return data.get("genres", [])


async def get_popular(page: int = 1, language: str | None = None) -> dict:
    return await _get("/movie/popular", {"page": page, "language": language})


async def discover(params: dict, page: int = 1) -> dict:
    base = {
        "sort_by": "popularity.desc",
        "include_adult": "false",
        "include_video": "false",
        "page": page,
    }
    base.update(params or {})
    return await _get("/discover/movie", base)


async def get_provider_list(country: str | None = None) -> list:
    params = {}
    if country:
        params["watch_region"] = country
    data = await _get("/watch/providers/movie", params)
    return data.get("results", [])
