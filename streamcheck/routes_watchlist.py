from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from . import config
from .catalog import CatalogClient, CatalogLookupError
from .dependencies import get_catalog, get_watchlist
from .models import WatchlistEntry
from .providers import available_providers, fetch_region_providers, filter_entries
from .watchlist import WatchlistStore

router = APIRouter(prefix="/api/watchlist", tags=["watchlist"])


class AddWatchlistRequest(BaseModel):
    id: int = Field(ge=1)
    title: str = Field(min_length=1, max_length=500)
    release_date: str | None = Field(default=None, max_length=40)
    poster_path: str | None = Field(default=None, max_length=500)
    vote_average: float | None = None
    overview: str | None = None


def _parse_provider_ids(raw: str | None) -> set[int]:
    return {int(pid) for pid in (raw or "").split(",") if pid.strip().isdigit()}


@router.get("")
async def list_watchlist(
    provider_ids: str | None = None,
    hide_no_providers: bool = False,
    region: str | None = None,
    watchlist: WatchlistStore = Depends(get_watchlist),
    catalog: CatalogClient = Depends(get_catalog),
):
    entries = watchlist.entries()
    selected = _parse_provider_ids(provider_ids)
    if selected or hide_no_providers:
        providers = await fetch_region_providers(
            catalog, [e.id for e in entries], region or config.DEFAULT_REGION
        )
        entries = filter_entries(entries, providers, selected, hide_no_providers)
    return {"results": [e.model_dump(mode="json") for e in entries]}


@router.post("")
async def add_watchlist_item(body: AddWatchlistRequest, watchlist: WatchlistStore = Depends(get_watchlist)):
    title = body.title.strip()
    if not title:
        raise HTTPException(status_code=400, detail="Title is required")
    entry = WatchlistEntry(**body.model_dump(exclude={"title"}), title=title)
    added = watchlist.add(entry)
    item = watchlist.get(body.id)
    return {"ok": True, "item": item.model_dump(mode="json"), "already_exists": not added}


@router.get("/providers")
async def watchlist_providers(
    region: str | None = None,
    watchlist: WatchlistStore = Depends(get_watchlist),
    catalog: CatalogClient = Depends(get_catalog),
):
    region = region or config.DEFAULT_REGION
    providers = await fetch_region_providers(catalog, [e.id for e in watchlist.entries()], region)
    return {
        "region": region,
        "providers": {str(mid): (p.model_dump() if p else None) for mid, p in providers.items()},
        "available": available_providers(providers),
    }


@router.get("/{movie_id:int}/details")
async def watchlist_item_details(
    movie_id: int,
    region: str | None = None,
    catalog: CatalogClient = Depends(get_catalog),
):
    try:
        movie = await catalog.get_details(movie_id)
    except CatalogLookupError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    region = region or config.DEFAULT_REGION
    providers = await fetch_region_providers(catalog, [movie_id], region)
    watch = providers.get(movie_id)
    return {
        "movie": movie.model_dump(),
        "watch_providers": watch.model_dump() if watch else None,
    }


@router.delete("/{movie_id:int}")
async def remove_watchlist_item(movie_id: int, watchlist: WatchlistStore = Depends(get_watchlist)):
    if movie_id <= 0:
        raise HTTPException(status_code=400, detail="Invalid movie id")
    return {"ok": True, "removed": watchlist.remove(movie_id)}
