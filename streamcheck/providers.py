import asyncio
import logging

from .models import WatchlistEntry, WatchProvider, WatchProviders

logger = logging.getLogger(__name__)

ENRICH_CONCURRENCY = 6


async def fetch_region_providers(
    catalog,
    movie_ids: list[int],
    region: str,
    concurrency: int = ENRICH_CONCURRENCY,
) -> dict[int, WatchProviders | None]:
    """Watch providers per movie; a failed lookup counts as no data."""
    semaphore = asyncio.Semaphore(max(1, concurrency))
    providers: dict[int, WatchProviders | None] = {}

    async def _worker(movie_id: int) -> None:
        async with semaphore:
            try:
                providers[movie_id] = await catalog.get_watch_providers(movie_id, region)
            except Exception as exc:
                logger.warning("Watch providers unavailable for %s in %s: %s", movie_id, region, exc)
                providers[movie_id] = None

    await asyncio.gather(*(_worker(mid) for mid in dict.fromkeys(movie_ids)))
    return providers


def available_providers(providers: dict[int, WatchProviders | None]) -> list[dict]:
    """Flatrate providers across the watchlist, with how many movies each one carries."""
    counts: dict[int, tuple[WatchProvider, int]] = {}
    for prov in providers.values():
        if not prov:
            continue
        for p in prov.flatrate:
            provider, count = counts.get(p.provider_id, (p, 0))
            counts[p.provider_id] = (provider, count + 1)
    ranked = sorted(counts.values(), key=lambda item: (-item[1], item[0].provider_name.lower()))
    return [{**provider.model_dump(), "count": count} for provider, count in ranked]


def filter_entries(
    entries: list[WatchlistEntry],
    providers: dict[int, WatchProviders | None],
    selected_ids: set[int] | None = None,
    hide_without_flatrate: bool = False,
) -> list[WatchlistEntry]:
    kept = []
    for entry in entries:
        prov = providers.get(entry.id)
        if hide_without_flatrate and not (prov and prov.has_flatrate):
            continue
        if selected_ids:
            flatrate_ids = {p.provider_id for p in prov.flatrate} if prov else set()
            if not flatrate_ids & selected_ids:
                continue
        kept.append(entry)
    return kept
