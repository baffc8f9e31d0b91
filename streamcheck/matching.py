"""Resolve imported Letterboxd rows to single catalog entries.

Rows are resolved one at a time. For each row the engine searches by
title (scoped to the row's year first, then unscoped), keeps the top
candidates in the catalog's own ranking, and accepts the first one whose
normalized title equals the row's and whose earliest release year across
all territories equals the row's year. Anything else is ``not_found``;
there is no fuzzy fallback.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Protocol

from .letterboxd import ParsedRow, normalize_title
from .models import CatalogCandidate

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 8

_LEADING_YEAR_RE = re.compile(r"^(\d{4})-")


class MatchStatus(str, Enum):
    PENDING = "pending"
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class MatchResult:
    parsed: ParsedRow
    status: MatchStatus = MatchStatus.PENDING
    movie: CatalogCandidate | None = None
    error: str | None = None
    selected: bool = True
    exact_match: bool = False

    def __post_init__(self):
        if (self.movie is not None) != (self.status is MatchStatus.FOUND):
            raise ValueError("movie must be set exactly when status is found")
        if (self.error is not None) != (self.status is MatchStatus.ERROR):
            raise ValueError("error must be set exactly when status is error")

    @classmethod
    def pending(cls, row: ParsedRow) -> "MatchResult":
        return cls(parsed=row)

    @classmethod
    def found(cls, row: ParsedRow, movie: CatalogCandidate, exact_match: bool) -> "MatchResult":
        return cls(parsed=row, status=MatchStatus.FOUND, movie=movie, selected=True, exact_match=exact_match)

    @classmethod
    def not_found(cls, row: ParsedRow) -> "MatchResult":
        return cls(parsed=row, status=MatchStatus.NOT_FOUND)

    @classmethod
    def failed(cls, row: ParsedRow, message: str) -> "MatchResult":
        return cls(parsed=row, status=MatchStatus.ERROR, error=message or "Unknown error")

    def with_selected(self, selected: bool) -> "MatchResult":
        return replace(self, selected=selected)

    def to_dict(self) -> dict:
        return {
            "parsed": {"title": self.parsed.title, "year": self.parsed.year},
            "status": self.status.value,
            "movie": self.movie.model_dump() if self.movie else None,
            "error": self.error,
            "selected": self.selected,
            "exact_match": self.exact_match,
        }


class CatalogLookup(Protocol):
    async def search_by_title(self, title: str, year: str | int | None = None) -> list[CatalogCandidate]: ...

    async def get_release_dates_by_territory(self, movie_id: int) -> dict[str, list[str]]: ...


def _year_of(value: str) -> int | None:
    raw = (value or "").strip()
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).year
    except ValueError:
        match = _LEADING_YEAR_RE.match(raw)
        return int(match.group(1)) if match else None


class EarliestYearResolver:
    """Earliest release year per catalog id, fetched at most once per id.

    One instance belongs to one matching run. Failed lookups are cached as
    unknown and not retried for the rest of the run.
    """

    def __init__(self, catalog: CatalogLookup):
        self._catalog = catalog
        self._cache: dict[int, int | None] = {}

    def __contains__(self, movie_id: int) -> bool:
        return movie_id in self._cache

    async def earliest_year(self, movie_id: int) -> int | None:
        if movie_id in self._cache:
            return self._cache[movie_id]
        year: int | None = None
        try:
            territories = await self._catalog.get_release_dates_by_territory(movie_id)
        except Exception as exc:
            logger.warning("Release dates lookup failed for %s: %s", movie_id, exc)
        else:
            years = [
                y
                for dates in territories.values()
                for y in (_year_of(d) for d in dates)
                if y is not None
            ]
            year = min(years) if years else None
        self._cache[movie_id] = year
        return year


ProgressCallback = Callable[[int, MatchResult], None]


class MatchEngine:
    def __init__(self, catalog: CatalogLookup, max_candidates: int = MAX_CANDIDATES):
        self._catalog = catalog
        self.max_candidates = max_candidates

    async def resolve(self, row: ParsedRow, resolver: EarliestYearResolver | None = None) -> MatchResult:
        if resolver is None:
            resolver = EarliestYearResolver(self._catalog)
        try:
            return await self._resolve(row, resolver)
        except Exception as exc:
            logger.exception("Unexpected failure while matching %r", row.title)
            return MatchResult.failed(row, str(exc))

    async def _resolve(self, row: ParsedRow, resolver: EarliestYearResolver) -> MatchResult:
        results: list[CatalogCandidate] | None = None
        if row.year:
            try:
                results = await self._catalog.search_by_title(row.title, row.year)
            except Exception as exc:
                logger.warning("Year-scoped search failed for %r (%s), retrying unscoped: %s", row.title, row.year, exc)

        if not results:
            try:
                results = await self._catalog.search_by_title(row.title)
            except Exception as exc:
                return MatchResult.failed(row, str(exc))

        if not results:
            return MatchResult.not_found(row)

        if row.year:
            wanted = normalize_title(row.title)
            for candidate in results[: self.max_candidates]:
                if normalize_title(candidate.title) != wanted:
                    continue
                year = await resolver.earliest_year(candidate.id)
                if year is not None and str(year) == row.year:
                    return MatchResult.found(row, candidate, exact_match=True)

        return MatchResult.not_found(row)

    async def resolve_all(
        self,
        rows: list[ParsedRow],
        on_result: ProgressCallback | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[MatchResult]:
        """Resolve rows strictly in order, one in flight at a time.

        ``cancel`` is checked before each row starts; rows not reached stay pending.
        """
        resolver = EarliestYearResolver(self._catalog)
        results = [MatchResult.pending(row) for row in rows]
        for index, row in enumerate(rows):
            if cancel is not None and cancel.is_set():
                logger.info("Matching cancelled after %d of %d rows", index, len(rows))
                break
            results[index] = await self.resolve(row, resolver)
            if on_result is not None:
                on_result(index, results[index])
        return results
