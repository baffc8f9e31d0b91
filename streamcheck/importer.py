import asyncio
import logging
from dataclasses import dataclass, field

from .letterboxd import ParsedRow
from .matching import MAX_CANDIDATES, MatchEngine, MatchResult, MatchStatus
from .models import CatalogCandidate, WatchlistEntry
from .watchlist import WatchlistStore

logger = logging.getLogger(__name__)


class ImportBusyError(RuntimeError):
    pass


@dataclass(frozen=True)
class ManualSearch:
    query: str
    results: tuple[CatalogCandidate, ...] = ()
    loading: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "query": self.query,
            "results": [c.model_dump() for c in self.results],
            "loading": self.loading,
            "error": self.error,
        }


@dataclass
class ImportSession:
    """Review state for one Letterboxd import.

    ``results`` is index-aligned with ``rows``. Manual-search scratch state
    lives in ``manual``, keyed by row index, and is dropped when a row is
    overwritten by a manual pick or a new matching run.
    """

    rows: list[ParsedRow] = field(default_factory=list)
    results: list[MatchResult] = field(default_factory=list)
    manual: dict[int, ManualSearch] = field(default_factory=dict)
    completed: int = 0
    _cancel: asyncio.Event | None = field(default=None, init=False, repr=False)
    _generation: int = field(default=0, init=False, repr=False)

    def __post_init__(self):
        if not self.results:
            self.results = [MatchResult.pending(row) for row in self.rows]
        if len(self.results) != len(self.rows):
            raise ValueError("results must align with rows")

    @property
    def running(self) -> bool:
        return self._cancel is not None

    def reset(self, rows: list[ParsedRow]) -> None:
        if self.running:
            raise ImportBusyError("A matching run is in progress.")
        self._generation += 1
        self.rows = list(rows)
        self.results = [MatchResult.pending(row) for row in self.rows]
        self.manual = {}
        self.completed = 0

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self.results):
            raise IndexError(f"No import row at index {index}")

    def _check_idle(self) -> None:
        if self.running:
            raise ImportBusyError("Wait for matching to finish before changing rows.")

    async def run_matching(self, engine: MatchEngine) -> list[MatchResult]:
        if self.running:
            raise ImportBusyError("A matching run is already in progress.")
        cancel = asyncio.Event()
        self._cancel = cancel
        self._generation += 1
        self.results = [MatchResult.pending(row) for row in self.rows]
        self.manual = {}
        self.completed = 0

        def _record(index: int, result: MatchResult) -> None:
            self.results[index] = result
            self.completed += 1

        logger.info("Matching %d imported rows", len(self.rows))
        try:
            await engine.resolve_all(self.rows, on_result=_record, cancel=cancel)
        finally:
            self._cancel = None
        found = sum(1 for r in self.results if r.status is MatchStatus.FOUND)
        logger.info("Matching finished: %d of %d rows found", found, len(self.rows))
        return list(self.results)

    def cancel(self) -> bool:
        if self._cancel is None:
            return False
        self._cancel.set()
        return True

    def set_selected(self, index: int, selected: bool) -> MatchResult:
        self._check_idle()
        self._check_index(index)
        self.results[index] = self.results[index].with_selected(selected)
        return self.results[index]

    def manual_query(self, index: int) -> str:
        self._check_index(index)
        state = self.manual.get(index)
        return state.query if state else self.rows[index].default_query

    async def manual_search(self, catalog, index: int, query: str | None = None) -> ManualSearch:
        self._check_idle()
        self._check_index(index)
        query = (query or "").strip() or self.manual_query(index)
        generation = self._generation
        self.manual[index] = ManualSearch(query=query, loading=True)
        try:
            found = await catalog.search_by_title(query)
        except Exception as exc:
            logger.warning("Manual search for %r failed: %s", query, exc)
            state = ManualSearch(query=query, error=str(exc) or "Search failed")
        else:
            state = ManualSearch(query=query, results=tuple(found[:MAX_CANDIDATES]))
        if generation != self._generation:
            # a run or a new upload replaced the rows meanwhile
            raise ImportBusyError("The import changed while searching.")
        self.manual[index] = state
        return state

    def manual_candidate(self, index: int, movie_id: int) -> CatalogCandidate:
        self._check_index(index)
        state = self.manual.get(index)
        for candidate in state.results if state else ():
            if candidate.id == movie_id:
                return candidate
        raise ValueError(f"Movie {movie_id} is not among the manual results for row {index}")

    def accept_manual(self, index: int, candidate: CatalogCandidate) -> MatchResult:
        self._check_idle()
        self.manual_candidate(index, candidate.id)
        self.results[index] = MatchResult.found(self.rows[index], candidate, exact_match=False)
        self.manual.pop(index, None)
        return self.results[index]

    def commit(self, watchlist: WatchlistStore) -> int:
        if self.running:
            raise ImportBusyError("Wait for matching to finish before importing.")
        added = 0
        for result in self.results:
            if not (result.selected and result.status is MatchStatus.FOUND):
                continue
            try:
                if watchlist.add(WatchlistEntry.from_candidate(result.movie)):
                    added += 1
            except Exception as exc:
                logger.warning("Could not add %s to the watchlist: %s", result.movie.id, exc)
        logger.info("Imported %d movies into the watchlist", added)
        return added

    def to_dict(self) -> dict:
        return {
            "rows": [{"title": r.title, "year": r.year} for r in self.rows],
            "results": [r.to_dict() for r in self.results],
            "manual": {str(i): state.to_dict() for i, state in self.manual.items()},
            "running": self.running,
            "completed": self.completed,
            "total": len(self.rows),
        }
