import json
import logging
from pathlib import Path

from pydantic import ValidationError

from .models import WatchlistEntry

logger = logging.getLogger(__name__)


class WatchlistStore:
    """Single-user watchlist keyed by catalog id, persisted as a JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._entries: dict[int, WatchlistEntry] = self._load()

    def _load(self) -> dict[int, WatchlistEntry]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text())
        except (OSError, ValueError):
            logger.warning("Could not read watchlist at %s, starting empty", self.path)
            return {}
        entries: dict[int, WatchlistEntry] = {}
        for item in raw if isinstance(raw, list) else []:
            try:
                entry = WatchlistEntry.model_validate(item)
            except ValidationError:
                logger.warning("Skipping malformed watchlist entry: %r", item)
                continue
            entries.setdefault(entry.id, entry)
        return entries

    def _save(self, entries: dict[int, WatchlistEntry]) -> None:
        data = [entry.model_dump(mode="json") for entry in entries.values()]
        self.path.write_text(json.dumps(data, indent=2))

    def entries(self) -> list[WatchlistEntry]:
        return list(self._entries.values())

    def contains(self, movie_id: int) -> bool:
        return movie_id in self._entries

    def get(self, movie_id: int) -> WatchlistEntry | None:
        return self._entries.get(movie_id)

    def add(self, entry: WatchlistEntry) -> bool:
        if entry.id in self._entries:
            return False
        updated = {**self._entries, entry.id: entry}
        self._save(updated)
        self._entries = updated
        return True

    def remove(self, movie_id: int) -> bool:
        if movie_id not in self._entries:
            return False
        updated = {k: v for k, v in self._entries.items() if k != movie_id}
        self._save(updated)
        self._entries = updated
        return True

    def __len__(self) -> int:
        return len(self._entries)
