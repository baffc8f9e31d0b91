import time
from typing import Any, Callable, Hashable


class TTLCache:
    """Time-bounded memo keyed by request shape.

    The clock is injected so expiry can be driven deterministically in tests.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.time, max_entries: int = 2048):
        self.ttl = ttl
        self._clock = clock
        self._max_entries = max_entries
        self._data: dict[Hashable, tuple[float, Any]] = {}

    def get(self, key: Hashable) -> Any | None:
        cached = self._data.get(key)
        if cached is None:
            return None
        stored_at, value = cached
        if (self._clock() - stored_at) >= self.ttl:
            self._data.pop(key, None)
            return None
        return value

    def set(self, key: Hashable, value: Any) -> None:
        if len(self._data) >= self._max_entries and key not in self._data:
            self._evict()
        self._data[key] = (self._clock(), value)

    async def get_or_fetch(self, key: Hashable, fetch: Callable[[], Any]) -> Any:
        value = self.get(key)
        if value is not None:
            return value
        value = await fetch()
        self.set(key, value)
        return value

    def __len__(self) -> int:
        return len(self._data)

    def _evict(self) -> None:
        now = self._clock()
        expired = [k for k, (ts, _) in self._data.items() if (now - ts) >= self.ttl]
        for k in expired:
            del self._data[k]
        if len(self._data) >= self._max_entries:
            # dicts keep insertion order, so the first key is the oldest write
            oldest = next(iter(self._data))
            del self._data[oldest]
