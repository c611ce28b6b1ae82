# core/cache.py
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger("storefront.cache")

DEFAULT_TTL_SECONDS = 10 * 60


class TTLCache:
    """
    Map-backed read-through cache.
    Entries are (value, stored_at); a lookup older than its ttl is a miss.
    """

    def __init__(self, default_ttl: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self.clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}

    def get(self, key: str, ttl: Optional[float] = None):
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self.clock() - stored_at >= (self.default_ttl if ttl is None else ttl):
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (value, self.clock())

    async def get_or_set(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Tuple[Any, bool]:
        """Returns (value, hit)."""
        cached = self.get(key, ttl)
        if cached is not None:
            return cached, True

        value = await loader()
        self.set(key, value)
        return value, False

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        keys = [k for k in self._entries if k.startswith(prefix)]
        for k in keys:
            del self._entries[k]
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        now = self.clock()
        stale = [k for k, (_, stored_at) in self._entries.items() if now - stored_at >= self.default_ttl]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def __len__(self):
        return len(self._entries)


