"""Small in-process TTL cache used to memoize chain reads."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class TTLCache:
    """In-memory cache with per-entry expiry.

    The clock is injectable so tests can advance time without sleeping.
    Concurrent ``get_or_load`` calls for the same key share one load.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl_seconds
        self._clock = clock
        self._store: Dict[str, tuple[Any, float]] = {}  # key -> (value, expires_at)
        self._locks: Dict[str, asyncio.Lock] = {}

    def get(self, key: str) -> Optional[Any]:
        if key not in self._store:
            return None
        value, expires_at = self._store[key]
        if self._clock() >= expires_at:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self._store[key] = (value, self._clock() + (self._ttl if ttl is None else ttl))

    def delete(self, key: str) -> bool:
        return self._store.pop(key, None) is not None

    def clear(self) -> None:
        self._store.clear()

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value or await ``loader`` and cache its result."""
        if self._ttl <= 0:
            return await loader()

        cached = self.get(key)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            cached = self.get(key)
            if cached is not None:
                return cached
            value = await loader()
            self.set(key, value)
            logger.debug("Cached %s for %.1fs", key, self._ttl)
            return value
