from __future__ import annotations

from asyncio import Lock
from collections.abc import Awaitable, Callable
import time
from typing import Any


class TTLCache:
    """A simple in-memory TTL cache with async-safe access."""

    def __init__(self, ttl_seconds: float = 300.0) -> None:
        self._ttl = ttl_seconds
        self._lock = Lock()
        self._store: dict[Any, tuple[Any, float]] = {}

    async def get(self, key: Any) -> Any | None:
        now = time.monotonic()
        async with self._lock:
            entry = self._store.get(key)
            if not entry:
                return None
            value, expires_at = entry
            if expires_at <= now:
                self._store.pop(key, None)
                return None
            return value

    async def set(self, key: Any, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self._ttl if ttl_seconds is None else ttl_seconds
        expires_at = time.monotonic() + max(ttl, 0.0)
        async with self._lock:
            if ttl <= 0:
                self._store.pop(key, None)
            else:
                self._store[key] = (value, expires_at)

    async def get_or_load(
        self, key: Any, loader: Callable[[], Awaitable[Any]]
    ) -> Any:
        """Return the cached value for ``key`` or store the result of ``loader``.

        The loader runs outside the lock; two concurrent misses may both load,
        the last write wins.
        """

        value = await self.get(key)
        if value is not None:
            return value
        value = await loader()
        if value is not None:
            await self.set(key, value)
        return value

    async def invalidate(self, key: Any) -> None:
        async with self._lock:
            self._store.pop(key, None)

    async def clear(self) -> None:
        async with self._lock:
            self._store.clear()


# Physical column names per (base id, table name), fetched from the store's
# metadata endpoint.
table_fields_cache = TTLCache(ttl_seconds=3600.0)
