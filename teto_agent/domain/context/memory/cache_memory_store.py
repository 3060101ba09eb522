from typing import Dict, Any, Optional, Callable, Awaitable
import asyncio
import time


class CacheMemoryStore:
    """In-memory content cache with TTL support.

    Backs lookups that are expensive to repeat within a turn or across turns
    (lyrics, persona prompt). Entries expire lazily on read.
    """

    def __init__(self, namespace: str = "", clock: Callable[[], float] = time.monotonic):
        self.namespace = namespace
        self.cache: Dict[str, Dict[str, Any]] = {}
        self._clock = clock
        self._lock = asyncio.Lock()

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    async def set(self, key: str, value: Any, ttl: int = 3600) -> None:
        """Set a value in cache with TTL"""

        async with self._lock:
            self.cache[self._key(key)] = {
                "value": value,
                "expires_at": self._clock() + ttl
            }

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired"""

        async with self._lock:
            full_key = self._key(key)
            entry = self.cache.get(full_key)
            if entry is None:
                return None

            if self._clock() > entry["expires_at"]:
                del self.cache[full_key]
                return None

            return entry["value"]

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Optional[Any]]],
        ttl: int = 3600
    ) -> Optional[Any]:
        """Return the cached value, loading and caching it on a miss.

        A loader result of None is not cached.
        """

        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await loader()
        if value is not None:
            await self.set(key, value, ttl=ttl)
        return value

