import json
import logging
import math
import time
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger("livescreen.cache")


class MemoryCacheBackend:
    """In-process backend. Expiry is checked lazily on read."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self.clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: Any, ttl: float) -> None:
        self._entries[key] = (value, self.clock() + ttl)

    async def delete(self, key: str) -> int:
        return 1 if self._entries.pop(key, None) is not None else 0

    async def delete_prefix(self, prefix: str) -> int:
        doomed = [k for k in self._entries if k.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    async def size(self) -> int:
        now = self.clock()
        return sum(1 for _, expires_at in self._entries.values() if expires_at > now)


class RedisCacheBackend:
    """Redis backend. Values are stored as JSON with SETEX so Redis owns expiry."""

    def __init__(self, redis_client, scan_count: int = 200):
        """
        Initialize Redis cache backend.

        Args:
            redis_client: Async Redis client (decode_responses=True)
            scan_count: SCAN batch size for prefix eviction
        """
        self.redis = redis_client
        self.scan_count = scan_count

    async def get(self, key: str) -> Optional[Any]:
        data = await self.redis.get(key)
        if data is None:
            return None
        return json.loads(data)

    async def set(self, key: str, value: Any, ttl: float) -> None:
        # SETEX only takes whole seconds
        await self.redis.setex(key, max(1, math.ceil(ttl)), json.dumps(value))

    async def delete(self, key: str) -> int:
        return await self.redis.delete(key)

    async def delete_prefix(self, prefix: str) -> int:
        keys = [key async for key in self.redis.scan_iter(match=f"{prefix}*", count=self.scan_count)]
        if not keys:
            return 0
        return await self.redis.delete(*keys)

    async def size(self) -> int:
        count = 0
        async for _ in self.redis.scan_iter(match="livescreen:cache:*", count=self.scan_count):
            count += 1
        return count
