import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger("livescreen.cache")

KEY_PREFIX = "livescreen:cache:"
APP_MODULE_ID = "__app__"


class CacheVariant(str, Enum):
    MODULE = "module"
    MANIFEST = "manifest"
    BUNDLE = "bundle"


@dataclass(frozen=True)
class CacheKey:
    """Every entry is addressed by session first, so sessions never share entries."""

    session_id: str
    module_id: str
    variant: CacheVariant = CacheVariant.MODULE

    @classmethod
    def manifest(cls, session_id: str) -> "CacheKey":
        return cls(session_id, APP_MODULE_ID, CacheVariant.MANIFEST)

    @classmethod
    def bundle(cls, session_id: str) -> "CacheKey":
        return cls(session_id, APP_MODULE_ID, CacheVariant.BUNDLE)

    def storage_key(self) -> str:
        return f"{module_prefix(self.session_id, self.module_id)}{CacheVariant(self.variant).value}"


def session_prefix(session_id: str) -> str:
    return f"{KEY_PREFIX}{session_id}:"


def module_prefix(session_id: str, module_id: str) -> str:
    return f"{session_prefix(session_id)}{module_id}:"


class ModuleCache:
    """
    Per-session TTL cache for module definitions, manifests and bundles.

    Concurrent misses on one key share a single in-flight build. Every
    eviction bumps the key's generation; a build that started under an
    older generation hands its value to its waiters but is not stored, so
    an explicit invalidation always beats a build already in progress.
    """

    def __init__(
        self,
        backend,
        module_ttl: float = 30.0,
        manifest_ttl: float = 60.0,
        bundle_ttl: Optional[float] = None,
    ):
        self.backend = backend
        self.ttls = {
            CacheVariant.MODULE: module_ttl,
            CacheVariant.MANIFEST: manifest_ttl,
            CacheVariant.BUNDLE: bundle_ttl if bundle_ttl is not None else manifest_ttl,
        }
        self._inflight: Dict[str, asyncio.Task] = {}
        self._generations: Dict[str, int] = {}
        self._session_epochs: Dict[str, int] = {}
        self.hits = 0
        self.misses = 0
        self.builds = 0
        self.stale_discards = 0

    def ttl_for(self, variant: CacheVariant) -> float:
        return self.ttls[CacheVariant(variant)]

    def _generation(self, key: CacheKey) -> Tuple[int, int]:
        return (
            self._session_epochs.get(key.session_id, 0),
            self._generations.get(key.storage_key(), 0),
        )

    async def get(self, key: CacheKey) -> Optional[Any]:
        """Cached value if present and unexpired, else None."""
        value = await self.backend.get(key.storage_key())
        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        return value

    async def put(self, key: CacheKey, value: Any, ttl: Optional[float] = None) -> None:
        await self.backend.set(key.storage_key(), value, ttl if ttl is not None else self.ttl_for(key.variant))

    async def get_or_build(
        self, key: CacheKey, builder: Callable[[], Awaitable[Any]]
    ) -> Tuple[Any, bool]:
        """
        Return (value, hit). On a miss the builder runs once for all concurrent callers.

        Builder exceptions propagate to every waiter and nothing is stored.
        """
        value = await self.get(key)
        if value is not None:
            return value, True

        storage_key = key.storage_key()
        task = self._inflight.get(storage_key)
        if task is None:
            task = asyncio.create_task(self._build(key, builder, self._generation(key)))
            self._inflight[storage_key] = task
            task.add_done_callback(lambda t, k=storage_key: self._forget(k, t))
        return await asyncio.shield(task), False

    async def _build(self, key: CacheKey, builder, generation: Tuple[int, int]) -> Any:
        self.builds += 1
        value = await builder()
        if self._generation(key) == generation:
            await self.put(key, value)
        else:
            self.stale_discards += 1
            logger.debug(f"Discarding build for {key.storage_key()} invalidated mid-flight")
        return value

    def _forget(self, storage_key: str, task: asyncio.Task) -> None:
        if self._inflight.get(storage_key) is task:
            del self._inflight[storage_key]
        # Waiters may have gone away; mark the exception as retrieved
        if not task.cancelled():
            task.exception()

    def _bump(self, storage_key: str) -> None:
        self._generations[storage_key] = self._generations.get(storage_key, 0) + 1
        self._inflight.pop(storage_key, None)

    async def evict(self, key: CacheKey) -> int:
        """Evict one exact key."""
        storage_key = key.storage_key()
        self._bump(storage_key)
        return await self.backend.delete(storage_key)

    async def evict_module(self, session_id: str, module_id: str) -> int:
        """Evict every variant cached for one module."""
        for variant in CacheVariant:
            self._bump(CacheKey(session_id, module_id, variant).storage_key())
        return await self.backend.delete_prefix(module_prefix(session_id, module_id))

    async def evict_session(self, session_id: str) -> int:
        """Evict everything a session has cached."""
        prefix = session_prefix(session_id)
        self._session_epochs[session_id] = self._session_epochs.get(session_id, 0) + 1
        for storage_key in [k for k in self._inflight if k.startswith(prefix)]:
            del self._inflight[storage_key]
        removed = await self.backend.delete_prefix(prefix)
        logger.info(f"Evicted {removed} cache entries for session {session_id}")
        return removed

    def forget_session(self, session_id: str) -> None:
        """Drop bookkeeping for a destroyed session."""
        prefix = session_prefix(session_id)
        self._session_epochs.pop(session_id, None)
        for storage_key in [k for k in self._generations if k.startswith(prefix)]:
            del self._generations[storage_key]

    async def stats(self) -> Dict[str, Any]:
        return {
            "entries": await self.backend.size(),
            "hits": self.hits,
            "misses": self.misses,
            "builds": self.builds,
            "stale_discards": self.stale_discards,
            "in_flight": len(self._inflight),
            "ttl": {variant.value: ttl for variant, ttl in self.ttls.items()},
        }
