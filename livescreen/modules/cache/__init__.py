"""
Cache Module - Black Box Interface

Purpose: Per-session TTL cache for transformed modules, manifests and bundles
Interface: ModuleCache.get(), put(), get_or_build(), evict(), evict_module(), evict_session()
Hidden: Storage backend, key layout, in-flight build sharing, generation tracking

Backends are interchangeable: in-process memory or Redis.
"""

from .backends import MemoryCacheBackend, RedisCacheBackend
from .cache import APP_MODULE_ID, CacheKey, CacheVariant, ModuleCache

__all__ = [
    "APP_MODULE_ID",
    "CacheKey",
    "CacheVariant",
    "MemoryCacheBackend",
    "ModuleCache",
    "RedisCacheBackend",
]
