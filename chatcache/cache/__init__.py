"""Named caches: stores, eviction, cleanup scheduling and the registry."""

from chatcache.cache.eviction import EvictionEngine, EvictionPolicy
from chatcache.cache.item import CacheItem, CacheOptions, CacheStats, ItemOptions
from chatcache.cache.registry import CacheRegistry, CacheSummary, GlobalStats
from chatcache.cache.scheduler import CleanupScheduler
from chatcache.cache.store import CacheStore

__all__ = [
    "CacheItem",
    "CacheOptions",
    "CacheRegistry",
    "CacheStats",
    "CacheStore",
    "CacheSummary",
    "CleanupScheduler",
    "EvictionEngine",
    "EvictionPolicy",
    "GlobalStats",
    "ItemOptions",
]
