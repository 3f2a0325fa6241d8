"""chatcache -- in-process named caches for the chat application."""

from chatcache.audit import CacheAuditLogger, CacheEvent
from chatcache.cache import (
    CacheOptions,
    CacheRegistry,
    CacheStats,
    CacheStore,
    EvictionPolicy,
    GlobalStats,
    ItemOptions,
)
from chatcache.config import DictConfigProvider, SettingsConfigProvider, get_settings
from chatcache.exceptions import ChatCacheException, ConfigurationError, SchedulerError

__version__ = "1.0.0"

__all__ = [
    "CacheAuditLogger",
    "CacheEvent",
    "CacheOptions",
    "CacheRegistry",
    "CacheStats",
    "CacheStore",
    "ChatCacheException",
    "ConfigurationError",
    "DictConfigProvider",
    "EvictionPolicy",
    "GlobalStats",
    "ItemOptions",
    "SchedulerError",
    "SettingsConfigProvider",
    "get_settings",
]
