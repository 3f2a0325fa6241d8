"""
CacheStore: one named cache with bounded capacity, expiry and statistics.

Stores are normally obtained from :class:`~chatcache.cache.registry.CacheRegistry`
rather than built directly.  All public methods are thread-safe: a single
re-entrant lock per store guards the item mapping and the counters, and
the background cleanup sweep takes the same lock.

Cache misses and expired items are normal outcomes, not errors.  Invalid
input (an empty key) is logged and answered with the benign default.
Once a store has been destroyed every operation is a no-op: ``get``
returns the default, ``set``/``has``/``delete`` return ``False``, and the
store reports itself as empty.
"""

import itertools
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from chatcache.audit import AuditSink, CacheEvent
from chatcache.cache.eviction import EvictionEngine
from chatcache.cache.item import (
    CacheItem,
    CacheOptions,
    CacheStats,
    ItemOptionsLike,
    coerce_item_options,
    compute_expiry,
    effective_ttl,
    is_expired,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

_COUNTERS = ("hits", "misses", "sets", "deletes", "evictions")


class CacheStore:
    """A single named cache.

    Args:
        name: Unique cache name.
        options: Capacity, default TTL, sweep interval and audit flag.
        eviction: Engine consulted when the store is full.
        clock: Time source in seconds.  Tests inject a fake clock.
        audit: Receives a :class:`CacheEvent` per operation when
            ``options.enable_logging`` is set.
        on_destroy: Called with the cache name by :meth:`destroy`;
            the owning registry supplies this.
    """

    def __init__(
        self,
        name: str,
        options: Optional[CacheOptions] = None,
        eviction: Optional[EvictionEngine] = None,
        clock: Optional[Clock] = None,
        audit: Optional[AuditSink] = None,
        on_destroy: Optional[Callable[[str], bool]] = None,
    ) -> None:
        self._name = name
        self._options = options or CacheOptions()
        self._eviction = eviction or EvictionEngine()
        self._clock = clock or time.time
        self._audit = audit
        self._on_destroy = on_destroy

        self._lock = threading.RLock()
        self._items: Dict[str, CacheItem] = {}
        self._seq = itertools.count(1)
        self._counters: Dict[str, int] = dict.fromkeys(_COUNTERS, 0)
        self._last_cleanup: float = self._clock()
        self._destroyed = False

        self._emit("create")

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def options(self) -> CacheOptions:
        return self._options

    @property
    def destroyed(self) -> bool:
        """Whether the store has been destroyed by its registry."""
        return self._destroyed

    # ------------------------------------------------------------------
    # Item operations
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value for *key*, or *default*.

        An absent key counts a miss.  An expired item is removed and
        counted as an eviction.  A hit refreshes ``last_access``.

        Args:
            key: Item key.
            default: Returned on a miss or an expired item.

        Returns:
            The cached value or *default*.
        """
        if self._rejected("get", key):
            return default

        with self._lock:
            if self._gone("get"):
                return default
            item = self._items.get(key)
            if item is None:
                self._counters["misses"] += 1
                logger.debug("Cache miss", extra={"cache": self._name, "key": key})
                self._emit("miss", key)
                return default

            now = self._clock()
            if is_expired(item, now):
                self._drop_expired(key)
                return default

            self._counters["hits"] += 1
            item.last_access = now
            item.access_seq = next(self._seq)
            logger.debug("Cache hit", extra={"cache": self._name, "key": key})
            self._emit("hit", key)
            return item.value

    def set(self, key: str, value: Any, options: ItemOptionsLike = None) -> bool:
        """Store *value* under *key*, replacing any existing item.

        When the store is full and *key* is new, exactly one item is
        evicted first.  Overwriting an existing key never evicts.

        Args:
            key: Item key (must not be empty).
            value: Any object; stored as-is.
            options: ``ItemOptions`` or a dict with ``ttl_seconds`` and/or
                ``priority``.

        Returns:
            ``True`` once stored; ``False`` for an empty key, invalid
            options or a destroyed store.
        """
        if self._rejected("set", key):
            return False

        try:
            item_options = coerce_item_options(options)
        except ValueError as exc:
            logger.error(
                "Invalid item options",
                extra={"cache": self._name, "key": key, "error": str(exc)},
            )
            return False

        ttl = effective_ttl(item_options, self._options.ttl_seconds)

        with self._lock:
            if self._gone("set"):
                return False
            if key not in self._items and len(self._items) >= self._options.max_items:
                self._evict_one()

            now = self._clock()
            seq = next(self._seq)
            self._items[key] = CacheItem(
                key=key,
                value=value,
                created=now,
                last_access=now,
                expiry=compute_expiry(now, ttl),
                priority=item_options.priority,
                insert_seq=seq,
                access_seq=seq,
            )
            self._counters["sets"] += 1
            logger.debug(
                "Cache set",
                extra={"cache": self._name, "key": key, "ttl_seconds": ttl},
            )
            self._emit("set", key, ttl_seconds=ttl)
            return True

    def has(self, key: str) -> bool:
        """Expiry-aware existence check.

        Does not touch hit/miss counters or ``last_access``.  An expired
        item found here is removed and counted as an eviction.
        """
        if self._rejected("has", key):
            return False

        with self._lock:
            if self._gone("has"):
                return False
            item = self._items.get(key)
            if item is None:
                return False
            if is_expired(item, self._clock()):
                self._drop_expired(key)
                return False
            return True

    def delete(self, key: str) -> bool:
        """Remove *key*.  Returns whether anything was removed."""
        if self._rejected("delete", key):
            return False

        with self._lock:
            if self._gone("delete"):
                return False
            if self._items.pop(key, None) is None:
                return False
            self._counters["deletes"] += 1
            logger.debug("Cache delete", extra={"cache": self._name, "key": key})
            self._emit("delete", key)
            return True

    def clear(self) -> int:
        """Remove every item at once.  Counters are left unchanged.

        Returns:
            Number of items removed.
        """
        with self._lock:
            if self._gone("clear"):
                return 0
            count = len(self._items)
            self._items.clear()
        logger.info(
            "Cache cleared",
            extra={"cache": self._name, "items_removed": count},
        )
        self._emit("clear", items_removed=count)
        return count

    def keys(self) -> List[str]:
        """Current keys, including expired items not yet reclaimed."""
        with self._lock:
            return list(self._items)

    def size(self) -> int:
        """Current item count, including expired items not yet reclaimed."""
        with self._lock:
            return len(self._items)

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def get_stats(self) -> CacheStats:
        """Return counters plus size, capacity and hit rate."""
        with self._lock:
            hits = self._counters["hits"]
            misses = self._counters["misses"]
            return CacheStats(
                **self._counters,
                last_cleanup=self._last_cleanup,
                size=len(self._items),
                max_size=self._options.max_items,
                hit_rate=hits / ((hits + misses) or 1),
            )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep_expired(self) -> int:
        """Remove every expired item in one pass.

        Called periodically by :class:`~chatcache.cache.scheduler.CleanupScheduler`;
        safe to call directly.

        Returns:
            Number of items removed.
        """
        with self._lock:
            if self._destroyed:
                return 0
            now = self._clock()
            expired_keys = [
                key for key, item in self._items.items() if is_expired(item, now)
            ]
            for key in expired_keys:
                del self._items[key]
            self._counters["evictions"] += len(expired_keys)
            self._last_cleanup = now

        if expired_keys:
            logger.info(
                "Expired entries cleaned up",
                extra={"cache": self._name, "count": len(expired_keys)},
            )
            self._emit("cleanup", items_removed=len(expired_keys))
        return len(expired_keys)

    def destroy(self) -> bool:
        """Ask the owning registry to destroy this cache."""
        if self._on_destroy is None:
            self._mark_destroyed()
            return True
        return self._on_destroy(self._name)

    def _mark_destroyed(self) -> None:
        """Drop all items and turn every later operation into a no-op."""
        with self._lock:
            if self._destroyed:
                return
            self._emit("destroy", items_removed=len(self._items))
            self._items.clear()
            self._destroyed = True

    def _reset_stats(self) -> None:
        with self._lock:
            self._counters = dict.fromkeys(_COUNTERS, 0)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _evict_one(self) -> Optional[str]:
        """Evict one item chosen by the eviction engine.  Lock held."""
        victim, policy = self._eviction.select_victim(self._items)
        if victim is None:
            return None
        del self._items[victim]
        self._counters["evictions"] += 1
        logger.debug(
            "Cache item evicted",
            extra={"cache": self._name, "key": victim, "policy": policy.value},
        )
        self._emit("evict", victim, policy=policy.value)
        return victim

    def _drop_expired(self, key: str) -> None:
        """Remove an item found expired on lookup.  Lock held."""
        del self._items[key]
        self._counters["evictions"] += 1
        logger.debug("Cache item expired", extra={"cache": self._name, "key": key})
        self._emit("expire", key)

    def _rejected(self, operation: str, key: str) -> bool:
        if self._destroyed:
            self._warn_destroyed(operation)
            return True
        if not key:
            logger.error(
                "Cache key is required",
                extra={"cache": self._name, "operation": operation},
            )
            return True
        return False

    def _gone(self, operation: str) -> bool:
        """Re-check destruction once the lock is held.  Lock held."""
        if self._destroyed:
            self._warn_destroyed(operation)
            return True
        return False

    def _warn_destroyed(self, operation: str) -> None:
        logger.warning(
            "Operation on destroyed cache ignored",
            extra={"cache": self._name, "operation": operation},
        )

    def _emit(
        self,
        operation: str,
        key: Optional[str] = None,
        ttl_seconds: Optional[float] = None,
        **details: Any,
    ) -> None:
        """Send one audit event when logging is enabled for this cache."""
        if not self._options.enable_logging or self._audit is None:
            return
        try:
            self._audit.log(
                CacheEvent(
                    cache=self._name,
                    operation=operation,
                    key=key,
                    ttl_seconds=ttl_seconds,
                    details=details,
                )
            )
        except Exception as exc:
            logger.warning(
                "Cache audit event dropped",
                extra={"cache": self._name, "operation": operation, "error": str(exc)},
            )

    def __repr__(self) -> str:
        state = "destroyed" if self._destroyed else f"{self.size()}/{self._options.max_items}"
        return f"CacheStore(name={self._name!r}, {state})"
