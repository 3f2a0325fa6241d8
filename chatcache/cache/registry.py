"""
CacheRegistry: the process-wide directory of named caches.

Build one registry at start-up and share it; call :meth:`CacheRegistry.shutdown`
(or use it as a context manager) at teardown to stop every cleanup thread.
Tests build their own isolated registries.

``create_cache`` is create-or-fetch: asking again for an existing name
returns the same store and ignores the newly supplied options.
"""

import logging
import threading
import time
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from chatcache.audit import AuditSink, CacheAuditLogger
from chatcache.cache.eviction import EvictionEngine
from chatcache.cache.item import CacheOptions
from chatcache.cache.scheduler import CleanupScheduler
from chatcache.cache.store import CacheStore, Clock
from chatcache.config import ConfigProvider, get_settings
from chatcache.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CacheOptionsLike = Union[CacheOptions, Dict[str, Any], None]


class CacheSummary(BaseModel):
    """Per-cache line in :class:`GlobalStats`."""

    size: int
    max_size: int
    ttl_seconds: float
    hits: int
    misses: int


class GlobalStats(BaseModel):
    """Statistics aggregated over every registered cache.

    Attributes:
        total_caches: Number of registered caches.
        total_items: Items held across all caches.
        total_hits: Sum of hits.
        total_misses: Sum of misses.
        total_sets: Sum of sets.
        total_deletes: Sum of deletes.
        total_evictions: Sum of evictions (capacity and expiry).
        caches: Per-cache summaries keyed by name.
        global_hit_rate: ``total_hits / (total_hits + total_misses)``,
            0.0 when no lookups happened.
    """

    total_caches: int = 0
    total_items: int = 0
    total_hits: int = 0
    total_misses: int = 0
    total_sets: int = 0
    total_deletes: int = 0
    total_evictions: int = 0
    caches: Dict[str, CacheSummary] = Field(default_factory=dict)
    global_hit_rate: float = 0.0


def _defaults_from_settings() -> CacheOptions:
    """Build default cache options from application settings.

    Raises:
        ConfigurationError: If the configured values are invalid.
    """
    s = get_settings().cache
    try:
        return CacheOptions(
            max_items=s.max_items,
            ttl_seconds=s.ttl_seconds,
            check_interval_seconds=s.check_interval_seconds,
            enable_logging=s.enable_logging,
        )
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid cache settings: {exc}") from exc


class CacheRegistry:
    """Directory of named :class:`CacheStore` instances.

    Args:
        defaults: Options applied to caches created without overriding
            them.  Read from settings when omitted.
        config: Provider the eviction engine reads its policy from.
            Defaults to the live application settings.
        clock: Time source passed to every store.
        audit: Collaborator receiving events from caches created with
            ``enable_logging``.  A :class:`CacheAuditLogger` is created
            when omitted.
        start_schedulers: Start a cleanup thread per cache.  Disable to
            drive sweeps by hand.
        keep_audit_trails: Keep a destroyed cache's audit trail.  When
            False the trail is dropped on destroy, so a process that
            creates and destroys many distinct caches stays bounded.

    Raises:
        ConfigurationError: If *defaults* are invalid.
    """

    def __init__(
        self,
        defaults: CacheOptionsLike = None,
        config: Optional[ConfigProvider] = None,
        clock: Optional[Clock] = None,
        audit: Optional[AuditSink] = None,
        start_schedulers: bool = True,
        keep_audit_trails: bool = True,
    ) -> None:
        if defaults is None:
            self._defaults = _defaults_from_settings()
        else:
            try:
                self._defaults = CacheOptions.model_validate(
                    defaults.model_dump() if isinstance(defaults, CacheOptions) else defaults
                )
            except ValidationError as exc:
                raise ConfigurationError(f"Invalid cache defaults: {exc}") from exc

        self._eviction = EvictionEngine(config)
        self._clock = clock or time.time
        self._audit = audit if audit is not None else CacheAuditLogger()
        self._start_schedulers = start_schedulers
        self._keep_audit_trails = keep_audit_trails

        self._lock = threading.RLock()
        self._caches: Dict[str, CacheStore] = {}
        self._schedulers: Dict[str, CleanupScheduler] = {}

        logger.info(
            "CacheRegistry initialised",
            extra={
                "max_items": self._defaults.max_items,
                "ttl_seconds": self._defaults.ttl_seconds,
                "start_schedulers": start_schedulers,
            },
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def defaults(self) -> CacheOptions:
        """Options applied to future caches."""
        return self._defaults

    @property
    def audit(self) -> AuditSink:
        return self._audit

    # ------------------------------------------------------------------
    # Cache lifecycle
    # ------------------------------------------------------------------

    def create_cache(
        self,
        name: str,
        options: CacheOptionsLike = None,
    ) -> Optional[CacheStore]:
        """Create a cache, or return the existing one with this name.

        For an existing name the supplied *options* are ignored and the
        store keeps the options it was created with.

        Args:
            name: Cache name (must not be empty).
            options: Overrides merged over the registry defaults.

        Returns:
            The store, or ``None`` if *name* is empty or *options* are
            invalid.
        """
        if not name:
            logger.error("Cache name is required")
            return None

        with self._lock:
            existing = self._caches.get(name)
            if existing is not None:
                return existing

            try:
                cache_options = self._merge_options(options)
            except (TypeError, ValueError) as exc:
                logger.error(
                    "Invalid cache options",
                    extra={"cache": name, "error": str(exc)},
                )
                return None

            store = CacheStore(
                name,
                options=cache_options,
                eviction=self._eviction,
                clock=self._clock,
                audit=self._audit,
                on_destroy=self.destroy_cache,
            )
            self._caches[name] = store

            if self._start_schedulers and cache_options.cleanup_enabled:
                scheduler = CleanupScheduler(store)
                scheduler.start()
                self._schedulers[name] = scheduler

        logger.info(
            "Cache created",
            extra={
                "cache": name,
                "max_items": cache_options.max_items,
                "ttl_seconds": cache_options.ttl_seconds,
            },
        )
        return store

    def destroy_cache(self, name: str) -> bool:
        """Stop a cache's cleanup thread, drop its items and unregister it.

        Args:
            name: Cache name.

        Returns:
            ``True`` if the cache existed, ``False`` otherwise.
        """
        with self._lock:
            store = self._caches.pop(name, None)
            scheduler = self._schedulers.pop(name, None)

        if store is None:
            return False

        if scheduler is not None:
            scheduler.stop()
        store._mark_destroyed()
        if not self._keep_audit_trails:
            forget = getattr(self._audit, "forget", None)
            if forget is not None:
                forget(name)
        logger.info("Cache destroyed", extra={"cache": name})
        return True

    def shutdown(self) -> None:
        """Destroy every registered cache."""
        for name in self.get_all_caches():
            self.destroy_cache(name)
        logger.info("CacheRegistry shut down")

    def __enter__(self) -> "CacheRegistry":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_all_caches(self) -> List[str]:
        """Names of all registered caches."""
        with self._lock:
            return list(self._caches)

    def get_cache(self, name: str) -> Optional[CacheStore]:
        """Return the cache called *name*, or ``None``."""
        with self._lock:
            return self._caches.get(name)

    def get_scheduler(self, name: str) -> Optional[CleanupScheduler]:
        """Return the cleanup scheduler of cache *name*, if one runs."""
        with self._lock:
            return self._schedulers.get(name)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._caches

    # ------------------------------------------------------------------
    # Registry-wide operations
    # ------------------------------------------------------------------

    def configure_cache_defaults(self, defaults: Dict[str, Any]) -> bool:
        """Merge *defaults* into the options used by future caches.

        Existing caches are not affected.

        Args:
            defaults: Any subset of :class:`CacheOptions` fields.

        Returns:
            ``True`` if applied, ``False`` if the values were invalid.
        """
        if not isinstance(defaults, Mapping):
            logger.error(
                "Cache defaults must be a mapping",
                extra={"type": type(defaults).__name__},
            )
            return False

        with self._lock:
            try:
                self._defaults = CacheOptions.model_validate(
                    {**self._defaults.model_dump(), **defaults}
                )
            except ValidationError as exc:
                logger.error(
                    "Invalid cache defaults ignored",
                    extra={"error": str(exc)},
                )
                return False
        logger.info("Cache defaults updated", extra={"fields": sorted(defaults)})
        return True

    def get_global_stats(self) -> GlobalStats:
        """Aggregate statistics over every registered cache."""
        with self._lock:
            stores = list(self._caches.values())

        stats = GlobalStats(total_caches=len(stores))
        for store in stores:
            s = store.get_stats()
            stats.total_items += s.size
            stats.total_hits += s.hits
            stats.total_misses += s.misses
            stats.total_sets += s.sets
            stats.total_deletes += s.deletes
            stats.total_evictions += s.evictions
            stats.caches[store.name] = CacheSummary(
                size=s.size,
                max_size=s.max_size,
                ttl_seconds=store.options.ttl_seconds,
                hits=s.hits,
                misses=s.misses,
            )

        total_requests = stats.total_hits + stats.total_misses
        stats.global_hit_rate = (
            stats.total_hits / total_requests if total_requests else 0.0
        )
        return stats

    def clear_all_caches(self) -> int:
        """Empty every cache without destroying any.

        Returns:
            Total number of items removed.
        """
        with self._lock:
            stores = list(self._caches.values())
        removed = sum(store.clear() for store in stores)
        logger.info(
            "All caches cleared",
            extra={"caches": len(stores), "items_removed": removed},
        )
        return removed

    def reset_stats(self, name: Optional[str] = None) -> bool:
        """Zero the counters of cache *name*, or of every cache.

        Returns:
            ``False`` if *name* is given but unknown.
        """
        with self._lock:
            if name is None:
                stores = list(self._caches.values())
            elif name in self._caches:
                stores = [self._caches[name]]
            else:
                return False
        for store in stores:
            store._reset_stats()
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _merge_options(self, options: CacheOptionsLike) -> CacheOptions:
        """Overlay *options* on the defaults.

        Raises:
            TypeError: If *options* is neither ``CacheOptions`` nor a mapping.
            ValidationError: If the merged values are invalid.
        """
        if options is None:
            return self._defaults
        if isinstance(options, CacheOptions):
            overrides = options.model_dump(exclude_unset=True)
        elif isinstance(options, Mapping):
            overrides = dict(options)
        else:
            raise TypeError(
                f"Cache options must be a mapping, got {type(options).__name__}"
            )
        return CacheOptions.model_validate({**self._defaults.model_dump(), **overrides})
