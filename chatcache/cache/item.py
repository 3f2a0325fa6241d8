"""
Cache items, per-cache options and the item lifecycle policy.

An item's expiry is computed once, when it is set, from the effective
TTL: the per-call override when one is given, otherwise the cache
default.  A TTL of zero or less means the item never expires.
"""

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field


class CacheOptions(BaseModel):
    """Configuration fixed for the lifetime of one cache.

    Attributes:
        max_items: Capacity; the cache never holds more items than this.
        ttl_seconds: Default time-to-live.  ``<= 0`` disables expiry.
        check_interval_seconds: Period of the background cleanup sweep.
            ``<= 0`` disables the sweep.
        enable_logging: Emit an audit event for each operation.
    """

    max_items: int = Field(default=100, ge=1)
    ttl_seconds: float = 300.0
    check_interval_seconds: float = 60.0
    enable_logging: bool = False

    model_config = {"extra": "forbid", "frozen": True}

    @property
    def cleanup_enabled(self) -> bool:
        """Whether a cleanup scheduler should run for this cache."""
        return self.ttl_seconds > 0 and self.check_interval_seconds > 0


class ItemOptions(BaseModel):
    """Per-``set`` overrides.

    Attributes:
        ttl_seconds: TTL for this item only.  ``None`` uses the cache
            default; ``<= 0`` means never expire.
        priority: Used only by the ``priority`` eviction policy; lower
            values are evicted first.
    """

    ttl_seconds: Optional[float] = None
    priority: int = 0

    model_config = {"extra": "forbid"}


ItemOptionsLike = Union[ItemOptions, Dict[str, Any], None]


class CacheItem(BaseModel):
    """A single cached key/value pair with its metadata.

    ``value`` is stored as given: never copied, validated or serialised.

    Attributes:
        key: Item key.
        value: The cached value.
        created: Clock time the item was set.
        last_access: Clock time of the last successful ``get``.
        expiry: Absolute clock time after which the item is stale, or
            ``None`` if it never expires.
        priority: Eviction priority (lower goes first).
        insert_seq: Cache-wide insertion counter, for tie-breaks.
        access_seq: Cache-wide access counter, for tie-breaks.
    """

    key: str
    value: Any = None
    created: float
    last_access: float
    expiry: Optional[float] = None
    priority: int = 0
    insert_seq: int = 0
    access_seq: int = 0

    model_config = {"arbitrary_types_allowed": True}


class CacheStats(BaseModel):
    """Snapshot of one cache's statistics.

    Attributes:
        hits: Successful ``get`` calls.
        misses: ``get`` calls for absent keys.
        sets: ``set`` calls.
        deletes: ``delete`` calls that removed something.
        evictions: Items removed by capacity eviction or expiry.
        last_cleanup: Clock time of the last cleanup sweep.
        size: Current item count.
        max_size: Configured capacity.
        hit_rate: ``hits / (hits + misses)``, 0.0 for a fresh cache.
    """

    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    evictions: int = 0
    last_cleanup: float = 0.0
    size: int = 0
    max_size: int = 0
    hit_rate: float = 0.0


def coerce_item_options(options: ItemOptionsLike) -> ItemOptions:
    """Accept ``ItemOptions``, a plain dict, or ``None``."""
    if options is None:
        return ItemOptions()
    if isinstance(options, ItemOptions):
        return options
    return ItemOptions.model_validate(options)


def effective_ttl(options: ItemOptions, default_ttl: float) -> float:
    """Per-item TTL override if given, else the cache default."""
    if options.ttl_seconds is not None:
        return options.ttl_seconds
    return default_ttl


def compute_expiry(now: float, ttl_seconds: float) -> Optional[float]:
    """Absolute expiry time for an item set at *now*, or ``None``."""
    if ttl_seconds > 0:
        return now + ttl_seconds
    return None


def is_expired(item: CacheItem, now: float) -> bool:
    """True once *now* has reached the item's expiry time."""
    return item.expiry is not None and item.expiry <= now
