"""
Eviction engine: picks the item to drop when a full cache takes a new key.

The policy is a process-wide setting, not an attribute of a cache.  It is
looked up through the injected :class:`~chatcache.config.ConfigProvider`
on every eviction, so a configuration change applies to every cache from
its next eviction onward.

Policies:

* ``lru`` -- least recent ``last_access``.
* ``lfu`` -- items carry no access counter, so this is LRU.  The
  approximation is intentional; do not add frequency tracking here.
* ``fifo`` -- oldest ``created``.
* ``priority`` -- lowest ``priority``, oldest first among equals.

Unknown policy values, and a provider that raises, fall back to LRU.
"""

import logging
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Tuple

from chatcache.cache.item import CacheItem
from chatcache.config import ConfigProvider, SettingsConfigProvider

logger = logging.getLogger(__name__)

POLICY_CONFIG_KEY = "cache.eviction_policy"


class EvictionPolicy(str, Enum):
    LRU = "lru"
    LFU = "lfu"
    FIFO = "fifo"
    PRIORITY = "priority"


def _lru_rank(item: CacheItem) -> Tuple[float, int]:
    return (item.last_access, item.access_seq)


def _fifo_rank(item: CacheItem) -> Tuple[float, int]:
    return (item.created, item.insert_seq)


def _priority_rank(item: CacheItem) -> Tuple[int, float, int]:
    return (item.priority, item.created, item.insert_seq)


_RANKERS: Dict[EvictionPolicy, Callable[[CacheItem], tuple]] = {
    EvictionPolicy.LRU: _lru_rank,
    EvictionPolicy.LFU: _lru_rank,
    EvictionPolicy.FIFO: _fifo_rank,
    EvictionPolicy.PRIORITY: _priority_rank,
}


class EvictionEngine:
    """Chooses eviction victims according to the configured policy.

    Args:
        config: Where the policy is read from.  Defaults to the live
            application settings.
    """

    def __init__(self, config: Optional[ConfigProvider] = None) -> None:
        self._config = config or SettingsConfigProvider()

    def current_policy(self) -> EvictionPolicy:
        """Read the policy now, degrading to LRU on anything unusable."""
        try:
            raw = self._config.get(POLICY_CONFIG_KEY, EvictionPolicy.LRU.value)
        except Exception as exc:
            logger.debug(
                "Eviction policy lookup failed; using lru",
                extra={"error": str(exc)},
            )
            return EvictionPolicy.LRU

        try:
            return EvictionPolicy(str(raw).strip().lower())
        except ValueError:
            logger.debug(
                "Unknown eviction policy; using lru",
                extra={"policy": raw},
            )
            return EvictionPolicy.LRU

    def select_victim(
        self,
        items: Mapping[str, CacheItem],
    ) -> Tuple[Optional[str], EvictionPolicy]:
        """Pick the key to evict from *items*.

        Args:
            items: Current contents of a cache.

        Returns:
            ``(key, policy)``; ``key`` is ``None`` when *items* is empty.
        """
        policy = self.current_policy()
        if not items:
            return None, policy
        rank = _RANKERS[policy]
        victim = min(items.values(), key=rank)
        return victim.key, policy
