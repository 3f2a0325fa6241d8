"""
Tamper-evident audit trail for cache operations.

Caches created with ``enable_logging`` report each operation as a
:class:`CacheEvent`.  Events are kept in memory per cache and linked
with a SHA-256 ``prev_hash`` so that tampering with the recorded trail
is detectable, which the chat application's HIPAA audit relies on.
"""

import csv
import hashlib
import io
import json
import logging
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Protocol, Set
from uuid import uuid4

from pydantic import BaseModel, Field

from chatcache.config import get_settings

logger = logging.getLogger(__name__)

CacheOperation = Literal[
    "create",
    "hit",
    "miss",
    "expire",
    "set",
    "delete",
    "clear",
    "evict",
    "cleanup",
    "destroy",
]


class AuditConfig(BaseModel):
    """Configuration for CacheAuditLogger.

    Attributes:
        max_entries_in_memory: Cap on per-cache in-memory events.
        enable_hash_chain: Whether to compute integrity hashes.
    """

    max_entries_in_memory: int = Field(default=10_000, ge=1)
    enable_hash_chain: bool = Field(default=True)


class CacheEvent(BaseModel):
    """Single audit event emitted by a cache.

    Attributes:
        entry_id: Unique identifier (UUID).
        timestamp: When the operation happened (UTC).
        cache: Name of the cache that emitted the event.
        operation: What happened.
        key: Item key, when the operation concerns a single item.
        ttl_seconds: Effective TTL for ``set`` events.
        details: Operation-specific payload (e.g. ``items_removed``).
        prev_hash: SHA-256 hash of the previous event for the same cache.
    """

    entry_id: str = Field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    cache: str
    operation: CacheOperation
    key: Optional[str] = None
    ttl_seconds: Optional[float] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    prev_hash: Optional[str] = None


class AuditSink(Protocol):
    """Anything that accepts cache events."""

    def log(self, event: CacheEvent) -> None:
        ...


class CacheAuditLogger:
    """In-memory cache audit trail with SHA-256 hash chain.

    Args:
        config: Audit configuration; read from settings when omitted.
    """

    def __init__(self, config: Optional[AuditConfig] = None) -> None:
        if config is None:
            _s = get_settings().audit
            config = AuditConfig(
                max_entries_in_memory=_s.max_entries_in_memory,
                enable_hash_chain=_s.enable_hash_chain,
            )
        self._config = config
        self._lock = threading.Lock()
        self._events: Dict[str, List[CacheEvent]] = defaultdict(list)
        # caches whose oldest events were dropped by the memory cap
        self._trimmed: Set[str] = set()
        logger.info(
            "CacheAuditLogger initialised",
            extra={"max_entries_in_memory": config.max_entries_in_memory},
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def log(self, event: CacheEvent) -> None:
        """Append an event to its cache's trail.

        If hash chaining is enabled, ``prev_hash`` is computed from the
        most recent event for the same cache.

        Args:
            event: The event to record.
        """
        with self._lock:
            cache_events = self._events[event.cache]
            if self._config.enable_hash_chain:
                if cache_events:
                    event.prev_hash = self._hash_event(cache_events[-1])
                else:
                    event.prev_hash = None
            cache_events.append(event)
            if len(cache_events) > self._config.max_entries_in_memory:
                cache_events.pop(0)
                self._trimmed.add(event.cache)
        logger.debug(
            "Cache event recorded",
            extra={
                "entry_id": event.entry_id,
                "cache": event.cache,
                "operation": event.operation,
            },
        )

    def query(
        self,
        cache: str,
        operation: Optional[str] = None,
        key: Optional[str] = None,
        start_time: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[CacheEvent]:
        """Query recorded events for a cache.

        Args:
            cache: Cache name.
            operation: Filter by operation.
            key: Filter by item key.
            start_time: Include events at or after this time.
            limit: Maximum events to return.

        Returns:
            List of matching events (newest first).
        """
        with self._lock:
            events = list(self._events.get(cache, []))

        results: List[CacheEvent] = []
        for event in reversed(events):
            if operation and event.operation != operation:
                continue
            if key is not None and event.key != key:
                continue
            if start_time and event.timestamp < start_time:
                continue
            results.append(event)
            if len(results) >= limit:
                break
        return results

    def caches(self) -> List[str]:
        """Names of caches that have recorded at least one event."""
        with self._lock:
            return [name for name, events in self._events.items() if events]

    def forget(self, cache: str) -> int:
        """Drop the whole trail of *cache*.

        Returns:
            Number of events discarded.
        """
        with self._lock:
            events = self._events.pop(cache, [])
            self._trimmed.discard(cache)
        logger.debug(
            "Cache audit trail dropped",
            extra={"cache": cache, "count": len(events)},
        )
        return len(events)

    def export(
        self,
        cache: str,
        format: Literal["json", "csv"] = "json",
    ) -> bytes:
        """Export all recorded events for a cache.

        Args:
            cache: Cache name.
            format: Output format (``json`` or ``csv``).

        Returns:
            Serialised bytes in the requested format.
        """
        with self._lock:
            events = list(self._events.get(cache, []))

        if format == "json":
            data = [e.model_dump(mode="json") for e in events]
            return json.dumps(data, indent=2, default=str).encode("utf-8")

        buf = io.StringIO()
        fieldnames = list(CacheEvent.model_fields.keys())
        writer = csv.DictWriter(buf, fieldnames=fieldnames)
        writer.writeheader()
        for event in events:
            row = event.model_dump(mode="json")
            row["details"] = json.dumps(row["details"])
            writer.writerow(row)
        return buf.getvalue().encode("utf-8")

    def verify_integrity(self, cache: str) -> bool:
        """Verify the hash chain for a cache's trail.

        Recomputes each ``prev_hash`` and checks it matches the stored
        value.  When the oldest events were dropped by the memory cap,
        verification starts at the first retained event.

        Args:
            cache: Cache name.

        Returns:
            True if the chain is intact, False if tampered.
        """
        with self._lock:
            events = list(self._events.get(cache, []))
            trimmed = cache in self._trimmed

        if not events:
            return True

        if not trimmed and events[0].prev_hash is not None:
            return False

        for i in range(1, len(events)):
            expected = self._hash_event(events[i - 1])
            if events[i].prev_hash != expected:
                logger.warning(
                    "Cache audit chain integrity failure",
                    extra={
                        "cache": cache,
                        "entry_index": i,
                        "entry_id": events[i].entry_id,
                    },
                )
                return False
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _hash_event(event: CacheEvent) -> str:
        """Compute SHA-256 of an event (excluding prev_hash)."""
        data = event.model_dump(mode="json", exclude={"prev_hash"})
        canonical = json.dumps(data, sort_keys=True, default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
