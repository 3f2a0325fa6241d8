"""
Cleanup scheduler for chatcache.

Background sweep that reclaims expired items nobody reads again.  One
scheduler runs per cache, in its own daemon thread, calling
:meth:`CacheStore.sweep_expired` every ``check_interval_seconds``.
"""

import logging
import threading
from typing import Any, Dict, Optional

from chatcache.cache.store import CacheStore
from chatcache.exceptions import SchedulerError

logger = logging.getLogger(__name__)


class CleanupScheduler:
    """Periodically sweeps one cache for expired items.

    Args:
        store: The cache to sweep.
        interval_seconds: Time between sweeps; defaults to the store's
            ``check_interval_seconds``.
    """

    def __init__(
        self,
        store: CacheStore,
        interval_seconds: Optional[float] = None,
    ) -> None:
        self._store = store
        self._interval_s = (
            interval_seconds
            if interval_seconds is not None
            else store.options.check_interval_seconds
        )
        if self._interval_s <= 0:
            raise SchedulerError(
                f"Cleanup interval must be positive, got {self._interval_s}"
            )

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

        self._sweeps: int = 0
        self._items_removed: int = 0
        self._sweep_errors: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the sweep thread.

        Raises:
            SchedulerError: If the scheduler is already running.
        """
        with self._lock:
            if self.is_running:
                raise SchedulerError(
                    f"CleanupScheduler for '{self._store.name}' is already running"
                )

            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run_loop,
                name=f"chatcache-cleanup-{self._store.name}",
                daemon=True,
            )
            self._thread.start()
            logger.info(
                "CleanupScheduler started",
                extra={"cache": self._store.name, "interval_seconds": self._interval_s},
            )

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the sweep thread.  Safe to call more than once.

        Args:
            timeout: Maximum seconds to wait for the thread to finish.
        """
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()
            self._thread = None

        if thread is not threading.current_thread():
            thread.join(timeout=timeout)
        logger.info("CleanupScheduler stopped", extra={"cache": self._store.name})

    @property
    def is_running(self) -> bool:
        """Whether the sweep thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def run_once(self) -> int:
        """Sweep immediately, outside the timer.

        Returns:
            Number of items removed.
        """
        removed = self._store.sweep_expired()
        self._sweeps += 1
        self._items_removed += removed
        return removed

    def stats(self) -> Dict[str, Any]:
        """Return sweep counters and running state."""
        return {
            "cache": self._store.name,
            "running": self.is_running,
            "interval_seconds": self._interval_s,
            "sweeps": self._sweeps,
            "items_removed": self._items_removed,
            "sweep_errors": self._sweep_errors,
        }

    # ------------------------------------------------------------------
    # Internal loop
    # ------------------------------------------------------------------

    def _run_loop(self) -> None:
        # Event.wait returns True as soon as stop() is called
        while not self._stop_event.wait(self._interval_s):
            try:
                self.run_once()
            except Exception as exc:
                self._sweep_errors += 1
                logger.error(
                    "Cleanup sweep failed",
                    extra={"cache": self._store.name, "error": str(exc)},
                    exc_info=True,
                )
