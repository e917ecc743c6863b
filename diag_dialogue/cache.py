"""Thread-safe in-memory TTL cache.

Backs both the conversation store (24h idle TTL) and the decoded-VIN
cache.  A background asyncio task can sweep expired entries every 10 min.
"""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar

_DEFAULT_TTL_SECONDS: int = 86_400        # 24 hours
_DEFAULT_MAX_SIZE: int = 500
_SWEEP_INTERVAL_SECONDS: float = 600.0    # 10 minutes

V = TypeVar("V")


class TTLCache(Generic[V]):
    """TTL + max-size cache keyed by string."""

    def __init__(
        self,
        ttl_seconds: float = _DEFAULT_TTL_SECONDS,
        max_size: int = _DEFAULT_MAX_SIZE,
        sweep_interval_seconds: float = _SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_size = max_size
        self._sweep_interval = sweep_interval_seconds
        self._lock = threading.Lock()
        self._store: Dict[str, Tuple[float, V]] = {}  # key → (expire_ts, value)
        self._cleanup_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def put(self, key: str, value: V) -> Optional[str]:
        """Insert or overwrite *key*, refreshing its TTL.

        If the cache is at capacity, the entry closest to expiry is
        evicted and its key returned.
        """
        expire_at = time.monotonic() + self._ttl
        evicted: Optional[str] = None
        with self._lock:
            if key not in self._store and len(self._store) >= self._max_size:
                evicted = min(self._store, key=lambda k: self._store[k][0])
                del self._store[evicted]
            self._store[key] = (expire_at, value)
        return evicted

    def get(self, key: str) -> Optional[V]:
        """Return the cached value or *None* (lazy-evicts if expired)."""
        with self._lock:
            item = self._store.get(key)
            if item is None:
                return None
            expire_at, value = item
            if time.monotonic() > expire_at:
                del self._store[key]
                return None
            return value

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep_expired(self) -> int:
        """Bulk-remove expired entries.  Returns count removed."""
        now = time.monotonic()
        with self._lock:
            expired = [k for k, (exp, _) in self._store.items() if now > exp]
            for k in expired:
                del self._store[k]
        return len(expired)

    async def start_cleanup_loop(self, sweep: Optional[Callable[[], int]] = None) -> None:
        """Start an asyncio background task that sweeps periodically.

        *sweep* replaces :meth:`sweep_expired` for owners that keep
        per-key state of their own next to the cache.
        """
        if self._cleanup_task is not None:
            return
        sweep = sweep or self.sweep_expired

        async def _loop() -> None:
            while True:
                await asyncio.sleep(self._sweep_interval)
                sweep()

        self._cleanup_task = asyncio.create_task(_loop())

    async def stop_cleanup_loop(self) -> None:
        """Cancel the background cleanup task."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

    # ------------------------------------------------------------------
    # Utility
    # ------------------------------------------------------------------

    def size(self) -> int:
        with self._lock:
            return len(self._store)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
