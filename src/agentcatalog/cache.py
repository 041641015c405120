"""In-memory TTL cache with a background expiry sweep.

``TTLCache`` is generic over its value type so the catalog cache and the
per-item metadata cache are distinct, statically typed instances. Lookups
never raise: a miss and an expired entry are both reported as ``None``.

Locking uses a reader/writer discipline built on ``threading.Condition``:
many concurrent readers, one exclusive writer. Eager eviction in ``get`` and
the periodic sweep both take the writer side, so a reader never observes a
half-evicted store. No critical section awaits, which makes the same lock
safe for coroutines sharing one event loop and for worker threads.

The sweep runs as an asyncio task owned by the cache. ``start()`` launches
it and ``aclose()`` cancels and awaits it, so nothing is left running after
shutdown.
"""

from __future__ import annotations

import asyncio
import contextlib
import threading
import time
from collections.abc import Callable, Hashable, Iterator
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog

log = structlog.get_logger()

V = TypeVar("V")


class _ReadWriteLock:
    """Many readers or one writer. Waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextlib.contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextlib.contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass(slots=True)
class _CacheEntry(Generic[V]):
    value: V
    expires_at: float  # Absolute instant on the cache's clock


class TTLCache(Generic[V]):
    """Thread-safe key/value store where TTL is the only eviction trigger."""

    def __init__(
        self,
        *,
        name: str = "cache",
        sweep_interval: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if sweep_interval <= 0:
            raise ValueError("sweep_interval must be positive")
        self.name = name
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._items: dict[Hashable, _CacheEntry[V]] = {}
        self._lock = _ReadWriteLock()
        self._sweeper: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Key/value operations
    # ------------------------------------------------------------------

    def get(self, key: Hashable) -> V | None:
        """Return the live value for *key*, or ``None`` if absent or expired."""
        with self._lock.read():
            entry = self._items.get(key)
            if entry is None:
                return None
            if self._clock() < entry.expires_at:
                return entry.value

        # Expired: evict under the write lock. Re-check, a writer may have
        # refreshed the key between the two critical sections.
        with self._lock.write():
            entry = self._items.get(key)
            if entry is None:
                return None
            if self._clock() < entry.expires_at:
                return entry.value
            del self._items[key]
        return None

    def set(self, key: Hashable, value: V, ttl: float) -> None:
        """Store *value* under *key* for *ttl* seconds, replacing any previous entry."""
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        with self._lock.write():
            self._items[key] = _CacheEntry(value=value, expires_at=self._clock() + ttl)

    def delete(self, key: Hashable) -> None:
        with self._lock.write():
            self._items.pop(key, None)

    def clear(self) -> None:
        with self._lock.write():
            self._items = {}

    def __len__(self) -> int:
        """Number of stored entries, including expired ones not yet evicted."""
        with self._lock.read():
            return len(self._items)

    # ------------------------------------------------------------------
    # Expiry sweep
    # ------------------------------------------------------------------

    def sweep(self) -> int:
        """Evict every expired entry. Returns the number evicted."""
        with self._lock.write():
            now = self._clock()
            expired = [key for key, entry in self._items.items() if now >= entry.expires_at]
            for key in expired:
                del self._items[key]
            remaining = len(self._items)
        if expired:
            log.debug(
                "cache_sweep_complete",
                cache=self.name,
                evicted=len(expired),
                remaining=remaining,
            )
        return len(expired)

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start(self) -> None:
        """Launch the periodic sweep on the running event loop. Idempotent."""
        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._sweeper = loop.create_task(self._sweep_loop(), name=f"{self.name}-sweeper")

    async def aclose(self) -> None:
        """Stop the periodic sweep and wait for it to finish."""
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()

    async def __aenter__(self) -> TTLCache[V]:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
