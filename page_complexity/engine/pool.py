"""Bounded worker pool with replace-and-drain reconfiguration.

The pool belongs to the engine's lifecycle rather than to a run: it is
created for the configured worker count, replaced when the count
changes, and drained on shutdown.  Replacement never interrupts work:
the old executor stops accepting submissions and finishes what it
already holds while new runs go to the new executor.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

logger = logging.getLogger(__name__)


class WorkerPool:
    """Fixed-size thread pool."""

    def __init__(self, size: int, *, name: str = "page-complexity") -> None:
        if size < 1:
            msg = f"Worker pool size must be >= 1, got {size}"
            raise ValueError(msg)
        self.size = size
        self.name = name
        self._executor = ThreadPoolExecutor(max_workers=size, thread_name_prefix=name)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        if self._closed:
            raise RuntimeError(f"Worker pool {self.name} no longer accepts work")
        return self._executor.submit(fn, *args, **kwargs)

    def shutdown(self, *, wait: bool = True) -> None:
        """Stop accepting work; queued and running tasks still complete."""
        self._closed = True
        self._executor.shutdown(wait=wait, cancel_futures=False)


class PoolHolder:
    """Owns the current :class:`WorkerPool` and swaps it safely."""

    def __init__(self, name: str = "page-complexity") -> None:
        self._lock = threading.Lock()
        self._pool: WorkerPool | None = None
        self._name = name

    def get(self, size: int) -> WorkerPool:
        """Return a pool of ``size`` workers, replacing one of another size."""
        with self._lock:
            if self._pool is not None and self._pool.size == size:
                return self._pool
            pool = WorkerPool(size, name=self._name)
            old, self._pool = self._pool, pool
        if old is not None:
            logger.info(
                "Replacing worker pool (%d → %d workers); old pool drains in place",
                old.size,
                size,
            )
            old.shutdown(wait=False)
        else:
            logger.debug("Created worker pool with %d workers", size)
        return pool

    @property
    def current(self) -> WorkerPool | None:
        return self._pool

    def shutdown(self, *, wait: bool = True) -> None:
        with self._lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            logger.info("Draining worker pool (%d workers)", pool.size)
            pool.shutdown(wait=wait)
