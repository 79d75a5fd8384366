"""
Marginalia - Save Coalescing

Rapid successive edits must not race on write order, and the last committed
state must always reach storage. SaveCoalescer keeps a single writer task:
``request()`` only marks the state dirty, and the writer keeps saving the
latest state until nothing new was requested during the last write.
"""
from __future__ import annotations

import asyncio
from typing import Callable, Optional

from core.errors import PersistenceError
from observability.logging import get_logger
from persistence.backends import Document, StorageBackend

logger = get_logger(__name__)


class SaveCoalescer:
    """
    Coalesce save requests into as few writes as possible.

    Guarantees:
        - at most one write in flight
        - the document is built at write time from ``source``, so every
          write carries the latest committed state
        - after ``flush()`` returns, the backend holds the state as of the
          last ``request()``

    Usage:
        saver = SaveCoalescer(backend, source=session.state_document)
        store.subscribe(lambda result, snapshot: saver.request())
        ...
        await saver.flush()
    """

    def __init__(
        self,
        backend: StorageBackend,
        source: Callable[[], Document],
        debounce_seconds: float = 0.0,
    ):
        if debounce_seconds < 0:
            raise ValueError("debounce_seconds cannot be negative")
        self.backend = backend
        self._source = source
        self.debounce_seconds = debounce_seconds
        self._dirty = False
        self._task: Optional[asyncio.Task] = None
        self._error: Optional[PersistenceError] = None
        self.requests = 0
        self.writes = 0

    @property
    def pending(self) -> bool:
        """True while a requested state has not been written yet."""
        return self._dirty or self._task is not None

    def request(self) -> None:
        """
        Ask for the current state to be saved.

        Called from inside an event loop, a writer task starts if none is
        running. Called from synchronous code, the request waits for the
        next ``flush()``.
        """
        self.requests += 1
        self._dirty = True
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self._start()

    def _start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        try:
            while self._dirty:
                if self.debounce_seconds:
                    await asyncio.sleep(self.debounce_seconds)
                self._dirty = False
                document = self._source()
                try:
                    await self.backend.write(document)
                except PersistenceError as e:
                    self._dirty = True
                    self._error = e
                    logger.error("State save failed", error=e.message, requests=self.requests)
                    return
                self._error = None
                self.writes += 1
                logger.debug("State saved", writes=self.writes, requests=self.requests)
        finally:
            self._task = None

    async def flush(self) -> None:
        """
        Wait until the last requested state is written.

        Raises:
            PersistenceError: the most recent write failed; the state stays
                dirty and the next request or flush retries it
        """
        while True:
            if self._task is not None:
                await self._task
            if self._error is not None:
                error, self._error = self._error, None
                raise error
            if not self._dirty:
                return
            self._start()
