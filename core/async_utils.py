"""
Marginalia - Async Utilities

Cancellation and cooperative-scheduling helpers for the long operations
(corpus-wide search, bulk import) that run inside asynchronous UI handlers:
- Cancel scopes for prompt, graceful cancellation
- Cooperative iteration that yields to the event loop
"""

from __future__ import annotations

import asyncio
from typing import (
    AsyncIterator,
    Iterable,
    Optional,
    TypeVar,
)

from core.errors import OperationCancelledError

T = TypeVar("T")


class CancelScope:
    """
    Cancellation scope for structured cancellation.

    The scope is a plain flag, so it works for synchronous generators
    (search) and synchronous batch loops (import) as well as coroutines.

    Usage:
        scope = CancelScope()

        for match in engine.search("light", cancel=scope):
            if enough(match):
                scope.cancel()
    """

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Request cancellation."""
        self._cancelled = True

    def check(self, operation: str = "operation") -> None:
        """Check for cancellation and raise if cancelled."""
        if self._cancelled:
            raise OperationCancelledError(operation)


async def iterate_cooperatively(
    items: Iterable[T],
    scope: Optional[CancelScope] = None,
    yield_every: int = 50,
) -> AsyncIterator[T]:
    """
    Drive a synchronous iterable from a coroutine without starving the loop.

    Control returns to the event loop every ``yield_every`` items, and a
    cancelled scope stops iteration before the next item is produced.

    Usage:
        async for match in iterate_cooperatively(engine.search(q), scope):
            ...
    """
    if yield_every < 1:
        raise ValueError("yield_every must be positive")

    for count, item in enumerate(items, start=1):
        if scope is not None and scope.cancelled:
            return
        yield item
        if count % yield_every == 0:
            await asyncio.sleep(0)
