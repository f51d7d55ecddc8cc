"""Operation queue — one import or land at a time per hub."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable


class OperationQueue:
    """FIFO admission with a concurrency of one.

    Each repo name has a single working copy that operations mutate in
    place, so two operations against the same hub must never overlap.
    ``asyncio.Lock`` wakes its waiters in arrival order, which gives
    submission-order execution. Results and exceptions are passed back to
    the caller untouched.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._pending = 0

    @property
    def pending(self) -> int:
        """Operations running or waiting for their turn."""
        return self._pending

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def run(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        self._pending += 1
        try:
            async with self._lock:
                return await fn(*args, **kwargs)
        finally:
            self._pending -= 1
