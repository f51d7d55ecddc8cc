"""Concurrent joins for fanning one phase out over several repos.

Land applies its patch with :func:`run_fail_fast` (one failure aborts the
phase before anything is committed) and commits/pushes with
:func:`run_settled` (each repo's outcome is independent and collected).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Iterable


@dataclass
class Outcome:
    """Result of one awaited operation: a value or the error it raised."""

    value: Any = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_fail_fast(aws: Iterable[Awaitable]) -> list:
    """Run concurrently and return results in input order.

    On the first failure the remaining operations are cancelled and awaited,
    then that failure is re-raised.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not tasks:
        return []

    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        await _cancel_and_settle(tasks)
        raise

    failed = [t for t in tasks if t.done() and not t.cancelled() and t.exception() is not None]
    if not failed:
        return [t.result() for t in tasks]

    await _cancel_and_settle([t for t in tasks if not t.done()])
    raise failed[0].exception()


async def run_settled(aws: Iterable[Awaitable]) -> list[Outcome]:
    """Run concurrently, wait for every one, and return an :class:`Outcome` per input."""
    results = await asyncio.gather(*aws, return_exceptions=True)
    return [
        Outcome(error=result) if isinstance(result, BaseException) else Outcome(value=result)
        for result in results
    ]


async def _cancel_and_settle(tasks: list[asyncio.Future]) -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
