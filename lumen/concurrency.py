"""Small asyncio combinators used by the turn pipeline."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Coroutine, Iterable

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

# Strong references to fire-and-forget tasks; asyncio only keeps weak ones.
_background_tasks: set[asyncio.Task[Any]] = set()


async def race_with_timeout(
    coro: Coroutine[Any, Any, T],
    timeout: float,
    default: T,
) -> T:
    """Race *coro* against a timer without cancelling the loser.

    Returns the coroutine's result if it finishes within *timeout*
    seconds, otherwise *default*. A late coroutine keeps running in the
    background and its result is discarded, so its side effects (e.g.
    access-time refreshes) may still complete after this returns.
    ``asyncio.wait_for`` would cancel it instead.

    Exceptions raised by *coro* before the deadline are propagated.
    """
    task = spawn(coro)
    done, _ = await asyncio.wait({task}, timeout=timeout)
    if task in done:
        return task.result()
    logger.info("Race timed out after %.2fs; discarding late result", timeout)
    return default


async def gather_limited(
    items: Iterable[T],
    fn: Callable[[T], Awaitable[R]],
    limit: int = 3,
) -> list[R]:
    """Run ``fn(item)`` for every item with at most *limit* in flight.

    Results are returned in input order. Exceptions propagate like
    ``asyncio.gather``; callers that tolerate partial failure should
    catch inside *fn*.
    """
    semaphore = asyncio.Semaphore(limit)

    async def _run(item: T) -> R:
        async with semaphore:
            return await fn(item)

    return list(await asyncio.gather(*(_run(item) for item in items)))


def spawn(coro: Coroutine[Any, Any, T], *, name: str | None = None) -> asyncio.Task[T]:
    """Schedule *coro* as a task that outlives its caller.

    Failures are logged when the task finishes, never raised.
    """
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_background_done)
    return task


def _on_background_done(task: asyncio.Task[Any]) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background task %s failed", task.get_name(), exc_info=exc)


def pending_background_tasks() -> int:
    """Number of fire-and-forget tasks still running."""
    return len(_background_tasks)
