"""Async utilities for safe task management and bounded fan-out."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, Iterable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def create_safe_task(
    coro: Coroutine[Any, Any, T],
    *,
    name: str | None = None,
    on_error: Callable[[BaseException], None] | None = None,
    suppress_cancelled: bool = True,
) -> asyncio.Task[T]:
    """Create an asyncio task whose failure is always logged.

    Args:
        coro: The coroutine to run as a task
        name: Optional name for the task (for logging)
        on_error: Optional callback for exception handling
        suppress_cancelled: If True, don't log CancelledError

    Returns:
        The created task
    """
    task = asyncio.create_task(coro, name=name)

    def handle_exception(t: asyncio.Task) -> None:
        if t.cancelled():
            if not suppress_cancelled:
                logger.debug(f"Task {name or 'unnamed'} was cancelled")
            return

        exc = t.exception()
        if exc is None:
            return

        logger.error(
            f"Task {name or 'unnamed'} failed with {type(exc).__name__}: {exc}",
            exc_info=exc,
        )

        if on_error:
            try:
                on_error(exc)
            except Exception as handler_exc:
                logger.error(f"Error handler for task {name} also failed: {handler_exc}")

    task.add_done_callback(handle_exception)
    return task


async def cancel_task_safe(task: asyncio.Task | None, timeout: float = 5.0) -> bool:
    """Cancel a task and wait (bounded) for it to unwind.

    Returns:
        True if the task is finished afterwards, False on timeout
    """
    if task is None or task.done():
        return True

    task.cancel()

    try:
        await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
    except asyncio.CancelledError:
        return True
    except asyncio.TimeoutError:
        logger.warning(f"Task cancellation timed out after {timeout}s")
        return False
    except Exception as e:
        logger.debug(f"Task raised exception during cancellation: {e}")
        return True

    return task.done()


async def gather_bounded(
    semaphore: asyncio.Semaphore,
    factories: Iterable[Callable[[], Awaitable[T]]],
) -> list[T | BaseException]:
    """Run awaitables concurrently, at most ``semaphore`` at a time.

    Results come back in input order; exceptions are returned in place of
    results so one failed read never cancels its siblings.
    """

    async def run(factory: Callable[[], Awaitable[T]]) -> T:
        async with semaphore:
            return await factory()

    return await asyncio.gather(
        *(run(factory) for factory in factories),
        return_exceptions=True,
    )
