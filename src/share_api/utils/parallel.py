"""
Fan-out/fan-in helpers for running blocking store calls concurrently.

``run_io`` moves one blocking adapter call onto a worker thread under a
timeout. ``gather_outcomes`` starts every awaitable before awaiting any of
them and reports each result or error in submission order; a failing task
never cancels its siblings.

A timed-out call keeps running on its thread. ``IOTimeoutError.pending``
holds that call so a caller can ``settle`` it and learn whether the write
landed before cleaning up after it.
"""

import asyncio
import contextvars
import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_IO_TIMEOUT = 10.0


class IOTimeoutError(TimeoutError):
    """A blocking call outlived its timeout; ``pending`` completes when the thread returns."""

    def __init__(self, message: str, pending: "asyncio.Future[Any]"):
        super().__init__(message)
        self.pending = pending


@dataclass
class Outcome(Generic[T]):
    """Result of one fanned-out task: exactly one of value or error is meaningful."""
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _consume_result(future: "asyncio.Future[Any]") -> None:
    # Nobody may await an abandoned call; retrieve its error so asyncio does not warn.
    if not future.cancelled():
        future.exception()


async def run_io(func: Callable[..., T], *args: Any, timeout: float = DEFAULT_IO_TIMEOUT, **kwargs: Any) -> T:
    """Run a blocking call in a thread, raising IOTimeoutError after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    call = functools.partial(contextvars.copy_context().run, func, *args, **kwargs)
    future = loop.run_in_executor(None, call)
    future.add_done_callback(_consume_result)
    try:
        return await asyncio.wait_for(asyncio.shield(future), timeout=timeout)
    except asyncio.TimeoutError:
        if future.done():
            return future.result()
        name = getattr(func, "__qualname__", repr(func))
        raise IOTimeoutError(f"{name} timed out after {timeout}s", future) from None


async def settle(error: Optional[BaseException], timeout: float) -> Optional[bool]:
    """
    Decide whether a call that produced ``error`` actually took effect.

    Returns True when it did (``error`` is None, or a timed-out call later
    finished cleanly), False when it did not, and None when a timed-out call
    is still running after waiting ``timeout`` more seconds.
    """
    if error is None:
        return True
    if not isinstance(error, IOTimeoutError):
        return False
    pending = error.pending
    try:
        await asyncio.wait_for(asyncio.shield(pending), timeout=timeout)
    except Exception:
        if not pending.done():
            return None
    if pending.cancelled():
        return False
    return pending.exception() is None


async def gather_outcomes(*awaitables: Awaitable[T]) -> List[Outcome[T]]:
    """Await all awaitables concurrently and collect one Outcome per input, in order."""
    results = await asyncio.gather(*awaitables, return_exceptions=True)
    outcomes: List[Outcome[T]] = []
    for result in results:
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            outcomes.append(Outcome(error=result))
        else:
            outcomes.append(Outcome(value=result))
    return outcomes
