"""Timing decorator shared by the services and the CLI."""
import inspect
import functools
import logging
import time
from typing import Any, Callable, Optional, TypeVar, cast

# Setup logging
logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])

SLOW_CALL_SECONDS = 5.0


def _report(name: str, started: float, error: Optional[BaseException], slow_after: float) -> None:
    duration = time.monotonic() - started
    if error is not None:
        logger.error(f"{name} failed after {duration:.2f}s: {error}")
    elif duration >= slow_after:
        logger.warning(f"{name} completed in {duration:.2f}s (slow)")
    else:
        logger.info(f"{name} completed in {duration:.2f}s")


def log_execution_time(func: Optional[F] = None, *, slow_after: float = SLOW_CALL_SECONDS):
    """Log how long a function or coroutine function took.

    Works bare (``@log_execution_time``) or with a threshold
    (``@log_execution_time(slow_after=1.0)``). Calls at or above the threshold
    are logged as warnings, failures as errors; the exception is re-raised.
    """
    def decorate(fn: F) -> F:
        name = fn.__qualname__

        if inspect.iscoroutinefunction(fn):
            @functools.wraps(fn)
            async def async_wrapper(*args, **kwargs):
                started = time.monotonic()
                try:
                    result = await fn(*args, **kwargs)
                except Exception as e:
                    _report(name, started, e, slow_after)
                    raise
                _report(name, started, None, slow_after)
                return result
            return cast(F, async_wrapper)

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            started = time.monotonic()
            try:
                result = fn(*args, **kwargs)
            except Exception as e:
                _report(name, started, e, slow_after)
                raise
            _report(name, started, None, slow_after)
            return result
        return cast(F, wrapper)

    if func is not None:
        return decorate(func)
    return decorate
