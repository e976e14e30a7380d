"""
Retry decorator for flaky operations (storage writes, remote calls).

Works on plain and async functions. Only exceptions listed in retry_on
are retried; anything else propagates on the first attempt.

Usage:
    @retry(max_attempts=3, delay=1.0, retry_on=(TransientStorageError,))
    async def write_batch(rows): ...
"""

import asyncio
import functools
import inspect
import time
from typing import Callable, Optional
import structlog

logger = structlog.get_logger(__name__)


def _delay_for(attempt: int, delay: float, backoff: float) -> float:
    # attempt is 1-based; first wait uses the base delay
    return delay * (backoff ** (attempt - 1))


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
):
    """
    Build a retry decorator.

    Args:
        max_attempts: Total attempts including the first call
        delay: Seconds to wait after the first failure
        backoff: Multiplier applied to the delay per attempt (1.0 = fixed)
        retry_on: Exception types that trigger another attempt
        on_retry: Called with (attempt, error) before each wait

    Returns:
        Decorator preserving the wrapped function's sync/async nature
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def decorator(func):
        name = getattr(func, "__qualname__", repr(func))

        def _before_wait(attempt: int, error: BaseException) -> float:
            wait = _delay_for(attempt, delay, backoff)
            logger.warning(
                "retrying_operation",
                operation=name,
                attempt=attempt,
                max_attempts=max_attempts,
                wait_seconds=wait,
                error=str(error),
                error_type=type(error).__name__
            )
            if on_retry is not None:
                on_retry(attempt, error)
            return wait

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                for attempt in range(1, max_attempts + 1):
                    try:
                        return await func(*args, **kwargs)
                    except retry_on as e:
                        if attempt == max_attempts:
                            logger.error(
                                "retry_exhausted",
                                operation=name,
                                attempts=attempt,
                                error=str(e)
                            )
                            raise
                        await asyncio.sleep(_before_wait(attempt, e))
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    if attempt == max_attempts:
                        logger.error(
                            "retry_exhausted",
                            operation=name,
                            attempts=attempt,
                            error=str(e)
                        )
                        raise
                    time.sleep(_before_wait(attempt, e))
        return sync_wrapper

    return decorator
