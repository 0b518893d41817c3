"""
Helper utilities for stepgraph.

Contains common utility functions used across the application.
"""

import asyncio
import inspect
from functools import wraps
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

T = TypeVar("T")


def async_retry(
    max_retries: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,)
) -> Callable:
    """
    Decorator for async functions with retry logic.

    Args:
        max_retries: Maximum number of retry attempts
        delay: Initial delay between retries in seconds
        backoff: Multiplier for delay after each retry
        exceptions: Tuple of exceptions to catch and retry

    Returns:
        Decorated function with retry logic
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            current_delay = delay
            last_exception = None

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt < max_retries:
                        await asyncio.sleep(current_delay)
                        current_delay *= backoff

            raise last_exception

        return wrapper
    return decorator


async def gather_with_concurrency(
    tasks: Sequence[Callable[[], Awaitable[T]]],
    max_concurrent: Optional[int] = None
) -> List[T]:
    """
    Execute async callables concurrently, failing fast.

    Results are returned in the order of ``tasks``. When any callable raises,
    the remaining ones are cancelled and the first exception is re-raised.

    Args:
        tasks: List of zero-argument async callables
        max_concurrent: Maximum concurrent tasks (None = unbounded)

    Returns:
        List of results
    """
    semaphore = asyncio.Semaphore(max_concurrent) if max_concurrent else None

    async def limited_task(task):
        if semaphore is None:
            return await task()
        async with semaphore:
            return await task()

    running = [asyncio.ensure_future(limited_task(t)) for t in tasks]
    try:
        return await asyncio.gather(*running)
    except BaseException:
        for future in running:
            if not future.done():
                future.cancel()
        # Let cancelled siblings unwind before propagating
        await asyncio.gather(*running, return_exceptions=True)
        raise


def is_async_callable(fn: Any) -> bool:
    """True for coroutine functions, async bound methods and async __call__."""
    if inspect.iscoroutinefunction(fn):
        return True
    call = getattr(fn, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)


async def call_maybe_async(fn: Callable[..., Any], *args: Any) -> Any:
    """
    Call ``fn`` without blocking the event loop.

    Coroutine functions are awaited directly; plain callables run in a
    worker thread. An awaitable returned by a plain callable is awaited too.
    """
    if is_async_callable(fn):
        return await fn(*args)
    result = await asyncio.to_thread(fn, *args)
    if inspect.isawaitable(result):
        return await result
    return result


def truncate_text(text: str, max_length: int = 500, suffix: str = "...") -> str:
    """
    Truncate text to maximum length, preserving word boundaries.

    Args:
        text: Text to truncate
        max_length: Maximum length
        suffix: Suffix to append if truncated

    Returns:
        Truncated text string
    """
    if len(text) <= max_length:
        return text

    truncated = text[:max_length - len(suffix)]

    # Find last space to avoid cutting words
    last_space = truncated.rfind(" ")
    if last_space > max_length // 2:
        truncated = truncated[:last_space]

    return truncated + suffix


def preview(value: Any, max_length: int = 120) -> str:
    """Short single-line rendering of a value for log messages."""
    text = " ".join(str(value).split())
    return truncate_text(text, max_length=max_length)
