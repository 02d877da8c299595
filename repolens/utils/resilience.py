import asyncio
import random
import logging
from functools import wraps
from typing import Optional, Tuple, Type

logger = logging.getLogger(__name__)


def backoff_delay(attempt: int, backoff_in_seconds: float) -> float:
    """Exponential delay with up to one second of jitter."""
    return (backoff_in_seconds * 2 ** attempt) + random.uniform(0, 1)


def async_retry_with_backoff(
    retries: int = 3,
    backoff_in_seconds: float = 1,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
):
    """
    Exponential backoff decorator for async LLM/API calls.
    Only exceptions listed in `retry_on` are retried; anything else
    propagates on the first failure.
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            x = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    if x >= retries:
                        logger.error(f"❌ Failed after {retries} retries: {e}")
                        raise
                    sleep = backoff_delay(x, backoff_in_seconds)
                    logger.warning(f"⚠️ Error: {e}. Retrying in {sleep:.2f}s...")
                    await asyncio.sleep(sleep)
                    x += 1
        return wrapper
    return decorator


async def with_timeout(awaitable, timeout_s: Optional[float]):
    """Awaits under a deadline. `None` disables it; expiry raises asyncio.TimeoutError."""
    return await asyncio.wait_for(awaitable, timeout_s)


async def call_with_fallback(awaitable, timeout_s: Optional[float], fallback, label: str):
    """
    Awaits under a deadline and returns `fallback` on any failure, timeouts
    included. Cancellation still propagates.
    """
    try:
        return await with_timeout(awaitable, timeout_s)
    except Exception as e:
        logger.warning(f"⚠️ {label} failed: {e!r}")
        return fallback
