"""Async retry with exponential backoff."""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Tuple, Type

logger = logging.getLogger(__name__)


async def async_retry(
    func: Callable[..., Awaitable[Any]],
    *args: Any,
    retries: int = 3,
    backoff: float = 1.0,
    jitter: float = 0.1,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    **kwargs: Any,
) -> Any:
    """Await ``func(*args, **kwargs)``, retrying on ``exceptions``.

    ``retries`` counts attempts after the first one. The delay doubles after
    each failure, starting at ``backoff`` seconds. The last exception is
    re-raised once retries are exhausted; anything not in ``exceptions``
    propagates immediately.
    """
    delay = backoff
    attempt = 0
    while True:
        try:
            return await func(*args, **kwargs)
        except exceptions as e:
            attempt += 1
            if attempt > retries:
                raise
            retry_after = getattr(e, "retry_after", None)
            sleep_for = max(delay, retry_after or 0) + random.random() * jitter
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                getattr(func, "__name__", "call"), attempt, retries + 1, e, sleep_for,
            )
            await asyncio.sleep(sleep_for)
            delay *= 2
