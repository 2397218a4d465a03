"""Fixed-interval polling shared by every stage that waits on a remote job."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from services.errors import ProviderTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def poll_until(
    fetch: Callable[[], Awaitable[T | None]],
    *,
    interval: float,
    max_attempts: int,
    describe: str,
    timeout_error: type[ProviderTimeoutError] = ProviderTimeoutError,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await ``fetch()`` until it returns a value other than None.

    ``fetch`` raises to abort (e.g. the provider reported failure). After
    ``max_attempts`` unsuccessful attempts ``timeout_error`` is raised.
    """
    if max_attempts <= 0:
        raise ValueError("max_attempts must be positive")

    for attempt in range(1, max_attempts + 1):
        result = await fetch()
        if result is not None:
            return result
        logger.debug("[poll] %s not ready (attempt %d/%d)", describe, attempt, max_attempts)
        if attempt < max_attempts:
            await sleep(interval)

    raise timeout_error(f"{describe} timed out after {max_attempts} attempts")
