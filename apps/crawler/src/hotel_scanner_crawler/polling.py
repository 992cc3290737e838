"""Bounded polling for content that renders after page load."""

from __future__ import annotations

import asyncio
import inspect
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")


async def poll_until(
    predicate: Callable[[], T | None | Awaitable[T | None]],
    interval: float,
    max_attempts: int,
) -> T | None:
    """Call *predicate* until it returns something other than None.

    Sleeps *interval* seconds between attempts and gives up after
    *max_attempts* calls, returning None. The predicate may be a plain or an
    async callable.
    """
    for attempt in range(max_attempts):
        result = predicate()
        if inspect.isawaitable(result):
            result = await result
        if result is not None:
            return result
        if attempt < max_attempts - 1:
            await asyncio.sleep(interval)
    return None
