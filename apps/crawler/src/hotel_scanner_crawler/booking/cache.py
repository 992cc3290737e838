"""In-process response cache with origin-driven TTL."""

from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

_MAX_AGE = re.compile(r"max-age=(\d+)", re.IGNORECASE)


def parse_max_age(cache_control: str | None) -> int:
    """Seconds from a ``Cache-Control`` header's ``max-age``, 0 if absent."""
    if not cache_control:
        return 0
    match = _MAX_AGE.search(cache_control)
    return int(match.group(1)) if match else 0


@dataclass(frozen=True)
class CacheEntry:
    """A stored response, served only while ``now < expires_at``."""

    status: int
    headers: dict[str, str]
    body: bytes
    expires_at: float

    @classmethod
    def from_response(
        cls,
        status: int,
        headers: Mapping[str, str],
        body: bytes,
        now: float,
    ) -> CacheEntry | None:
        """Build an entry if the response declared a positive max-age."""
        max_age = parse_max_age(headers.get("cache-control"))
        if max_age <= 0:
            return None
        return cls(status=status, headers=dict(headers), body=body, expires_at=now + max_age)


@dataclass
class ResponseCache:
    """URL-keyed response store with lazy expiry.

    ``put`` is a no-op when caching is disabled or the entry is already
    expired. One lock guards the map so concurrent workers never observe a
    half-written entry.
    """

    enabled: bool = False
    clock: Callable[[], float] = time.time
    _entries: dict[str, CacheEntry] = field(default_factory=dict, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def now(self) -> float:
        return self.clock()

    async def get(self, url: str) -> CacheEntry | None:
        async with self._lock:
            entry = self._entries.get(url)
            if entry is None:
                return None
            if self.clock() >= entry.expires_at:
                del self._entries[url]
                return None
            return entry

    async def put(self, url: str, entry: CacheEntry) -> None:
        if not self.enabled:
            return
        async with self._lock:
            if self.clock() >= entry.expires_at:
                return
            self._entries[url] = entry

    def __len__(self) -> int:
        return len(self._entries)
