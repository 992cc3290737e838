"""Deduplicated FIFO request queues (in-memory and Redis-backed)."""

from __future__ import annotations

import logging
from collections import deque
from typing import Protocol

import redis.asyncio as aioredis

from hotel_scanner_core.schemas import FetchRequest

logger = logging.getLogger(__name__)


class RequestQueue(Protocol):
    """The only queue operations the crawl core depends on."""

    async def add_request(self, request: FetchRequest) -> bool:
        """Enqueue *request*; no-op returning False if its unique key is known."""

    async def consume(self) -> FetchRequest | None:
        """Pop the oldest pending request, or None when nothing is pending."""

    async def is_empty(self) -> bool: ...

    async def close(self) -> None: ...


class MemoryRequestQueue:
    """Process-local queue; dedup memory lasts for the queue's lifetime."""

    def __init__(self) -> None:
        self._pending: deque[FetchRequest] = deque()
        self._seen: set[str] = set()

    async def add_request(self, request: FetchRequest) -> bool:
        if request.unique_key in self._seen:
            return False
        self._seen.add(request.unique_key)
        self._pending.append(request)
        return True

    async def consume(self) -> FetchRequest | None:
        if not self._pending:
            return None
        return self._pending.popleft()

    async def is_empty(self) -> bool:
        return not self._pending

    def pending(self) -> list[FetchRequest]:
        """Snapshot of queued requests, oldest first."""
        return list(self._pending)

    async def close(self) -> None:
        """Nothing to release."""


class RedisRequestQueue:
    """Durable queue: a Redis set of seen keys plus a Redis list of payloads."""

    def __init__(self, redis_url: str, name: str = "default") -> None:
        self._redis = aioredis.from_url(redis_url)
        self._keys = f"request_queue:{name}:keys"
        self._pending = f"request_queue:{name}:pending"

    async def add_request(self, request: FetchRequest) -> bool:
        # SADD is atomic, so two workers racing on one key enqueue it once.
        added = await self._redis.sadd(self._keys, request.unique_key)
        if not added:
            return False
        await self._redis.rpush(self._pending, request.model_dump_json(by_alias=True))
        return True

    async def consume(self) -> FetchRequest | None:
        raw = await self._redis.lpop(self._pending)
        if raw is None:
            return None
        return FetchRequest.model_validate_json(raw)

    async def is_empty(self) -> bool:
        return await self._redis.llen(self._pending) == 0

    async def close(self) -> None:
        await self._redis.aclose()
