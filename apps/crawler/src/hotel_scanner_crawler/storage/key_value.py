"""Key-value stores used to persist crawl state between runs."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Protocol

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    async def get_value(self, key: str) -> Any | None: ...

    async def set_value(self, key: str, value: Any) -> None: ...

    async def close(self) -> None: ...


class FileKeyValueStore:
    """One JSON document per key inside a directory."""

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)

    def _path(self, key: str) -> Path:
        return self._dir / f"{key}.json"

    def _read(self, path: Path) -> Any | None:
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def _write(self, path: Path, value: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(value, ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)

    async def get_value(self, key: str) -> Any | None:
        return await asyncio.to_thread(self._read, self._path(key))

    async def set_value(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._write, self._path(key), value)
        logger.debug("Stored %s in %s", key, self._dir)

    async def close(self) -> None:
        """Nothing to release."""


class RedisKeyValueStore:
    """JSON values under a namespaced Redis key."""

    def __init__(self, redis_url: str, namespace: str = "default") -> None:
        self._redis = aioredis.from_url(redis_url)
        self._prefix = f"kv:{namespace}:"

    async def get_value(self, key: str) -> Any | None:
        raw = await self._redis.get(self._prefix + key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set_value(self, key: str, value: Any) -> None:
        await self._redis.set(self._prefix + key, json.dumps(value, ensure_ascii=False))

    async def close(self) -> None:
        await self._redis.aclose()
