"""Append-only output sinks for crawl records."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence

    from hotel_scanner_core.schemas import CamelModel

logger = logging.getLogger(__name__)


class Dataset(Protocol):
    async def push_data(self, items: Sequence[CamelModel]) -> None: ...

    async def close(self) -> None: ...


class MemoryDataset:
    """Keeps serialized records in a list; used by tests and dry runs."""

    def __init__(self) -> None:
        self.items: list[dict[str, Any]] = []

    async def push_data(self, items: Sequence[CamelModel]) -> None:
        self.items.extend(item.to_output() for item in items)

    async def close(self) -> None:
        """Nothing to release."""


class JsonLinesDataset:
    """One JSON object per line, appended under a lock."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _append(self, lines: list[str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as fh:
            fh.writelines(line + "\n" for line in lines)

    async def push_data(self, items: Sequence[CamelModel]) -> None:
        if not items:
            return
        lines = [json.dumps(item.to_output(), ensure_ascii=False) for item in items]
        async with self._lock:
            await asyncio.to_thread(self._append, lines)
        logger.debug("Appended %d records to %s", len(lines), self._path)

    async def close(self) -> None:
        """Nothing to release."""
