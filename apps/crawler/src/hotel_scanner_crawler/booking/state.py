"""Crawl-State dedup memory and the migration signal that flushes it."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import TYPE_CHECKING, Any

from hotel_scanner_core.schemas import CrawlState

if TYPE_CHECKING:
    from ..storage.key_value import KeyValueStore

logger = logging.getLogger(__name__)


class CrawlStateStore:
    """Set of listing keys already emitted, persisted in a key-value store.

    ``claim`` is the only write path and is atomic, so two workers finishing
    the same listing at once emit it only once.
    """

    def __init__(self, store: KeyValueStore, key: str, keys: set[str] | None = None) -> None:
        self._store = store
        self._key = key
        self._keys: set[str] = set(keys or ())
        self._lock = asyncio.Lock()

    @classmethod
    async def load(cls, store: KeyValueStore, key: str) -> CrawlStateStore:
        raw = await store.get_value(key)
        state = _parse_state(raw)
        if state.crawled_keys:
            logger.info("Resuming with %d already crawled listings", len(state.crawled_keys))
        return cls(store, key, state.crawled_keys)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    async def claim(self, key: str) -> bool:
        """Record *key*; False if it was already recorded."""
        async with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def snapshot(self) -> CrawlState:
        return CrawlState(crawled_keys=set(self._keys))

    async def persist(self) -> None:
        async with self._lock:
            payload = self.snapshot().to_output()
        await self._store.set_value(self._key, payload)
        logger.info("Persisted crawl state (%d keys)", len(payload["crawledKeys"]))


def _parse_state(raw: Any) -> CrawlState:
    if not raw:
        return CrawlState()
    # Older runs stored {"crawled": {name: true}}.
    if isinstance(raw, dict) and isinstance(raw.get("crawled"), dict):
        return CrawlState(crawled_keys={k for k, v in raw["crawled"].items() if v})
    return CrawlState.model_validate(raw)


class MigrationSignal:
    """Process-wide "about to be suspended" flag, set by SIGTERM or by hand."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._installed: asyncio.AbstractEventLoop | None = None

    def set(self) -> None:
        if not self._event.is_set():
            logger.warning("Migration signalled, crawl state will be flushed")
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def install(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGTERM, self.set)
        except (NotImplementedError, RuntimeError, ValueError):
            # Windows loops and non-main threads cannot install handlers.
            logger.debug("SIGTERM handler not available on this event loop")
            return
        self._installed = loop

    def uninstall(self) -> None:
        if self._installed is not None:
            self._installed.remove_signal_handler(signal.SIGTERM)
            self._installed = None
