"""Per-run objects shared by the orchestrator, router and handlers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from hotel_scanner_core.schemas import FailureRecord

if TYPE_CHECKING:
    from collections.abc import Sequence

    from hotel_scanner_core.schemas import CamelModel, CrawlInput, FetchRequest

    from ..config import CrawlerSettings
    from ..storage.dataset import Dataset
    from ..storage.request_queue import RequestQueue
    from .cache import ResponseCache
    from .state import CrawlStateStore, MigrationSignal

logger = logging.getLogger(__name__)


@dataclass
class CrawlStats:
    requests_handled: int = 0
    records_emitted: int = 0
    failures: int = 0


@dataclass
class CrawlContext:
    """Everything a worker may touch besides its own session and page."""

    crawl_input: CrawlInput
    settings: CrawlerSettings
    queue: RequestQueue
    dataset: Dataset
    state: CrawlStateStore
    cache: ResponseCache
    migration: MigrationSignal
    stats: CrawlStats = field(default_factory=CrawlStats)

    async def enqueue(self, request: FetchRequest) -> bool:
        added = await self.queue.add_request(request)
        if added:
            logger.debug("Enqueued %s %s", request.label, request.url)
        return added

    async def emit(self, records: Sequence[CamelModel]) -> None:
        if not records:
            return
        await self.dataset.push_data(records)
        self.stats.records_emitted += len(records)

    async def fail(self, url: str, errors: list[str]) -> None:
        logger.error("Request %s failed: %s", url, errors[-1] if errors else "unknown error")
        await self.dataset.push_data([FailureRecord(url=url, errors=errors)])
        self.stats.failures += 1
