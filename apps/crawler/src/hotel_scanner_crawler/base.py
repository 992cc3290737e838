"""Abstract base class for all crawlers."""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hotel_scanner_core.schemas import CrawlInput, CrawlSummary


class BaseCrawler(abc.ABC):
    """Base class that all site crawlers must implement."""

    @abc.abstractmethod
    async def crawl(self, crawl_input: CrawlInput) -> CrawlSummary:
        """Run a full crawl for *crawl_input* and summarize the outcome."""

    @abc.abstractmethod
    async def health_check(self) -> bool:
        """Return True if the site is reachable through a usable session."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release any held resources (browsers, storage clients, etc.)."""
