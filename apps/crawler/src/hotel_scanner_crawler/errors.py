"""Crawler exception hierarchy."""

from __future__ import annotations


class CrawlerError(Exception):
    """Base class for crawler errors."""


class ConfigurationError(CrawlerError):
    """Run input is unusable; the run must not start."""


class NavigationError(CrawlerError):
    """The browser could not load a page (error status or no response)."""

    def __init__(self, url: str, status: int | None = None) -> None:
        self.url = url
        self.status = status
        detail = f"HTTP {status}" if status is not None else "no response"
        super().__init__(f"Navigation to {url} failed: {detail}")
