"""Request interception: static denylist plus the response cache."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from playwright.async_api import Error as PlaywrightError

from .cache import CacheEntry, parse_max_age

if TYPE_CHECKING:
    from playwright.async_api import Page, Response, Route

    from .cache import ResponseCache

logger = logging.getLogger(__name__)

# Assets the extractors never look at.
_BLOCKED_EXTENSIONS = (".js", ".png", ".jpg", ".jpeg", ".gif", ".css", ".woff", ".woff2")

# Trackers, social widgets, payment host and site chrome.
_BLOCKED_FRAGMENTS = (
    "static/fonts",
    "js_tracking",
    "facebook.com",
    "googleapis.com",
    "secure.booking.com",
    "booking.com/logo",
    "booking.com/navigation_times",
)

# Playwright hands out decoded bodies, so these would lie on replay.
_HOP_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})


def is_blocked(url: str) -> bool:
    """True for requests that must never reach the network."""
    path = urlsplit(url).path.lower()
    if path.endswith(_BLOCKED_EXTENSIONS):
        return True
    return any(fragment in url for fragment in _BLOCKED_FRAGMENTS)


class NetworkInterceptor:
    """Routes every page request through the denylist and the cache."""

    def __init__(self, cache: ResponseCache) -> None:
        self._cache = cache

    async def install(self, page: Page) -> None:
        await page.route("**/*", self._handle_route)
        if self._cache.enabled:
            page.on("response", self._store_response)

    async def _handle_route(self, route: Route) -> None:
        url = route.request.url
        if is_blocked(url):
            await route.abort()
            return
        entry = await self._cache.get(url)
        if entry is not None:
            await route.fulfill(status=entry.status, headers=entry.headers, body=entry.body)
            return
        await route.continue_()

    async def _store_response(self, response: Response) -> None:
        url = response.url
        if is_blocked(url):
            return
        headers = response.headers
        if parse_max_age(headers.get("cache-control")) <= 0:
            return
        if await self._cache.get(url) is not None:
            return
        try:
            body = await response.body()
        except PlaywrightError as exc:
            # Redirects and aborted requests have no body.
            logger.debug("No body to cache for %s: %s", url, exc)
            return
        replay_headers = {k: v for k, v in headers.items() if k.lower() not in _HOP_HEADERS}
        entry = CacheEntry.from_response(response.status, replay_headers, body, self._cache.now())
        if entry is not None:
            await self._cache.put(url, entry)
