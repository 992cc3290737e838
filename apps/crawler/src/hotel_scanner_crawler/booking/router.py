"""Request Router: accept or retire a fetched page, then dispatch by label."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, assert_never

from hotel_scanner_core.schemas import RequestLabel, RouteState

if TYPE_CHECKING:
    from playwright.async_api import Page

    from hotel_scanner_core.schemas import FetchRequest

    from .context import CrawlContext
    from .detail import DetailHandler
    from .listing import ListingHandler
    from .sessions import ProxySession, SessionAcquirer

logger = logging.getLogger(__name__)

# booking.com keeps its affiliate ``label`` parameter only for legitimate visitors.
DETAIL_MARKER = "label"


class RequestRouter:
    """Checks that a page came through a usable identity before extracting.

    A page that fails the check is never extracted: the session is retired and
    the request goes back to the queue under a new unique key, until it has
    been retired ``max_session_retirements`` times.
    """

    def __init__(
        self,
        context: CrawlContext,
        acquirer: SessionAcquirer,
        listing: ListingHandler,
        detail: DetailHandler,
    ) -> None:
        self._ctx = context
        self._acquirer = acquirer
        self._listing = listing
        self._detail = detail

    def is_legitimate(self, request: FetchRequest, page_url: str) -> bool:
        if self._ctx.crawl_input.start_urls:
            # The site strips parameters from blocked visitors' URLs.
            return len(page_url) >= len(request.url)
        if request.label is RequestLabel.DETAIL:
            return DETAIL_MARKER in page_url
        return self._ctx.crawl_input.sort_by in page_url

    async def route(self, request: FetchRequest, page: Page, session: ProxySession) -> RouteState:
        if not self.is_legitimate(request, page.url):
            await self._retire(request, session)
            return RouteState.RETIRED

        match request.label:
            case RequestLabel.DETAIL:
                await self._detail.handle(request, page)
            case RequestLabel.START | RequestLabel.PAGE | RequestLabel.FILTER_PAGE:
                await self._listing.handle(request, page)
            case _:
                assert_never(request.label)
        return RouteState.ACCEPTED

    async def _retire(self, request: FetchRequest, session: ProxySession) -> None:
        logger.info("Page %s served through a blocked session, retiring", request.url)
        await self._acquirer.retire(session)
        if request.retirements >= self._ctx.settings.max_session_retirements:
            await self._ctx.fail(
                request.url,
                [f"Request retired {request.retirements + 1} times due to blocked sessions"],
            )
            return
        retry = request.retry_copy()
        await self._ctx.enqueue(retry)
        logger.info("Re-enqueued %s as %s", request.url, retry.unique_key)
