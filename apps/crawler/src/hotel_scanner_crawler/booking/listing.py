"""Search-results page handler: pagination, filters, cards and detail links.

Strategy:
1. Parse the rendered page once with selectolax and decide whether it is a
   filtered view (``filterPage`` label or an active filter control).
2. Unless this page is itself a pagination result, enqueue the remaining
   result pages from the result count (capped by ``maxPages``).
3. With ``useFilters`` on an unfiltered page, enqueue every inactive filter
   link.
4. In simple mode extract one ListingRecord per card on every page. Prices
   render after load, so each card is scrolled into view and re-read from
   fresh page snapshots until its price shows up or the poll attempts run out.
5. Otherwise enqueue each card's hotel page as a ``detail`` request, but
   only from filtered pages when ``useFilters`` is on.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
from typing import TYPE_CHECKING
from urllib.parse import urljoin

from playwright.async_api import Error as PlaywrightError
from selectolax.lexbor import LexborHTMLParser  # type: ignore[import-untyped]

from hotel_scanner_core.schemas import FetchRequest, ListingRecord, RequestLabel

from ..polling import poll_until
from .extract import collapse_whitespace, extract_attribute, extract_text, select, select_all
from .rules import (
    ACTIVE_FILTER,
    CARD,
    CARD_CAPACITY,
    CARD_COORDINATES,
    CARD_IMAGE,
    CARD_LINK,
    CARD_NAME,
    CARD_RATING,
    CARD_ROOM_TYPE,
    DETAIL_LINK,
    FILTER_CONTROL,
    PRICE,
    RESULT_COUNT,
    REVIEW_COUNT,
    STAR_RATING,
)
from .urls import build_url, fix_link, has_offset, strip_query, with_offset

if TYPE_CHECKING:
    from playwright.async_api import Page
    from selectolax.lexbor import LexborNode  # type: ignore[import-untyped]

    from .context import CrawlContext

logger = logging.getLogger(__name__)

_PRICE_NOISE = re.compile(r"[\s,]+")
_PRICE_AMOUNT = re.compile(r"\d+")
_PRICE_CURRENCY = re.compile(r"[^\d.]+")

_SCROLL_INTO_VIEW = """(index) => {
    const card = document.querySelectorAll('.sr_item')[index];
    if (card) { card.scrollIntoView(); }
}"""


def parse_card_price(text: str | None) -> tuple[float | None, str | None]:
    """Amount and currency from a card price such as ``"€ 1,234"``."""
    if not text:
        return None, None
    compact = _PRICE_NOISE.sub("", text)
    amount = _PRICE_AMOUNT.search(compact)
    currency = _PRICE_CURRENCY.search(compact)
    return (
        float(amount.group()) if amount else None,
        currency.group() if currency else None,
    )


def page_count(result_count: int | None, page_size: int, max_pages: int | None) -> int:
    """Number of result pages to visit, including the first one."""
    if result_count is None:
        return max_pages or 1
    pages = max(1, math.ceil(result_count / page_size))
    return min(pages, max_pages) if max_pages else pages


class _LiveListing:
    """Latest snapshot of a listing page, re-read while prices render.

    Concurrent pollers share one snapshot; a refresh is skipped when another
    poller already refreshed since the caller last looked.
    """

    def __init__(self, page: Page, document: LexborHTMLParser) -> None:
        self._page = page
        self.document = document
        self.generation = 0
        self._lock = asyncio.Lock()

    def card(self, index: int) -> LexborNode | None:
        cards = select_all(self.document, CARD)
        return cards[index] if index < len(cards) else None

    async def refresh(self, seen_generation: int) -> None:
        async with self._lock:
            if self.generation != seen_generation:
                return
            self.document = LexborHTMLParser(await self._page.content())
            self.generation += 1


class ListingHandler:
    """Handles ``start``, ``page`` and ``filterPage`` requests."""

    def __init__(self, context: CrawlContext) -> None:
        self._ctx = context

    async def handle(self, request: FetchRequest, page: Page) -> None:
        crawl_input = self._ctx.crawl_input
        document = LexborHTMLParser(await page.content())
        filtered = request.label is RequestLabel.FILTER_PAGE or select(document, ACTIVE_FILTER) is not None
        logger.info("Listing %s (filtered: %s)", request.url, filtered)

        if not has_offset(request.url) and (not crawl_input.use_filters or filtered):
            await self._enqueue_pages(request, document)

        if crawl_input.use_filters and not filtered:
            await self._enqueue_filters(page.url, document)

        if crawl_input.simple:
            await self._extract_cards(page, document)
        elif not crawl_input.use_filters or filtered:
            await self._enqueue_details(page.url, document)

    async def _enqueue_pages(self, request: FetchRequest, document: LexborHTMLParser) -> None:
        settings = self._ctx.settings
        count = RESULT_COUNT.apply(document)
        pages = page_count(count, settings.page_size, self._ctx.crawl_input.max_pages)
        label = request.label if request.label is RequestLabel.FILTER_PAGE else RequestLabel.PAGE
        added = 0
        for i in range(1, pages):
            url = with_offset(request.url, settings.page_size * i, settings.page_size)
            next_request = FetchRequest(url=url, label=label, user_data=request.user_data)
            if await self._ctx.enqueue(next_request):
                added += 1
        logger.info("Found %s results, enqueued %d more pages", count, added)

    async def _enqueue_filters(self, page_url: str, document: LexborHTMLParser) -> None:
        crawl_input = self._ctx.crawl_input
        added = 0
        for control in select_all(document, FILTER_CONTROL):
            classes = (extract_attribute(control, "class") or "").split()
            if "active" in classes:
                continue
            href = extract_attribute(control, "href") or extract_attribute(select(control, "a"), "href")
            text = collapse_whitespace(extract_text(control))
            if not href or not text:
                continue
            url = build_url(fix_link(href, page_url, crawl_input), crawl_input)
            request = FetchRequest(url=url, label=RequestLabel.FILTER_PAGE, unique_key=f"{text}_0")
            if await self._ctx.enqueue(request):
                added += 1
        logger.info("Enqueued %d filter pages", added)

    async def _enqueue_details(self, page_url: str, document: LexborHTMLParser) -> None:
        crawl_input = self._ctx.crawl_input
        added = 0
        for link in select_all(document, DETAIL_LINK):
            href = extract_attribute(link, "href")
            if not href:
                continue
            url = fix_link(href, page_url, crawl_input)
            request = FetchRequest(url=url, label=RequestLabel.DETAIL, unique_key=strip_query(url))
            if await self._ctx.enqueue(request):
                added += 1
        logger.info("Enqueued %d detail pages", added)

    async def _extract_cards(self, page: Page, document: LexborHTMLParser) -> None:
        crawl_input = self._ctx.crawl_input
        total = None if crawl_input.use_filters else RESULT_COUNT.apply(document)

        candidates = [
            index
            for index, card in enumerate(select_all(document, CARD))
            if crawl_input.meets_min_score(CARD_RATING.apply(card))
        ]
        live = _LiveListing(page, document)
        prices = await asyncio.gather(*(self._await_price(page, live, i) for i in candidates))

        records: list[ListingRecord] = []
        for index, price_text in zip(candidates, prices, strict=True):
            record = self._build_record(live.card(index), page.url, price_text, total)
            if record is None or not crawl_input.meets_min_score(record.rating):
                continue
            if not await self._ctx.state.claim(record.name):
                logger.debug("Already crawled %s", record.name)
                continue
            records.append(record)

        if self._ctx.migration.is_set():
            await self._ctx.state.persist()
        logger.info("Extracted %d of %d cards on %s", len(records), len(candidates), page.url)
        await self._ctx.emit(records)

    async def _await_price(self, page: Page, live: _LiveListing, index: int) -> str | None:
        try:
            await page.evaluate(_SCROLL_INTO_VIEW, index)
        except PlaywrightError as exc:
            logger.debug("Could not scroll card %d into view: %s", index, exc)

        async def price_shown() -> str | None:
            seen = live.generation
            price = PRICE.apply(live.card(index))
            if price is None:
                await live.refresh(seen)
                price = PRICE.apply(live.card(index))
            return price

        settings = self._ctx.settings
        price = await poll_until(price_shown, settings.price_poll_interval, settings.price_poll_attempts)
        if price is None:
            logger.info("Price of card %d never rendered", index)
        return price

    def _build_record(
        self,
        card: LexborNode | None,
        page_url: str,
        price_text: str | None,
        total: int | None,
    ) -> ListingRecord | None:
        name = CARD_NAME.apply(card)
        if card is None or name is None:
            return None
        href = CARD_LINK.apply(card)
        if href:
            absolute = urljoin(page_url, href.replace("\n", ""))
            url = build_url(strip_query(absolute), self._ctx.crawl_input)
        else:
            url = page_url
        price, currency = parse_card_price(price_text)
        return ListingRecord(
            url=url,
            name=name,
            rating=CARD_RATING.apply(card),
            review_count=REVIEW_COUNT.apply(card),
            star_rating=STAR_RATING.apply(card),
            price=price,
            currency=currency,
            room_type=CARD_ROOM_TYPE.apply(card),
            capacity=CARD_CAPACITY.apply(card),
            coordinates=CARD_COORDINATES.apply(card),
            image=CARD_IMAGE.apply(card),
            total_result_count=total,
        )
