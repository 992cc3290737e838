"""Hotel detail page handler."""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any

from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from selectolax.lexbor import LexborHTMLParser  # type: ignore[import-untyped]

from hotel_scanner_core.schemas import Address, Coordinates, HotelDetailRecord

from .extract import extract_count, extract_decimal, extract_text, select_all
from .rooms import extract_rooms
from .rules import (
    BREAKFAST,
    CHECK_TIMES,
    HERO_IMAGE,
    HOTEL_NAME,
    HOTEL_STAR_RATING,
    HOTEL_TYPE,
    OCCUPANCY_INFO,
    STRUCTURED_DATA,
)
from .urls import build_url, strip_query

if TYPE_CHECKING:
    from playwright.async_api import Page

    from hotel_scanner_core.schemas import FetchRequest

    from .context import CrawlContext
    from .extract import Queryable

logger = logging.getLogger(__name__)

_MAP_COORDINATES = re.compile(r"%7c(-?\d+\.\d+),(-?\d+\.\d+)", re.IGNORECASE)


def parse_structured_data(document: Queryable) -> dict[str, Any] | None:
    """First JSON-LD object on the page, preferring one with a rating.

    Blocks that fail to parse are skipped as if absent.
    """
    candidates: list[dict[str, Any]] = []
    for script in select_all(document, STRUCTURED_DATA):
        raw = extract_text(script)
        if not raw:
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.debug("Skipping malformed structured data: %s", exc)
            continue
        if isinstance(data, dict) and isinstance(data.get("@graph"), list):
            data = data["@graph"]
        items = data if isinstance(data, list) else [data]
        candidates.extend(item for item in items if isinstance(item, dict))

    for item in candidates:
        if isinstance(item.get("aggregateRating"), dict):
            return item
    return candidates[0] if candidates else None


def parse_map_coordinates(has_map: Any) -> Coordinates | None:
    """Coordinates from the static-map URL's ``%7clat,lng`` marker."""
    if not isinstance(has_map, str):
        return None
    match = _MAP_COORDINATES.search(has_map)
    if match is None:
        return None
    return Coordinates(lat=float(match.group(1)), lng=float(match.group(2)))


def _string(value: Any) -> str | None:
    if isinstance(value, dict):
        value = value.get("name")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return None
    return value.strip() or None


def parse_address(raw: Any) -> Address:
    if not isinstance(raw, dict):
        return Address(full=_string(raw))
    return Address(
        full=_string(raw.get("streetAddress")),
        postal_code=_string(raw.get("postalCode")),
        locality=_string(raw.get("addressLocality")),
        country=_string(raw.get("addressCountry")),
        region=_string(raw.get("addressRegion")),
    )


class DetailHandler:
    """Turns an accepted hotel page into one HotelDetailRecord (or nothing)."""

    def __init__(self, context: CrawlContext) -> None:
        self._ctx = context

    async def handle(self, request: FetchRequest, page: Page) -> None:
        await self._wait_for_rooms(page)
        document = LexborHTMLParser(await page.content())

        data = parse_structured_data(document)
        if data is None:
            logger.info("No structured data on %s, skipping", page.url)
            return

        aggregate = data.get("aggregateRating")
        if not isinstance(aggregate, dict):
            aggregate = {}
        rating = extract_decimal(aggregate.get("ratingValue"))
        if not self._ctx.crawl_input.meets_min_score(rating):
            logger.info("Hotel %s rated %s is below the minimum score", page.url, rating)
            return

        check_in, check_out = CHECK_TIMES.apply(document) or (None, None)
        record = HotelDetailRecord(
            url=build_url(strip_query(page.url), self._ctx.crawl_input),
            name=HOTEL_NAME.apply(document) or _string(data.get("name")),
            type=HOTEL_TYPE.apply(document),
            description=_string(data.get("description")),
            star_rating=HOTEL_STAR_RATING.apply(document),
            rating=rating,
            review_count=extract_count(_string(aggregate.get("reviewCount"))),
            breakfast_included=BREAKFAST.apply(document),
            check_in=check_in,
            check_out=check_out,
            coordinates=parse_map_coordinates(data.get("hasMap")),
            address=parse_address(data.get("address")),
            hero_image=HERO_IMAGE.apply(document),
            rooms=extract_rooms(document),
        )
        logger.info("Extracted %s with %d rooms", record.name, len(record.rooms))
        await self._ctx.emit([record])

    async def _wait_for_rooms(self, page: Page) -> None:
        timeout_ms = self._ctx.settings.detail_wait_timeout * 1000
        try:
            await page.wait_for_selector(OCCUPANCY_INFO, timeout=timeout_ms)
        except PlaywrightTimeoutError:
            # Sold-out or room-less pages never render the table.
            logger.debug("Room table did not render on %s", page.url)
