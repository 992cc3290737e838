"""Selectors and named fallback chains for booking.com pages.

Markup differs between page variants and A/B buckets, so every field that has
been seen under more than one selector gets an ``ExtractionRule`` listing the
alternatives in order of preference.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from hotel_scanner_core.schemas import Coordinates

from .extract import (
    ExtractionRule,
    Queryable,
    attribute_at,
    count_of,
    extract_count,
    extract_css_url,
    extract_decimal,
    extract_digit,
    extract_numeric,
    extract_text,
    first_text_child,
    select,
    select_all,
    text_at,
)

if TYPE_CHECKING:
    from collections.abc import Callable

# --- Search results ---------------------------------------------------------

CARD = ".sr_item"
DETAIL_LINK = ".hotel_name_link"
FILTER_CONTROL = ".filterelement"
ACTIVE_FILTER = ".filterelement.active"

_FILTER_DESCR_COUNT = re.compile(r"(\d+)de")


def _filter_description_count(text: str) -> int | None:
    match = _FILTER_DESCR_COUNT.search(re.sub(r"[\s.,]+", "", text))
    return int(match.group(1)) if match else None


RESULT_COUNT: ExtractionRule[int] = ExtractionRule(
    "result_count",
    (
        text_at(".sorth1", extract_count),
        text_at(".availability_nr", extract_count),
        text_at(".sr_header h1", extract_count),
        text_at(".sr_header h2", extract_count),
        text_at("#results_prev_next h4", extract_count),
        text_at("#sr-filter-descr", _filter_description_count),
    ),
)

REVIEW_COUNT: ExtractionRule[int] = ExtractionRule(
    "review_count",
    (
        text_at(".score_from_number_of_reviews", extract_count),
        text_at(".review-score-widget__subtext", extract_count),
        text_at(".bui-review-score__text", extract_count),
    ),
)

STAR_RATING: ExtractionRule[int] = ExtractionRule(
    "star_rating",
    (
        attribute_at("i.star_track svg", "class", extract_digit),
        attribute_at(".bui-rating", "aria-label", extract_digit),
        attribute_at(".star_track", "title", extract_digit),
    ),
)


def _site_price(node: Queryable) -> str | None:
    # The <strong> variant holds the struck-through original price.
    for candidate in select_all(node, ".site_price"):
        if candidate.tag != "strong":
            text = extract_text(candidate)
            if text:
                return text
    return None


PRICE: ExtractionRule[str] = ExtractionRule(
    "price",
    (
        _site_price,
        text_at(".totalPrice"),
        text_at("strong.price"),
    ),
)

CARD_RATING: ExtractionRule[float] = ExtractionRule(
    "card_rating",
    (
        attribute_at(None, "data-score", extract_decimal),
        text_at(".bui-review-score__badge", extract_decimal),
        text_at(".review-score-badge", extract_decimal),
    ),
)

CARD_NAME: ExtractionRule[str] = ExtractionRule(
    "card_name",
    (
        text_at(".sr-hotel__name"),
        text_at(".sr_hotel_name"),
    ),
)

CARD_LINK: ExtractionRule[str] = ExtractionRule(
    "card_link",
    (
        attribute_at(DETAIL_LINK, "href"),
        attribute_at(".sr_item_photo_link", "href"),
    ),
)


def _room_link_text(node: Queryable) -> str | None:
    return first_text_child(select(node, ".room_link"))


CARD_ROOM_TYPE: ExtractionRule[str] = ExtractionRule(
    "card_room_type",
    (
        _room_link_text,
        text_at(".room_link strong"),
    ),
)

CARD_CAPACITY: ExtractionRule[int] = ExtractionRule(
    "card_capacity",
    (
        count_of(".sr_max_occupancy i"),
        attribute_at(".sr_max_occupancy", "data-title", extract_numeric),
    ),
)


def parse_coordinates(value: str) -> Coordinates | None:
    """``"lat,lng"`` (site order) as Coordinates."""
    parts = [p.strip() for p in value.split(",")]
    if len(parts) != 2:
        return None
    try:
        return Coordinates(lat=float(parts[0]), lng=float(parts[1]))
    except ValueError:
        return None


CARD_COORDINATES: ExtractionRule[Coordinates] = ExtractionRule(
    "card_coordinates",
    (
        attribute_at(".district_link", "data-coords", parse_coordinates),
        attribute_at(".sr_card_address_line a", "data-coords", parse_coordinates),
    ),
)

CARD_IMAGE: ExtractionRule[str] = ExtractionRule(
    "card_image",
    (
        attribute_at(".sr_item_photo_link.sr_hotel_preview_track", "style", extract_css_url),
        attribute_at("img.hotel_image", "src"),
    ),
)

# --- Hotel detail page ------------------------------------------------------

STRUCTURED_DATA = 'script[type="application/ld+json"]'
OCCUPANCY_INFO = ".hprt-occupancy-occupancy-info"

HOTEL_NAME: ExtractionRule[str] = ExtractionRule(
    "hotel_name",
    (
        text_at("#hp_hotel_name"),
        text_at(".pp-header__title"),
    ),
)

HOTEL_TYPE: ExtractionRule[str] = ExtractionRule(
    "hotel_type",
    (text_at(".hp__hotel-type-badge"),),
)

BREAKFAST: ExtractionRule[str] = ExtractionRule(
    "breakfast",
    (text_at(".ph-item-copy-breakfast-option"),),
)

HOTEL_STAR_RATING: ExtractionRule[int] = ExtractionRule(
    "hotel_star_rating",
    (
        attribute_at("i.bk-icon-stars", "title", extract_digit),
        attribute_at(".bui-rating", "aria-label", extract_digit),
    ),
)

_TIME = re.compile(r"\d{1,2}:\d{2}")


def _times_in(selector: str) -> Callable[[Queryable], tuple[str, str] | None]:
    def strategy(node: Queryable) -> tuple[str, str] | None:
        text = " ".join(extract_text(n) or "" for n in select_all(node, selector))
        times = _TIME.findall(text)
        return (times[0], times[1]) if len(times) > 1 else None

    return strategy


CHECK_TIMES: ExtractionRule[tuple[str, str]] = ExtractionRule(
    "check_times",
    (
        _times_in(".bui-date__subtitle"),
        _times_in("#checkin_policy, #checkout_policy"),
    ),
)

_LARGE_URL = re.compile(r"large_url: '(.+?)'")


def _large_url_literal(node: Queryable) -> str | None:
    html = getattr(node, "html", None)
    match = _LARGE_URL.search(html) if isinstance(html, str) else None
    return match.group(1) if match else None


HERO_IMAGE: ExtractionRule[str] = ExtractionRule(
    "hero_image",
    (
        attribute_at(".slick-track img", "src"),
        attribute_at("#photo_wrapper img", "src"),
        _large_url_literal,
    ),
)

# --- Room table ---------------------------------------------------------------

ROOM_ROWS = ".hprt-table > tbody > tr"
SUMMARY_ROW_CLASS = "hprt-cheapest-block-row"
ROOM_TYPE_CELL = ".hprt-table-cell-roomtype"
ROOM_TYPE_NAME = ".hprt-roomtype-icon-link"
ROOM_BED = ".hprt-roomtype-bed"
ROOM_FACILITY = ".hprt-facilities-facility"
ROOM_PRICE = ".hprt-price-price"
ROOM_CONDITION = ".hprt-conditions li"

ROOM_OCCUPANCY: ExtractionRule[int] = ExtractionRule(
    "room_occupancy",
    (
        text_at(f"{OCCUPANCY_INFO} .invisible_spoken", extract_numeric),
        attribute_at(OCCUPANCY_INFO, "data-title", extract_numeric),
        text_at(OCCUPANCY_INFO, extract_numeric),
    ),
)
