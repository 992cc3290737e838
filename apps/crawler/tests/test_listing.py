"""Tests for the search-results handler."""

from __future__ import annotations

import pytest
from conftest import listing_card, listing_page, open_page

from hotel_scanner_core.schemas import FetchRequest, RequestLabel
from hotel_scanner_crawler.booking.listing import ListingHandler, page_count, parse_card_price
from hotel_scanner_crawler.storage.key_value import FileKeyValueStore

SEARCH_URL = (
    "https://www.booking.com/searchresults.html?dest_type=city;ss=Paris"
    "&order=bayesian_review_score&rows=20"
)


async def _handle(site, context, html, *, url=SEARCH_URL, label=RequestLabel.START):
    site.add("searchresults", html)
    page = await open_page(site, url)
    await ListingHandler(context).handle(FetchRequest(url=url, label=label), page)
    return page


# ---------------------------------------------------------------------------
# Pagination and filters
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("count", "max_pages", "expected"),
    [(45, None, 3), (40, None, 2), (0, None, 1), (450, 5, 5), (None, 4, 4), (None, None, 1)],
)
def test_page_count(count, max_pages, expected):
    assert page_count(count, 20, max_pages) == expected


async def test_enqueues_remaining_pages_once(site, make_context):
    context = await make_context()
    await _handle(site, context, listing_page(count="45 properties found"))

    pending = context.queue.pending()
    assert [r.label for r in pending] == [RequestLabel.PAGE, RequestLabel.PAGE]
    assert "offset=20" in pending[0].url
    assert "offset=40" in pending[1].url


async def test_pagination_result_does_not_paginate_again(site, make_context):
    context = await make_context()
    await _handle(
        site,
        context,
        listing_page(count="45 properties found"),
        url=SEARCH_URL + "&offset=20",
        label=RequestLabel.PAGE,
    )
    assert context.queue.pending() == []


async def test_max_pages_caps_pagination(site, make_context):
    context = await make_context({"search": "Paris", "maxPages": 2})
    await _handle(site, context, listing_page(count="450 properties found"))
    assert len(context.queue.pending()) == 1


async def test_filters_enqueued_from_unfiltered_page(site, make_context):
    filters = """
      <a class="filterelement" href="/searchresults.html?ss=Paris&nflt=class%3D5">5 stars</a>
      <a class="filterelement" href="/searchresults.html?ss=Paris&nflt=class%3D4">4 stars</a>
    """
    context = await make_context({"search": "Paris", "useFilters": True, "simple": True})
    await _handle(site, context, listing_page(listing_card("A", rating="9.0", price="€ 120"), extra=filters))

    pending = context.queue.pending()
    assert [r.unique_key for r in pending] == ["5 stars_0", "4 stars_0"]
    assert all(r.label is RequestLabel.FILTER_PAGE for r in pending)
    (record,) = context.dataset.items
    assert (record["name"], record["price"]) == ("A", 120.0)


async def test_unfiltered_page_skips_details_in_detail_mode(site, make_context):
    filters = '<a class="filterelement" href="/searchresults.html?ss=Paris&nflt=class%3D5">5 stars</a>'
    context = await make_context({"search": "Paris", "useFilters": True})
    await _handle(site, context, listing_page(listing_card("A", rating="9.0"), extra=filters))

    pending = context.queue.pending()
    assert [r.unique_key for r in pending] == ["5 stars_0"]
    assert context.dataset.items == []


async def test_filtered_page_paginates_and_extracts(site, make_context):
    filters = '<a class="filterelement active" href="/searchresults.html?nflt=class%3D5">5 stars</a>'
    context = await make_context({"search": "Paris", "useFilters": True, "simple": True})
    await _handle(
        site,
        context,
        listing_page(listing_card("A", rating="9.0", price="€ 100"), count="30 properties found", extra=filters),
    )

    pending = context.queue.pending()
    assert len(pending) == 1
    assert "offset=20" in pending[0].url
    assert len(context.dataset.items) == 1
    assert context.dataset.items[0]["totalResultCount"] is None


# ---------------------------------------------------------------------------
# Detail mode
# ---------------------------------------------------------------------------


async def test_detail_mode_enqueues_hotel_links(site, make_context):
    context = await make_context({"search": "Paris", "language": "en-gb"})
    await _handle(
        site,
        context,
        listing_page(listing_card("Hotel A", rating="9.0"), listing_card("Hotel B", rating="6.0")),
    )

    details = [r for r in context.queue.pending() if r.label is RequestLabel.DETAIL]
    assert [r.unique_key for r in details] == [
        "https://www.booking.com/hotel/fr/hotel-a.html",
        "https://www.booking.com/hotel/fr/hotel-b.html",
    ]
    assert "lang=en-gb" in details[0].url
    assert "#" not in details[0].url
    assert context.dataset.items == []


# ---------------------------------------------------------------------------
# Simple mode
# ---------------------------------------------------------------------------


async def test_card_fields(site, make_context):
    context = await make_context({"search": "Paris", "simple": True, "currency": "EUR"})
    page = await _handle(site, context, listing_page(listing_card("Hotel A", rating="8,9", price="€ 1,234")))

    (record,) = context.dataset.items
    assert record["name"] == "Hotel A"
    assert record["url"].startswith("https://www.booking.com/hotel/fr/hotel-a.html?")
    assert "label=" not in record["url"]
    assert "selected_currency=EUR" in record["url"]
    assert record["rating"] == 8.9
    assert record["reviewCount"] == 1234
    assert record["starRating"] == 4
    assert (record["price"], record["currency"]) == (1234.0, "€")
    assert record["roomType"] == "Double Room"
    assert record["capacity"] == 2
    assert record["coordinates"] == {"lat": 48.85, "lng": 2.35}
    assert record["image"] == "https://cf.bstatic.com/hotel-a.jpg"
    assert record["totalResultCount"] == 3
    assert page.evaluated == [0]


async def test_min_score_filters_cards(site, make_context):
    context = await make_context({"search": "Paris", "simple": True, "minScore": 8.0})
    html = listing_page(
        listing_card("Low", rating="7.5", price="€ 80"),
        listing_card("Exact", rating="8.0", price="€ 90"),
        listing_card("Unrated", rating=None, price="€ 70"),
        listing_card("High", rating="9.2", price="€ 150"),
    )
    await _handle(site, context, html)
    assert [r["name"] for r in context.dataset.items] == ["Exact", "High"]


async def test_price_rendered_late_is_picked_up(site, make_context):
    context = await make_context({"search": "Paris", "simple": True})
    before = listing_page(listing_card("Hotel A", rating="9.0"))
    after = listing_page(listing_card("Hotel A", rating="9.0", price="€ 210"))
    await _handle(site, context, [before, after])
    assert context.dataset.items[0]["price"] == 210.0


async def test_price_never_rendered_emits_null(site, make_context):
    context = await make_context({"search": "Paris", "simple": True})
    await _handle(site, context, listing_page(listing_card("Hotel A", rating="8.5")))
    (record,) = context.dataset.items
    assert record["price"] is None
    assert record["currency"] is None


async def test_already_crawled_listings_are_suppressed(site, make_context):
    context = await make_context({"search": "Paris", "simple": True}, crawled_keys={"Hotel A"})
    html = listing_page(
        listing_card("Hotel A", rating="9.0", price="€ 1"),
        listing_card("Hotel B", rating="9.0", price="€ 2"),
        listing_card("Hotel B", rating="9.0", price="€ 2", slug="hotel-b-copy"),
    )
    await _handle(site, context, html)
    assert [r["name"] for r in context.dataset.items] == ["Hotel B"]
    assert "Hotel B" in context.state


async def test_state_flushed_when_migrating(site, make_context, tmp_path):
    context = await make_context({"search": "Paris", "simple": True})
    context.migration.set()
    await _handle(site, context, listing_page(listing_card("Hotel A", rating="9.0", price="€ 5")))

    stored = await FileKeyValueStore(tmp_path / "kv").get_value(context.settings.state_key)
    assert stored == {"crawledKeys": ["Hotel A"]}


def test_parse_card_price():
    assert parse_card_price("€ 1,234") == (1234.0, "€")
    assert parse_card_price("US$99") == (99.0, "US$")
    assert parse_card_price(None) == (None, None)
