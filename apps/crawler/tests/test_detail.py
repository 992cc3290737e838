"""Tests for the hotel detail page handler."""

from __future__ import annotations

from conftest import HOTEL_LD, detail_page, open_page

from hotel_scanner_core.schemas import FetchRequest, RequestLabel
from hotel_scanner_crawler.booking.detail import DetailHandler, parse_map_coordinates

HOTEL_URL = "https://www.booking.com/hotel/fr/lumiere.html?label=gen173&sid=abc"


async def _handle(site, context, html: str):
    site.add("/hotel/fr/lumiere", html)
    page = await open_page(site, HOTEL_URL)
    request = FetchRequest(url=HOTEL_URL, label=RequestLabel.DETAIL)
    await DetailHandler(context).handle(request, page)
    return context.dataset.items


async def test_full_record(site, make_context):
    context = await make_context({"search": "Paris", "currency": "EUR"})
    items = await _handle(site, context, detail_page())

    assert len(items) == 1
    record = items[0]
    assert record["url"].startswith("https://www.booking.com/hotel/fr/lumiere.html?")
    assert "sid=" not in record["url"]
    assert "selected_currency=EUR" in record["url"]
    assert record["name"] == "Hotel Lumiere"
    assert record["type"] == "Hotel"
    assert record["description"] == "Charming hotel near the Louvre."
    assert record["starRating"] == 4
    assert record["rating"] == 8.7
    assert record["reviewCount"] == 2345
    assert record["breakfastIncluded"] == "Continental, Buffet"
    assert (record["checkIn"], record["checkOut"]) == ("15:00", "11:00")
    assert record["coordinates"] == {"lat": 48.8606, "lng": 2.3376}
    assert record["address"] == {
        "full": "10 Rue de Rivoli, 75001 Paris, France",
        "postalCode": "75001",
        "locality": "Paris",
        "country": "France",
        "region": "Ile de France",
    }
    assert record["heroImage"] == "https://cf.bstatic.com/hero.jpg"
    assert len(record["rooms"]) == 3
    assert record["rooms"][2] == {"available": False, "roomType": "Suite", "capacity": 3}


async def test_missing_structured_data_is_silent(site, make_context):
    context = await make_context()
    items = await _handle(site, context, detail_page(structured=None))
    assert items == []
    assert context.stats.failures == 0


async def test_malformed_structured_data_is_silent(site, make_context):
    context = await make_context()
    items = await _handle(site, context, detail_page(structured="{not json"))
    assert items == []
    assert context.stats.failures == 0


async def test_rating_below_minimum_is_dropped(site, make_context):
    context = await make_context({"search": "Paris", "minScore": 9.0})
    assert await _handle(site, context, detail_page()) == []


async def test_rating_equal_to_minimum_is_kept(site, make_context):
    context = await make_context({"search": "Paris", "minScore": 8.7})
    assert len(await _handle(site, context, detail_page())) == 1


async def test_name_falls_back_to_structured_data(site, make_context):
    context = await make_context()
    html = detail_page().replace('<h2 id="hp_hotel_name">Hotel Lumiere</h2>', "")
    items = await _handle(site, context, html)
    assert items[0]["name"] == HOTEL_LD["name"]


async def test_page_without_room_table(site, make_context):
    context = await make_context()
    items = await _handle(site, context, detail_page(rooms=""))
    assert items[0]["rooms"] == []


def test_map_coordinates_pattern():
    coords = parse_map_coordinates("https://maps.example/static?markers=%7C-33.8688,151.2093&zoom=4")
    assert coords is not None
    assert (coords.lat, coords.lng) == (-33.8688, 151.2093)
    assert parse_map_coordinates("https://maps.example/static") is None
    assert parse_map_coordinates(None) is None
