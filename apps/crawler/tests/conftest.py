"""Shared fixtures: a scripted fake site behind fake Playwright objects."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from hotel_scanner_core.schemas import CrawlInput
from hotel_scanner_crawler.booking.cache import ResponseCache
from hotel_scanner_crawler.booking.context import CrawlContext
from hotel_scanner_crawler.booking.sessions import ProxySession
from hotel_scanner_crawler.booking.state import CrawlStateStore, MigrationSignal
from hotel_scanner_crawler.config import CrawlerSettings
from hotel_scanner_crawler.storage.dataset import MemoryDataset
from hotel_scanner_crawler.storage.key_value import FileKeyValueStore
from hotel_scanner_crawler.storage.request_queue import MemoryRequestQueue

if TYPE_CHECKING:
    from pathlib import Path

# ---------------------------------------------------------------------------
# Fake site and Playwright objects
# ---------------------------------------------------------------------------


@dataclass
class Served:
    """What the fake site returns for URLs containing a given fragment.

    ``snapshots`` are returned by successive ``content()`` calls, the last one
    repeating forever, which models content that renders after load.
    """

    snapshots: list[str]
    final_url: str | None = None
    status: int = 200
    error: str | None = None


@dataclass
class FakeSite:
    routes: list[tuple[str, Served]] = field(default_factory=list)
    visits: list[str] = field(default_factory=list)

    def add(
        self,
        fragment: str,
        html: str | list[str] = "<html></html>",
        *,
        final_url: str | None = None,
        status: int = 200,
        error: str | None = None,
    ) -> None:
        snapshots = html if isinstance(html, list) else [html]
        self.routes.append((fragment, Served(snapshots, final_url, status, error)))

    def resolve(self, url: str) -> Served:
        for fragment, served in self.routes:
            if fragment in url:
                return served
        return Served(["<html></html>"], status=404)


@dataclass
class FakeResponse:
    status: int


class FakePage:
    def __init__(self, site: FakeSite) -> None:
        self._site = site
        self._snapshots = ["<html></html>"]
        self._reads = 0
        self.url = "about:blank"
        self.closed = False
        self.routes: list[tuple[str, Any]] = []
        self.listeners: dict[str, Any] = {}
        self.evaluated: list[Any] = []

    async def goto(self, url: str, timeout: float | None = None) -> FakeResponse:
        self._site.visits.append(url)
        served = self._site.resolve(url)
        if served.error:
            raise PlaywrightError(served.error)
        self.url = served.final_url or url
        self._snapshots = served.snapshots
        self._reads = 0
        return FakeResponse(served.status)

    async def content(self) -> str:
        html = self._snapshots[min(self._reads, len(self._snapshots) - 1)]
        self._reads += 1
        return html

    async def wait_for_selector(self, selector: str, timeout: float | None = None) -> None:
        if selector.lstrip(".") not in self._snapshots[-1]:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def evaluate(self, script: str, arg: Any = None) -> None:
        self.evaluated.append(arg)

    async def route(self, pattern: str, handler: Any) -> None:
        self.routes.append((pattern, handler))

    def on(self, event: str, handler: Any) -> None:
        self.listeners[event] = handler

    async def close(self) -> None:
        self.closed = True


class FakeContext:
    def __init__(self, site: FakeSite) -> None:
        self._site = site
        self.pages: list[FakePage] = []

    async def new_page(self) -> FakePage:
        page = FakePage(self._site)
        self.pages.append(page)
        return page


class FakeBrowser:
    def __init__(self) -> None:
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class FakeProvider:
    """Session provider handing out fake browsers on the fake site."""

    def __init__(self, site: FakeSite) -> None:
        self.site = site
        self.sessions: list[ProxySession] = []
        self.closed = False

    async def new_session(self) -> ProxySession:
        session = ProxySession(
            browser=FakeBrowser(),  # type: ignore[arg-type]
            context=FakeContext(self.site),  # type: ignore[arg-type]
            proxy_identity=f"fake-{len(self.sessions) + 1}",
        )
        self.sessions.append(session)
        return session

    async def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def crawler_settings(tmp_path: Path) -> CrawlerSettings:
    """Settings with tiny waits so polling and retries finish quickly."""
    return CrawlerSettings(
        storage_dir=str(tmp_path),
        default_concurrency=2,
        price_poll_interval=0.001,
        price_poll_attempts=3,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        detail_wait_timeout=0.01,
        max_request_retries=2,
        max_session_retirements=2,
        proxy_urls=[],
    )


@pytest.fixture
def site() -> FakeSite:
    return FakeSite()


@pytest.fixture
def provider(site: FakeSite) -> FakeProvider:
    return FakeProvider(site)


@pytest.fixture
def make_context(crawler_settings: CrawlerSettings, tmp_path: Path):
    """Factory fixture for a CrawlContext backed by in-memory storage."""

    async def _make(
        crawl_input: dict[str, Any] | None = None,
        crawled_keys: set[str] | None = None,
    ) -> CrawlContext:
        kv = FileKeyValueStore(tmp_path / "kv")
        return CrawlContext(
            crawl_input=CrawlInput.model_validate(crawl_input or {"search": "Paris"}),
            settings=crawler_settings,
            queue=MemoryRequestQueue(),
            dataset=MemoryDataset(),
            state=CrawlStateStore(kv, crawler_settings.state_key, crawled_keys),
            cache=ResponseCache(),
            migration=MigrationSignal(),
        )

    return _make


async def open_page(site: FakeSite, url: str) -> FakePage:
    """A fake page already navigated to *url*."""
    page = FakePage(site)
    await page.goto(url)
    return page


# ---------------------------------------------------------------------------
# HTML fixtures
# ---------------------------------------------------------------------------


def listing_card(
    name: str,
    *,
    rating: str | None,
    price: str | None = None,
    slug: str | None = None,
) -> str:
    slug = slug or name.lower().replace(" ", "-")
    score = f' data-score="{rating}"' if rating is not None else ""
    price_html = (
        f'<strong class="site_price">€ 999</strong><div class="site_price">{price}</div>'
        if price is not None
        else ""
    )
    return f"""
    <div class="sr_item"{score}>
      <a class="sr_item_photo_link sr_hotel_preview_track" href="/hotel/fr/{slug}.html"
         style="background-image: url('https://cf.bstatic.com/{slug}.jpg')"></a>
      <a class="hotel_name_link" href="
/hotel/fr/{slug}.html?label=gen173&amp;sid=abc#hotelTmpl">
        <span class="sr-hotel__name">{name}</span>
      </a>
      <i class="star_track" title="4-star hotel"><svg class="stars-4"></svg></i>
      <div class="bui-review-score__text">1,234 reviews</div>
      <a class="district_link" data-coords="48.85,2.35">Paris</a>
      <div class="room_link"><span>Double Room</span><strong>Free cancellation</strong></div>
      <div class="sr_max_occupancy"><i></i><i></i></div>
      {price_html}
    </div>
    """


def listing_page(*cards: str, count: str = "3 properties found", extra: str = "") -> str:
    return f"""
    <html><body>
      <div class="sr_header"><h1 class="sorth1">Paris: {count}</h1></div>
      {extra}
      <div id="hotellist_inner">{"".join(cards)}</div>
    </body></html>
    """


HOTEL_LD = {
    "@context": "http://schema.org",
    "@type": "Hotel",
    "name": "Hotel Lumiere (structured)",
    "description": "Charming hotel near the Louvre.",
    "hasMap": "https://maps.googleapis.com/maps/api/staticmap?markers=color:blue%7c48.8606,2.3376&size=1600x1200",
    "aggregateRating": {"@type": "AggregateRating", "ratingValue": 8.7, "reviewCount": "2,345"},
    "address": {
        "@type": "PostalAddress",
        "streetAddress": "10 Rue de Rivoli, 75001 Paris, France",
        "postalCode": "75001",
        "addressLocality": "Paris",
        "addressCountry": "France",
        "addressRegion": "Ile de France",
    },
}

ROOM_TABLE = """
<table class="hprt-table"><tbody>
  <tr class="hprt-cheapest-block-row"><td>Our cheapest price</td></tr>
  <tr>
    <td class="hprt-table-cell-roomtype" rowspan="2">
      <a class="hprt-roomtype-icon-link">Double Room</a>
      <div class="hprt-roomtype-bed">1 large
        double bed</div>
      <span class="hprt-facilities-facility">• 215 ft²</span>
      <span class="hprt-facilities-facility">• Air conditioning</span>
    </td>
    <td><div class="hprt-occupancy-occupancy-info"><span class="invisible_spoken">Max persons: 2</span></div></td>
    <td><div class="hprt-price-price">€ 120</div></td>
    <td><ul class="hprt-conditions"><li>Free
      cancellation</li><li>Breakfast   included</li></ul></td>
  </tr>
  <tr>
    <td><div class="hprt-occupancy-occupancy-info" data-title="Max persons: 1"></div></td>
    <td><div class="hprt-price-price">€ 1,099.50</div></td>
  </tr>
  <tr>
    <td class="hprt-table-cell-roomtype"><a class="hprt-roomtype-icon-link">Suite</a></td>
    <td><div class="hprt-occupancy-occupancy-info">Sleeps 3</div></td>
    <td><div class="hprt-price-price">Sold out</div></td>
  </tr>
</tbody></table>
"""


def detail_page(structured: dict[str, Any] | str | None = HOTEL_LD, rooms: str = ROOM_TABLE) -> str:
    if structured is None:
        script = ""
    else:
        body = structured if isinstance(structured, str) else json.dumps(structured)
        script = f'<script type="application/ld+json">{body}</script>'
    return f"""
    <html><head>{script}</head><body>
      <h2 id="hp_hotel_name">Hotel Lumiere</h2>
      <span class="hp__hotel-type-badge">Hotel</span>
      <i class="bk-icon-stars" title="4-star hotel"></i>
      <div class="ph-item-copy-breakfast-option">Continental, Buffet</div>
      <div class="bui-date__subtitle">From 15:00</div>
      <div class="bui-date__subtitle">Until 11:00</div>
      <div id="photo_wrapper"><img src="https://cf.bstatic.com/hero.jpg"></div>
      {rooms}
    </body></html>
    """
