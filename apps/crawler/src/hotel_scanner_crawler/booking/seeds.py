"""Seed requests and the session probe URL for a run."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hotel_scanner_core.schemas import FetchRequest, RequestLabel

from .urls import build_url, search_url

if TYPE_CHECKING:
    from hotel_scanner_core.schemas import CrawlInput

    from ..config import CrawlerSettings

logger = logging.getLogger(__name__)

_HOTEL_PATH = "/hotel/"


def build_start_requests(
    crawl_input: CrawlInput, settings: CrawlerSettings
) -> list[FetchRequest]:
    """Requests that start the crawl.

    A search yields a single ``start`` request for its results page. Explicit
    start URLs are parameterized; hotel pages among them are labelled
    ``detail``, everything else keeps its label.
    """
    if not crawl_input.start_urls:
        url = search_url(crawl_input, settings.base_url, settings.page_size)
        logger.info("Start URL: %s", url)
        return [FetchRequest(url=url, label=RequestLabel.START)]

    requests: list[FetchRequest] = []
    for request in crawl_input.start_urls:
        url = build_url(request.url, crawl_input)
        label = RequestLabel.DETAIL if _HOTEL_PATH in url else request.label
        unique_key = url if request.unique_key == request.url else request.unique_key
        requests.append(
            request.model_copy(update={"url": url, "label": label, "unique_key": unique_key})
        )
    return requests


def probe_url(crawl_input: CrawlInput, settings: CrawlerSettings) -> str:
    """Known-good URL used to check that a fresh session is not blocked."""
    return search_url(crawl_input, settings.base_url, settings.page_size)
