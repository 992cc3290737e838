"""Build and normalize booking.com search, listing and hotel URLs.

Every URL the crawler enqueues goes through here so that all pages carry the
run's dates, currency, language and occupancy. The functions are pure and
idempotent: applying them to their own output changes nothing. Existing query
parameters keep their position and their ``&``/``;`` separators (the site's
own search URLs use ``dest_type=city;ss=...``).
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING
from urllib.parse import quote, unquote_plus, urldefrag, urljoin, urlsplit, urlunsplit

if TYPE_CHECKING:
    from hotel_scanner_core.schemas import CrawlInput

_SEPARATORS = re.compile(r"([&;])")
_DATE_PARTS = re.compile(r"[-/.]")

CHECKIN_PARAM = "checkin_year_month_monthday"
CHECKOUT_PARAM = "checkout_year_month_monthday"
OFFSET_PARAM = "offset"
ROWS_PARAM = "rows"

_DEFAULT_PROBE_QUERY = "paris"


def format_date(value: str) -> str:
    """Reformat ``MM-DD-YYYY`` / ``MM/DD/YYYY`` (or ISO) input as ``YYYY-MM-DD``."""
    parts = [p for p in _DATE_PARTS.split(value.strip()) if p]
    if len(parts) != 3:
        return value.strip()
    if len(parts[0]) == 4:
        year, month, day = parts
    else:
        month, day, year = parts
    return f"{year}-{month.zfill(2)}-{day.zfill(2)}"


def search_params(crawl_input: CrawlInput) -> list[tuple[str, str]]:
    """Query parameters implied by the run input, in canonical order."""
    params: list[tuple[str, str]] = []
    if crawl_input.check_in:
        params.append((CHECKIN_PARAM, format_date(crawl_input.check_in)))
    if crawl_input.check_out:
        params.append((CHECKOUT_PARAM, format_date(crawl_input.check_out)))
    if crawl_input.currency:
        params.extend(_currency_params(crawl_input.currency))
    if crawl_input.language:
        params.append(("lang", _language(crawl_input.language)))
    if crawl_input.adults:
        params.append(("group_adults", str(crawl_input.adults)))
    if crawl_input.children:
        params.append(("group_children", str(crawl_input.children)))
    if crawl_input.rooms:
        params.append(("no_rooms", str(crawl_input.rooms)))
    return params


def _currency_params(currency: str) -> list[tuple[str, str]]:
    # The site ignores selected_currency unless both flags are present.
    return [
        ("selected_currency", currency.strip().upper()),
        ("changed_currency", "1"),
        ("top_currency", "1"),
    ]


def _language(language: str) -> str:
    return language.strip().replace("_", "-")


def _parse_query(query: str) -> list[tuple[str, str]]:
    """Split a query into ``(separator, raw_pair)`` entries, dropping empties."""
    entries: list[tuple[str, str]] = []
    sep = "&"
    for token in _SEPARATORS.split(query):
        if token in ("&", ";"):
            sep = token
            continue
        if token:
            entries.append((sep, token))
        sep = "&"
    return entries


def _param_name(pair: str) -> str:
    return unquote_plus(pair.split("=", 1)[0])


def query_keys(url: str) -> list[str]:
    """Names of the query parameters of *url*, in order."""
    return [_param_name(pair) for _, pair in _parse_query(urlsplit(url).query)]


def merge_params(
    url: str,
    params: list[tuple[str, str]],
    *,
    overwrite: bool = True,
) -> str:
    """Set *params* on *url*.

    A parameter already present is replaced in place when *overwrite* is True
    and left untouched otherwise; missing ones are appended with ``&``.
    """
    parts = urlsplit(url)
    entries = _parse_query(parts.query)
    index: dict[str, int] = {}
    for i, (_, pair) in enumerate(entries):
        index.setdefault(_param_name(pair), i)

    for name, value in params:
        pair = f"{name}={quote(value, safe='-')}"
        if name in index:
            if overwrite:
                i = index[name]
                entries[i] = (entries[i][0], pair)
        else:
            index[name] = len(entries)
            entries.append(("&", pair))

    query = "".join(
        (sep if i else "") + pair for i, (sep, pair) in enumerate(entries)
    )
    return urlunsplit(parts._replace(query=query))


def build_url(url: str, crawl_input: CrawlInput) -> str:
    """Attach the run's dates, currency, language and occupancy to *url*."""
    return merge_params(url, search_params(crawl_input))


def fix_link(href: str, page_url: str, crawl_input: CrawlInput) -> str:
    """Make a link found on *page_url* absolute and carry language/currency.

    The fragment is dropped. Language and currency are only added when the
    link does not already specify them.
    """
    absolute, _ = urldefrag(urljoin(page_url, href.replace("\n", "").strip()))
    params: list[tuple[str, str]] = []
    if crawl_input.language:
        params.append(("lang", _language(crawl_input.language)))
    if crawl_input.currency:
        params.extend(_currency_params(crawl_input.currency))
    return merge_params(absolute, params, overwrite=False)


def search_url(
    crawl_input: CrawlInput,
    base_url: str,
    page_size: int,
    query: str | None = None,
) -> str:
    """Canonical search-results URL for *query* (defaults to the input's search)."""
    term = quote(query or crawl_input.search or _DEFAULT_PROBE_QUERY, safe="")
    url = (
        f"{base_url.rstrip('/')}/searchresults.html"
        f"?dest_type=city;ss={term}&order={quote(crawl_input.sort_by, safe='')}"
    )
    url = build_url(url, crawl_input)
    return merge_params(url, [(ROWS_PARAM, str(page_size))])


def with_offset(url: str, offset: int, page_size: int) -> str:
    return merge_params(url, [(ROWS_PARAM, str(page_size)), (OFFSET_PARAM, str(offset))])


def has_offset(url: str) -> bool:
    return OFFSET_PARAM in query_keys(url)


def strip_query(url: str) -> str:
    """*url* without query string or fragment."""
    parts = urlsplit(url)
    return urlunsplit(parts._replace(query="", fragment=""))
