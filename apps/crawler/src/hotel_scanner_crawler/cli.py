"""CLI for running the hotel crawler."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import click

from .config import load_crawl_input
from .errors import ConfigurationError

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


def _build_input(
    input_file: str | None,
    search: str | None,
    start_urls: tuple[str, ...],
    overrides: dict[str, Any],
) -> dict[str, Any]:
    data: dict[str, Any] = {}
    if input_file:
        with open(input_file, encoding="utf-8") as fh:
            data = json.load(fh)
    if search:
        data["search"] = search
    if start_urls:
        data["startUrls"] = list(start_urls)
    data.update({k: v for k, v in overrides.items() if v is not None})
    return data


@click.group()
def cli() -> None:
    """Hotel Scanner Crawler CLI."""


@cli.command("crawl")
@click.option("--input", "input_file", type=click.Path(exists=True, dir_okay=False), help="JSON run input")
@click.option("--search", help="Destination to search for")
@click.option("--start-url", "start_urls", multiple=True, help="Explicit start URL (repeatable)")
@click.option("--check-in", help="Check-in date (MM-DD-YYYY)")
@click.option("--check-out", help="Check-out date (MM-DD-YYYY)")
@click.option("--currency", help="Currency code, e.g. EUR")
@click.option("--language", help="Site language, e.g. en-gb")
@click.option("--adults", type=int, help="Number of adults")
@click.option("--children", type=int, help="Number of children")
@click.option("--rooms", type=int, help="Number of rooms")
@click.option("--min-score", type=float, help="Minimum review score")
@click.option("--max-pages", type=int, help="Maximum number of result pages")
@click.option("--concurrency", type=int, help="Number of parallel workers")
@click.option("--simple/--detail", default=None, help="Emit listing records instead of visiting hotels")
@click.option("--use-filters/--no-filters", default=None, help="Crawl through filter links")
@click.option("--json-output", is_flag=True, help="Output summary as JSON")
def crawl(
    input_file: str | None,
    search: str | None,
    start_urls: tuple[str, ...],
    check_in: str | None,
    check_out: str | None,
    currency: str | None,
    language: str | None,
    adults: int | None,
    children: int | None,
    rooms: int | None,
    min_score: float | None,
    max_pages: int | None,
    concurrency: int | None,
    simple: bool | None,
    use_filters: bool | None,
    json_output: bool,
) -> None:
    """Crawl booking.com search results or hotel pages."""
    from .booking.crawler import BookingCrawler

    overrides = {
        "checkIn": check_in,
        "checkOut": check_out,
        "currency": currency,
        "language": language,
        "adults": adults,
        "children": children,
        "rooms": rooms,
        "minScore": min_score,
        "maxPages": max_pages,
        "concurrency": concurrency,
        "simple": simple,
        "useFilters": use_filters,
    }
    try:
        crawl_input = load_crawl_input(_build_input(input_file, search, start_urls, overrides))
    except ConfigurationError as exc:
        click.echo(f"Invalid input: {exc}", err=True)
        sys.exit(2)

    async def _run():  # type: ignore[return]
        crawler = BookingCrawler()
        try:
            return await crawler.crawl(crawl_input)
        finally:
            await crawler.close()

    result = asyncio.run(_run())
    if json_output:
        click.echo(json.dumps(result.to_output(), indent=2))
    else:
        click.echo(
            f"Requests: {result.requests_handled} | Records: {result.records_emitted} | "
            f"Failures: {result.failures} | Sessions retired: {result.sessions_retired} | "
            f"Duration: {result.duration_ms}ms"
        )
        if result.error:
            click.echo(f"Error: {result.error}", err=True)

    if not result.success:
        sys.exit(1)


@cli.command("health")
def health_check() -> None:
    """Check that booking.com is reachable through a usable session."""
    from .booking.crawler import BookingCrawler

    async def _run() -> bool:
        crawler = BookingCrawler()
        try:
            return await crawler.health_check()
        finally:
            await crawler.close()

    ok = asyncio.run(_run())
    click.echo(f"  booking.com: {'OK' if ok else 'FAIL'}")
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    cli()
