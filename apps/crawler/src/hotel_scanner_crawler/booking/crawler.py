"""booking.com crawler orchestrator: seeds, worker pool and run summary."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from playwright.async_api import Error as PlaywrightError

from hotel_scanner_core.schemas import CrawlInput, CrawlSummary, RouteState
from hotel_scanner_crawler.base import BaseCrawler
from hotel_scanner_crawler.config import settings as default_settings
from hotel_scanner_crawler.errors import ConfigurationError, NavigationError
from hotel_scanner_crawler.retry import backoff_delay
from hotel_scanner_crawler.storage.dataset import JsonLinesDataset
from hotel_scanner_crawler.storage.key_value import FileKeyValueStore, RedisKeyValueStore
from hotel_scanner_crawler.storage.request_queue import MemoryRequestQueue, RedisRequestQueue

from .cache import ResponseCache
from .context import CrawlContext
from .detail import DetailHandler
from .listing import ListingHandler
from .network import NetworkInterceptor
from .router import RequestRouter
from .seeds import build_start_requests, probe_url
from .sessions import PlaywrightSessionProvider, SessionAcquirer
from .state import CrawlStateStore, MigrationSignal

if TYPE_CHECKING:
    from playwright.async_api import Page

    from hotel_scanner_core.schemas import FetchRequest

    from ..config import CrawlerSettings
    from ..storage.dataset import Dataset
    from ..storage.key_value import KeyValueStore
    from ..storage.request_queue import RequestQueue
    from .sessions import SessionProvider

logger = logging.getLogger(__name__)

# How long an idle worker waits before looking at the queue again.
_IDLE_WAIT = 0.2

_HEALTH_QUERY = "paris"


class _Run:
    """Mutable bookkeeping for one crawl, shared by its workers."""

    def __init__(
        self,
        context: CrawlContext,
        acquirer: SessionAcquirer,
        router: RequestRouter,
        interceptor: NetworkInterceptor,
    ) -> None:
        self.context = context
        self.acquirer = acquirer
        self.router = router
        self.interceptor = interceptor
        self.in_flight = 0


class BookingCrawler(BaseCrawler):
    """Crawls booking.com search results and hotel pages through validated sessions.

    Storage adapters and the session provider can be injected; by default the
    queue and state live in Redis when ``redis_url`` is set and in memory and
    files otherwise, and records are appended to a JSON Lines dataset.
    """

    def __init__(
        self,
        *,
        crawler_settings: CrawlerSettings | None = None,
        provider: SessionProvider | None = None,
        queue: RequestQueue | None = None,
        dataset: Dataset | None = None,
        kv_store: KeyValueStore | None = None,
        migration: MigrationSignal | None = None,
    ) -> None:
        self._settings = crawler_settings or default_settings
        self._provider = provider
        self._queue = queue
        self._dataset = dataset
        self._kv_store = kv_store
        self._migration = migration or MigrationSignal()
        self._acquirer: SessionAcquirer | None = None

    def _make_provider(self, crawl_input: CrawlInput) -> SessionProvider:
        if self._provider is None:
            self._provider = PlaywrightSessionProvider.from_proxy_config(
                crawl_input.proxy_config,
                default_proxy_urls=self._settings.proxy_urls,
                headless=self._settings.headless,
            )
        return self._provider

    def _open_storage(self) -> tuple[RequestQueue, Dataset, KeyValueStore]:
        s = self._settings
        storage_dir = Path(s.storage_dir)
        if self._queue is None:
            self._queue = (
                RedisRequestQueue(s.redis_url, s.dataset_name) if s.redis_url else MemoryRequestQueue()
            )
        if self._kv_store is None:
            self._kv_store = (
                RedisKeyValueStore(s.redis_url, s.dataset_name)
                if s.redis_url
                else FileKeyValueStore(storage_dir / "key_value_stores" / s.dataset_name)
            )
        if self._dataset is None:
            self._dataset = JsonLinesDataset(storage_dir / "datasets" / f"{s.dataset_name}.jsonl")
        return self._queue, self._dataset, self._kv_store

    async def crawl(self, crawl_input: CrawlInput) -> CrawlSummary:
        start = time.monotonic()
        context: CrawlContext | None = None
        try:
            queue, dataset, kv_store = self._open_storage()
            state = await CrawlStateStore.load(kv_store, self._settings.state_key)
            context = CrawlContext(
                crawl_input=crawl_input,
                settings=self._settings,
                queue=queue,
                dataset=dataset,
                state=state,
                cache=ResponseCache(enabled=crawl_input.cache_responses),
                migration=self._migration,
            )
            for request in build_start_requests(crawl_input, self._settings):
                await context.enqueue(request)

            self._acquirer = SessionAcquirer(
                self._make_provider(crawl_input),
                probe_url=probe_url(crawl_input, self._settings),
                marker=crawl_input.sort_by,
                max_attempts=self._settings.max_session_attempts,
                validate=crawl_input.test_proxy,
                max_idle=crawl_input.concurrency or self._settings.default_concurrency,
                probe_timeout=self._settings.probe_timeout,
            )
            run = _Run(
                context,
                self._acquirer,
                RequestRouter(context, self._acquirer, ListingHandler(context), DetailHandler(context)),
                NetworkInterceptor(context.cache),
            )
            await self._run_workers(run)
            await state.persist()

            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.info(
                "Crawl finished: %d requests, %d records, %d failures in %dms",
                context.stats.requests_handled,
                context.stats.records_emitted,
                context.stats.failures,
                elapsed_ms,
            )
            return self._summary(context, elapsed_ms)

        except ConfigurationError:
            raise
        except Exception as exc:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.exception("Booking crawl failed")
            if context is not None:
                await context.state.persist()
            return self._summary(context, elapsed_ms, error=str(exc))

    def _summary(
        self, context: CrawlContext | None, elapsed_ms: int, error: str | None = None
    ) -> CrawlSummary:
        stats = context.stats if context is not None else None
        return CrawlSummary(
            requests_handled=stats.requests_handled if stats else 0,
            records_emitted=stats.records_emitted if stats else 0,
            failures=stats.failures if stats else 0,
            sessions_retired=self._acquirer.retired if self._acquirer else 0,
            crawled_at=datetime.now(UTC),
            duration_ms=elapsed_ms,
            error=error,
            success=error is None,
        )

    async def _run_workers(self, run: _Run) -> None:
        concurrency = run.context.crawl_input.concurrency or self._settings.default_concurrency
        run.context.migration.install()
        watcher = asyncio.create_task(self._flush_on_migration(run.context))
        try:
            async with asyncio.TaskGroup() as tg:
                for worker_id in range(concurrency):
                    tg.create_task(self._worker(worker_id, run))
        finally:
            watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watcher
            run.context.migration.uninstall()

    async def _flush_on_migration(self, context: CrawlContext) -> None:
        await context.migration.wait()
        await context.state.persist()

    async def _worker(self, worker_id: int, run: _Run) -> None:
        logger.debug("Worker %d started", worker_id)
        while True:
            # Counted before consume() so idle workers never see an empty
            # queue while another worker still holds a request.
            run.in_flight += 1
            request = await run.context.queue.consume()
            if request is None:
                run.in_flight -= 1
                if run.in_flight == 0:
                    logger.debug("Worker %d done", worker_id)
                    return
                await asyncio.sleep(_IDLE_WAIT)
                continue
            try:
                await self._process(request, run)
            except Exception as exc:
                logger.exception("Unhandled error while processing %s", request.url)
                await run.context.fail(request.url, [str(exc)])
            finally:
                run.in_flight -= 1

    async def _process(self, request: FetchRequest, run: _Run) -> None:
        """Fetch, route and handle one request, retrying on fresh sessions."""
        s = self._settings
        errors: list[str] = []
        for attempt in range(s.max_request_retries + 1):
            session = None
            page = None
            state = RouteState.DISPATCHED
            try:
                session = await run.acquirer.acquire()
                page = await session.new_page()
                await run.interceptor.install(page)
                response = await page.goto(request.url, timeout=s.navigation_timeout * 1000)
                if response is None or response.status >= 400:
                    raise NavigationError(request.url, response.status if response else None)
                state = await run.router.route(request, page, session)
            except Exception as exc:
                errors.append(str(exc))
                logger.warning(
                    "Attempt %d/%d for %s failed: %s",
                    attempt + 1,
                    s.max_request_retries + 1,
                    request.url,
                    exc,
                )
                if session is not None:
                    await run.acquirer.retire(session)
                if attempt < s.max_request_retries:
                    await asyncio.sleep(backoff_delay(attempt, s.retry_base_delay, s.retry_max_delay))
                continue
            finally:
                if page is not None:
                    await _close_page(page)

            run.context.stats.requests_handled += 1
            if state is RouteState.ACCEPTED:
                await run.acquirer.release(session)
            return

        run.context.stats.requests_handled += 1
        await run.context.fail(request.url, errors)

    async def health_check(self) -> bool:
        """Launch one session and probe the search page through it."""
        crawl_input = CrawlInput(search=_HEALTH_QUERY)
        provider = self._make_provider(crawl_input)
        acquirer = SessionAcquirer(
            provider,
            probe_url=probe_url(crawl_input, self._settings),
            marker=crawl_input.sort_by,
            max_attempts=1,
            probe_timeout=self._settings.probe_timeout,
        )
        try:
            session = await provider.new_session()
            try:
                return await acquirer.probe(session)
            finally:
                await session.close()
        except Exception:
            logger.exception("booking.com health check failed")
            return False

    async def close(self) -> None:
        if self._acquirer is not None:
            await self._acquirer.close()
            self._acquirer = None
        elif self._provider is not None:
            await self._provider.close()
        for resource in (self._queue, self._dataset, self._kv_store):
            if resource is not None:
                await resource.close()


async def _close_page(page: Page) -> None:
    try:
        await page.close()
    except PlaywrightError as exc:
        logger.debug("Page already closed: %s", exc)
