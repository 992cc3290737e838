"""Browser sessions bound to proxy identities, and their validation.

A session is one Chromium instance launched behind one proxy. Before a
session is handed to a worker it is probed against the canonical search URL:
booking.com answers blocked identities with a redirect that drops the sort
key, so a landing URL that still carries it proves the identity is usable.

Strategy:
1. ``PlaywrightSessionProvider`` launches a fresh browser per session,
   rotating through the configured proxy URLs.
2. ``SessionAcquirer.acquire`` reuses an idle, already validated session when
   one is available, otherwise probes fresh sessions until one passes or the
   attempt cap is hit (in which case the last session is returned anyway).
3. Workers ``release`` sessions after a good fetch cycle and ``retire``
   sessions they suspect are dead.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import urlsplit

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from ..retry import async_retry

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

logger = logging.getLogger(__name__)

# User-Agent matching a real Chrome on macOS.
_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)

_STEALTH_SCRIPT = """
// Remove webdriver flag.
Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
"""

_DIRECT = "direct"

_session_ids = itertools.count(1)


@dataclass
class ProxySession:
    """One browser behind one proxy identity, owned by one worker at a time."""

    browser: Browser
    context: BrowserContext
    proxy_identity: str = _DIRECT
    session_id: int = field(default_factory=lambda: next(_session_ids))
    closed: bool = False

    async def new_page(self) -> Page:
        return await self.context.new_page()

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self.browser.close()
        except PlaywrightError as exc:
            logger.debug("Session %d already gone: %s", self.session_id, exc)


class SessionProvider(Protocol):
    async def new_session(self) -> ProxySession: ...

    async def close(self) -> None: ...


def _mask_proxy(proxy_url: str) -> str:
    """Proxy identity for logs: scheme://host:port without credentials."""
    parts = urlsplit(proxy_url)
    host = parts.hostname or proxy_url
    return f"{parts.scheme}://{host}:{parts.port}" if parts.port else host


def _proxy_settings(proxy_url: str) -> dict[str, str]:
    parts = urlsplit(proxy_url)
    server = f"{parts.scheme or 'http'}://{parts.hostname}"
    if parts.port:
        server += f":{parts.port}"
    proxy = {"server": server}
    if parts.username:
        proxy["username"] = parts.username
    if parts.password:
        proxy["password"] = parts.password
    return proxy


class PlaywrightSessionProvider:
    """Launches headless Chromium sessions, one proxy identity each."""

    def __init__(
        self,
        *,
        proxy_urls: list[str] | None = None,
        headless: bool = True,
    ) -> None:
        self._proxy_urls = list(proxy_urls or [])
        self._rotation = itertools.cycle(self._proxy_urls) if self._proxy_urls else None
        self._headless = headless
        self._playwright: Playwright | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_proxy_config(
        cls,
        proxy_config: dict[str, Any],
        *,
        default_proxy_urls: list[str],
        headless: bool,
    ) -> PlaywrightSessionProvider:
        """Provider for the run's opaque ``proxyConfig`` (``proxyUrls`` key)."""
        proxy_urls = proxy_config.get("proxyUrls") or default_proxy_urls
        return cls(proxy_urls=proxy_urls, headless=headless)

    async def _ensure_playwright(self) -> Playwright:
        async with self._lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            return self._playwright

    @async_retry(max_retries=2, base_delay=1.0, exceptions=(PlaywrightError,))
    async def new_session(self) -> ProxySession:
        pw = await self._ensure_playwright()
        launch_kwargs: dict[str, Any] = {"headless": self._headless}
        identity = _DIRECT
        if self._rotation is not None:
            proxy_url = next(self._rotation)
            launch_kwargs["proxy"] = _proxy_settings(proxy_url)
            identity = _mask_proxy(proxy_url)

        browser = await pw.chromium.launch(**launch_kwargs)
        context = await browser.new_context(user_agent=_USER_AGENT)
        await context.add_init_script(_STEALTH_SCRIPT)
        session = ProxySession(browser=browser, context=context, proxy_identity=identity)
        logger.debug("Launched session %d via %s", session.session_id, identity)
        return session

    async def close(self) -> None:
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


class SessionAcquirer:
    """Hands out validated sessions and takes them back.

    This is the only place that decides whether a proxy identity is usable.
    """

    def __init__(
        self,
        provider: SessionProvider,
        *,
        probe_url: str,
        marker: str,
        max_attempts: int = 1000,
        validate: bool = True,
        max_idle: int = 10,
        probe_timeout: float = 60.0,
    ) -> None:
        self._provider = provider
        self._probe_url = probe_url
        self._marker = marker
        self._max_attempts = max(1, max_attempts)
        self._validate = validate
        self._max_idle = max_idle
        self._probe_timeout_ms = probe_timeout * 1000
        self._idle: list[ProxySession] = []
        self._lock = asyncio.Lock()
        self.retired = 0

    async def acquire(self) -> ProxySession:
        async with self._lock:
            if self._idle:
                return self._idle.pop()

        if not self._validate:
            return await self._provider.new_session()

        attempt = 1
        session = await self._provider.new_session()
        while not await self.probe(session):
            if attempt >= self._max_attempts:
                logger.warning(
                    "No valid proxy after %d attempts, using session %d anyway",
                    attempt,
                    session.session_id,
                )
                return session
            logger.info("Invalid proxy %s, retrying...", session.proxy_identity)
            await session.close()
            session = await self._provider.new_session()
            attempt += 1

        logger.info(
            "Valid proxy found (session %d via %s, attempt %d)",
            session.session_id,
            session.proxy_identity,
            attempt,
        )
        return session

    async def probe(self, session: ProxySession) -> bool:
        """True when *session* lands on the probe URL with the marker intact."""
        try:
            page = await session.new_page()
        except PlaywrightError as exc:
            logger.debug("Probe page failed for session %d: %s", session.session_id, exc)
            return False
        try:
            await page.goto(self._probe_url, timeout=self._probe_timeout_ms)
            return self._marker in page.url
        except PlaywrightError as exc:
            logger.debug("Probe navigation failed for session %d: %s", session.session_id, exc)
            return False
        finally:
            try:
                await page.close()
            except PlaywrightError:
                logger.debug("Probe page already closed")

    async def release(self, session: ProxySession) -> None:
        """Return a session that completed a fetch cycle to the idle pool."""
        if session.closed:
            return
        async with self._lock:
            if len(self._idle) < self._max_idle:
                self._idle.append(session)
                return
        await session.close()

    async def retire(self, session: ProxySession) -> None:
        """Close a session for good; it is never handed out again."""
        self.retired += 1
        logger.info("Retiring session %d (%s)", session.session_id, session.proxy_identity)
        await session.close()

    async def close(self) -> None:
        async with self._lock:
            idle, self._idle = self._idle, []
        for session in idle:
            await session.close()
        await self._provider.close()
