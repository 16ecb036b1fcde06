"""Playwright-backed page fetcher.

Owns the Playwright lifecycle so the orchestrator and robots checker
only ever see :meth:`PlaywrightFetcher.fetch`.

Two fetch modes:

**HTTP** (default):
  Playwright's ``APIRequestContext`` issues plain GET requests: fast,
  no browser process, cookies kept per context.

**Rendered** (``render = true``):
  A headless Chromium page loads the URL and the serialized DOM is
  returned, for boards that build their result lists client-side.

A second, proxied context is created lazily the first time a job asks
for ``use_proxy``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from jobharvest.errors import ActionableError
from jobharvest.fetch.base import FetchResponse, PageFetcher
from jobharvest.logging import logger
from jobharvest.targets.models import DEFAULT_USER_AGENT

if TYPE_CHECKING:
    from collections.abc import Mapping

    from playwright.async_api import Browser, Playwright

    from jobharvest.config import ScraperConfig


@dataclass
class FetcherConfig:
    """Playwright fetcher configuration."""

    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 30.0
    render: bool = False
    headless: bool = True
    proxy_server: str | None = None
    viewport_width: int = 1440
    viewport_height: int = 900

    @classmethod
    def from_scraper_config(cls, scraper: ScraperConfig) -> FetcherConfig:
        return cls(
            user_agent=scraper.user_agent,
            timeout=scraper.page_timeout,
            render=scraper.render,
            headless=scraper.headless,
            proxy_server=scraper.proxy_server,
        )


class PlaywrightFetcher(PageFetcher):
    """Fetches pages through Playwright with per-proxy-mode contexts.

    Usage::

        async with PlaywrightFetcher(FetcherConfig()) as fetcher:
            response = await fetcher.fetch(url, {"User-Agent": "..."})
            if response.ok:
                html = response.text
    """

    def __init__(self, config: FetcherConfig) -> None:
        self.config = config
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        # keyed by use_proxy
        self._contexts: dict[bool, Any] = {}
        self._context_lock = asyncio.Lock()

    @property
    def supports_proxy(self) -> bool:
        return bool(self.config.proxy_server)

    async def __aenter__(self) -> PlaywrightFetcher:
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        if self.config.render:
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
            )
        logger.info(
            "Page fetcher started (%s mode)",
            "rendered" if self.config.render else "http",
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        for context in self._contexts.values():
            if self.config.render:
                await context.close()
            else:
                await context.dispose()
        self._contexts.clear()
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    async def fetch(
        self,
        url: str,
        headers: Mapping[str, str],
        *,
        use_proxy: bool = False,
    ) -> FetchResponse:
        """GET *url* and return status and body.

        Playwright errors (DNS, refused connection, timeout) are raised as
        CONNECTION errors; HTTP error statuses are returned, not raised.
        """
        from playwright.async_api import Error as PlaywrightError

        if self._playwright is None:
            msg = "PlaywrightFetcher not entered — use 'async with'"
            raise RuntimeError(msg)
        if use_proxy and not self.supports_proxy:
            raise ActionableError.config(
                field_name="scraper.proxy_server",
                reason="a job requested use_proxy but no proxy_server is configured",
            )

        try:
            context = await self._context(use_proxy)
            if self.config.render:
                return await self._fetch_rendered(context, url, headers)
            return await self._fetch_http(context, url, headers)
        except PlaywrightError as exc:
            raise ActionableError.connection(
                service="page fetcher",
                url=url,
                raw_error=str(exc),
            ) from None

    async def _fetch_http(
        self, context: Any, url: str, headers: Mapping[str, str]
    ) -> FetchResponse:
        response = await context.get(
            url,
            headers=dict(headers),
            timeout=self.config.timeout * 1000,
        )
        try:
            text = await response.text()
            logger.debug("GET %s -> %d (%d chars)", url, response.status, len(text))
            return FetchResponse(url=response.url, status=response.status, text=text)
        finally:
            await response.dispose()

    async def _fetch_rendered(
        self, context: Any, url: str, headers: Mapping[str, str]
    ) -> FetchResponse:
        page = await context.new_page()
        try:
            await page.set_extra_http_headers(dict(headers))
            response = await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self.config.timeout * 1000,
            )
            html = await page.content()
            status = response.status if response is not None else 0
            logger.debug("Rendered %s -> %d (%d chars)", url, status, len(html))
            return FetchResponse(url=page.url, status=status, text=html)
        finally:
            await page.close()

    async def _context(self, use_proxy: bool) -> Any:
        """Return the (lazily created) context for this proxy mode.

        Creation is serialized so concurrent first fetches share one
        context instead of each opening one.
        """
        async with self._context_lock:
            if use_proxy in self._contexts:
                return self._contexts[use_proxy]

            assert self._playwright is not None
            proxy = {"server": self.config.proxy_server} if use_proxy else None
            if self.config.render:
                assert self._browser is not None
                context = await self._browser.new_context(
                    viewport={
                        "width": self.config.viewport_width,
                        "height": self.config.viewport_height,
                    },
                    user_agent=self.config.user_agent,
                    proxy=proxy,  # type: ignore[arg-type]
                )
            else:
                context = await self._playwright.request.new_context(
                    user_agent=self.config.user_agent,
                    proxy=proxy,  # type: ignore[arg-type]
                )
            self._contexts[use_proxy] = context
            return context
