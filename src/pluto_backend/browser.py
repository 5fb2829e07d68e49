from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

import structlog
from playwright.async_api import Browser, Page, Route, async_playwright

from .config import PlutoConfig
from .errors import BrowserUnavailableError
from .metrics import browser_launches_total

log = structlog.get_logger()

# Flags for a container without sandbox privileges or a usable /dev/shm.
LAUNCH_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-zygote",
    "--single-process",
)

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)

BLOCKED_RESOURCE_TYPES = frozenset({"image", "stylesheet", "font", "media"})


async def _block_heavy_resources(route: Route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class BrowserManager:
    """
    Owns the one Chromium process shared by every extraction.

    The browser is launched lazily and relaunched when found disconnected;
    callers only ever see short-lived pages from ``page()``.
    """

    def __init__(self, cfg: PlutoConfig, *, playwright_factory: Callable[[], Any] = async_playwright):
        self.cfg = cfg
        self._playwright_factory = playwright_factory
        self._playwright: Any = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def acquire(self) -> Browser:
        if self._browser is not None and self._browser.is_connected():
            return self._browser
        async with self._lock:
            # Another task may have launched while we waited.
            if self._browser is not None and self._browser.is_connected():
                return self._browser
            if self._browser is not None:
                log.warning("browser_disconnected_relaunching")
                await self._close_browser()
            self._browser = await self._launch()
            return self._browser

    async def _launch(self) -> Browser:
        launch_kwargs: dict[str, Any] = {
            "headless": self.cfg.browser_headless,
            "args": list(LAUNCH_ARGS),
        }
        if self.cfg.browser_executable_path:
            launch_kwargs["executable_path"] = self.cfg.browser_executable_path

        try:
            if self._playwright is None:
                self._playwright = await self._playwright_factory().start()
            browser = await self._playwright.chromium.launch(**launch_kwargs)
        except Exception as e:
            browser_launches_total.labels(outcome="error").inc()
            log.error("browser_launch_failed", error=str(e), executable=self.cfg.browser_executable_path)
            raise BrowserUnavailableError(f"Browser launch failed: {e}") from e

        browser_launches_total.labels(outcome="ok").inc()
        log.info("browser_launched", executable=self.cfg.browser_executable_path or "bundled")
        return browser

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        """Yield a fresh page in its own context; the context is closed on every exit path."""
        browser = await self.acquire()
        context = await browser.new_context(
            user_agent=DESKTOP_USER_AGENT,
            viewport={"width": 1366, "height": 900},
        )
        try:
            page = await context.new_page()
            if self.cfg.block_heavy_resources:
                await page.route("**/*", _block_heavy_resources)
            yield page
        finally:
            await context.close()

    async def _close_browser(self) -> None:
        browser, self._browser = self._browser, None
        if browser is None:
            return
        try:
            await browser.close()
        except Exception:
            log.debug("browser_close_failed", exc_info=True)

    async def shutdown(self) -> None:
        async with self._lock:
            await self._close_browser()
            playwright, self._playwright = self._playwright, None
            if playwright is not None:
                await playwright.stop()
