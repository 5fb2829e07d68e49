from __future__ import annotations

import time
from collections.abc import Sequence
from typing import Any
from urllib.parse import urlparse

import structlog
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .adapters import DEFAULT_ADAPTERS, SiteAdapter, adapter_chain
from .browser import BrowserManager
from .config import PlutoConfig
from .gate import ConcurrencyGate
from .metrics import extractions_total
from .models import ExtractionError, ExtractionOutcome, SourceText
from .sanitize import sanitize

log = structlog.get_logger()

BLOCK_SEPARATOR = "\n\n---\n\n"

_SCROLL_HEIGHT_JS = "() => document.body ? document.body.scrollHeight : 0"
_SCROLL_TO_BOTTOM_JS = "() => window.scrollTo(0, document.body ? document.body.scrollHeight : 0)"


class ContentExtractor:
    """
    Turns a shared-conversation URL into sanitized text.

    ``extract`` never raises: navigation errors, timeouts, a dead browser and
    pages with too little text all come back as ``ExtractionError``.
    """

    def __init__(
        self,
        cfg: PlutoConfig,
        browser: BrowserManager,
        gate: ConcurrencyGate,
        *,
        adapters: Sequence[SiteAdapter] = DEFAULT_ADAPTERS,
    ):
        self.cfg = cfg
        self.browser = browser
        self.gate = gate
        self.adapters = tuple(adapters)

    async def extract(self, url: str) -> ExtractionOutcome:
        url = (url or "").strip()
        try:
            scheme = urlparse(url).scheme
        except ValueError as e:
            extractions_total.labels(outcome="invalid_url").inc()
            return ExtractionError(url=url, reason=f"Malformed URL {url!r}: {e}")
        if scheme not in ("http", "https"):
            extractions_total.labels(outcome="invalid_url").inc()
            return ExtractionError(url=url, reason=f"Not an http(s) URL: {url!r}")

        started = time.monotonic()
        # Set by _harvest once the page title is known.
        page_info: dict[str, str | None] = {}
        log.info("extraction_started", url=url)
        try:
            async with self.gate.slot():
                async with self.browser.page() as page:
                    raw = await self._harvest(page, url, page_info)
        except Exception as e:
            extractions_total.labels(outcome="error").inc()
            log.warning("extraction_failed", url=url, error=str(e), error_type=e.__class__.__name__)
            return ExtractionError(
                url=url, reason=str(e) or e.__class__.__name__, title=page_info.get("title")
            )

        title = page_info.get("title")
        text = sanitize(raw, boilerplate=self.cfg.boilerplate_phrases, max_chars=self.cfg.max_source_chars)
        if len(text) < self.cfg.min_source_chars:
            extractions_total.labels(outcome="empty").inc()
            reason = f"No content bubbles found on page '{title}'." if title else "No content bubbles found."
            log.warning("extraction_failed", url=url, error=reason, chars=len(text))
            return ExtractionError(url=url, reason=reason, title=title)

        extractions_total.labels(outcome="ok").inc()
        log.info(
            "extraction_ok",
            url=url,
            chars=len(text),
            elapsed_seconds=round(time.monotonic() - started, 3),
        )
        return SourceText(url=url, text=text, title=title)

    async def _harvest(self, page: Any, url: str, page_info: dict[str, str | None]) -> str:
        chain = adapter_chain(url, self.adapters)

        await page.goto(
            url,
            wait_until=self.cfg.wait_until,
            timeout=self.cfg.navigation_timeout_seconds * 1000,
        )
        try:
            await page.wait_for_selector(
                ", ".join(chain[0].selectors),
                timeout=self.cfg.selector_timeout_seconds * 1000,
            )
        except PlaywrightTimeoutError:
            log.info("extraction_selectors_missing", url=url, adapter=chain[0].name)

        await self._scroll_until_stable(page)
        if self.cfg.settle_delay_seconds > 0:
            await page.wait_for_timeout(self.cfg.settle_delay_seconds * 1000)

        page_info["title"] = await page.title() or None
        for adapter in chain:
            blocks = await adapter.try_selectors(page, self.cfg.min_block_chars)
            if blocks:
                log.debug("extraction_adapter_hit", url=url, adapter=adapter.name, blocks=len(blocks))
                return BLOCK_SEPARATOR.join(blocks)
        return ""

    async def _scroll_until_stable(self, page: Any) -> None:
        """Scroll to the bottom until scrollHeight stops growing for two polls."""
        height = await page.evaluate(_SCROLL_HEIGHT_JS)
        stable = 0
        for _ in range(max(0, self.cfg.scroll_max_rounds)):
            await page.evaluate(_SCROLL_TO_BOTTOM_JS)
            await page.wait_for_timeout(self.cfg.scroll_interval_seconds * 1000)
            new_height = await page.evaluate(_SCROLL_HEIGHT_JS)
            if new_height == height:
                stable += 1
                if stable >= 2:
                    return
            else:
                stable = 0
                height = new_height
