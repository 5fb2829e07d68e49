from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import urlparse

IGNORE_ANCESTORS = ("footer", "nav", "header", "aside", "button")

# Collects innerText of matches that are not inside page chrome.
_COLLECT_BLOCKS_JS = """
({selectors, ignore, minChars}) => {
    const seen = new Set();
    const blocks = [];
    for (const selector of selectors) {
        let nodes = [];
        try {
            nodes = document.querySelectorAll(selector);
        } catch (e) {
            continue;
        }
        for (const el of nodes) {
            if (ignore.some((tag) => el.closest(tag))) continue;
            const text = (el.innerText || "").trim();
            if (text.length <= minChars || seen.has(text)) continue;
            seen.add(text);
            blocks.push(text);
        }
    }
    return blocks;
}
"""


class SiteAdapter(Protocol):
    name: str
    selectors: tuple[str, ...]

    def matches(self, url: str) -> bool: ...

    async def try_selectors(self, page: Any, min_chars: int) -> list[str]: ...


@dataclass(frozen=True)
class SelectorChainAdapter:
    name: str
    hosts: tuple[str, ...]
    selectors: tuple[str, ...]
    ignore_ancestors: tuple[str, ...] = field(default=IGNORE_ANCESTORS)
    # Nested fallbacks (main inside body) would repeat text, so take the first selector that yields.
    first_hit_only: bool = False

    def matches(self, url: str) -> bool:
        if not self.hosts:
            return True
        host = (urlparse(url).hostname or "").lower()
        return any(host == h or host.endswith("." + h) for h in self.hosts)

    async def _collect(self, page: Any, selectors: Sequence[str], min_chars: int) -> list[str]:
        blocks = await page.evaluate(
            _COLLECT_BLOCKS_JS,
            {"selectors": list(selectors), "ignore": list(self.ignore_ancestors), "minChars": min_chars},
        )
        return [b for b in blocks or [] if isinstance(b, str)]

    async def try_selectors(self, page: Any, min_chars: int) -> list[str]:
        if not self.first_hit_only:
            return await self._collect(page, self.selectors, min_chars)
        for selector in self.selectors:
            blocks = await self._collect(page, (selector,), min_chars)
            if blocks:
                return blocks
        return []


CHATGPT = SelectorChainAdapter(
    name="chatgpt",
    hosts=("chatgpt.com", "chat.openai.com"),
    selectors=(
        "[data-message-author-role] .markdown",
        "[data-message-author-role] .whitespace-pre-wrap",
        ".markdown.prose",
        "div[id^='message-content']",
        "article div.flex-grow",
    ),
)

GEMINI = SelectorChainAdapter(
    name="gemini",
    hosts=("gemini.google.com", "g.co"),
    selectors=(
        "user-query .query-text",
        "message-content .markdown",
        ".message-content",
        "share-turn-viewer",
    ),
)

CLAUDE = SelectorChainAdapter(
    name="claude",
    hosts=("claude.ai",),
    selectors=(
        "[data-testid='user-message']",
        ".font-claude-message",
        ".font-user-message",
        "div.prose",
    ),
)

# Last resort for any site; chrome is filtered by the ignore list, not by the selector.
GENERIC = SelectorChainAdapter(
    name="generic",
    hosts=(),
    selectors=("main", "article", "[role='main']", "body"),
    ignore_ancestors=("footer", "nav", "aside"),
    first_hit_only=True,
)

DEFAULT_ADAPTERS: tuple[SiteAdapter, ...] = (CHATGPT, GEMINI, CLAUDE)


def adapter_chain(url: str, adapters: Sequence[SiteAdapter] = DEFAULT_ADAPTERS) -> list[SiteAdapter]:
    """Site adapters matching ``url`` followed by the generic fallback."""
    chain = [a for a in adapters if a.matches(url)]
    chain.append(GENERIC)
    return chain
