from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

import structlog

from . import prompts
from .config import PlutoConfig
from .dispatcher import CompletionDispatcher
from .errors import ConfigurationError, ExtractionFailedError, MalformedResponseError, UpstreamProtocolError
from .extractor import ContentExtractor
from .models import ExtractionError, ExtractionOutcome, Message, Role, SourceText

log = structlog.get_logger()


class PlutoOrchestrator:
    """Composes extraction and dispatch into the initialize / chat / debug use cases."""

    def __init__(self, cfg: PlutoConfig, dispatcher: CompletionDispatcher, extractor: ContentExtractor):
        self.cfg = cfg
        self.dispatcher = dispatcher
        self.extractor = extractor

    async def close(self) -> None:
        await self.dispatcher.close()
        await self.extractor.browser.shutdown()

    def _require_credentials(self) -> None:
        # Fail before any browser work when no completion call could succeed.
        if not self.dispatcher.pool:
            raise ConfigurationError("No completion API keys configured.")

    async def _extract_all(self, urls: Sequence[str]) -> list[ExtractionOutcome]:
        """Extract every URL; results stay in input order whatever the completion order."""
        limit = max(1, self.cfg.link_extraction_concurrency)
        if limit == 1:
            return [await self.extractor.extract(url) for url in urls]

        sem = asyncio.Semaphore(limit)

        async def _one(url: str) -> ExtractionOutcome:
            async with sem:
                return await self.extractor.extract(url)

        return list(await asyncio.gather(*(_one(url) for url in urls)))

    async def initialize(self, links: Sequence[str], title: str | None = None) -> str:
        self._require_credentials()
        urls = [u.strip() for u in links if u and u.strip()]

        if not urls:
            messages = [
                Message.system(prompts.GREETING_SYSTEM),
                Message.user(prompts.GREETING_USER.format(title=title or prompts.DEFAULT_GREETING_TITLE)),
            ]
            result = await self.dispatcher.dispatch(messages)
            return result.content.strip() or prompts.GREETING_FALLBACK

        outcomes = await self._extract_all(urls)
        sources = [o for o in outcomes if isinstance(o, SourceText)]
        errors = [o for o in outcomes if isinstance(o, ExtractionError)]
        for err in errors:
            log.warning("initialize_link_dropped", url=err.url, reason=err.reason)

        combined = "\n\n".join(s.render() for s in sources)
        if not sources or len(combined) < self.cfg.min_combined_chars:
            reason = errors[0].reason if errors else "extracted text was too short"
            raise ExtractionFailedError(f"Could not extract usable content from the provided links: {reason}")

        log.info("initialize_sources_ready", sources=len(sources), dropped=len(errors), chars=len(combined))
        messages = [
            Message.system(prompts.SYNTHESIS_SYSTEM),
            Message.user(
                prompts.SYNTHESIS_USER.format(data=combined, title=title or prompts.DEFAULT_SYNTHESIS_TITLE)
            ),
        ]
        result = await self.dispatcher.dispatch(messages)
        foundation = result.content.strip()
        if not foundation:
            raise UpstreamProtocolError("AI failed to initialize.")
        return foundation

    async def chat(self, foundation: str, history: Sequence[Message]) -> str:
        self._require_credentials()
        if not history:
            raise ConfigurationError("Chat history must contain at least one message.")

        window = history[-self.cfg.chat_history_window :] if self.cfg.chat_history_window > 0 else history
        transcript = "\n".join(f"{m.role.value}: {m.content}" for m in window)
        query = history[-1].content
        if history[-1].role is not Role.USER:
            log.info("chat_last_turn_not_user", role=history[-1].role.value)

        messages = [
            Message.system(prompts.CHAT_SYSTEM),
            Message.user(prompts.CHAT_USER.format(foundation=foundation, history=transcript, query=query)),
        ]
        result = await self.dispatcher.dispatch(messages)
        return result.content.strip() or prompts.CHAT_FALLBACK

    async def debug(self, code: str, language: str) -> dict[str, Any]:
        self._require_credentials()
        if not code.strip():
            raise ConfigurationError("No code provided.")

        messages = [
            Message.system(prompts.DEBUG_SYSTEM),
            Message.user(prompts.DEBUG_USER.format(language=language or "unknown", code=code)),
        ]
        result = await self.dispatcher.dispatch(messages, json_mode=True)
        trace = result.parsed
        if trace is None or not isinstance(trace.get("steps"), list):
            log.warning("debug_malformed_trace", model=result.model, reply_chars=len(result.content))
            raise MalformedResponseError("The model returned a malformed execution trace.")
        return trace
