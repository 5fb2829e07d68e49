from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence

import structlog

from .completion_session import CompletionSession
from .config import PlutoConfig
from .credentials import CredentialPool
from .errors import (
    AuthenticationError,
    ConfigurationError,
    ExhaustedError,
    RateLimitError,
    TransientUpstreamError,
    UpstreamError,
)
from .metrics import credential_rotations_total, dispatch_attempts_total, dispatch_latency_seconds
from .models import AttemptFailure, CompletionRequest, CompletionResult, FailureKind, Message
from .sanitize import extract_json
from .tiering import ModelTiers

log = structlog.get_logger()


def _classify(exc: Exception) -> FailureKind:
    if isinstance(exc, RateLimitError):
        return FailureKind.RATE_LIMITED
    if isinstance(exc, TransientUpstreamError):
        return FailureKind.TRANSIENT
    return FailureKind.FATAL


class CompletionDispatcher:
    """
    Sends a conversation to the completion endpoint, failing over across
    credentials and model tiers.

    For each model tier (best first) every key in the pool gets one attempt,
    starting at the pool's shared cursor. Any failed attempt rotates the
    cursor to the next key immediately; there is no same-key backoff. When a
    tier has used all keys the next tier is tried, and when the last tier is
    spent ``ExhaustedError`` is raised. With K keys and M tiers a dispatch
    makes at most K*M attempts.
    """

    def __init__(
        self,
        cfg: PlutoConfig,
        *,
        pool: CredentialPool | None = None,
        tiers: ModelTiers | None = None,
        session: CompletionSession | None = None,
        sleeper: Callable[[float], Awaitable[None]] | None = None,
    ):
        self.cfg = cfg
        self.pool = pool if pool is not None else cfg.build_credential_pool()
        self.tiers = tiers or cfg.build_model_tiers()
        self.session = session or CompletionSession(
            cfg.completion_api_url,
            timeout_seconds=cfg.upstream_timeout_seconds,
        )
        self._sleep: Callable[[float], Awaitable[None]] = sleeper or asyncio.sleep

    async def close(self) -> None:
        await self.session.close()

    def _build_request(self, model: str, messages: Sequence[Message], json_mode: bool) -> CompletionRequest:
        return CompletionRequest(
            model=model,
            messages=tuple(messages),
            temperature=self.cfg.json_temperature if json_mode else self.cfg.chat_temperature,
            max_tokens=self.cfg.max_output_tokens,
            top_p=self.cfg.top_p,
            json_mode=json_mode,
            json_response_format=self.cfg.json_response_format,
        )

    async def dispatch(self, messages: Sequence[Message], *, json_mode: bool = False) -> CompletionResult:
        if not messages:
            raise ConfigurationError("Cannot dispatch an empty conversation.")
        if not self.pool:
            raise ConfigurationError("No completion API keys configured.")

        started = time.monotonic()
        failures: list[AttemptFailure] = []
        attempts = 0

        for model in self.tiers:
            request = self._build_request(model, messages, json_mode)
            for _ in range(len(self.pool)):
                index, api_key = self.pool.current()
                attempts += 1
                try:
                    content = await self.session.send(request, api_key)
                except (RateLimitError, UpstreamError) as e:
                    kind = _classify(e)
                    failures.append(
                        AttemptFailure(kind=kind, message=str(e), model=model, credential_index=index)
                    )
                    dispatch_attempts_total.labels(model=model, outcome=kind.value).inc()
                    log.warning(
                        "dispatch_attempt_failed",
                        model=model,
                        credential_index=index,
                        kind=kind.value,
                        error=str(e),
                        auth_failure=isinstance(e, AuthenticationError),
                    )
                    self.pool.advance(from_index=index)
                    credential_rotations_total.inc()
                    if self.cfg.dispatch_rotation_delay_seconds > 0:
                        await self._sleep(self.cfg.dispatch_rotation_delay_seconds)
                    continue

                latency = time.monotonic() - started
                dispatch_attempts_total.labels(model=model, outcome="success").inc()
                dispatch_latency_seconds.observe(latency)
                log.info("dispatch_ok", model=model, credential_index=index, attempts=attempts)
                return CompletionResult(
                    content=content,
                    model=model,
                    credential_index=index,
                    attempts=attempts,
                    latency_seconds=latency,
                    parsed=extract_json(content) if json_mode else None,
                    failures=tuple(failures),
                )

            log.warning("dispatch_tier_exhausted", model=model, keys=len(self.pool))

        dispatch_latency_seconds.observe(time.monotonic() - started)
        last = failures[-1].message if failures else "no attempts made"
        raise ExhaustedError(
            f"Every account and every fallback model has hit its limit. Last error: {last}",
            failures=failures,
        )
