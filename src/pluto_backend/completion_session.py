from __future__ import annotations

from typing import Any

import httpx
import structlog

from .errors import (
    AuthenticationError,
    RateLimitError,
    TransientUpstreamError,
    UpstreamError,
    UpstreamProtocolError,
)
from .models import CompletionRequest

log = structlog.get_logger()

_RATE_LIMIT_MARKERS = ("rate_limit", "rate limit", "ratelimit", "quota", "too many requests")


def _error_fields(body: Any) -> tuple[str | None, str]:
    """Return (message, haystack) from an OpenAI-style error body."""
    if not isinstance(body, dict):
        return None, ""
    err = body.get("error")
    if isinstance(err, str):
        return err, err.lower()
    if not isinstance(err, dict):
        return None, ""
    message = err.get("message") if isinstance(err.get("message"), str) else None
    parts = [str(err.get(k, "")) for k in ("message", "type", "code")]
    return message, " ".join(parts).lower()


def _retry_after(resp: httpx.Response) -> int | None:
    value = resp.headers.get("retry-after")
    if value and value.isdigit():
        return int(value)
    return None


class CompletionSession:
    """
    One OpenAI-compatible chat-completions call per ``send``.

    No retries happen here: every failure is classified into a typed error and
    the dispatcher decides whether to rotate the key or drop a model tier.
    """

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 60,
    ):
        self._url = base_url
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def close(self) -> None:
        await self._client.aclose()

    async def send(self, request: CompletionRequest, api_key: str) -> str:
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        try:
            resp = await self._client.post(self._url, headers=headers, json=request.to_payload())
        except httpx.TimeoutException as e:
            raise TransientUpstreamError("Upstream request timed out.") from e
        except httpx.HTTPError as e:
            raise TransientUpstreamError(f"Upstream request failed: {e.__class__.__name__}.") from e

        try:
            body: Any = resp.json()
        except ValueError:
            body = None

        message, haystack = _error_fields(body)

        if resp.status_code == 429 or any(m in haystack for m in _RATE_LIMIT_MARKERS):
            raise RateLimitError(retry_after_seconds=_retry_after(resp), message=message or "Rate limited")

        if resp.status_code in (401, 403):
            raise AuthenticationError(message or "Upstream rejected credentials.", status_code=resp.status_code)

        if 500 <= resp.status_code <= 599:
            log.warning("completion_upstream_5xx", status_code=resp.status_code, body=resp.text[:500])
            raise TransientUpstreamError(
                f"Upstream error {resp.status_code}: {message or resp.reason_phrase}",
                status_code=resp.status_code,
            )

        if resp.status_code >= 400:
            raise UpstreamError(message or f"API Error: {resp.status_code}", status_code=resp.status_code)

        if body is None:
            raise UpstreamProtocolError("Upstream returned a non-JSON body.", status_code=resp.status_code)
        if message is not None:
            raise UpstreamError(message, status_code=resp.status_code)

        choices = body.get("choices") if isinstance(body, dict) else None
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise UpstreamProtocolError("Missing choices in upstream response.")

        msg = choices[0].get("message")
        content = msg.get("content") if isinstance(msg, dict) else None
        if not isinstance(content, str):
            raise UpstreamProtocolError("Missing message content in upstream response.")

        log.debug(
            "completion_ok",
            model=request.model,
            prompt_chars=sum(len(m.content) for m in request.messages),
            reply_chars=len(content),
        )
        return content
