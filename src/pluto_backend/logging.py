from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping, MutableMapping
from typing import Any, TypeAlias, cast

import structlog

REDACTED = "[REDACTED]"

# Dict keys whose values are masked wholesale, whatever they contain.
_SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "api_key",
        "api_keys",
        "apikey",
        "fernet_key",
        "credentials",
    }
)
_SENSITIVE_KEY_PARTS = ("secret", "password")

# Groq/OpenAI style keys can leak into upstream error messages verbatim.
_API_KEY_RE = re.compile(r"\b(?:gsk|sk)[-_][A-Za-z0-9_-]{12,}")
_BEARER_RE = re.compile(r"(?i)\bBearer\s+[A-Za-z0-9._-]{6,}")

# Libraries that log full request URLs or page events at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")

ProcessorReturn: TypeAlias = Mapping[str, Any] | str | bytes | bytearray | tuple[Any, ...]
Processor: TypeAlias = Callable[[Any, str, MutableMapping[str, Any]], ProcessorReturn]


def _is_sensitive_key(key: Any) -> bool:
    name = str(key).lower()
    # "max_tokens" is a count, "auth_token" is a credential.
    return name in _SENSITIVE_KEYS or name.endswith("token") or any(p in name for p in _SENSITIVE_KEY_PARTS)


def _secrets_pattern(secrets: Iterable[str]) -> re.Pattern[str] | None:
    # Longest first so a key that contains another key is masked whole.
    literal = sorted({s for s in secrets if isinstance(s, str) and s}, key=len, reverse=True)
    if not literal:
        return None
    return re.compile("|".join(re.escape(s) for s in literal))


def _scrub(text: str, pattern: re.Pattern[str] | None) -> str:
    if pattern is not None:
        text = pattern.sub(REDACTED, text)
    text = _BEARER_RE.sub(f"Bearer {REDACTED}", text)
    return _API_KEY_RE.sub(REDACTED, text)


def _walk(obj: Any, pattern: re.Pattern[str] | None) -> Any:
    if isinstance(obj, str):
        return _scrub(obj, pattern)
    if isinstance(obj, dict):
        return {k: REDACTED if _is_sensitive_key(k) else _walk(v, pattern) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return type(obj)(_walk(v, pattern) for v in obj)
    return obj


def _redact_obj(obj: Any, *, secrets: list[str]) -> Any:
    return _walk(obj, _secrets_pattern(secrets))


def _make_redaction_processor(*, secrets: list[str]) -> Processor:
    pattern = _secrets_pattern(secrets)

    def _processor(_logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]) -> ProcessorReturn:
        return cast(dict[str, Any], _walk(dict(event_dict), pattern))

    return _processor


def configure_logging(level: str = "INFO", fmt: str = "json", *, secrets: list[str] | None = None) -> None:
    """
    Configure structlog for the service.

    Every event passes through redaction before rendering: the configured
    secrets (all completion API keys and the credential-file Fernet key),
    bearer tokens, anything shaped like a ``gsk_``/``sk-`` key, and values
    under credential-like keys. In JSON mode tracebacks are rendered into
    the event before redaction runs.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    processors: list[Processor] = [
        cast(Processor, structlog.contextvars.merge_contextvars),
        cast(Processor, structlog.processors.add_log_level),
        cast(Processor, structlog.processors.TimeStamper(fmt="iso")),
    ]
    if fmt == "json":
        processors.append(cast(Processor, structlog.processors.format_exc_info))
        processors.append(_make_redaction_processor(secrets=secrets or []))
        processors.append(cast(Processor, structlog.processors.JSONRenderer()))
    else:
        # ConsoleRenderer formats exceptions itself.
        processors.append(_make_redaction_processor(secrets=secrets or []))
        processors.append(cast(Processor, structlog.dev.ConsoleRenderer()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=True,
    )
