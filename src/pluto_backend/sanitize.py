"""Text cleanup for scraped conversations and best-effort JSON recovery.

Both helpers are pure functions. ``sanitize`` bounds and normalizes page text
before it is spliced into a prompt; ``extract_json`` pulls an object out of a
model reply that was asked for JSON but may have wrapped it in prose or
markdown fences.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from typing import Any

DEFAULT_MAX_CHARS = 15000

DEFAULT_BOILERPLATE: tuple[str, ...] = (
    "Terms of Service",
    "Terms of Use",
    "Privacy Policy",
    "Cookie Preferences",
    "Report conversation",
    "By messaging ChatGPT",
    "ChatGPT can make mistakes. Check important info.",
    "Check important info",
    "Gemini may display inaccurate info, including about people, so double-check its responses.",
    "Claude can make mistakes. Please double-check responses.",
    "Continue with Google",
    "Sign in",
    "Sign up",
    "Log in",
    "Get started",
    "Share link",
)

_NON_PRINTABLE_RE = re.compile(r"[^\x20-\x7e\n]")
_SPACES_RE = re.compile(r" {2,}")
_BLANK_LINES_RE = re.compile(r"\n{3,}")
_TRAILING_SPACE_RE = re.compile(r" +\n")


def _boilerplate_pattern(phrases: Iterable[str]) -> re.Pattern[str] | None:
    # Longest first so "Check important info" does not eat the middle of the full sentence.
    cleaned = sorted({p for p in phrases if p}, key=len, reverse=True)
    if not cleaned:
        return None
    return re.compile("|".join(re.escape(p) for p in cleaned), re.IGNORECASE)


def sanitize(
    text: str | None,
    *,
    boilerplate: Iterable[str] = DEFAULT_BOILERPLATE,
    max_chars: int = DEFAULT_MAX_CHARS,
) -> str:
    """Strip boilerplate, force printable ASCII, and bound the length.

    The result contains only ``\\x20-\\x7e`` and ``\\n``, none of the given
    phrases (case-insensitive) and at most ``max_chars`` characters.
    """
    if not text:
        return ""

    out = _NON_PRINTABLE_RE.sub(" ", text)

    pattern = _boilerplate_pattern(boilerplate)
    # Removing a phrase or collapsing spaces can join neighbours into a new phrase.
    while True:
        out = _SPACES_RE.sub(" ", out)
        if pattern is None:
            break
        stripped = pattern.sub("", out)
        if stripped == out:
            break
        out = stripped

    out = _TRAILING_SPACE_RE.sub("\n", out)
    out = _BLANK_LINES_RE.sub("\n\n", out)
    out = out.strip()
    if max_chars >= 0 and len(out) > max_chars:
        out = out[:max_chars].rstrip()
    return out


def extract_json(text: str | None) -> dict[str, Any] | None:
    """Return the object between the first ``{`` and the last ``}``, or None.

    Never raises; a None result means the reply was malformed.
    """
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        return None
    try:
        parsed = json.loads(text[start : end + 1])
    except (ValueError, RecursionError):
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed
