from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import AttemptFailure


class PlutoError(Exception):
    """Base error for service failures."""


class ConfigurationError(PlutoError):
    pass


class UpstreamError(PlutoError):
    """Completion endpoint answered with a non-2xx status that is not a rate limit."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(UpstreamError):
    pass


class TransientUpstreamError(UpstreamError):
    """5xx or network-level failure."""


class UpstreamProtocolError(UpstreamError):
    """Unexpected upstream response shape / contract mismatch."""


class RateLimitError(PlutoError):
    def __init__(self, retry_after_seconds: int | None = None, message: str = "Rate limited"):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class ExhaustedError(PlutoError):
    """Every model tier and every credential failed for one dispatch."""

    def __init__(self, message: str, *, failures: list[AttemptFailure] | None = None):
        super().__init__(message)
        self.failures = list(failures or [])


class MalformedResponseError(PlutoError):
    """The model answered, but not with the structured object we asked for."""


class ExtractionFailedError(PlutoError):
    pass


class BrowserUnavailableError(PlutoError):
    pass
