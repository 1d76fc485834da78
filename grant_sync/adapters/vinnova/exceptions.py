"""Categorized errors raised by the Vinnova API client."""

from __future__ import annotations

from typing import Any

from grant_sync.utils.circuit_breaker import CircuitBreakerOpenError


class VinnovaClientError(Exception):
    """Base exception for Vinnova client errors."""

    def __init__(
        self, message: str, *, status_code: int | None = None, data: Any = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.data = data


class VinnovaAuthError(VinnovaClientError):
    """Credentials were rejected (401/403) or a token could not be obtained."""


class VinnovaRateLimitError(VinnovaClientError):
    """The API kept answering 429."""

    def __init__(
        self,
        message: str,
        *,
        retry_after: float | None = None,
        status_code: int | None = 429,
        data: Any = None,
    ) -> None:
        super().__init__(message, status_code=status_code, data=data)
        self.retry_after = retry_after


class VinnovaServerError(VinnovaClientError):
    """The API kept answering with a 5xx status."""


class VinnovaNetworkError(VinnovaClientError):
    """No response was received (connection failure or timeout)."""


class VinnovaApiError(VinnovaClientError):
    """Non-retryable client error (4xx other than auth and rate limiting)."""


class UpstreamUnavailableError(VinnovaClientError):
    """The upstream is unavailable and no cached copy can be served.

    Carries ``status_code`` 503 so HTTP layers can map it directly.
    """

    def __init__(self, message: str = "Vinnova API unavailable", *, retry_in: float = 0.0) -> None:
        super().__init__(message, status_code=503)
        self.retry_in = retry_in


RETRYABLE_ERRORS: tuple[type[VinnovaClientError], ...] = (
    VinnovaRateLimitError,
    VinnovaServerError,
    VinnovaNetworkError,
)


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, RETRYABLE_ERRORS)


def retry_after_hint(exc: BaseException) -> float | None:
    if isinstance(exc, VinnovaRateLimitError):
        return exc.retry_after
    return None


def is_fetch_retryable(exc: BaseException) -> bool:
    """Outer fetch retries skip rejected credentials and short-circuited calls."""
    return not isinstance(exc, VinnovaAuthError | CircuitBreakerOpenError)
