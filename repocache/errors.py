"""
Error taxonomy for repocache.

Upstream failures are raised by the GitHub client and propagate unchanged
through the cache service to the HTTP/CLI boundary, which maps them to
status codes and exit codes.
"""

from typing import Any, Dict, Optional


class RepoCacheError(Exception):
    """Base exception for repocache."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            'error': self.__class__.__name__,
            'message': self.message,
            'details': self.details,
        }


class UpstreamError(RepoCacheError):
    """Failure talking to the upstream search API."""


class RateLimited(UpstreamError):
    """Primary rate limit still in effect after the single retry."""

    def __init__(self, retry_after: int, message: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(
            message or f"GitHub rate limit exceeded, retry after {retry_after}s",
            {'retry_after': retry_after},
        )


class AbuseLimited(UpstreamError):
    """Secondary (abuse detection) limit. Never retried automatically."""

    def __init__(self, backoff: int, message: Optional[str] = None):
        self.backoff = backoff
        super().__init__(
            message or f"GitHub secondary rate limit triggered, back off for {backoff}s",
            {'backoff': backoff},
        )


class UpstreamTimeout(UpstreamError):
    """Request exceeded the client timeout."""


class UpstreamUnavailable(UpstreamError):
    """5xx response or network failure."""


class UpstreamClientError(UpstreamError):
    """Non-retryable 4xx response (bad query, auth failure)."""

    def __init__(self, status: int, message: str):
        self.status = status
        super().__init__(message, {'status': status})


class PersistenceError(RepoCacheError):
    """Store unreachable or commit failed."""


class InvalidFilter(RepoCacheError):
    """Bad pagination or sort arguments."""


# HTTP status code mapping, most specific first
EXCEPTION_STATUS_CODE_MAP = {
    RateLimited: 429,
    AbuseLimited: 429,
    UpstreamTimeout: 504,
    UpstreamUnavailable: 502,
    UpstreamClientError: 502,
    UpstreamError: 502,
    PersistenceError: 503,
    InvalidFilter: 400,
    RepoCacheError: 500,
}


def get_status_code(exception: RepoCacheError) -> int:
    """Get HTTP status code for exception."""
    return EXCEPTION_STATUS_CODE_MAP.get(type(exception), 500)
