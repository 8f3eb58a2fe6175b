"""Unified error handling for metadata and guide backends."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple
import asyncio
import logging

import httpx

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Categorize errors for selective retry logic."""
    RETRYABLE = "retryable"          # rate limits, network - should retry
    NOT_FOUND = "not_found"          # no match - try next backend, don't retry
    AUTH = "auth"                    # bad credentials - disable backend for session
    CANCELLED = "cancelled"          # session stop requested - propagate immediately
    NON_RETRYABLE = "non_retryable"  # parse errors and the like - don't retry


class BackendError(Exception):
    """Base exception for backend errors."""
    pass


class NotFoundError(BackendError):
    """Backend has no match for the ROM."""

    def __init__(self, message: str = "Game not found"):
        super().__init__(message)


class RateLimitedError(BackendError):
    """Backend asked us to slow down."""

    def __init__(self, message: str = "Rate limit exceeded", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class AuthError(BackendError):
    """Credentials rejected by the backend."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class BackendDisabledError(AuthError):
    """Backend was disabled earlier in the session after an auth failure."""
    pass


class NetworkError(BackendError):
    """Transport failure or unexpected server response."""
    pass


class ScrapeCancelled(BackendError):
    """Scrape session was stopped before the call could run."""

    def __init__(self, message: str = "Scraping cancelled"):
        super().__init__(message)


# ScreenScraper HTTP status code mapping
HTTP_STATUS_MESSAGES = {
    200: "Success",
    400: "Malformed request",
    401: "API closed for non-members (server overload)",
    403: "Invalid credentials",
    404: "Game not found",
    423: "API fully closed",
    426: "Software blacklisted",
    429: "Thread limit reached",
    430: "Daily quota exceeded",
    431: "Too many not-found requests",
}


def get_error_message(status_code: int) -> str:
    """
    Get user-friendly error message for HTTP status code.

    Args:
        status_code: HTTP status code

    Returns:
        Error message string
    """
    return HTTP_STATUS_MESSAGES.get(
        status_code,
        f"Unknown error (HTTP {status_code})"
    )


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds from a Retry-After header (delta-seconds form only)."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def categorize_error(exception: Exception) -> Tuple[Exception, ErrorCategory]:
    """
    Categorize an error for selective retry logic.

    Args:
        exception: Exception to categorize

    Returns:
        Tuple of (exception, ErrorCategory)
    """
    if isinstance(exception, (ScrapeCancelled, asyncio.CancelledError)):
        return (exception, ErrorCategory.CANCELLED)

    if isinstance(exception, AuthError):
        return (exception, ErrorCategory.AUTH)

    if isinstance(exception, NotFoundError):
        return (exception, ErrorCategory.NOT_FOUND)

    if isinstance(exception, (RateLimitedError, NetworkError)):
        return (exception, ErrorCategory.RETRYABLE)

    # Raw httpx transport problems that escaped an adapter
    if isinstance(exception, (httpx.TransportError, httpx.TimeoutException)):
        return (NetworkError(f"Network error: {exception}"), ErrorCategory.RETRYABLE)

    return (exception, ErrorCategory.NON_RETRYABLE)


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Exponential backoff settings for one backend.

    Delays grow as initial_delay * multiplier ** (attempt - 1) and are capped
    at max_delay. A provider supplied Retry-After raises the floor.
    """
    max_attempts: int = 3
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 300.0

    def delay_for(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """
        Get the wait before retrying after a failed attempt.

        Args:
            attempt: 1-based number of the attempt that just failed
            retry_after: Optional server hint in seconds

        Returns:
            Delay in seconds
        """
        delay = self.initial_delay * (self.multiplier ** max(attempt - 1, 0))
        if retry_after is not None:
            delay = max(delay, retry_after)
        return min(delay, self.max_delay)
