"""Errors raised by the version source adapters."""

from __future__ import annotations

import httpx


class SourceError(Exception):
    """Raised when a version source cannot be read."""

    def __init__(self, message: str, code: str = "source_error") -> None:
        """Initialize SourceError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


def source_error_from_httpx(url: str, exc: httpx.HTTPError) -> SourceError:
    """Translate an httpx failure into a SourceError with a stable code."""
    if isinstance(exc, httpx.HTTPStatusError):
        return SourceError(
            f"HTTP error fetching {url}: "
            f"{exc.response.status_code} {exc.response.reason_phrase}",
            code="http_error",
        )
    if isinstance(exc, httpx.TimeoutException):
        return SourceError(f"Timeout fetching {url}", code="timeout")
    return SourceError(f"Network error fetching {url}: {exc}", code="network_error")


__all__ = ["SourceError", "source_error_from_httpx"]
