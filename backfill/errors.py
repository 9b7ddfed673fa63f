"""Shared exception types for the backfill tooling."""

from __future__ import annotations


class BackfillError(RuntimeError):
    """Base error for backfill operations."""


class ConfigError(BackfillError):
    """Raised when the process configuration is missing or invalid."""


class GithubError(BackfillError):
    """Raised when the GitHub API returns a non-successful response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Record the HTTP status alongside the message when known."""
        super().__init__(message)
        self.status_code = status_code


class TransportError(GithubError):
    """Raised for connection failures, timeouts and 5xx responses."""


class RateLimitedError(GithubError):
    """Raised when GitHub rejects a request because of rate limiting."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        """Capture how long GitHub asked us to wait, if it said."""
        super().__init__(message, status_code=status_code)
        self.retry_after = retry_after


class NotFoundError(GithubError):
    """Raised when the GitHub API returns a 404."""


class ForbiddenError(GithubError):
    """Raised when the token is rejected or lacks access (401/403)."""


class DecodeError(GithubError):
    """Raised when a response does not match the expected shape."""


class InstallationMapError(BackfillError):
    """Raised when the org-wide App installation map cannot be built."""


class SnapshotError(BackfillError):
    """Raised when a repository snapshot cannot be read or written."""


class StoreError(BackfillError):
    """Raised when a policy artifact cannot be written to the store."""
