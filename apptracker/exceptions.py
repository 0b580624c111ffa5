"""
Error taxonomy for App Tracker.

Provider errors carry a ``retryable`` flag; the sync coordinator is the only
place that turns them into per-provider partial results.
"""

from typing import List, Optional


class AppTrackerError(Exception):
    """Base exception for App Tracker domain errors."""


class ValidationError(AppTrackerError):
    """Malformed command input, rejected before any side effect."""

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        self.errors: List[str] = list(errors)
        super().__init__('; '.join(self.errors))


class NotFoundError(AppTrackerError):
    """Referenced entity does not exist."""


class InvalidTransition(AppTrackerError):
    """Illegal maintenance run state change."""

    def __init__(self, run_id: str, current: str, requested: Optional[str]):
        self.run_id = run_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Maintenance run {run_id} cannot move from '{current}' to '{requested or current}'"
        )


class ProviderCallError(AppTrackerError):
    """Failure talking to an external provider."""

    retryable = False

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class AuthError(ProviderCallError):
    """Missing, invalid or revoked credential. User must re-authenticate."""


class RateLimited(ProviderCallError):
    """Provider throttled the request."""

    retryable = True

    def __init__(self, provider: str, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        hint = f" (retry after {retry_after:g}s)" if retry_after is not None else ''
        super().__init__(provider, f"rate limited{hint}")


class ProviderUnavailable(ProviderCallError):
    """Network failure, timeout or 5xx."""

    retryable = True


class ProviderError(ProviderCallError):
    """Unexpected non-2xx response, surfaced as-is."""

    def __init__(self, provider: str, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(provider, f"unexpected status {status}: {body[:200]}")
