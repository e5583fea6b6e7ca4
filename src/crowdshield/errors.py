"""Domain error taxonomy shared by stores, services, and the API layer."""

from __future__ import annotations


class CrowdShieldError(Exception):
    """Base class for every error raised by crowdshield services."""


class ValidationError(CrowdShieldError, ValueError):
    """Caller-supplied data is malformed; surfaced immediately and never retried."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class NotFoundError(CrowdShieldError, LookupError):
    """A requested alert, report, or OTP record does not exist."""


class RateLimitedError(CrowdShieldError):
    """An operation was attempted again before its cooldown elapsed."""

    def __init__(self, message: str, *, retry_after_seconds: int) -> None:
        super().__init__(message)
        self.retry_after_seconds = max(int(retry_after_seconds), 1)


class TransientStoreError(CrowdShieldError):
    """The persistent store failed a read or write; the caller may retry the operation."""


class PartialDispatchFailure(CrowdShieldError):
    """A secondary delivery failed after the primary state change was committed."""

    def __init__(self, message: str, *, user_id: str | None = None, error: str | None = None) -> None:
        super().__init__(message)
        self.user_id = user_id
        self.error = error


__all__ = [
    "CrowdShieldError",
    "NotFoundError",
    "PartialDispatchFailure",
    "RateLimitedError",
    "TransientStoreError",
    "ValidationError",
]
