"""
Centralized error handling for the feed/price subsystem.
Exception taxonomy plus a rule table mapping each type to an HTTP status, so routes stay thin
and new error types are easy to add.
"""
from __future__ import annotations

from fastapi import HTTPException

# ---------------------------------------------------------------------------
# Constants: status codes for known error categories
# ---------------------------------------------------------------------------

STATUS_BAD_REQUEST = 400
STATUS_FORBIDDEN = 403
STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409
STATUS_TOO_MANY_REQUESTS = 429
STATUS_INTERNAL_ERROR = 500
STATUS_BAD_GATEWAY = 502  # upstream quote provider failed
STATUS_SERVICE_UNAVAILABLE = 503  # snapshot / blob storage down


# ---------------------------------------------------------------------------
# Taxonomy
# ---------------------------------------------------------------------------


class FeedSyncError(Exception):
    """Base class for errors raised by this service."""


class NotFoundError(FeedSyncError):
    """Post, blob or quote absent."""


class QuoteNotFound(NotFoundError):
    """Upstream answered but has no usable price for the ticker."""


class UpstreamError(FeedSyncError):
    """Quote provider returned a non-success code or an HTTP error."""

    def __init__(self, message: str, *, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


class TransientWriteFailure(FeedSyncError):
    """Snapshot save failed. Never rolls back the primary database write."""


class SnapshotUnavailable(FeedSyncError):
    """Snapshot backend could not be read (as opposed to: blob does not exist yet)."""


class SnapshotConflict(FeedSyncError):
    """Conditional snapshot write lost against a concurrent writer."""

    def __init__(self, key: str, expected: int | None, actual: int | None):
        super().__init__(f"{key}: expected generation {expected}, found {actual}")
        self.key = key
        self.expected = expected
        self.actual = actual


class RateLimitExceeded(FeedSyncError):
    """User-visible limit on write-heavy actions (posting)."""

    def __init__(self, message: str, *, retry_after: float = 0.0):
        super().__init__(message)
        self.retry_after = retry_after


class PermissionDenied(FeedSyncError):
    pass


class InvalidRequest(FeedSyncError):
    pass


class ConflictError(FeedSyncError):
    """Business-rule conflict on the primary record (e.g. concurrent averaging down)."""


# ---------------------------------------------------------------------------
# Error rules: (exception type, status_code). First match wins, so subclasses go first.
# Add new rules here instead of scattering checks in routes.
# ---------------------------------------------------------------------------

DOMAIN_ERROR_RULES: list[tuple[type[Exception], int]] = [
    (QuoteNotFound, STATUS_NOT_FOUND),
    (NotFoundError, STATUS_NOT_FOUND),
    (UpstreamError, STATUS_BAD_GATEWAY),
    (TransientWriteFailure, STATUS_SERVICE_UNAVAILABLE),
    (SnapshotUnavailable, STATUS_SERVICE_UNAVAILABLE),
    (SnapshotConflict, STATUS_CONFLICT),
    (ConflictError, STATUS_CONFLICT),
    (RateLimitExceeded, STATUS_TOO_MANY_REQUESTS),
    (PermissionDenied, STATUS_FORBIDDEN),
    (InvalidRequest, STATUS_BAD_REQUEST),
]


def domain_error_to_http(exc: Exception) -> HTTPException:
    """
    Map an exception from a service call into an HTTPException.
    Uses DOMAIN_ERROR_RULES for known error types; otherwise returns 500 with the exception message.
    """
    for exc_type, status_code in DOMAIN_ERROR_RULES:
        if isinstance(exc, exc_type):
            headers = None
            if isinstance(exc, RateLimitExceeded) and exc.retry_after > 0:
                headers = {"Retry-After": str(int(exc.retry_after + 0.999))}
            return HTTPException(status_code=status_code, detail=str(exc), headers=headers)
    return HTTPException(status_code=STATUS_INTERNAL_ERROR, detail=str(exc))
