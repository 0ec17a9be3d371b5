"""
Error taxonomy for the request lifecycle.

Every failure path surfaces one of these to the caller.  ``retryable`` marks
the transient kinds a caller may retry automatically with backoff; all other
kinds need the input or the request's state to change first.
"""

from __future__ import annotations

from typing import Optional


class LifecycleError(Exception):
    """Base class for all typed lifecycle failures."""

    retryable = False

    def __init__(self, message: str, *, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.request_id = request_id

    @property
    def kind(self) -> str:
        return type(self).__name__

    def with_request(self, request_id: str) -> "LifecycleError":
        """Attach *request_id* for context unless one is already set."""
        if self.request_id is None:
            self.request_id = request_id
        return self


class InvalidRequest(LifecycleError):
    """Creation input failed validation."""


class InvalidParameters(LifecycleError):
    """Pricing or search parameters missing or out of range."""


class InvalidStateTransition(LifecycleError):
    """Operation not allowed from the request's current state."""


class RequestNotFound(LifecycleError):
    """No request exists with the given id."""


class UnsupportedServiceType(LifecycleError):
    """No adapter is registered for the requested service type."""


class NoProviderAvailable(LifecycleError):
    retryable = True


class DirectoryUnavailable(LifecycleError):
    retryable = True


class StoreUnavailable(LifecycleError):
    retryable = True
