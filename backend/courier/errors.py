# Overview: Domain error taxonomy shared by services and the HTTP boundary.

"""
Courier domain errors.

Every error the core raises on purpose derives from CourierError and carries
the HTTP status the action boundary answers with. Services raise; routes
translate. Nothing here is retried automatically except ConcurrencyConflict,
and only by callers that opt in (see services/concurrency.py).
"""

from __future__ import annotations


class CourierError(Exception):
    """Base class for expected, user-facing failures."""

    http_status = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": type(self).__name__}
        if self.details:
            payload["details"] = self.details
        return payload


class ConfigurationError(CourierError):
    """Tenant or sequence setup is missing. Fatal; never retried."""

    http_status = 500


class ConcurrencyConflict(CourierError):
    """Lost a race on a shared counter or row. Retry with backoff."""

    http_status = 409


class NotFoundError(CourierError):
    http_status = 404


class IllegalTransitionError(CourierError):
    """Requested state change is not an edge of the state machine."""

    http_status = 409

    def __init__(self, message: str, *, current: str | None = None, requested: str | None = None):
        super().__init__(message, current=current, requested=requested)
        self.current = current
        self.requested = requested


class DuplicateTransitionError(IllegalTransitionError):
    """The entity is already in the requested state (e.g. double submit)."""


class InvalidAmountError(CourierError):
    """Negative or out-of-range financial input, rejected before any write."""

    http_status = 400


class LedgerError(CourierError):
    """
    A ledger event could not be written.

    The whole event has been rolled back; the underlying exception is
    available as __cause__.
    """

    http_status = 500


class IncompleteManifestError(CourierError):
    """Settlement attempted while parcels are still outstanding."""

    http_status = 409
