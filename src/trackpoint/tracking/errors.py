"""Errors raised by the tracking core.

Routes map these to responses; nothing else should escape the core.
"""


class TrackingError(Exception):
    """Base class for tracking failures a caller is expected to render."""


class ValidationError(TrackingError):
    """Lookup input is malformed. Raised before any store call."""


class NotFound(TrackingError):
    """No record matches, or the record is outside the caller's tenant."""

    def __init__(self, message: str = "Order not found"):
        super().__init__(message)


class LookupFailed(TrackingError):
    """The store could not be reached while authorizing a lookup."""


class FetchFailed(TrackingError):
    """The store could not be reached while refreshing a session."""


class StoreError(Exception):
    """Raised by record store adapters on transport or backend errors."""
