"""
Error taxonomy for the listing monitor.

Everything except :class:`ConfigurationError` is recovered locally by the
component that sees it; a bad configuration stops the process at startup.
"""

from __future__ import annotations


class MonitorError(Exception):
    """Base class for all monitor errors."""


class SourceFetchError(MonitorError):
    """Network, HTTP or parse failure while retrieving a target's listings."""


class SourceShapeDrift(MonitorError):
    """The source answered, but its structure yielded no extractable items.

    Carries the volume of the request so usage can still be recorded.
    """

    def __init__(self, message: str, *, bytes_received: int = 0, request_count: int = 0) -> None:
        super().__init__(message)
        self.bytes_received = bytes_received
        self.request_count = request_count


class NotificationDeliveryError(MonitorError):
    """Dispatch to a webhook failed after the bounded retry."""


class PersistenceError(MonitorError):
    """Writing a JSON document to durable storage failed."""


class ConfigurationError(MonitorError):
    """Configuration is missing, unreadable or invalid."""
