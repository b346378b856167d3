"""
Core interfaces for the listing monitor.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from .models import MonitoredTarget, RawItem, SourcePage, Webhook


class ListingSource(ABC):
    """Abstract base class for raw listing sources.

    A source turns a target into the listings currently shown for it. It
    raises :class:`~core.errors.SourceFetchError` when the listings could not
    be retrieved and :class:`~core.errors.SourceShapeDrift` when the response
    no longer has the structure the source understands.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this source."""
        pass

    @abstractmethod
    async def fetch(self, target: MonitoredTarget) -> SourcePage:
        """Fetch the current listings of a target."""
        pass

    async def close(self) -> None:
        """Release network resources held by the source."""
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *_):
        await self.close()


class Notifier(ABC):
    """Abstract base class for outbound notifiers.

    Implementations own their pacing between messages and any retry on
    rate limiting; callers only await completion.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this notifier."""
        pass

    @abstractmethod
    async def notify(self, destination: Webhook, item: RawItem, target: MonitoredTarget) -> None:
        """Deliver one new-item message, raising NotificationDeliveryError on failure."""
        pass

    @abstractmethod
    async def alert(self, destination: Webhook, target: MonitoredTarget, message: str) -> None:
        """Deliver an operational alert about a target."""
        pass

    async def close(self) -> None:
        pass
