"""
Shared pytest fixtures: in-memory fakes for the source and the notifier.
"""

import os
import sys

import pytest

# Add project root to PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.errors import NotificationDeliveryError
from core.interfaces import ListingSource, Notifier
from core.models import MonitorConfig, MonitoredTarget, RawItem, SourcePage, Webhook
from core.seen_store import SeenItemStore


def items(*ids):
    return [RawItem(id=i, title=f"Item {i}", price="10.00 CAD", url=f"https://www.ebay.ca/itm/{i}") for i in ids]


class FakeSource(ListingSource):
    """Returns scripted outcomes per target key; the last outcome repeats.

    An outcome is a list of RawItems or an exception instance to raise.
    """

    name = "FakeSource"

    def __init__(self, outcomes=None):
        self.outcomes = {key: list(seq) for key, seq in (outcomes or {}).items()}
        self.calls = []

    async def fetch(self, target):
        self.calls.append(target.key)
        seq = self.outcomes.get(target.key) or [[]]
        outcome = seq.pop(0) if len(seq) > 1 else seq[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return SourcePage(items=list(outcome), bytes_received=1000, request_count=1)


class FakeNotifier(Notifier):
    name = "FakeNotifier"

    def __init__(self, fail_ids=()):
        self.fail_ids = set(fail_ids)
        self.sent = []
        self.alerts = []

    async def notify(self, destination, item, target):
        if item.id in self.fail_ids:
            raise NotificationDeliveryError(f"rejected {item.id}")
        self.sent.append((destination.name, target.key, item.id))

    async def alert(self, destination, target, message):
        self.alerts.append((destination.name, target.key, message))


def make_target(name="acme", kind="store", **kwargs):
    kwargs.setdefault("enabled", True)
    return MonitoredTarget(kind=kind, name=name, **kwargs)


def make_config(*targets):
    return MonitorConfig(
        webhooks=[Webhook(id="wh1", name="main", url="https://discord.test/api/webhooks/1/a", default=True)],
        stores=[t for t in targets if t.kind == "store"],
        searches=[t for t in targets if t.kind == "search"],
    )


@pytest.fixture
def store(tmp_path):
    return SeenItemStore(tmp_path / "item-cache.json")


@pytest.fixture
def notifier():
    return FakeNotifier()
