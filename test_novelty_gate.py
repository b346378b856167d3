#!/usr/bin/env python3
"""
Tests for the novelty filter, the first-scan notification gate and a full
scan through TargetScanner with in-memory fakes.
"""

import asyncio
import logging

import pytest
from hypothesis import given, settings, strategies as st

from conftest import FakeNotifier, FakeSource, items, make_config, make_target
from core.gate import MAX_INITIAL_NOTIFICATIONS, NotificationGate
from core.models import ScanRunContext
from core.novelty import NoveltyFilter
from core.scan import TargetScanner
from core.seen_store import SeenItemStore
from core.usage import UsageRecorder


def test_order_preservation(store):
    target = make_target()
    store.mark_seen("store", "acme", ["A", "C"])

    result = NoveltyFilter(store).classify(target, items("A", "B", "C"))

    assert result.new_ids == ["B"]
    assert result.seen_ids == ["A", "B", "C"]


def test_classify_does_not_mutate_store(store):
    target = make_target()
    NoveltyFilter(store).classify(target, items("1", "2"))
    assert store.is_first_scan("store", "acme")


def test_duplicates_within_batch_count_once(store):
    result = NoveltyFilter(store).classify(make_target(), items("1", "2", "1", "3", "2"))
    assert result.new_ids == ["1", "2", "3"]
    assert result.total_count == 5


def test_items_without_id_are_dropped(store):
    batch = items("1", "", "  ", "2")
    result = NoveltyFilter(store).classify(make_target(), batch)
    assert result.new_ids == ["1", "2"]
    assert result.seen_ids == ["1", "2"]


def test_commit_is_idempotent(store):
    target = make_target()
    novelty = NoveltyFilter(store)
    result = novelty.classify(target, items("1", "2"))

    novelty.commit(target, result)
    novelty.commit(target, result)

    assert store.ids("store", "acme") == {"1", "2"}
    assert novelty.classify(target, items("1", "2")).new_ids == []


def test_gate_caps_first_scan(caplog):
    caplog.set_level(logging.INFO, logger="core.gate")
    decision = NotificationGate().select(items(*map(str, range(10))), first_scan=True, label="store:acme")
    assert [i.id for i in decision.dispatch] == ["0", "1"]
    assert len(decision.suppressed) == 8
    assert "store:acme: first scan, 8 additional new items found but not notified to prevent spam" in caplog.messages


def test_gate_passes_everything_after_first_scan():
    decision = NotificationGate().select(items(*map(str, range(10))), first_scan=False)
    assert len(decision.dispatch) == 10
    assert decision.suppressed == []


@settings(max_examples=100)
@given(n=st.integers(min_value=0, max_value=50), first_scan=st.booleans())
def test_gate_never_loses_or_invents_items(n, first_scan):
    batch = items(*map(str, range(n)))
    decision = NotificationGate().select(batch, first_scan=first_scan)

    assert decision.dispatch + decision.suppressed == batch
    if first_scan:
        assert len(decision.dispatch) == min(n, MAX_INITIAL_NOTIFICATIONS)
    else:
        assert decision.suppressed == []


def test_acme_scenario(store):
    target = make_target()
    source = FakeSource({target.key: [items("1", "2", "3"), items("3", "4")]})
    notifier = FakeNotifier()
    scanner = TargetScanner(make_config(target), source, notifier, store)

    first = ScanRunContext(is_first_run=True)
    report = asyncio.run(scanner.run_once(target, first))
    assert first.is_first_scan
    assert report.new_count == 3
    assert [sent[2] for sent in notifier.sent] == ["1", "2"]
    assert report.suppressed_count == 1
    assert store.ids("store", "acme") == {"1", "2", "3"}

    second = ScanRunContext(is_first_run=False)
    report = asyncio.run(scanner.run_once(target, second))
    assert not second.is_first_scan
    assert report.new_count == 1
    assert [sent[2] for sent in notifier.sent] == ["1", "2", "4"]
    assert second.notified_count == 1


def test_failed_delivery_still_marks_seen(store):
    target = make_target()
    source = FakeSource({target.key: [items("1", "2")]})
    notifier = FakeNotifier(fail_ids={"1"})
    scanner = TargetScanner(make_config(target), source, notifier, store)

    report = asyncio.run(scanner.run_once(target, ScanRunContext()))

    assert report.failed_count == 1
    assert report.notified_count == 1
    assert store.ids("store", "acme") == {"1", "2"}


def test_unknown_webhook_still_marks_seen(store):
    target = make_target(webhook="nope")
    source = FakeSource({target.key: [items("1")]})
    notifier = FakeNotifier()
    scanner = TargetScanner(make_config(target), source, notifier, store)

    report = asyncio.run(scanner.run_once(target, ScanRunContext()))

    assert notifier.sent == []
    assert report.notified_count == 0
    assert not store.is_new("store", "acme", "1")


def test_first_scan_is_per_target(tmp_path):
    store = SeenItemStore(tmp_path / "cache.json")
    known = make_target("known")
    fresh = make_target("fresh", kind="search", searchTerm="gpu")
    store.mark_seen("store", "known", ["0"])
    batch = items(*map(str, range(1, 6)))
    source = FakeSource({known.key: [batch], fresh.key: [batch]})
    notifier = FakeNotifier()
    scanner = TargetScanner(make_config(known, fresh), source, notifier, store)

    known_report = asyncio.run(scanner.run_once(known, ScanRunContext()))
    fresh_report = asyncio.run(scanner.run_once(fresh, ScanRunContext()))

    assert known_report.notified_count == 5
    assert fresh_report.notified_count == 2
    assert fresh_report.suppressed_count == 3


class CrashingNotifier(FakeNotifier):
    async def notify(self, destination, item, target):
        raise RuntimeError("webhook client exploded")


def test_usage_recorded_when_notifier_crashes(store, tmp_path):
    target = make_target()
    source = FakeSource({target.key: [items("1", "2")]})
    usage = UsageRecorder(tmp_path / "usage-stats.json")
    scanner = TargetScanner(make_config(target), source, CrashingNotifier(), store, usage)

    with pytest.raises(RuntimeError):
        asyncio.run(scanner.run_once(target, ScanRunContext()))

    assert store.ids("store", "acme") == {"1", "2"}
    totals = usage.get_total_stats()
    assert (totals.total_bytes, totals.total_requests, totals.total_items) == (1000, 1, 2)
