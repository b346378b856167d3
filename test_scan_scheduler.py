#!/usr/bin/env python3
"""
Tests for the per-target scan scheduler and the maintenance job.
"""

import asyncio
import random
from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, settings, strategies as st

from conftest import FakeNotifier, FakeSource, items, make_config, make_target
from core.errors import SourceFetchError, SourceShapeDrift
from core.infra.scheduler import Scheduler
from core.maintenance import Maintenance
from core.scan import TargetScanner
from core.scan_scheduler import ScanScheduler
from core.usage import UsageRecorder


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)
        await asyncio.sleep(0)


def build(store, source, *targets, usage=None, notifier=None, **kwargs):
    notifier = notifier or FakeNotifier()
    scanner = TargetScanner(make_config(*targets), source, notifier, store, usage)
    sleep = RecordingSleep()
    scheduler = ScanScheduler(scanner, targets, sleep=sleep, rng=random.Random(7), **kwargs)
    return scheduler, sleep, notifier


def test_fetch_error_does_not_stop_target(store):
    target = make_target(interval=10)
    source = FakeSource({target.key: [SourceFetchError("HTTP 503"), items("1"), items("1", "2")]})
    scheduler, sleep, notifier = build(store, source, target)

    asyncio.run(scheduler.run_target(target, max_runs=3))

    assert source.calls == [target.key] * 3
    assert len(sleep.delays) == 3
    assert 1 <= sleep.delays[0] <= 15
    for delay in sleep.delays[1:]:
        assert 600 + 1 <= delay <= 600 + 15
    assert [sent[2] for sent in notifier.sent] == ["1", "2"]
    status = scheduler.status()[target.key]
    assert status.runs == 3
    assert status.failures == 1
    assert status.last_error is None


def test_fetch_error_is_alerted(store):
    target = make_target()
    source = FakeSource({target.key: [SourceFetchError("timed out")]})
    scheduler, _, notifier = build(store, source, target)

    asyncio.run(scheduler.run_target(target, max_runs=1))

    assert len(notifier.alerts) == 1
    assert notifier.alerts[0][:2] == ("main", target.key)
    assert "timed out" in notifier.alerts[0][2]


def test_alerts_can_be_disabled(store):
    target = make_target()
    source = FakeSource({target.key: [SourceFetchError("timed out")]})
    scheduler, _, notifier = build(store, source, target, alert_on_failure=False)

    asyncio.run(scheduler.run_target(target, max_runs=1))

    assert notifier.alerts == []


def test_unexpected_error_is_contained(store):
    target = make_target()
    source = FakeSource({target.key: [RuntimeError("boom"), items("1")]})
    scheduler, _, notifier = build(store, source, target)

    asyncio.run(scheduler.run_target(target, max_runs=2))

    assert scheduler.status()[target.key].failures == 1
    assert [sent[2] for sent in notifier.sent] == ["1"]


def test_failing_target_leaves_others_alone(store):
    broken = make_target("broken")
    healthy = make_target("healthy", kind="search", searchTerm="gpu")
    source = FakeSource({
        broken.key: [SourceFetchError("HTTP 500")],
        healthy.key: [items("1"), items("1", "2")],
    })
    scheduler, _, notifier = build(store, source, broken, healthy)

    async def run():
        await asyncio.gather(
            scheduler.run_target(broken, max_runs=2),
            scheduler.run_target(healthy, max_runs=2),
        )

    asyncio.run(run())

    assert source.calls.count(broken.key) == 2
    assert [sent[2] for sent in notifier.sent if sent[1] == healthy.key] == ["1", "2"]


def test_shape_drift_records_usage_without_alert(store, tmp_path):
    target = make_target()
    drift = SourceShapeDrift("no cards", bytes_received=512, request_count=1)
    source = FakeSource({target.key: [drift]})
    usage = UsageRecorder(tmp_path / "usage-stats.json")
    scheduler, _, notifier = build(store, source, target, usage=usage)

    asyncio.run(scheduler.run_target(target, max_runs=1))

    assert usage.get_total_stats().total_bytes == 512
    assert usage.get_total_stats().total_requests == 1
    assert usage.get_total_stats().total_items == 0
    assert notifier.alerts == []
    assert scheduler.status()[target.key].drifts == 1


def test_disabled_targets_are_not_scheduled(store):
    enabled = make_target("on")
    disabled = make_target("off", enabled=False)
    scheduler, _, _ = build(store, FakeSource(), enabled, disabled)
    assert [t.key for t in scheduler.targets] == [enabled.key]


def test_start_and_stop(store):
    target = make_target()
    source = FakeSource({target.key: [items("1")]})
    scheduler, _, _ = build(store, source, target)

    async def run():
        tasks = scheduler.start()
        assert [t.get_name() for t in tasks] == [f"scan-{target.key}"]
        for _ in range(5):
            await asyncio.sleep(0)
        await scheduler.stop()
        assert all(t.done() for t in tasks)

    asyncio.run(run())
    assert source.calls


@settings(max_examples=100)
@given(interval=st.integers(min_value=1, max_value=1440), seed=st.integers())
def test_next_delay_bounds(interval, seed):
    target = make_target(interval=interval)
    scheduler = ScanScheduler(None, [target], rng=random.Random(seed))

    delay = scheduler.next_delay(target)
    assert interval * 60 + 1 <= delay <= interval * 60 + 15
    assert 1 <= scheduler.initial_delay() <= 15


def test_invalid_jitter_range():
    with pytest.raises(ValueError):
        ScanScheduler(None, [], jitter_range=(10, 5))


def test_next_run_uses_utc_clock(store, caplog):
    caplog.set_level("INFO", logger="core.scan_scheduler")
    target = make_target(interval=5)
    source = FakeSource({target.key: [items("1")]})
    scheduler, _, _ = build(store, source, target)
    planned = []

    async def capture(delay):
        planned.append(scheduler.status()[target.key].next_run_at)

    scheduler._sleep = capture
    before = datetime.now(tz=timezone.utc)
    asyncio.run(scheduler.run_target(target, max_runs=2))

    assert all(at.tzinfo is timezone.utc for at in planned)
    assert before + timedelta(seconds=300) < planned[1] <= datetime.now(tz=timezone.utc) + timedelta(seconds=316)
    assert f"scheduled for {planned[1]:%H:%M:%S} UTC" in caplog.text


def test_maintenance_evicts_and_trims(store, tmp_path):
    now_ms = int(datetime.now(tz=timezone.utc).timestamp() * 1000)
    store.mark_seen("store", "acme", [f"item-{now_ms - 200 * 3_600_000}", f"item-{now_ms}"])
    usage = UsageRecorder(tmp_path / "usage-stats.json")
    usage.record_scan(10, 1, 1, now=datetime(2020, 1, 1, tzinfo=timezone.utc))
    usage.record_scan(10, 1, 1)

    maintenance = Maintenance(store, usage, seen_max_age_hours=168, stats_days_to_keep=30)
    asyncio.run(maintenance.run())

    assert store.ids("store", "acme") == {f"item-{now_ms}"}
    assert "2020-01-01" not in usage.stats.daily_stats
    assert usage.get_total_stats().total_requests == 2


def test_cron_validation():
    assert Scheduler.validate_cron_expression("0 4 * * *")
    assert not Scheduler.validate_cron_expression("0 4 * *")
    assert not Scheduler.validate_cron_expression("99 4 * * *")


def test_maintenance_is_registered_as_cron_job(store):
    async def run():
        scheduler = Scheduler(timezone="UTC")
        Maintenance(store).schedule(scheduler, "0 4 * * *")
        await scheduler.start()
        try:
            jobs = scheduler.list_jobs()
        finally:
            await scheduler.stop()
        return jobs

    jobs = asyncio.run(run())
    assert list(jobs) == ["maintenance"]
    assert "cron" in jobs["maintenance"]["trigger"]
