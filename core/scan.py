"""
Single scan of one target: fetch, classify, gate, notify, commit, record.
"""

from __future__ import annotations

import logging
from typing import Optional

from .config import resolve_destination
from .errors import NotificationDeliveryError
from .gate import NotificationGate
from .interfaces import ListingSource, Notifier
from .models import MonitorConfig, MonitoredTarget, ScanReport, ScanRunContext
from .novelty import NoveltyFilter
from .seen_store import SeenItemStore
from .usage import UsageRecorder

logger = logging.getLogger(__name__)


class TargetScanner:
    """Runs one scan of a target against the shared store and collaborators.

    Fetch errors propagate to the caller; the scheduler owns that boundary.
    Delivery errors are handled per item. Observed ids are committed to the
    store and usage is recorded after dispatch, even when dispatch fails part
    way.
    """

    def __init__(
        self,
        config: MonitorConfig,
        source: ListingSource,
        notifier: Notifier,
        store: SeenItemStore,
        usage: Optional[UsageRecorder] = None,
        gate: Optional[NotificationGate] = None,
    ):
        self.config = config
        self.source = source
        self.notifier = notifier
        self.store = store
        self.usage = usage
        self.novelty = NoveltyFilter(store)
        self.gate = gate or NotificationGate()

    async def run_once(self, target: MonitoredTarget, context: ScanRunContext) -> ScanReport:
        logger.info(f"Checking {target.kind}: {target.name}")
        report = ScanReport(target_key=target.key)
        context.is_first_scan = self.store.is_first_scan(target.kind, target.identifier)

        page = await self.source.fetch(target)

        result = self.novelty.classify(target, page.items)
        report.total_count = result.total_count
        report.new_count = len(result.new_items)

        decision = self.gate.select(result.new_items, first_scan=context.is_first_scan, label=target.key)
        report.suppressed_count = len(decision.suppressed)

        try:
            if decision.dispatch:
                destination = resolve_destination(self.config, target)
                if destination is None:
                    logger.error(
                        f"{target.key}: no destination, {len(decision.dispatch)} new items not notified"
                    )
                else:
                    for item in decision.dispatch:
                        try:
                            await self.notifier.notify(destination, item, target)
                        except NotificationDeliveryError as e:
                            report.failed_count += 1
                            logger.error(f"{target.key}: notification for item {item.id} failed: {e}")
                            continue
                        context.notified_count += 1
                        report.notified_count += 1
        finally:
            self.novelty.commit(target, result)
            if self.usage is not None:
                self.usage.record_scan(page.bytes_received, page.request_count, len(page.items))

        logger.info(
            f"{target.key}: {report.new_count} new, {report.notified_count} notified, "
            f"{report.suppressed_count} suppressed, {report.failed_count} failed"
        )
        return report
