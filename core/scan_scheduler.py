"""
Scan scheduler: keeps every enabled target scanning, forever, independently.

Each target gets its own asyncio task looping ``sleep -> scan -> re-arm``.
The next delay is computed only after a scan has finished, so scans of one
target never overlap, while different targets proceed concurrently. A scan
that raises is logged (and optionally alerted) and the target is re-armed
as usual.
"""

import asyncio
import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel

from .config import resolve_destination
from .errors import SourceFetchError, SourceShapeDrift
from .models import MonitoredTarget, ScanRunContext
from .scan import TargetScanner

logger = logging.getLogger(__name__)

DEFAULT_JITTER_RANGE = (1, 15)


class TargetStatus(BaseModel):
    """Per-target bookkeeping exposed through :meth:`ScanScheduler.status`."""
    runs: int = 0
    failures: int = 0
    drifts: int = 0
    last_error: Optional[str] = None
    last_run_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = None


class ScanScheduler:
    """Runs one self-rearming asyncio task per enabled target."""

    def __init__(
        self,
        scanner: TargetScanner,
        targets: Iterable[MonitoredTarget],
        *,
        jitter_range: Tuple[int, int] = DEFAULT_JITTER_RANGE,
        alert_on_failure: bool = True,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        low, high = jitter_range
        if low < 0 or high < low:
            raise ValueError(f"Invalid jitter range: {jitter_range}")
        self.scanner = scanner
        # enablement is read once, here
        self.targets = [t for t in targets if t.enabled]
        self.jitter_range = (low, high)
        self.alert_on_failure = alert_on_failure
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._tasks: Dict[str, asyncio.Task] = {}
        self._status: Dict[str, TargetStatus] = {t.key: TargetStatus() for t in self.targets}

    # ------------------------------------------------------------------ #
    # Timing
    def jitter(self) -> int:
        """Random whole seconds within the jitter range."""
        return self._rng.randint(*self.jitter_range)

    def initial_delay(self) -> float:
        return float(self.jitter())

    def next_delay(self, target: MonitoredTarget) -> float:
        return target.interval * 60 + float(self.jitter())

    # ------------------------------------------------------------------ #
    # Lifecycle
    def start(self) -> List[asyncio.Task]:
        """Create a task per enabled target; must be called inside a running loop."""
        logger.info(
            f"Starting scanner with {sum(t.kind == 'store' for t in self.targets)} stores and "
            f"{sum(t.kind == 'search' for t in self.targets)} searches"
        )
        for target in self.targets:
            if target.key in self._tasks and not self._tasks[target.key].done():
                continue
            logger.info(f"Scheduling {target.kind} {target.name} to check every {target.interval} minutes")
            self._tasks[target.key] = asyncio.create_task(
                self.run_target(target), name=f"scan-{target.key}"
            )
        return list(self._tasks.values())

    async def wait(self) -> None:
        """Wait until every target task has finished (normally never)."""
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)

    async def stop(self) -> None:
        """Cancel all target tasks, including scans in flight."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Scan scheduler stopped ({len(tasks)} tasks cancelled)")

    def status(self) -> Dict[str, TargetStatus]:
        return {key: status.model_copy() for key, status in self._status.items()}

    # ------------------------------------------------------------------ #
    # Per-target loop
    async def run_target(self, target: MonitoredTarget, max_runs: Optional[int] = None) -> None:
        """Scan ``target`` forever, or ``max_runs`` times."""
        status = self._status.setdefault(target.key, TargetStatus())
        context = ScanRunContext(is_first_run=True)
        delay = self.initial_delay()
        logger.info(f"Waiting {delay:.0f} seconds before initial {target.kind} scan of {target.name}")

        runs = 0
        status.next_run_at = datetime.now(tz=timezone.utc) + timedelta(seconds=delay)
        while True:
            await self._sleep(delay)

            await self._run_guarded(target, context, status)
            runs += 1
            if max_runs is not None and runs >= max_runs:
                status.next_run_at = None
                return

            # the first-run flag belongs to this target only
            context = ScanRunContext(is_first_run=False)
            delay = self.next_delay(target)
            status.next_run_at = datetime.now(tz=timezone.utc) + timedelta(seconds=delay)
            logger.info(
                f"Next {target.kind} scan of {target.name} scheduled for {status.next_run_at:%H:%M:%S} UTC "
                f"({target.interval} minutes plus {delay - target.interval * 60:.0f} seconds from now)"
            )

    async def _run_guarded(self, target: MonitoredTarget, context: ScanRunContext, status: TargetStatus) -> bool:
        """Run one scan; never raises except on cancellation."""
        status.runs += 1
        status.last_run_at = datetime.now(tz=timezone.utc)
        try:
            await self.scanner.run_once(target, context)
        except SourceShapeDrift as e:
            status.drifts += 1
            status.last_error = f"SourceShapeDrift: {e}"
            logger.warning(f"{target.key}: page structure changed, no items extracted: {e}")
            if self.scanner.usage is not None and e.request_count:
                self.scanner.usage.record_scan(e.bytes_received, e.request_count, 0)
            return False
        except SourceFetchError as e:
            status.failures += 1
            status.last_error = f"SourceFetchError: {e}"
            logger.error(f"Error checking {target.kind} {target.name}: {e}")
            await self._alert(target, f"Fetching listings failed: {e}")
            return False
        except Exception as e:
            status.failures += 1
            status.last_error = f"{type(e).__name__}: {e}"
            logger.exception(f"Unexpected error checking {target.kind} {target.name}")
            await self._alert(target, f"Unexpected {type(e).__name__}: {e}")
            return False
        status.last_error = None
        return True

    async def _alert(self, target: MonitoredTarget, message: str) -> None:
        if not self.alert_on_failure:
            return
        destination = resolve_destination(self.scanner.config, target)
        if destination is None:
            return
        try:
            await self.scanner.notifier.alert(destination, target, message)
        except Exception as e:  # noqa: BLE001
            logger.error(f"{target.key}: failed to send scan alert: {e}")
