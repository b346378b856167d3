"""
Daily housekeeping: prune old seen ids and old usage buckets.
"""

import logging
from datetime import timedelta
from typing import Optional

from .infra.scheduler import Scheduler
from .seen_store import SeenItemStore
from .usage import UsageRecorder

logger = logging.getLogger(__name__)

MAINTENANCE_JOB_ID = "maintenance"


class Maintenance:
    """Evicts aged seen ids and trims usage statistics."""

    def __init__(
        self,
        store: SeenItemStore,
        usage: Optional[UsageRecorder] = None,
        *,
        seen_max_age_hours: int = 168,
        stats_days_to_keep: int = 30,
    ):
        self.store = store
        self.usage = usage
        self.seen_max_age = timedelta(hours=seen_max_age_hours)
        self.stats_days_to_keep = stats_days_to_keep

    async def run(self) -> None:
        logger.info("Running maintenance")
        self.store.evict_older_than(self.seen_max_age)
        if self.usage is not None:
            removed = self.usage.clear_old_stats(self.stats_days_to_keep)
            logger.info(f"Removed {removed} usage buckets older than {self.stats_days_to_keep} days")

    def schedule(self, scheduler: Scheduler, cron_expression: str) -> None:
        scheduler.add_cron_job(self.run, cron_expression, job_id=MAINTENANCE_JOB_ID)
