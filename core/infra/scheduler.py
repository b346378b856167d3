"""
Cron-style housekeeping scheduler built on APScheduler.
"""

import logging
from typing import Any, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from croniter import croniter


logger = logging.getLogger(__name__)


class Scheduler:
    """Thin wrapper around APScheduler's AsyncIOScheduler with an in-memory job store."""

    def __init__(self, timezone: str = "UTC"):
        job_defaults = {
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 300,  # seconds
        }
        self.timezone = timezone
        self._scheduler = AsyncIOScheduler(job_defaults=job_defaults, timezone=timezone)
        self._started = False

    async def start(self) -> None:
        """Start the scheduler; must be awaited inside the running loop."""
        if not self._started:
            self._scheduler.start()
            self._started = True
            logger.info(f"Maintenance scheduler started ({self.timezone})")

    async def stop(self) -> None:
        if self._started:
            self._scheduler.shutdown(wait=False)
            self._started = False
            logger.info("Maintenance scheduler stopped")

    def add_cron_job(
        self,
        func: Callable,
        cron_expression: str,
        job_id: Optional[str] = None,
        **kwargs
    ) -> None:
        """Add a job that runs on a five-field cron schedule."""
        if not self.validate_cron_expression(cron_expression):
            raise ValueError(f"Invalid cron expression: {cron_expression}")

        trigger = CronTrigger.from_crontab(cron_expression, timezone=self.timezone)
        self._scheduler.add_job(
            func,
            trigger=trigger,
            id=job_id,
            replace_existing=True,
            **kwargs
        )
        logger.info(f"Added cron job: {job_id or func.__name__} ({cron_expression})")

    @staticmethod
    def validate_cron_expression(cron_expression: str) -> bool:
        """Check a cron expression with croniter; only five fields are accepted."""
        if len(cron_expression.split()) != 5:
            logger.error(f"Cron expression must have 5 fields: '{cron_expression}'")
            return False
        try:
            croniter(cron_expression)
            return True
        except (ValueError, KeyError) as e:
            logger.error(f"Invalid cron expression '{cron_expression}': {e}")
            return False

    def list_jobs(self) -> Dict[str, Any]:
        """List all scheduled jobs."""
        jobs = {}
        for job in self._scheduler.get_jobs():
            jobs[job.id] = {
                "name": job.name,
                "next_run": getattr(job, "next_run_time", None),
                "trigger": str(job.trigger),
            }
        return jobs
