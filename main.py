"""
Main entry point for the listing monitor.
"""

import asyncio
import logging
import os
import signal
import sys

from dotenv import load_dotenv

# Add project root to PYTHONPATH so imports work when running this script directly
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.config import Settings, load_config
from core.errors import ConfigurationError
from core.infra.scheduler import Scheduler
from core.maintenance import Maintenance
from core.scan import TargetScanner
from core.scan_scheduler import ScanScheduler
from core.seen_store import SeenItemStore
from core.usage import UsageRecorder
from plugins.ebay import build_source
from sinks.discord_webhook import DiscordWebhookNotifier


logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s"
    )


async def main() -> int:
    """Load settings and configuration, then scan until a shutdown signal."""
    load_dotenv()
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))

    try:
        settings = Settings.from_env()
        config = load_config(settings.config_path)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    targets = config.enabled_targets()
    if not targets:
        logger.warning("No enabled stores or searches configured; nothing to do")
        return 0

    store = SeenItemStore(settings.cache_file)
    usage = UsageRecorder(settings.stats_file)
    source = build_source(settings)
    notifier = DiscordWebhookNotifier()
    logger.info(f"Using {source.name} with {notifier.name}")

    scanner = TargetScanner(config, source, notifier, store, usage)
    scans = ScanScheduler(scanner, targets, alert_on_failure=settings.alert_on_failure)

    try:
        if settings.scheduler_mode in ("once", "disabled"):
            logger.info(f"Scanning {len(targets)} targets once...")
            await asyncio.gather(*(scans.run_target(t, max_runs=1) for t in targets))
            return 0

        # Setup graceful shutdown
        stop_event = asyncio.Event()

        def signal_handler():
            logger.info("Received shutdown signal")
            stop_event.set()

        for sig in (signal.SIGTERM, signal.SIGINT):
            asyncio.get_running_loop().add_signal_handler(sig, signal_handler)

        maintenance_scheduler = Scheduler(timezone=settings.scheduler_timezone)
        maintenance = Maintenance(
            store,
            usage,
            seen_max_age_hours=settings.seen_max_age_hours,
            stats_days_to_keep=settings.stats_days_to_keep,
        )
        try:
            maintenance.schedule(maintenance_scheduler, settings.maintenance_cron)
        except ValueError as e:
            logger.error(f"Configuration error: {e}")
            return 1

        await maintenance_scheduler.start()
        scans.start()
        try:
            await stop_event.wait()
        finally:
            logger.info("Shutting down...")
            await scans.stop()
            await maintenance_scheduler.stop()
        return 0
    finally:
        await source.close()
        await notifier.close()
        logger.info("Shutdown complete")


def run_monitor() -> None:
    """Entry point that can be called from other scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run_monitor()
