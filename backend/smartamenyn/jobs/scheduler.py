"""APScheduler job configuration for the nightly offer sync."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from smartamenyn.config import get_settings, require_database_url

logger = logging.getLogger(__name__)


async def sync_all_stores():
    """Refresh offers for every enabled store; never raises into the scheduler."""
    from smartamenyn.services.sync import run_full_sync

    logger.info("Starting scheduled offer sync")
    try:
        report = await run_full_sync()
    except Exception:
        logger.exception("Scheduled offer sync failed.")
        return

    logger.info(
        "Scheduled sync completed: %d synced, %d failed, %d skipped, %d offers.",
        report.synced,
        report.failed,
        report.skipped,
        report.total_offers,
    )
    for result in report.results:
        if not result.success:
            logger.warning("  %s (%s): %s", result.store_name, result.chain, result.error)


def start_scheduler() -> AsyncIOScheduler:
    """Configure and start the APScheduler."""
    settings = get_settings()
    require_database_url(settings)
    scheduler = AsyncIOScheduler(timezone=settings.scheduler_timezone)

    # Chains publish the week's offers overnight; sync early every morning.
    scheduler.add_job(
        sync_all_stores,
        CronTrigger(
            hour=settings.scheduler_hour,
            minute=settings.scheduler_minute,
            timezone=settings.scheduler_timezone,
        ),
        id="sync_offers",
        name="Sync offers for all stores",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Scheduler started with %d jobs", len(scheduler.get_jobs()))
    return scheduler
