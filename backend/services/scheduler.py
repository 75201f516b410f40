"""Background scheduler for the Instagram sync pipeline.

Uses APScheduler inside the API process. The same jobs are also reachable over
HTTP (routers/sync.py) for deployments that prefer an external cron.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from services.data_scheduler import DataScheduler

logger = logging.getLogger(__name__)
settings = get_settings()

# Global scheduler instance
scheduler = AsyncIOScheduler(timezone="UTC")


async def daily_instagram_sync():
    """Snapshot every active account, then refresh expiring tokens."""
    logger.info("Starting scheduled daily Instagram sync...")
    data_scheduler = DataScheduler()
    try:
        results = await data_scheduler.run_daily_collection()
        logger.info(
            f"Scheduled daily sync finished: {results.successful} succeeded, "
            f"{results.failed} failed"
        )
    except Exception as e:
        logger.error(f"Scheduled daily sync failed: {e}")

    try:
        await data_scheduler.check_and_refresh_tokens()
    except Exception as e:
        logger.error(f"Token refresh after daily sync failed: {e}")


async def refresh_instagram_tokens():
    logger.info("Starting scheduled token refresh...")
    try:
        summary = await DataScheduler().check_and_refresh_tokens()
        logger.info(
            f"Token refresh finished: {summary.refreshed} refreshed, "
            f"{summary.deactivated} deactivated"
        )
    except Exception as e:
        logger.error(f"Scheduled token refresh failed: {e}")


async def sync_stale_accounts():
    """Catch up on accounts the daily run missed."""
    try:
        await DataScheduler().force_sync_stale_accounts(settings.stale_hours_threshold)
    except Exception as e:
        logger.error(f"Scheduled stale account sync failed: {e}")


async def cleanup_sync_history():
    data_scheduler = DataScheduler()
    try:
        await data_scheduler.cleanup_old_sync_logs()
        await data_scheduler.prune_old_snapshots()
    except Exception as e:
        logger.error(f"Scheduled cleanup failed: {e}")


def start_scheduler():
    """Start the background scheduler with all jobs."""
    if scheduler.running:
        print("✓ Scheduler already running")
        return

    # Daily snapshot - once per UTC day
    scheduler.add_job(
        daily_instagram_sync,
        trigger=CronTrigger(hour=settings.daily_sync_hour_utc, minute=0),
        id="instagram_daily_sync",
        name="Snapshot all active Instagram accounts",
        replace_existing=True,
    )

    scheduler.add_job(
        refresh_instagram_tokens,
        trigger=IntervalTrigger(hours=6),
        id="instagram_token_refresh",
        name="Refresh expiring Instagram tokens",
        replace_existing=True,
    )

    scheduler.add_job(
        sync_stale_accounts,
        trigger=IntervalTrigger(hours=6),
        id="instagram_stale_sync",
        name="Sync accounts missed by the daily run",
        replace_existing=True,
    )

    scheduler.add_job(
        cleanup_sync_history,
        trigger=CronTrigger(hour=(settings.daily_sync_hour_utc + 12) % 24, minute=0),
        id="instagram_history_cleanup",
        name="Delete old sync logs and snapshots",
        replace_existing=True,
    )

    scheduler.start()
    print(
        f"✓ Background scheduler started (daily sync at {settings.daily_sync_hour_utc:02d}:00 UTC, "
        "token refresh + stale catch-up every 6 hours)"
    )


def stop_scheduler():
    """Stop the background scheduler."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Background scheduler stopped")
