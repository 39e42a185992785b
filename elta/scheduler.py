"""
Scheduler Module

Background jobs for supplier price sync.
Uses APScheduler: a nightly full sync and a periodic stale-price check.
"""

import os
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from elta.sync import sync_all_suppliers, sync_stale_prices

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SYNC_ENABLED = os.getenv("SYNC_ENABLED", "true").lower() == "true"

SUPPLIER_SYNC_HOUR = int(os.getenv("SUPPLIER_SYNC_HOUR", "3"))
SUPPLIER_SYNC_INTERVAL_HOURS = int(os.getenv("SUPPLIER_SYNC_INTERVAL_HOURS", "6"))

scheduler = AsyncIOScheduler()


async def scheduled_supplier_sync():
    """Nightly price sync for all active suppliers"""
    if not SYNC_ENABLED:
        logger.info("[Scheduler] Sync disabled, skipping supplier sync")
        return

    logger.info("[Scheduler] Starting nightly supplier price sync")
    try:
        results = await sync_all_suppliers(trigger_type="scheduled")
        for result in results:
            logger.info(f"[Scheduler] {result.get('supplier_code')}: {result.get('status')} - "
                        f"updated={result.get('updated', 0)}, price_changes={result.get('price_changes', 0)}")
    except Exception as e:
        logger.error(f"[Scheduler] Supplier sync failed: {e}")


async def scheduled_stale_check():
    """Resync suppliers whose catalog prices have gone stale"""
    if not SYNC_ENABLED:
        return

    try:
        results = await sync_stale_prices()
        if results:
            logger.info(f"[Scheduler] Stale check resynced {len(results)} suppliers")
    except Exception as e:
        logger.error(f"[Scheduler] Stale check failed: {e}")


def start_scheduler():
    """Start the background scheduler"""
    if not SYNC_ENABLED:
        logger.info("[Scheduler] Sync disabled via SYNC_ENABLED env var")
        return

    logger.info("[Scheduler] Starting scheduler with:")
    logger.info(f"  - Supplier price sync: daily at {SUPPLIER_SYNC_HOUR}:00")
    logger.info(f"  - Stale price check: every {SUPPLIER_SYNC_INTERVAL_HOURS} hours")

    scheduler.add_job(
        scheduled_supplier_sync,
        CronTrigger(hour=SUPPLIER_SYNC_HOUR, minute=0),
        id="supplier_price_sync",
        name="Nightly Supplier Price Sync",
        replace_existing=True
    )

    scheduler.add_job(
        scheduled_stale_check,
        IntervalTrigger(hours=SUPPLIER_SYNC_INTERVAL_HOURS),
        id="supplier_stale_check",
        name="Stale Price Check",
        replace_existing=True
    )

    scheduler.start()
    logger.info("[Scheduler] Scheduler started successfully")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("[Scheduler] Scheduler stopped")
