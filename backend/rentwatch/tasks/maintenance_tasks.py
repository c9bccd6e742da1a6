"""
Celery tasks for maintenance and cleanup operations.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Any

from rentwatch.celery_app import celery_app
from rentwatch.database import close_db, is_database_enabled

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run an async coroutine in a sync context."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(name="rentwatch.tasks.maintenance_tasks.mark_stale_listings")
def mark_stale_listings(days_old: int = 7) -> Dict[str, Any]:
    """
    Mark listings not seen in X days as inactive.

    Args:
        days_old: Number of days since last seen

    Returns:
        Dict with cleanup results
    """
    if not is_database_enabled():
        return {"status": "skipped", "reason": "Database not enabled"}

    logger.info(f"Marking listings not seen in {days_old} days inactive")

    async def _sweep():
        from rentwatch.services.listing_repository import ListingRepository
        try:
            return await ListingRepository().mark_stale_inactive(days_old=days_old)
        finally:
            await close_db()

    try:
        count = run_async(_sweep())
        logger.info(f"Marked {count} stale listings as inactive")
        return {
            "status": "completed",
            "deactivated_count": count,
            "cutoff_date": (datetime.now(timezone.utc) - timedelta(days=days_old)).isoformat(),
        }
    except Exception as e:
        logger.exception(f"Stale listing sweep failed: {e}")
        return {"status": "failed", "error": str(e)}
