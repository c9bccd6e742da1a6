"""Periodic alert check task."""
import logging
from typing import Any, Dict

from rentwatch.celery_app import celery_app
from rentwatch.database import is_database_enabled, close_db
from rentwatch.tasks.maintenance_tasks import run_async

logger = logging.getLogger(__name__)


@celery_app.task(name="rentwatch.tasks.alert_tasks.check_all_alerts")
def check_all_alerts() -> Dict[str, Any]:
    """Check every due alert once and return the run statistics."""
    if not is_database_enabled():
        return {"status": "skipped", "reason": "Database not enabled"}

    async def _check():
        from rentwatch.services.orchestrator import run_alert_check
        try:
            stats = await run_alert_check(trigger="beat")
            return stats.to_dict()
        finally:
            # Engine is bound to this task's event loop
            await close_db()

    try:
        stats = run_async(_check())
        return {"status": "completed", "stats": stats}
    except Exception as e:
        logger.exception(f"Alert check failed: {e}")
        return {"status": "failed", "error": str(e)}
