"""
Persistent log of alert-check runs, with history and aggregate stats.
"""
import uuid
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update

from rentwatch.database import get_session_context
from rentwatch.models.cron_run import CronRunModel

logger = logging.getLogger(__name__)

JOB_NAME = "check-alerts"


class RunLog:

    def __init__(self, session_context=None):
        self._session_context = session_context or get_session_context

    async def start_run(self, trigger: str = "beat", started_at: Optional[datetime] = None) -> str:
        run_id = str(uuid.uuid4())
        async with self._session_context() as session:
            session.add(CronRunModel(
                id=run_id,
                job_name=JOB_NAME,
                trigger=trigger,
                status="started",
                started_at=started_at or datetime.now(timezone.utc),
            ))
        return run_id

    async def complete_run(self, run_id: str, stats: Dict[str, Any]) -> None:
        errors = stats.get("errors") or {}
        async with self._session_context() as session:
            await session.execute(
                update(CronRunModel)
                .where(CronRunModel.id == run_id)
                .values(
                    status="completed",
                    completed_at=datetime.now(timezone.utc),
                    duration_ms=int(stats.get("duration_seconds", 0) * 1000),
                    alerts_processed=stats.get("alerts_processed", 0),
                    alerts_skipped=stats.get("alerts_skipped", 0),
                    alerts_deferred=stats.get("alerts_deferred", 0),
                    listings_fetched=stats.get("listings_fetched", 0),
                    listings_matched=stats.get("listings_matched", 0),
                    notifications_sent=stats.get("notifications_sent", 0),
                    error_count=errors.get("count", 0),
                    error_samples=errors.get("samples", []),
                )
            )

    async def fail_run(self, run_id: str, error: str, duration_seconds: float = 0) -> None:
        async with self._session_context() as session:
            await session.execute(
                update(CronRunModel)
                .where(CronRunModel.id == run_id)
                .values(
                    status="failed",
                    completed_at=datetime.now(timezone.utc),
                    duration_ms=int(duration_seconds * 1000),
                    error_message=error[:2000],
                )
            )

    async def get_history(self, limit: int = 50) -> List[Dict[str, Any]]:
        async with self._session_context() as session:
            result = await session.execute(
                select(CronRunModel)
                .where(CronRunModel.job_name == JOB_NAME)
                .order_by(CronRunModel.started_at.desc())
                .limit(limit)
            )
            return [run.to_dict() for run in result.scalars()]

    async def get_stats(self, days: int = 7) -> Dict[str, Any]:
        """Success rate, average duration and totals over the last `days` days."""
        since = datetime.now(timezone.utc) - timedelta(days=days)
        async with self._session_context() as session:
            result = await session.execute(
                select(CronRunModel)
                .where(CronRunModel.job_name == JOB_NAME, CronRunModel.started_at >= since)
                .order_by(CronRunModel.started_at.desc())
            )
            runs = list(result.scalars())

        finished = [r for r in runs if r.status in ("completed", "failed")]
        completed = [r for r in finished if r.status == "completed"]
        durations = [r.duration_ms for r in finished if r.duration_ms is not None]

        return {
            "period_days": days,
            "total_runs": len(runs),
            "completed_runs": len(completed),
            "failed_runs": len(finished) - len(completed),
            "success_rate": round(len(completed) / len(finished) * 100, 1) if finished else 0.0,
            "avg_duration_ms": int(sum(durations) / len(durations)) if durations else 0,
            "totals": {
                "alerts_processed": sum(r.alerts_processed or 0 for r in completed),
                "listings_matched": sum(r.listings_matched or 0 for r in completed),
                "notifications_sent": sum(r.notifications_sent or 0 for r in completed),
                "errors": sum(r.error_count or 0 for r in completed),
            },
            "recent_failures": [
                {
                    "id": r.id,
                    "started_at": r.started_at.isoformat() if r.started_at else None,
                    "error_message": r.error_message,
                }
                for r in finished if r.status == "failed"
            ][:5],
        }
