"""Cron trigger and run-history endpoints, guarded by a shared secret."""
import hmac
import logging
import os

from fastapi import APIRouter, HTTPException, Query, Request

from rentwatch.schemas import RunStatsResponse
from rentwatch.services.orchestrator import run_alert_check
from rentwatch.services.run_log import RunLog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"])


def verify_cron_secret(request: Request):
    """Require 'Authorization: Bearer <CRON_SECRET>'. An unset secret rejects everything."""
    secret = os.getenv("CRON_SECRET", "")
    header = request.headers.get("authorization", "")
    if not secret or not hmac.compare_digest(header, f"Bearer {secret}"):
        logger.warning(
            "Cron authentication failed from %s",
            request.client.host if request.client else "unknown"
        )
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/check-alerts", response_model=RunStatsResponse)
async def check_alerts(request: Request) -> RunStatsResponse:
    """Run one alert check and return its statistics."""
    verify_cron_secret(request)
    try:
        stats = await run_alert_check(trigger="http")
    except Exception as e:
        logger.exception(f"Alert check failed: {e}")
        raise HTTPException(status_code=500, detail=f"Alert check failed: {e}")

    return RunStatsResponse(
        success=True,
        message="Alert check completed successfully",
        stats=stats.to_dict(),
    )


@router.get("/history")
async def run_history(request: Request, limit: int = Query(50, ge=1, le=500)):
    """Most recent alert-check runs, newest first."""
    verify_cron_secret(request)
    runs = await RunLog().get_history(limit=limit)
    return {"runs": runs, "count": len(runs)}


@router.get("/stats")
async def run_stats(request: Request, days: int = Query(7, ge=1, le=90)):
    """Aggregate run statistics for the last `days` days."""
    verify_cron_secret(request)
    return await RunLog().get_stats(days=days)
