"""Tests for the run log."""
import pytest

from rentwatch.services.run_log import RunLog


class TestRunLog:
    @pytest.mark.asyncio
    async def test_history_and_stats(self, session_context):
        log = RunLog(session_context)
        ok = await log.start_run(trigger="http")
        await log.complete_run(ok, {
            "duration_seconds": 2.5,
            "alerts_processed": 3,
            "listings_matched": 4,
            "notifications_sent": 2,
            "errors": {"count": 1, "samples": ["[streeteasy] timed out"]},
        })
        bad = await log.start_run()
        await log.fail_run(bad, "database unavailable", duration_seconds=1)

        history = await log.get_history()
        assert {run["id"] for run in history} == {ok, bad}
        completed = next(run for run in history if run["id"] == ok)
        assert completed["status"] == "completed"
        assert completed["metrics"]["notifications_sent"] == 2
        assert completed["error_samples"] == ["[streeteasy] timed out"]

        stats = await log.get_stats(days=7)
        assert stats["total_runs"] == 2
        assert stats["success_rate"] == 50.0
        assert stats["avg_duration_ms"] == 1750
        assert stats["totals"]["alerts_processed"] == 3
        assert stats["recent_failures"][0]["error_message"] == "database unavailable"

    @pytest.mark.asyncio
    async def test_empty_stats(self, session_context):
        stats = await RunLog(session_context).get_stats()
        assert stats["total_runs"] == 0
        assert stats["success_rate"] == 0.0
