"""
The periodic alert check.

One run loads every active alert and, for each alert that is due under its
owner's tier, fetches listings, matches them, drops ones already sent,
scores rent stabilization when needed and dispatches notifications.

Failures are scoped: a broken alert, source, building lookup or channel
is counted in RunStats and the run carries on. last_checked (claimed by
compare-and-swap) and the dedup records make overlapping or repeated runs
safe.

RUN_BUDGET_SECONDS bounds a run. Work not started by the deadline is
deferred to the next run. An alert still busy once the grace period after
the deadline is spent is cancelled.
"""
import os
import time
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from rentwatch.exceptions import AlertValidationError, RentwatchError
from rentwatch.schemas import AlertCriteria, Listing
from rentwatch.services.alert_store import AlertStore
from rentwatch.services.criteria_matcher import evaluate, matches, normalize_area
from rentwatch.services.dedup_store import DedupStore
from rentwatch.services.enrichment_service import EnrichmentService
from rentwatch.services.listing_repository import ListingRepository
from rentwatch.services.notification_dispatcher import NotificationDispatcher
from rentwatch.services.run_log import RunLog
from rentwatch.services.sources import ListingSourceAdapter
from rentwatch.services.tier_service import Tier, TierService
from rentwatch.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)

MAX_ERROR_SAMPLES = 20


@dataclass
class RunStats:
    started_at: datetime
    alerts_processed: int = 0
    alerts_skipped: int = 0
    alerts_deferred: int = 0
    listings_fetched: int = 0
    listings_matched: int = 0
    notifications_sent: int = 0
    notifications_skipped: int = 0
    notifications_deferred: int = 0
    channel_failures: int = 0
    error_count: int = 0
    error_samples: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    def record_error(self, message: str) -> None:
        self.error_count += 1
        if len(self.error_samples) < MAX_ERROR_SAMPLES:
            self.error_samples.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "alerts_processed": self.alerts_processed,
            "alerts_skipped": self.alerts_skipped,
            "alerts_deferred": self.alerts_deferred,
            "listings_fetched": self.listings_fetched,
            "listings_matched": self.listings_matched,
            "notifications_sent": self.notifications_sent,
            "notifications_skipped": self.notifications_skipped,
            "notifications_deferred": self.notifications_deferred,
            "channel_failures": self.channel_failures,
            "errors": {"count": self.error_count, "samples": list(self.error_samples)},
        }


class _RunContext:
    """State shared by the alerts of a single run."""

    def __init__(self, now: datetime, deadline: float, stats: RunStats):
        self.now = now
        self.deadline = deadline
        self.stats = stats
        self.fetches: Dict[Tuple[str, ...], asyncio.Task] = {}


class AlertCheckOrchestrator:

    def __init__(
        self,
        alert_store: Optional[AlertStore] = None,
        source_adapter: Optional[ListingSourceAdapter] = None,
        listing_repository: Optional[ListingRepository] = None,
        dedup_store: Optional[DedupStore] = None,
        enrichment_service: Optional[EnrichmentService] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        user_directory: Optional[UserDirectory] = None,
        concurrency: Optional[int] = None,
        run_budget_seconds: Optional[float] = None,
        call_timeout: Optional[float] = None,
        enrich_all: Optional[bool] = None,
    ):
        self.alert_store = alert_store or AlertStore()
        self.source_adapter = source_adapter or ListingSourceAdapter()
        self.listing_repository = listing_repository or ListingRepository()
        self.dedup_store = dedup_store or DedupStore()
        self.enrichment_service = enrichment_service or EnrichmentService(repository=self.listing_repository)
        self.dispatcher = dispatcher or NotificationDispatcher(dedup_store=self.dedup_store)
        self.user_directory = user_directory or UserDirectory()
        self.concurrency = concurrency or int(os.getenv("ALERT_CHECK_CONCURRENCY", "5"))
        if run_budget_seconds is None:
            run_budget_seconds = float(os.getenv("RUN_BUDGET_SECONDS", "600"))
        self.run_budget_seconds = run_budget_seconds
        self.call_timeout = call_timeout or float(os.getenv("EXTERNAL_CALL_TIMEOUT", "15"))
        # Room past the deadline for one in-flight dispatch (email + sms)
        self.overrun_grace = 2 * self.call_timeout
        if enrich_all is None:
            enrich_all = os.getenv("ENRICH_ALL_CANDIDATES", "false").lower() == "true"
        self.enrich_all = enrich_all

    async def run(self, now: Optional[datetime] = None) -> RunStats:
        """Check every due alert once. Always returns stats."""
        started = time.monotonic()
        now = now or datetime.now(timezone.utc)
        stats = RunStats(started_at=now)
        ctx = _RunContext(now, started + self.run_budget_seconds, stats)

        try:
            rows = await self.alert_store.get_active_alerts()
        except Exception as e:
            logger.exception(f"Failed to load active alerts: {e}")
            stats.record_error(f"Failed to load alerts: {e}")
            rows = []

        semaphore = asyncio.Semaphore(self.concurrency)
        jobs = []
        for row in rows:
            try:
                alert = self._validate(row)
            except AlertValidationError as e:
                logger.warning(str(e))
                stats.alerts_skipped += 1
                stats.record_error(str(e))
                continue
            jobs.append(self._run_alert(alert, row.get("last_checked"), ctx, semaphore))

        await asyncio.gather(*jobs)

        # Shared fetches abandoned by timed-out alerts must not outlive the run
        for task in ctx.fetches.values():
            if not task.done():
                task.cancel()

        stats.duration_seconds = time.monotonic() - started
        logger.info(
            f"Alert check finished: {stats.alerts_processed} processed, "
            f"{stats.alerts_skipped} skipped, {stats.alerts_deferred} deferred, "
            f"{stats.notifications_sent} sent, {stats.error_count} errors "
            f"in {stats.duration_seconds:.1f}s"
        )
        return stats

    @staticmethod
    def _validate(row: Dict[str, Any]) -> AlertCriteria:
        try:
            return AlertCriteria(**row)
        except ValidationError as e:
            problems = "; ".join(err.get("msg", "") for err in e.errors())
            raise AlertValidationError(
                f"Alert {row.get('id')} failed validation: {problems}",
                alert_id=row.get("id"),
            )

    async def _run_alert(self, alert: AlertCriteria, observed: Optional[datetime], ctx: _RunContext, semaphore: asyncio.Semaphore):
        async with semaphore:
            remaining = ctx.deadline - time.monotonic()
            if remaining <= 0:
                # Not started in time; last_checked is untouched so the next run picks it up
                ctx.stats.alerts_deferred += 1
                return
            try:
                await asyncio.wait_for(
                    self._check_alert(alert, observed, ctx),
                    timeout=remaining + self.overrun_grace,
                )
            except asyncio.TimeoutError:
                logger.warning(f"Alert {alert.id} cut off at the run budget")
                ctx.stats.record_error(f"alert {alert.id}: exceeded run budget")
            except RentwatchError as e:
                logger.warning(f"Alert {alert.id} failed: {e}")
                ctx.stats.record_error(f"alert {alert.id}: {e}")
            except Exception as e:
                logger.exception(f"Unexpected error checking alert {alert.id}: {e}")
                ctx.stats.record_error(f"alert {alert.id}: {e}")

    async def _effective_tier(self, user_id: str, now: datetime) -> Tier:
        try:
            return await asyncio.wait_for(TierService.get_effective_tier(user_id, now), timeout=self.call_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Entitlement lookup timed out for {user_id}, using free tier")
            return Tier.FREE

    async def _check_alert(self, alert: AlertCriteria, observed: Optional[datetime], ctx: _RunContext):
        stats = ctx.stats
        tier = await self._effective_tier(alert.user_id, ctx.now)
        interval = TierService.resolve_interval(alert.preferred_frequency, tier)
        if not TierService.is_due(alert.last_checked, interval, ctx.now):
            stats.alerts_skipped += 1
            return

        if not await self.alert_store.claim_check(alert.id, observed, ctx.now):
            stats.alerts_skipped += 1
            return
        stats.alerts_processed += 1

        listings = await self._fetch(alert.areas, ctx)
        candidates = [l for l in listings if evaluate(alert, l, check_stabilization=False).matched]

        if candidates and alert.notify_only_new:
            fresh = set(await self.dedup_store.filter_unnotified(alert.id, [l.id for l in candidates]))
            candidates = [l for l in candidates if l.id in fresh]

        if candidates and (alert.filter_rent_stabilized or self.enrich_all):
            candidates, errors = await self.enrichment_service.enrich_many(candidates, ctx.now)
            for error in errors:
                stats.record_error(error)

        matched = [l for l in candidates if matches(alert, l)]
        stats.listings_matched += len(matched)
        if not matched:
            return
        logger.info(f"Alert {alert.id} matched {len(matched)} new listings")

        user = await self._get_contact(alert.user_id)
        for index, listing in enumerate(matched):
            if time.monotonic() >= ctx.deadline:
                # Unclaimed, so the next run matches these again
                left = len(matched) - index
                logger.warning(f"Run budget spent, deferring {left} notifications for alert {alert.id}")
                stats.notifications_deferred += left
                break
            try:
                outcome = await self.dispatcher.dispatch(alert, listing, user)
            except Exception as e:
                logger.exception(f"Dispatch failed for alert {alert.id}, listing {listing.id}: {e}")
                stats.record_error(f"dispatch {alert.id}/{listing.id}: {e}")
                continue
            if outcome.status == "sent":
                stats.notifications_sent += 1
            elif outcome.status == "skipped":
                stats.notifications_skipped += 1
            stats.channel_failures += outcome.channel_failures

    async def _get_contact(self, user_id: str):
        try:
            return await asyncio.wait_for(self.user_directory.get_contact(user_id), timeout=self.call_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Contact lookup timed out for {user_id}")
            return None

    async def _fetch(self, areas: List[str], ctx: _RunContext) -> List[Listing]:
        """Fetch once per distinct area set within a run."""
        key = tuple(sorted({normalize_area(a) for a in areas}))
        task = ctx.fetches.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_store(areas, ctx))
            ctx.fetches[key] = task
        return await asyncio.shield(task)

    async def _fetch_and_store(self, areas: List[str], ctx: _RunContext) -> List[Listing]:
        result = await self.source_adapter.fetch(areas)
        ctx.stats.listings_fetched += len(result.listings)
        for error in result.errors:
            ctx.stats.record_error(error)

        stored = await self.listing_repository.upsert_listings(result.listings, seen_at=ctx.now)
        if result.complete:
            await self.listing_repository.mark_absent_inactive(
                areas, {l.id for l in result.listings}, seen_before=ctx.now
            )
        elif result.truncated:
            logger.info(f"Partial feed from {result.truncated} for {areas}, keeping unseen listings active")
        return stored


async def run_alert_check(
    trigger: str = "beat",
    orchestrator: Optional[AlertCheckOrchestrator] = None,
    run_log: Optional[RunLog] = None,
) -> RunStats:
    """Run one alert check and record it in the run log."""
    orchestrator = orchestrator or AlertCheckOrchestrator()
    run_log = run_log or RunLog()

    run_id = None
    try:
        run_id = await run_log.start_run(trigger=trigger)
    except Exception as e:
        logger.warning(f"Could not record run start: {e}")

    try:
        stats = await orchestrator.run()
    except Exception as e:
        if run_id:
            try:
                await run_log.fail_run(run_id, str(e))
            except Exception as log_error:
                logger.warning(f"Could not record run failure: {log_error}")
        raise

    if run_id:
        try:
            await run_log.complete_run(run_id, stats.to_dict())
        except Exception as e:
            logger.warning(f"Could not record run completion: {e}")
    return stats
