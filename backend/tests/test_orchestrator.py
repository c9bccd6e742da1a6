"""Tests for the alert-check orchestrator."""
import asyncio
import pytest
import httpx
from datetime import datetime, timedelta, timezone
from unittest.mock import patch, AsyncMock, MagicMock

from sqlalchemy import select

from rentwatch.models.alert import AlertModel
from rentwatch.models.listing import ListingModel
from rentwatch.schemas import Listing, RentStabilizationStatus
from rentwatch.services.alert_store import AlertStore
from rentwatch.services.channels import SendResult
from rentwatch.services.dedup_store import DedupStore
from rentwatch.services.listing_repository import ListingRepository
from rentwatch.services.notification_dispatcher import DispatchOutcome, NotificationDispatcher
from rentwatch.services.orchestrator import AlertCheckOrchestrator, RunStats, run_alert_check
from rentwatch.services.sources import FetchResult, ListingSourceAdapter, StreetEasySource
from rentwatch.services.tier_service import Tier
from rentwatch.services.user_directory import UserContact


NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def alert_row(**overrides):
    row = {
        "id": "alert-1",
        "user_id": "user-1",
        "name": "EV 2BR",
        "areas": ["East Village"],
        "max_price": 4000,
        "min_beds": 2,
        "enable_email": True,
        "enable_sms": False,
        "notify_only_new": True,
        "filter_rent_stabilized": False,
        "preferred_frequency": "1hour",
        "is_active": True,
        "last_checked": None,
    }
    row.update(overrides)
    return row


def make_listing(id="streeteasy:1", **overrides):
    data = {
        "id": id,
        "address": "212 E 7th St #4B",
        "neighborhood": "East Village",
        "price": 3500,
        "bedrooms": 2,
        "bathrooms": 1,
        "listing_url": f"https://streeteasy.com/rental/{id}",
    }
    data.update(overrides)
    return Listing(**data)


def make_orchestrator(rows, fetch_results, **kwargs):
    alert_store = MagicMock()
    alert_store.get_active_alerts = AsyncMock(return_value=rows)
    alert_store.claim_check = AsyncMock(return_value=True)

    adapter = MagicMock()

    async def fetch(areas):
        return fetch_results[tuple(sorted(areas))]
    adapter.fetch = AsyncMock(side_effect=fetch)

    repository = MagicMock()
    repository.upsert_listings = AsyncMock(side_effect=lambda listings, seen_at=None: listings)
    repository.mark_absent_inactive = AsyncMock(return_value=0)

    dedup = MagicMock()
    dedup.filter_unnotified = AsyncMock(side_effect=lambda alert_id, ids: list(ids))

    dispatcher = MagicMock()
    dispatcher.dispatch = AsyncMock(
        side_effect=lambda alert, listing, user: DispatchOutcome(alert.id, listing.id, status="sent", recorded=True)
    )

    directory = MagicMock()
    directory.get_contact = AsyncMock(return_value=UserContact(user_id="user-1", email="jane@example.com"))

    defaults = dict(
        alert_store=alert_store,
        source_adapter=adapter,
        listing_repository=repository,
        dedup_store=dedup,
        enrichment_service=kwargs.pop("enrichment_service", MagicMock()),
        dispatcher=dispatcher,
        user_directory=directory,
        concurrency=2,
        run_budget_seconds=60,
        call_timeout=1,
        enrich_all=False,
    )
    defaults.update(kwargs)
    return AlertCheckOrchestrator(**defaults)


def free_tier():
    return patch(
        "rentwatch.services.orchestrator.TierService.get_effective_tier",
        AsyncMock(return_value=Tier.FREE),
    )


class TestRunStats:
    def test_error_samples_capped(self):
        stats = RunStats(started_at=NOW)
        for i in range(25):
            stats.record_error(f"error {i}")
        data = stats.to_dict()
        assert data["errors"]["count"] == 25
        assert len(data["errors"]["samples"]) == 20


class TestSourceFailureIsolation:
    @pytest.mark.asyncio
    async def test_one_alert_source_error_others_processed(self):
        rows = [
            alert_row(id="alert-ev", areas=["East Village"]),
            alert_row(id="alert-ch", areas=["Chelsea"]),
        ]
        fetches = {
            ("East Village",): FetchResult(listings=[make_listing()]),
            ("Chelsea",): FetchResult(errors=["[streeteasy] Request timed out"]),
        }
        orchestrator = make_orchestrator(rows, fetches)

        with free_tier():
            stats = await orchestrator.run(now=NOW)

        assert stats.alerts_processed == 2
        assert stats.notifications_sent == 1
        assert stats.error_count == 1
        assert stats.error_samples == ["[streeteasy] Request timed out"]
        # Only the complete fetch sweeps absent listings
        orchestrator.listing_repository.mark_absent_inactive.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unexpected_alert_error_is_counted(self):
        rows = [alert_row(id="alert-1"), alert_row(id="alert-2", areas=["Chelsea"])]
        fetches = {
            ("East Village",): FetchResult(listings=[make_listing()]),
            ("Chelsea",): FetchResult(listings=[make_listing("streeteasy:2", neighborhood="Chelsea")]),
        }
        orchestrator = make_orchestrator(rows, fetches)

        async def filter_unnotified(alert_id, ids):
            if alert_id == "alert-1":
                raise RuntimeError("db gone")
            return list(ids)
        orchestrator.dedup_store.filter_unnotified = AsyncMock(side_effect=filter_unnotified)

        with free_tier():
            stats = await orchestrator.run(now=NOW)

        assert stats.error_count == 1
        assert stats.notifications_sent == 1


class TestScheduling:
    @pytest.mark.asyncio
    async def test_not_due_alert_skipped(self):
        rows = [alert_row(last_checked=NOW - timedelta(minutes=20))]
        orchestrator = make_orchestrator(rows, {})

        with free_tier():
            stats = await orchestrator.run(now=NOW)

        assert stats.alerts_skipped == 1
        assert stats.alerts_processed == 0
        orchestrator.alert_store.claim_check.assert_not_called()
        orchestrator.source_adapter.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_paid_tier_makes_same_alert_due(self):
        rows = [alert_row(last_checked=NOW - timedelta(minutes=20))]
        fetches = {("East Village",): FetchResult(listings=[])}
        orchestrator = make_orchestrator(rows, fetches)

        with patch(
            "rentwatch.services.orchestrator.TierService.get_effective_tier",
            AsyncMock(return_value=Tier.FIFTEEN_MIN),
        ):
            stats = await orchestrator.run(now=NOW)

        assert stats.alerts_processed == 1

    @pytest.mark.asyncio
    async def test_lost_claim_skips_alert(self):
        orchestrator = make_orchestrator([alert_row()], {})
        orchestrator.alert_store.claim_check = AsyncMock(return_value=False)

        with free_tier():
            stats = await orchestrator.run(now=NOW)

        assert stats.alerts_skipped == 1
        orchestrator.source_adapter.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_budget_exhausted_defers_alerts(self):
        orchestrator = make_orchestrator([alert_row()], {}, run_budget_seconds=0)

        with free_tier():
            stats = await orchestrator.run(now=NOW)

        assert stats.alerts_deferred == 1
        orchestrator.alert_store.claim_check.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_alert_skipped_with_warning(self):
        rows = [alert_row(id="bad", enable_email=False, enable_sms=False), alert_row(id="good")]
        fetches = {("East Village",): FetchResult(listings=[])}
        orchestrator = make_orchestrator(rows, fetches)

        with free_tier():
            stats = await orchestrator.run(now=NOW)

        assert stats.alerts_skipped == 1
        assert stats.alerts_processed == 1
        assert stats.error_count == 1
        assert "bad" in stats.error_samples[0]


class TestRunBudget:
    @pytest.mark.asyncio
    async def test_dispatch_stops_at_deadline(self):
        listings = [make_listing(f"streeteasy:{n}") for n in range(3)]
        orchestrator = make_orchestrator(
            [alert_row()], {("East Village",): FetchResult(listings=listings)}, run_budget_seconds=0.05,
        )

        async def slow_dispatch(alert, listing, user):
            await asyncio.sleep(0.1)
            return DispatchOutcome(alert.id, listing.id, status="sent", recorded=True)
        orchestrator.dispatcher.dispatch = AsyncMock(side_effect=slow_dispatch)

        with free_tier():
            stats = await orchestrator.run(now=NOW)

        assert stats.notifications_sent == 1
        assert stats.notifications_deferred == 2
        assert stats.to_dict()["notifications_deferred"] == 2

    @pytest.mark.asyncio
    async def test_stuck_alert_cut_off_and_stats_returned(self):
        rows = [alert_row(id="alert-stuck"), alert_row(id="alert-quiet", areas=["Chelsea"])]
        fetches = {
            ("East Village",): FetchResult(listings=[make_listing()]),
            ("Chelsea",): FetchResult(listings=[]),
        }
        orchestrator = make_orchestrator(rows, fetches, run_budget_seconds=0.05, call_timeout=0.01)

        async def hung_dispatch(alert, listing, user):
            await asyncio.sleep(30)
        orchestrator.dispatcher.dispatch = AsyncMock(side_effect=hung_dispatch)

        with free_tier():
            stats = await asyncio.wait_for(orchestrator.run(now=NOW), timeout=5)

        assert stats.alerts_processed == 2
        assert stats.notifications_sent == 0
        assert stats.error_samples == ["alert alert-stuck: exceeded run budget"]


class TestTruncatedFetch:
    @pytest.mark.asyncio
    async def test_partial_feed_skips_absent_sweep(self):
        fetches = {("East Village",): FetchResult(listings=[make_listing()], truncated=["streeteasy"])}
        orchestrator = make_orchestrator([alert_row()], fetches)

        with free_tier():
            stats = await orchestrator.run(now=NOW)

        assert stats.error_count == 0
        assert stats.notifications_sent == 1
        orchestrator.listing_repository.mark_absent_inactive.assert_not_called()

    @pytest.mark.asyncio
    async def test_listing_beyond_page_cap_stays_active(self, session_context):
        def handler(request):
            limit = int(request.url.params["limit"])
            offset = int(request.url.params["offset"])
            items = [
                {"id": str(n), "price": 3000 + n, "bedrooms": 2, "bathrooms": 1, "neighborhood": "East Village"}
                for n in range(offset, min(offset + limit, 100))
            ]
            return httpx.Response(200, json={"listings": items, "total": 100, "hasMore": offset + limit < 100})

        repository = ListingRepository(session_context)
        await repository.upsert_listings(
            [make_listing("streeteasy:50", price=3050)], seen_at=NOW - timedelta(hours=1)
        )
        source = StreetEasySource(api_key="key", page_size=10, max_pages=2, transport=httpx.MockTransport(handler))
        orchestrator = make_orchestrator(
            [alert_row()], {},
            source_adapter=ListingSourceAdapter(sources=[source], timeout=5),
            listing_repository=repository,
        )

        with free_tier():
            stats = await orchestrator.run(now=NOW)

        assert stats.listings_fetched == 20
        async with session_context() as session:
            row = (await session.execute(
                select(ListingModel).where(ListingModel.id == "streeteasy:50")
            )).scalar_one()
        assert row.is_active


class TestFetchSharing:
    @pytest.mark.asyncio
    async def test_alerts_with_same_areas_share_one_fetch(self):
        rows = [
            alert_row(id="alert-1", areas=["East Village", "Chelsea"]),
            alert_row(id="alert-2", areas=["chelsea", "east-village"]),
        ]
        fetches = {("Chelsea", "East Village"): FetchResult(listings=[make_listing()])}
        orchestrator = make_orchestrator(rows, fetches)

        with free_tier():
            stats = await orchestrator.run(now=NOW)

        orchestrator.source_adapter.fetch.assert_awaited_once()
        assert stats.listings_fetched == 1
        assert stats.notifications_sent == 2


class TestStabilizationFlow:
    @pytest.mark.asyncio
    async def test_enrichment_gates_final_match(self):
        listings = [make_listing("streeteasy:1"), make_listing("streeteasy:2")]
        enrichment = MagicMock()

        async def enrich_many(candidates, now):
            scored = [
                candidates[0].model_copy(update={
                    "rent_stabilization_status": RentStabilizationStatus.PROBABLE,
                    "rent_stabilization_probability": 0.70,
                }),
                candidates[1].model_copy(update={
                    "rent_stabilization_status": RentStabilizationStatus.PROBABLE,
                    "rent_stabilization_probability": 0.60,
                }),
            ]
            return scored, []
        enrichment.enrich_many = AsyncMock(side_effect=enrich_many)

        rows = [alert_row(filter_rent_stabilized=True)]
        fetches = {("East Village",): FetchResult(listings=listings)}
        orchestrator = make_orchestrator(rows, fetches, enrichment_service=enrichment)

        with free_tier():
            stats = await orchestrator.run(now=NOW)

        assert stats.listings_matched == 1
        dispatched = orchestrator.dispatcher.dispatch.call_args[0][1]
        assert dispatched.id == "streeteasy:1"

    @pytest.mark.asyncio
    async def test_no_enrichment_without_filter(self):
        enrichment = MagicMock()
        enrichment.enrich_many = AsyncMock()
        fetches = {("East Village",): FetchResult(listings=[make_listing()])}
        orchestrator = make_orchestrator([alert_row()], fetches, enrichment_service=enrichment)

        with free_tier():
            await orchestrator.run(now=NOW)

        enrichment.enrich_many.assert_not_called()


class TestNotifyOnlyNew:
    """End to end against SQLite: a listing is never sent twice for an alert."""

    @pytest.mark.asyncio
    async def test_second_run_does_not_resend(self, session_context):
        async with session_context() as session:
            session.add(AlertModel(**{k: v for k, v in alert_row().items()}))

        email = MagicMock()
        email.configured = True
        email.send = AsyncMock(return_value=SendResult(success=True, message_id="email-1"))
        sms = MagicMock()
        sms.configured = False

        dedup = DedupStore(session_context)
        orchestrator = make_orchestrator(
            [], {("East Village",): FetchResult(listings=[make_listing()])},
            alert_store=AlertStore(session_context),
            dedup_store=dedup,
            dispatcher=NotificationDispatcher(
                dedup_store=dedup, email_sender=email, sms_sender=sms, session_context=session_context,
            ),
            concurrency=1,
        )

        with free_tier():
            first = await orchestrator.run(now=NOW)
            second = await orchestrator.run(now=NOW + timedelta(hours=2))

        assert first.notifications_sent == 1
        assert second.alerts_processed == 1
        assert second.listings_matched == 0
        assert second.notifications_sent == 0
        email.send.assert_awaited_once()


class TestRunAlertCheck:
    @pytest.mark.asyncio
    async def test_records_completed_run(self):
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(return_value=RunStats(started_at=NOW, alerts_processed=3))
        run_log = MagicMock()
        run_log.start_run = AsyncMock(return_value="run-1")
        run_log.complete_run = AsyncMock()

        stats = await run_alert_check("http", orchestrator=orchestrator, run_log=run_log)

        assert stats.alerts_processed == 3
        run_log.start_run.assert_awaited_once_with(trigger="http")
        assert run_log.complete_run.call_args[0][1]["alerts_processed"] == 3

    @pytest.mark.asyncio
    async def test_run_log_outage_does_not_stop_check(self):
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(return_value=RunStats(started_at=NOW))
        run_log = MagicMock()
        run_log.start_run = AsyncMock(side_effect=Exception("db down"))

        stats = await run_alert_check(orchestrator=orchestrator, run_log=run_log)
        assert stats.error_count == 0

    @pytest.mark.asyncio
    async def test_failed_run_recorded(self):
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(side_effect=RuntimeError("boom"))
        run_log = MagicMock()
        run_log.start_run = AsyncMock(return_value="run-1")
        run_log.fail_run = AsyncMock()

        with pytest.raises(RuntimeError):
            await run_alert_check(orchestrator=orchestrator, run_log=run_log)
        run_log.fail_run.assert_awaited_once_with("run-1", "boom")
