"""
Attaches rent-stabilization scores to listings and stores them.
"""
import os
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from rentwatch.exceptions import RegistryError
from rentwatch.schemas import Listing, RentStabilizationStatus
from rentwatch.services.building_resolver import BuildingResolver, score
from rentwatch.services.listing_repository import ListingRepository

logger = logging.getLogger(__name__)

CACHE_VALID_DAYS = 30
# Concurrent registry lookups per batch
BATCH_SIZE = 5


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class EnrichmentService:

    def __init__(
        self,
        resolver: Optional[BuildingResolver] = None,
        repository: Optional[ListingRepository] = None,
        timeout: Optional[float] = None,
    ):
        self.resolver = resolver or BuildingResolver()
        self.repository = repository or ListingRepository()
        self.timeout = timeout or float(os.getenv("EXTERNAL_CALL_TIMEOUT", "15"))

    @staticmethod
    def is_fresh(listing: Listing, now: datetime) -> bool:
        """A stored score is reused when checked within the last 30 days."""
        checked_at = listing.rent_stabilization_checked_at
        if checked_at is None:
            return False
        return now - _as_utc(checked_at) < timedelta(days=CACHE_VALID_DAYS)

    async def enrich(self, listing: Listing, now: Optional[datetime] = None) -> Listing:
        """
        Return the listing with a rent-stabilization score.

        Raises:
            RegistryError: the building lookup failed or timed out
        """
        now = now or datetime.now(timezone.utc)
        if self.is_fresh(listing, now):
            return listing
        if not listing.has_coordinates:
            return listing.model_copy(update={"rent_stabilization_status": RentStabilizationStatus.UNKNOWN})

        try:
            building = await asyncio.wait_for(
                self.resolver.resolve(listing.latitude, listing.longitude),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise RegistryError(f"Building lookup timed out for {listing.id}")

        result = score(building)
        building_id = building.bbl if building else None
        await self.repository.update_enrichment(
            listing.id,
            status=result.status.value,
            probability=result.probability,
            reason=result.reason,
            building_id=building_id,
            checked_at=now,
        )
        logger.debug(f"Scored {listing.id}: {result.status.value} ({result.reason})")
        return listing.model_copy(update={
            "rent_stabilization_status": result.status,
            "rent_stabilization_probability": result.probability,
            "rent_stabilization_checked_at": now,
            "building_id": building_id,
        })

    async def enrich_many(self, listings: List[Listing], now: Optional[datetime] = None) -> Tuple[List[Listing], List[str]]:
        """
        Enrich a batch. A failed lookup leaves that listing as it was and
        adds an error string; the rest of the batch continues.
        """
        now = now or datetime.now(timezone.utc)
        semaphore = asyncio.Semaphore(BATCH_SIZE)
        errors: List[str] = []

        async def _one(listing: Listing) -> Listing:
            async with semaphore:
                try:
                    return await self.enrich(listing, now)
                except RegistryError as e:
                    logger.warning(f"Enrichment failed for {listing.id}: {e}")
                    errors.append(str(e))
                    return listing

        enriched = await asyncio.gather(*(_one(listing) for listing in listings))
        return list(enriched), errors
