"""
Persistence for canonical listings: upsert on observation, enrichment
write-back and inactive sweeps.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Set

from sqlalchemy import select, update

from rentwatch.database import dialect_insert, get_session_context
from rentwatch.models.listing import ListingModel
from rentwatch.schemas import Listing
from rentwatch.services.criteria_matcher import normalize_area

logger = logging.getLogger(__name__)

# Columns refreshed on every observation. Enrichment columns and
# first_seen_at are left alone.
REFRESHED_COLUMNS = (
    "title", "address", "neighborhood", "neighborhood_key", "price", "bedrooms", "bathrooms",
    "sqft", "no_fee", "listing_url", "image_url", "latitude", "longitude",
    "last_seen_at", "is_active",
)


class ListingRepository:

    def __init__(self, session_context=None):
        self._session_context = session_context or get_session_context

    async def upsert_listings(self, listings: List[Listing], seen_at: Optional[datetime] = None) -> List[Listing]:
        """
        Insert new listings and refresh existing ones.

        Returns the stored listings, so any previously computed
        rent-stabilization score comes back with them.
        """
        if not listings:
            return []
        seen_at = seen_at or datetime.now(timezone.utc)

        async with self._session_context() as session:
            insert = dialect_insert(session)
            for listing in listings:
                values = {
                    "id": listing.id,
                    "source": listing.source,
                    "external_id": listing.id.split(":", 1)[-1],
                    "title": listing.title,
                    "address": listing.address,
                    "neighborhood": listing.neighborhood,
                    "neighborhood_key": normalize_area(listing.neighborhood),
                    "price": listing.price,
                    "bedrooms": listing.bedrooms,
                    "bathrooms": listing.bathrooms,
                    "sqft": listing.sqft,
                    "no_fee": listing.no_fee,
                    "listing_url": listing.listing_url,
                    "image_url": listing.image_url,
                    "latitude": listing.latitude,
                    "longitude": listing.longitude,
                    "first_seen_at": seen_at,
                    "last_seen_at": seen_at,
                    "is_active": True,
                }
                stmt = insert(ListingModel).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[ListingModel.id],
                    set_={col: getattr(stmt.excluded, col) for col in REFRESHED_COLUMNS},
                )
                await session.execute(stmt)

            result = await session.execute(
                select(ListingModel).where(ListingModel.id.in_([l.id for l in listings]))
            )
            stored = {row.id: Listing.from_model(row) for row in result.scalars()}

        logger.info(f"Upserted {len(listings)} listings")
        return [stored[l.id] for l in listings if l.id in stored]

    async def update_enrichment(
        self,
        listing_id: str,
        status: str,
        probability: Optional[float],
        reason: Optional[str],
        building_id: Optional[str],
        checked_at: datetime,
    ) -> None:
        async with self._session_context() as session:
            await session.execute(
                update(ListingModel)
                .where(ListingModel.id == listing_id)
                .values(
                    rent_stabilization_status=status,
                    rent_stabilization_probability=probability,
                    rent_stabilization_reason=reason,
                    rent_stabilization_checked_at=checked_at,
                    building_id=building_id,
                )
            )

    async def mark_absent_inactive(
        self,
        neighborhoods: Iterable[str],
        seen_ids: Set[str],
        seen_before: datetime,
    ) -> int:
        """
        Deactivate listings in the given neighborhoods that a complete fetch
        did not return. Only rows last seen before seen_before are touched.
        """
        wanted = sorted({normalize_area(n) for n in neighborhoods})
        if not wanted:
            return 0

        conditions = [
            ListingModel.neighborhood_key.in_(wanted),
            ListingModel.is_active.is_(True),
            ListingModel.last_seen_at < seen_before,
        ]
        if seen_ids:
            conditions.append(ListingModel.id.notin_(list(seen_ids)))

        async with self._session_context() as session:
            result = await session.execute(
                update(ListingModel).where(*conditions).values(is_active=False)
            )
            count = result.rowcount

        if count:
            logger.info(f"Marked {count} listings inactive in {wanted}")
        return count

    async def mark_stale_inactive(self, days_old: int = 7) -> int:
        """Deactivate listings not seen in days_old days."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days_old)
        async with self._session_context() as session:
            result = await session.execute(
                update(ListingModel)
                .where(
                    ListingModel.last_seen_at < cutoff,
                    ListingModel.is_active.is_(True),
                )
                .values(is_active=False)
            )
            return result.rowcount
