"""
Per-(alert, listing) notification records.

A record is written once and never updated. Writes go through
INSERT ... ON CONFLICT DO NOTHING against the unique constraint so two
overlapping runs can never both claim the same pair.
"""
import logging
from typing import Iterable, List

from sqlalchemy import select

from rentwatch.database import dialect_insert, get_session_context
from rentwatch.models.notification import NotificationRecordModel

logger = logging.getLogger(__name__)


class DedupStore:

    def __init__(self, session_context=None):
        self._session_context = session_context or get_session_context

    async def has_notified(self, alert_id: str, listing_id: str) -> bool:
        async with self._session_context() as session:
            result = await session.execute(
                select(NotificationRecordModel.id).where(
                    NotificationRecordModel.alert_id == alert_id,
                    NotificationRecordModel.listing_id == listing_id,
                )
            )
            return result.first() is not None

    async def filter_unnotified(self, alert_id: str, listing_ids: Iterable[str]) -> List[str]:
        """Return the ids with no record for this alert, in input order."""
        listing_ids = list(listing_ids)
        if not listing_ids:
            return []
        async with self._session_context() as session:
            result = await session.execute(
                select(NotificationRecordModel.listing_id).where(
                    NotificationRecordModel.alert_id == alert_id,
                    NotificationRecordModel.listing_id.in_(listing_ids),
                )
            )
            notified = {row.listing_id for row in result}
        return [listing_id for listing_id in listing_ids if listing_id not in notified]

    async def mark_notified(self, alert_id: str, listing_id: str) -> bool:
        """
        Record that a listing was sent for an alert.

        Returns True if this call created the record, False if it already
        existed. Calling it again for the same pair is a no-op.
        """
        async with self._session_context() as session:
            insert = dialect_insert(session)
            stmt = (
                insert(NotificationRecordModel)
                .values(alert_id=alert_id, listing_id=listing_id)
                .on_conflict_do_nothing(index_elements=["alert_id", "listing_id"])
            )
            result = await session.execute(stmt)
            created = result.rowcount == 1

        if not created:
            logger.debug(f"Notification record already exists for {alert_id}/{listing_id}")
        return created
