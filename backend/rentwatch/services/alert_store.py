"""
Alert reads and the last_checked checkpoint.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update

from rentwatch.database import get_session_context
from rentwatch.models.alert import AlertModel

logger = logging.getLogger(__name__)


class AlertStore:

    def __init__(self, session_context=None):
        self._session_context = session_context or get_session_context

    async def get_active_alerts(self) -> List[Dict[str, Any]]:
        """Raw rows for every active alert. Validation is left to the caller."""
        async with self._session_context() as session:
            result = await session.execute(
                select(AlertModel).where(AlertModel.is_active.is_(True)).order_by(AlertModel.created_at)
            )
            return [alert.to_dict() for alert in result.scalars()]

    async def claim_check(self, alert_id: str, observed: Optional[datetime], checked_at: datetime) -> bool:
        """
        Advance last_checked from the value this run observed to checked_at.

        Returns False when another run moved last_checked first, in which
        case that run owns this check.
        """
        if observed is None:
            condition = AlertModel.last_checked.is_(None)
        else:
            condition = AlertModel.last_checked == observed

        async with self._session_context() as session:
            result = await session.execute(
                update(AlertModel)
                .where(AlertModel.id == alert_id, condition)
                .values(last_checked=checked_at)
                .execution_options(synchronize_session=False)
            )
            claimed = result.rowcount == 1

        if not claimed:
            logger.info(f"Alert {alert_id} was claimed by another run")
        return claimed
