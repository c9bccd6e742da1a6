"""Entitlement lookup and tier-aware alert scheduling."""
import os
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, List, Optional

from supabase import create_client

logger = logging.getLogger(__name__)

SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

# Supabase admin client (service role - bypasses RLS)
supabase_admin = None
if SUPABASE_URL and SUPABASE_SERVICE_KEY:
    supabase_admin = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)


class Tier(str, Enum):
    """Paid and free checking cadences. Values are the stored tier ids."""
    FREE = "1hour"
    HOURLY_SMS = "1hour-sms"
    THIRTY_MIN = "30min"
    FIFTEEN_MIN = "15min"


TIER_INTERVALS = {
    Tier.FREE: timedelta(hours=1),
    Tier.HOURLY_SMS: timedelta(hours=1),
    Tier.THIRTY_MIN: timedelta(minutes=30),
    Tier.FIFTEEN_MIN: timedelta(minutes=15),
}

SLOWEST_INTERVAL = max(TIER_INTERVALS.values())


@dataclass
class EntitlementPeriod:
    """A purchased tier valid until expires_at."""
    tier_id: str
    expires_at: datetime

    def is_active(self, now: datetime) -> bool:
        return _as_utc(self.expires_at) > now


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps from the database are stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _parse_timestamp(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class TierService:

    @staticmethod
    def parse_tier(tier_id: Optional[str]) -> Optional[Tier]:
        """Map a stored tier id to a Tier, or None when unrecognized."""
        try:
            return Tier(tier_id)
        except ValueError:
            return None

    @staticmethod
    def interval_for(tier_id: Optional[str]) -> timedelta:
        """Checking interval for a tier id. Unknown ids get the slowest interval."""
        tier = TierService.parse_tier(tier_id)
        if tier is None:
            logger.warning(f"Unknown tier id {tier_id!r}, using slowest interval")
            return SLOWEST_INTERVAL
        return TIER_INTERVALS[tier]

    @staticmethod
    def effective_tier(periods: Iterable[EntitlementPeriod], now: datetime) -> Tier:
        """Fastest recognized tier among unexpired periods, free tier if none."""
        best = Tier.FREE
        for period in periods:
            if not period.is_active(now):
                continue
            tier = TierService.parse_tier(period.tier_id)
            if tier is None:
                logger.warning(f"Ignoring entitlement with unknown tier id {period.tier_id!r}")
                continue
            if TIER_INTERVALS[tier] < TIER_INTERVALS[best]:
                best = tier
        return best

    @staticmethod
    def is_due(last_checked: Optional[datetime], interval: timedelta, now: datetime) -> bool:
        """An alert is due when never checked or a full interval has elapsed."""
        if last_checked is None:
            return True
        return now - _as_utc(last_checked) >= interval

    @staticmethod
    def resolve_interval(preferred_frequency: Optional[str], effective: Tier) -> timedelta:
        """
        Interval for an alert given the user's effective tier.

        The entitlement decides the cadence. A preferred frequency faster
        than the entitlement is logged as a downgrade.
        """
        interval = TIER_INTERVALS[effective]
        preferred = TierService.parse_tier(preferred_frequency)
        if preferred is not None and TIER_INTERVALS[preferred] < interval:
            logger.info(
                f"Preferred frequency {preferred.value} exceeds entitlement "
                f"{effective.value}, checking every {int(interval.total_seconds())}s"
            )
        return interval

    @staticmethod
    async def get_active_periods(user_id: str, now: Optional[datetime] = None) -> List[EntitlementPeriod]:
        """Get the user's unexpired entitlement periods. Returns [] if lookup fails."""
        now = now or datetime.now(timezone.utc)
        try:
            if not supabase_admin:
                return []
            result = (
                supabase_admin.table("user_access_periods")
                .select("tier_id, expires_at")
                .eq("user_id", user_id)
                .eq("status", "active")
                .lte("starts_at", now.isoformat())
                .gt("expires_at", now.isoformat())
                .execute()
            )
            periods = []
            for row in result.data or []:
                expires_at = _parse_timestamp(row.get("expires_at"))
                if expires_at is None:
                    continue
                periods.append(EntitlementPeriod(tier_id=row.get("tier_id"), expires_at=expires_at))
            return periods
        except Exception as e:
            logger.warning(f"Failed to get entitlements for {user_id}: {e}")
            return []

    @staticmethod
    async def get_effective_tier(user_id: str, now: Optional[datetime] = None) -> Tier:
        """Recompute the user's effective tier from current entitlements."""
        now = now or datetime.now(timezone.utc)
        periods = await TierService.get_active_periods(user_id, now)
        return TierService.effective_tier(periods, now)
