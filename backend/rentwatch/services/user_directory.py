"""Contact details for alert owners, read from Supabase profiles."""
import logging
from dataclasses import dataclass
from typing import Optional

from rentwatch.services import tier_service

logger = logging.getLogger(__name__)


@dataclass
class UserContact:
    """How to reach a user. Either field may be missing."""
    user_id: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    name: Optional[str] = None


class UserDirectory:

    async def get_contact(self, user_id: str) -> Optional[UserContact]:
        """Look up a user's contact details. Returns None if the profile is missing."""
        client = tier_service.supabase_admin
        if not client:
            logger.error("Supabase admin client not configured")
            return None
        try:
            result = (
                client.table("profiles")
                .select("id, email, phone_number, name")
                .eq("id", user_id)
                .single()
                .execute()
            )
        except Exception as e:
            logger.warning(f"Failed to load profile for {user_id}: {e}")
            return None

        if not result.data:
            return None
        return UserContact(
            user_id=user_id,
            email=result.data.get("email") or None,
            phone_number=result.data.get("phone_number") or None,
            name=result.data.get("name") or None,
        )
