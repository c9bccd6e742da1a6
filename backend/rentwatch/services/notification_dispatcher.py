"""
Sends one matched listing to a user over every channel their alert enables.

Channels are independent: a failure on one is recorded and the others
still go out. The dedup record is claimed before any send, so overlapping
runs cannot both deliver the same listing for an alert.
"""
import os
import html
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from rentwatch.database import get_session_context
from rentwatch.models.notification import NotificationDeliveryModel
from rentwatch.schemas import AlertCriteria, Listing, RentStabilizationStatus
from rentwatch.services.channels import EmailSender, SmsSender, format_to_e164, is_valid_email
from rentwatch.services.dedup_store import DedupStore
from rentwatch.services.user_directory import UserContact

logger = logging.getLogger(__name__)

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

NO_CONTACT = "no contact method"
NOT_CONFIGURED = "channel not configured"


@dataclass
class ChannelResult:
    channel: str
    attempted: bool = False
    success: bool = False
    message_id: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class DispatchOutcome:
    """
    status is one of:
        sent       at least one channel delivered
        failed     every attempted channel failed
        skipped    no channel could be attempted, nothing recorded
        duplicate  an earlier dispatch already claimed this pair
    """
    alert_id: str
    listing_id: str
    status: str
    channels: List[ChannelResult] = field(default_factory=list)
    recorded: bool = False

    @property
    def channel_failures(self) -> int:
        return sum(1 for c in self.channels if c.attempted and not c.success)


def format_price(price: int) -> str:
    return f"${price:,}"


def format_bedrooms(bedrooms: int) -> str:
    return "Studio" if bedrooms == 0 else f"{bedrooms}BR"


def build_email_subject(listing: Listing) -> str:
    return f"New Rental Match: {format_bedrooms(listing.bedrooms)} in {listing.neighborhood} - {format_price(listing.price)}"


def build_email_html(alert: AlertCriteria, listing: Listing) -> str:
    """HTML body for a single-listing match email."""
    esc = html.escape
    details = [f"{format_bedrooms(listing.bedrooms)}", f"{listing.bathrooms:g} bath"]
    if listing.sqft:
        details.append(f"{listing.sqft:,} sqft")

    badge = ""
    status = listing.rent_stabilization_status
    if status in (RentStabilizationStatus.CONFIRMED, RentStabilizationStatus.PROBABLE):
        label = "Rent Stabilized" if status == RentStabilizationStatus.CONFIRMED else "Likely Rent Stabilized"
        badge = (
            f'<p style="display:inline-block;background:#e6f4ea;color:#137333;'
            f'padding:4px 8px;border-radius:4px;font-size:13px;">{label}</p>'
        )

    image = ""
    if listing.image_url:
        image = f'<img src="{esc(listing.image_url)}" alt="" style="width:100%;max-width:560px;border-radius:8px;" />'

    fee = "No fee" if listing.no_fee else "Broker fee may apply"
    return (
        '<div style="font-family:-apple-system,Helvetica,Arial,sans-serif;max-width:600px;margin:0 auto;">'
        f"<h2>New rental in {esc(listing.neighborhood)}</h2>"
        f'<p style="color:#555;">Matches your alert "{esc(alert.name)}"</p>'
        f"{image}"
        f"<h3>{esc(listing.address)}</h3>"
        f'<p style="font-size:20px;font-weight:bold;">{format_price(listing.price)}/mo</p>'
        f"<p>{' | '.join(details)} | {fee}</p>"
        f"{badge}"
        f'<p><a href="{esc(listing.listing_url)}" style="background:#1a73e8;color:#fff;padding:10px 16px;'
        'border-radius:6px;text-decoration:none;">View listing</a></p>'
        f'<p style="color:#888;font-size:12px;">Manage your alerts: {esc(FRONTEND_URL)}/alerts</p>'
        "</div>"
    )


def build_email_text(alert: AlertCriteria, listing: Listing) -> str:
    """Plain-text alternative to build_email_html for clients without HTML."""
    details = f"{format_bedrooms(listing.bedrooms)} | {listing.bathrooms:g} bath"
    if listing.sqft:
        details += f" | {listing.sqft:,} sqft"
    fee = "No fee" if listing.no_fee else "Broker fee may apply"

    lines = [
        "New Rental Match!",
        "",
        f'A new listing matching your alert "{alert.name}" is available:',
        "",
    ]
    if listing.title:
        lines.append(listing.title)
    lines += [
        listing.address,
        listing.neighborhood,
        "",
        details,
        f"{format_price(listing.price)}/month | {fee}",
    ]
    status = listing.rent_stabilization_status
    if status == RentStabilizationStatus.CONFIRMED:
        lines.append("Rent Stabilized")
    elif status == RentStabilizationStatus.PROBABLE:
        lines.append("Likely Rent Stabilized")
    lines += [
        "",
        f"View listing: {listing.listing_url}",
        "",
        f"Manage your alerts: {FRONTEND_URL}/alerts",
    ]
    return "\n".join(lines)


def build_sms_body(listing: Listing) -> str:
    return (
        f"New rental in {listing.neighborhood}!\n"
        f"{listing.address}\n"
        f"{format_price(listing.price)}/mo | {listing.bedrooms}bd {listing.bathrooms:g}ba\n\n"
        f"View: {listing.listing_url}"
    )


class NotificationDispatcher:

    def __init__(
        self,
        dedup_store: Optional[DedupStore] = None,
        email_sender: Optional[EmailSender] = None,
        sms_sender: Optional[SmsSender] = None,
        session_context=None,
    ):
        self.dedup_store = dedup_store or DedupStore()
        self.email_sender = email_sender or EmailSender()
        self.sms_sender = sms_sender or SmsSender()
        self._session_context = session_context or get_session_context

    def plan(self, alert: AlertCriteria, user: Optional[UserContact]) -> List[ChannelResult]:
        """Work out which enabled channels can be attempted. Nothing is sent."""
        planned = []
        if alert.enable_email:
            result = ChannelResult(channel="email")
            if not user or not is_valid_email(user.email):
                result.reason = NO_CONTACT
            elif not self.email_sender.configured:
                logger.error("Email channel enabled but RESEND_API_KEY is not configured")
                result.reason = NOT_CONFIGURED
            else:
                result.attempted = True
            planned.append(result)

        if alert.enable_sms:
            result = ChannelResult(channel="sms")
            if not user or not format_to_e164(user.phone_number):
                result.reason = NO_CONTACT
            elif not self.sms_sender.configured:
                logger.error("SMS channel enabled but Twilio credentials are not configured")
                result.reason = NOT_CONFIGURED
            else:
                result.attempted = True
            planned.append(result)
        return planned

    async def dispatch(self, alert: AlertCriteria, listing: Listing, user: Optional[UserContact]) -> DispatchOutcome:
        channels = self.plan(alert, user)
        outcome = DispatchOutcome(alert_id=alert.id, listing_id=listing.id, status="skipped", channels=channels)

        if not any(c.attempted for c in channels):
            logger.info(f"No deliverable channel for alert {alert.id}, listing {listing.id}")
            return outcome

        outcome.recorded = await self.dedup_store.mark_notified(alert.id, listing.id)
        if not outcome.recorded and alert.notify_only_new:
            logger.info(f"Listing {listing.id} already claimed for alert {alert.id}, not resending")
            outcome.status = "duplicate"
            for c in channels:
                c.attempted = False
            return outcome

        for channel in channels:
            if not channel.attempted:
                continue
            if channel.channel == "email":
                result = await self.email_sender.send(
                    user.email,
                    build_email_subject(listing),
                    build_email_html(alert, listing),
                    text=build_email_text(alert, listing),
                )
            else:
                result = await self.sms_sender.send(format_to_e164(user.phone_number), build_sms_body(listing))
            channel.success = result.success
            channel.message_id = result.message_id
            channel.reason = result.error
            await self._record_delivery(alert.id, listing.id, channel)

        outcome.status = "sent" if any(c.success for c in channels) else "failed"
        return outcome

    async def _record_delivery(self, alert_id: str, listing_id: str, channel: ChannelResult) -> None:
        try:
            async with self._session_context() as session:
                session.add(NotificationDeliveryModel(
                    alert_id=alert_id,
                    listing_id=listing_id,
                    channel=channel.channel,
                    success=channel.success,
                    provider_message_id=channel.message_id,
                    error_message=channel.reason,
                ))
        except Exception as e:
            logger.exception(f"Failed to record {channel.channel} delivery for {alert_id}/{listing_id}: {e}")
