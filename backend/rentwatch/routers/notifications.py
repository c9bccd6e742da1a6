"""
Operator endpoints for checking the notification channels end to end.

All routes sit behind the cron shared secret. They send real messages
through the configured providers and never touch alerts or dedup records.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from rentwatch.routers.cron import verify_cron_secret
from rentwatch.schemas import AlertCriteria, EmailCheckRequest, Listing, SmsCheckRequest
from rentwatch.services.channels import EmailSender, SmsSender, format_to_e164, is_valid_email
from rentwatch.services.notification_dispatcher import (
    build_email_html,
    build_email_subject,
    build_email_text,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/notifications",
    tags=["notifications"],
    dependencies=[Depends(verify_cron_secret)],
)

SAMPLE_LISTING = Listing(
    id="sample:test-123",
    source="sample",
    title="Beautiful 2BR Apartment in East Village",
    address="123 E 10th Street, Apt 4B",
    neighborhood="East Village",
    price=3500,
    bedrooms=2,
    bathrooms=1.5,
    sqft=900,
    no_fee=True,
    listing_url="https://streeteasy.com/sample-listing",
)

SAMPLE_ALERT = AlertCriteria(
    id="sample-alert",
    user_id="operator",
    name="East Village 2BR under $4,000",
    areas=["East Village"],
    max_price=4000,
    min_beds=2,
    notify_only_new=False,
)


def get_email_sender() -> EmailSender:
    return EmailSender()


def get_sms_sender() -> SmsSender:
    return SmsSender()


@router.get("/test-email")
async def email_status(sender: EmailSender = Depends(get_email_sender)):
    """Report whether the email channel is configured."""
    configured = sender.configured
    return {
        "email_service_enabled": configured,
        "status": "operational" if configured else "not_configured",
    }


@router.post("/test-email")
async def send_test_email(
    body: EmailCheckRequest,
    sender: EmailSender = Depends(get_email_sender),
):
    """
    Send a check email.

    test_type "simple" sends a short configuration message. "rental" sends
    a sample match notification built exactly like a real one.
    """
    if not sender.configured:
        raise HTTPException(status_code=503, detail="Email service not configured: RESEND_API_KEY is not set")
    if not is_valid_email(body.email):
        raise HTTPException(status_code=400, detail="Valid email address is required")

    if body.test_type == "simple":
        result = await sender.send_test(body.email)
        preview = None
    else:
        subject = build_email_subject(SAMPLE_LISTING)
        result = await sender.send(
            body.email,
            f"[TEST] {subject}",
            build_email_html(SAMPLE_ALERT, SAMPLE_LISTING),
            text=build_email_text(SAMPLE_ALERT, SAMPLE_LISTING),
        )
        preview = {
            "subject": subject,
            "listing": {
                "address": SAMPLE_LISTING.address,
                "price": SAMPLE_LISTING.price,
                "bedrooms": SAMPLE_LISTING.bedrooms,
            },
        }

    if not result.success:
        logger.warning(f"Check email to {body.email} failed: {result.error}")
        raise HTTPException(status_code=500, detail=result.error or "Failed to send test email")

    response = {"success": True, "message": "Test email sent successfully", "message_id": result.message_id}
    if preview:
        response["preview"] = preview
    return response


@router.get("/test-sms")
async def sms_connection(sender: SmsSender = Depends(get_sms_sender)):
    """Verify the Twilio credentials without sending anything."""
    check = await sender.check_connection()
    if not check["success"]:
        raise HTTPException(status_code=503, detail=check["message"])
    return {**check, "sms_enabled": sender.configured}


@router.post("/test-sms")
async def send_test_sms(
    body: SmsCheckRequest,
    sender: SmsSender = Depends(get_sms_sender),
):
    """Send a check SMS. US numbers are normalized to E.164 first."""
    if not sender.configured:
        raise HTTPException(status_code=503, detail="SMS notifications not configured: Twilio environment variables are not set")

    phone = format_to_e164(body.to)
    if not phone:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid phone number format: {body.to!r}. Use E.164, e.g. +15551234567",
        )

    result = await sender.send(phone, body.message)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error or "Failed to send test SMS")
    return {
        "success": True,
        "message": "SMS sent successfully",
        "message_sid": result.message_id,
        "status": result.status,
        "phone_number": phone,
    }
