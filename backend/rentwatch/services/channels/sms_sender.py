"""SMS delivery through Twilio."""
import os
import re
import asyncio
import logging
from typing import Any, Dict, Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from rentwatch.services.channels.base import SendResult

logger = logging.getLogger(__name__)

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")

TWILIO_ERROR_MESSAGES = {
    21211: "Invalid phone number",
    21408: "Permission denied to send to this number",
    21610: "Message blocked by carrier",
    21614: "Invalid mobile number",
    21608: "Number not verified (trial account restriction)",
    14107: "Rate limit exceeded. Please try again later.",
    21611: "Message queue full for this number",
    20429: "Too many concurrent requests",
}


def is_valid_e164(phone: Optional[str]) -> bool:
    return bool(phone) and bool(E164_PATTERN.match(phone))


def format_to_e164(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a US phone number to E.164.

    Accepts 10 digits ("(212) 555-0100") or 11 digits starting with 1.
    Numbers already in E.164 pass through. Anything else returns None.
    """
    if not phone:
        return None
    phone = phone.strip()
    if is_valid_e164(phone):
        return phone
    digits = re.sub(r"\D", "", phone)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return None


class SmsSender:

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.account_sid = account_sid if account_sid is not None else os.getenv("TWILIO_ACCOUNT_SID", "")
        self.auth_token = auth_token if auth_token is not None else os.getenv("TWILIO_AUTH_TOKEN", "")
        self.from_number = from_number if from_number is not None else os.getenv("TWILIO_PHONE_NUMBER", "")
        self.timeout = timeout or float(os.getenv("EXTERNAL_CALL_TIMEOUT", "15"))
        self._client = None

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    @property
    def client(self) -> Client:
        """Lazy-load Twilio client."""
        if self._client is None:
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    def status(self) -> Dict[str, Any]:
        return {"configured": self.configured, "from": self.from_number or None}

    async def check_connection(self) -> Dict[str, Any]:
        """Verify the credentials by fetching the Twilio account."""
        if not self.configured:
            return {"success": False, "message": "Twilio environment variables not configured"}
        try:
            account = await asyncio.wait_for(
                asyncio.to_thread(self.client.api.v2010.accounts(self.account_sid).fetch),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            return {"success": False, "message": "Twilio connection failed: timed out"}
        except Exception as e:
            logger.warning(f"Twilio connection check failed: {e}")
            return {"success": False, "message": f"Twilio connection failed: {e}"}
        return {
            "success": True,
            "message": "Twilio connection successful",
            "account_sid": account.sid,
            "phone_number": self.from_number,
        }

    async def send(self, to: str, body: str) -> SendResult:
        if not self.configured:
            return SendResult(success=False, error="Twilio credentials not configured")
        if not is_valid_e164(to):
            return SendResult(success=False, error=f"Invalid phone number format: {to!r}")

        try:
            message = await asyncio.wait_for(
                asyncio.to_thread(self.client.messages.create, body=body, from_=self.from_number, to=to),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Twilio timed out sending to {to}")
            return SendResult(success=False, error="SMS send timed out")
        except TwilioRestException as e:
            error = TWILIO_ERROR_MESSAGES.get(e.code, e.msg or str(e))
            logger.error(f"Twilio error {e.code} sending to {to}: {error}")
            return SendResult(success=False, error=error)
        except Exception as e:
            logger.error(f"Failed to send SMS to {to}: {e}")
            return SendResult(success=False, error=str(e))

        logger.info(f"SMS sent to {to}: {message.sid} ({message.status})")
        return SendResult(success=True, message_id=message.sid, status=message.status)
