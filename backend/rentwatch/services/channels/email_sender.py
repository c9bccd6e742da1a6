"""Email delivery through Resend."""
import os
import re
import asyncio
import logging
from typing import Any, Dict, Optional

import resend

from rentwatch.services.channels.base import SendResult

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(address: Optional[str]) -> bool:
    return bool(address) and bool(EMAIL_PATTERN.match(address))


class EmailSender:

    def __init__(self, api_key: Optional[str] = None, from_email: Optional[str] = None, timeout: Optional[float] = None):
        self.api_key = api_key if api_key is not None else os.getenv("RESEND_API_KEY", "")
        from_address = from_email or os.getenv("RESEND_FROM_EMAIL") or "onboarding@resend.dev"
        self.from_header = f"Rent Notifications <{from_address}>"
        self.timeout = timeout or float(os.getenv("EXTERNAL_CALL_TIMEOUT", "15"))

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def status(self) -> Dict[str, Any]:
        return {"configured": self.configured, "from": self.from_header}

    async def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> SendResult:
        if not self.configured:
            return SendResult(success=False, error="RESEND_API_KEY not configured")
        if not is_valid_email(to):
            return SendResult(success=False, error=f"Invalid email address: {to!r}")

        resend.api_key = self.api_key
        params = {
            "from": self.from_header,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if text:
            params["text"] = text
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(resend.Emails.send, params),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Resend timed out sending to {to}")
            return SendResult(success=False, error="Email send timed out")
        except Exception as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return SendResult(success=False, error=str(e))

        message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        logger.info(f"Email sent to {to}: {message_id}")
        return SendResult(success=True, message_id=message_id, status="sent")

    async def send_test(self, to: str) -> SendResult:
        """Send a short configuration check email."""
        html = (
            '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;padding:20px;">'
            "<h2>Email Configuration Test</h2>"
            "<p>This is a test email from your Rent Notifications system.</p>"
            "<p>If you're receiving this, your email integration is working correctly!</p>"
            "</div>"
        )
        text = (
            "Email Configuration Test\n\n"
            "This is a test email from your Rent Notifications system.\n"
            "If you're receiving this, your email integration is working correctly!"
        )
        return await self.send(to, "Test Email from Rent Notifications", html, text=text)
