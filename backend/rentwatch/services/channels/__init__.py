"""
Notification channel senders.
"""
from rentwatch.services.channels.base import SendResult
from rentwatch.services.channels.email_sender import EmailSender, is_valid_email
from rentwatch.services.channels.sms_sender import SmsSender, format_to_e164, is_valid_e164

__all__ = [
    "SendResult",
    "EmailSender",
    "SmsSender",
    "format_to_e164",
    "is_valid_e164",
    "is_valid_email",
]
