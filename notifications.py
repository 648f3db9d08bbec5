"""Best-effort email and SMS delivery.

A :class:`NotificationSender` tries once and never raises.  Missing
provider credentials are an intentional no-op (logged as a warning) and
provider failures are logged with their traceback.  ``send`` returns
whether the message was handed to the provider, so callers that care can
branch on it, but nobody is ever forced to handle an exception because a
notification failed.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import resend
from twilio.rest import Client as TwilioClient

from settings import Settings

logger = logging.getLogger(__name__)


class NotificationSender(Protocol):
    def send(self, to: str, subject: str, body: str) -> bool:
        ...


class EmailSender:
    """Sends plain-text email through Resend."""

    def __init__(self, api_key: Optional[str], from_email: Optional[str], from_name: Optional[str] = None):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailSender":
        return cls(settings.resend_api_key, settings.notify_from_email)

    def _from_header(self, from_name: Optional[str]) -> str:
        name = from_name or self.from_name
        return f"{name} <{self.from_email}>" if name else self.from_email

    def send(self, to: str, subject: str, body: str, from_name: Optional[str] = None) -> bool:
        if not self.api_key or not self.from_email:
            logger.warning("email_skipped reason=not_configured to=%s", to)
            return False
        try:
            resend.api_key = self.api_key
            resend.Emails.send(
                {
                    "from": self._from_header(from_name),
                    "to": [to],
                    "subject": subject,
                    "text": body,
                }
            )
        except Exception:
            logger.exception("email_failed to=%s subject=%s", to, subject)
            return False
        logger.info("email_sent to=%s", to)
        return True


class SmsSender:
    """Sends SMS through Twilio.  ``subject`` is ignored."""

    def __init__(self, account_sid: Optional[str], auth_token: Optional[str], from_number: Optional[str]):
        self.from_number = from_number
        self._client: Optional[TwilioClient] = None
        if account_sid and auth_token:
            self._client = TwilioClient(account_sid, auth_token)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmsSender":
        return cls(settings.twilio_account_sid, settings.twilio_auth_token, settings.twilio_phone_number)

    def send(self, to: str, subject: str, body: str) -> bool:
        if self._client is None or not self.from_number:
            logger.warning("sms_skipped reason=not_configured to=%s", to)
            return False
        try:
            self._client.messages.create(to=to, from_=self.from_number, body=body)
        except Exception:
            logger.exception("sms_failed to=%s", to)
            return False
        logger.info("sms_sent to=%s", to)
        return True
