from __future__ import annotations

import logging
from typing import Protocol

from twilio.base.exceptions import TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from sms_reminders.config import TwilioSettings
from sms_reminders.domain.models import TransportResult

logger = logging.getLogger(__name__)


class Transport(Protocol):
    def send(self, to: str, body: str) -> TransportResult: ...


class TwilioTransport:
    """SMS gateway adapter for the Twilio Messages API."""

    def __init__(self, client: Client, from_number: str) -> None:
        self.client = client
        self.from_number = from_number

    @classmethod
    def from_settings(cls, settings: TwilioSettings | None, *, timeout_s: float = 10.0) -> TwilioTransport | None:
        """Build a transport, or None when credentials are missing."""
        if settings is None or not settings.configured:
            logger.warning(
                "Twilio credentials not configured; SMS will not be sent "
                "(set TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER)"
            )
            return None
        client = Client(
            settings.account_sid,
            settings.auth_token,
            http_client=TwilioHttpClient(timeout=timeout_s),
        )
        logger.info("Twilio client initialized; sending from %s", settings.from_number)
        return cls(client, str(settings.from_number))

    def send(self, to: str, body: str) -> TransportResult:
        try:
            message = self.client.messages.create(to=to, from_=self.from_number, body=body)
        except TwilioRestException as exc:
            return TransportResult(
                error_code=str(exc.code) if exc.code is not None else f"http_{exc.status}",
                error_message=exc.msg or str(exc),
            )
        except Exception as exc:  # timeouts and connection errors surface as transient failures
            return TransportResult(error_code=None, error_message=f"{type(exc).__name__}: {exc}")

        return TransportResult(message_id=message.sid, status=message.status)
