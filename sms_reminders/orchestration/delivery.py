from __future__ import annotations

import logging
import time
from typing import Callable

from sms_reminders.adapters.twilio_transport import Transport
from sms_reminders.domain.models import DeliveryOutcome, TransportResult
from sms_reminders.utils.phone import mask_phone, to_e164

logger = logging.getLogger(__name__)

# Twilio codes meaning the destination itself is unusable.
PERMANENT_ERROR_CODES = frozenset(
    {
        "21211",  # invalid 'To' number
        "21612",  # unroutable 'To' number
        "21408",  # permission denied for region
        "21610",  # recipient unsubscribed / blacklisted
    }
)
NOT_CONFIGURED = "not_configured"
INVALID_ADDRESS = "invalid_address"


class DeliveryEngine:
    """Sends one body to one recipient with bounded, classified retries."""

    def __init__(
        self,
        transport: Transport | None,
        *,
        max_attempts: int = 3,
        backoff_s: float = 1.0,
        inter_send_delay_s: float = 0.25,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.transport = transport
        self.max_attempts = max_attempts
        self.backoff_s = backoff_s
        self.inter_send_delay_s = inter_send_delay_s
        self._sleep = sleep

    def is_ready(self) -> bool:
        return self.transport is not None

    @staticmethod
    def is_permanent(error_code: str | None) -> bool:
        return error_code in PERMANENT_ERROR_CODES or error_code == INVALID_ADDRESS

    def backoff_for(self, attempt: int) -> float:
        return self.backoff_s * (2 ** (attempt - 1))

    def pause_between_recipients(self) -> None:
        if self.inter_send_delay_s > 0:
            self._sleep(self.inter_send_delay_s)

    def _send_once(self, to: str, body: str) -> TransportResult:
        assert self.transport is not None
        try:
            return self.transport.send(to, body)
        except Exception as exc:  # transport errors count as transient
            return TransportResult(error_message=f"{type(exc).__name__}: {exc}")

    def deliver(self, address: str, body: str) -> DeliveryOutcome:
        if self.transport is None:
            return DeliveryOutcome(
                success=False,
                error="SMS transport not configured",
                error_code=NOT_CONFIGURED,
                permanent=True,
            )

        to = to_e164(address)
        if to is None:
            logger.error("Invalid phone number %s; not sending", mask_phone(address))
            return DeliveryOutcome(
                success=False,
                error="Invalid phone number",
                error_code=INVALID_ADDRESS,
                permanent=True,
            )

        last: TransportResult | None = None
        for attempt in range(1, self.max_attempts + 1):
            result = self._send_once(to, body)
            if result.ok:
                logger.info("SMS sent to %s: %s (attempt %d)", mask_phone(to), result.message_id, attempt)
                return DeliveryOutcome(
                    success=True,
                    attempts=attempt,
                    message_id=result.message_id,
                    transport_status=result.status,
                )

            last = result
            if self.is_permanent(result.error_code):
                logger.warning(
                    "Permanent SMS error to %s (code %s), not retrying: %s",
                    mask_phone(to),
                    result.error_code,
                    result.error_message,
                )
                return DeliveryOutcome(
                    success=False,
                    attempts=attempt,
                    error=result.error_message,
                    error_code=result.error_code,
                    permanent=True,
                )

            if attempt < self.max_attempts:
                delay = self.backoff_for(attempt)
                logger.warning(
                    "Transient SMS error to %s (attempt %d/%d, code %s); retrying in %.1fs: %s",
                    mask_phone(to),
                    attempt,
                    self.max_attempts,
                    result.error_code,
                    delay,
                    result.error_message,
                )
                self._sleep(delay)

        assert last is not None
        logger.error(
            "SMS to %s failed after %d attempts: %s",
            mask_phone(to),
            self.max_attempts,
            last.error_message,
        )
        return DeliveryOutcome(
            success=False,
            attempts=self.max_attempts,
            error=last.error_message,
            error_code=last.error_code,
        )
