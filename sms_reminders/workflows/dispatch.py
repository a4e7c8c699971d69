"""Per-recipient reminder dispatch for one batch of appointments."""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from sms_reminders.domain.models import Appointment, Recipient, RecipientOutcome, ReminderKind
from sms_reminders.orchestration.delivery import DeliveryEngine
from sms_reminders.reporting.compose import MessageComposer
from sms_reminders.storage.ledger import DedupLedger
from sms_reminders.utils.logging import get_structured_logger, log_dispatch_event


def _batch_key(appointments: Sequence[Appointment], kind: ReminderKind, recipient: Recipient) -> str:
    ids = ",".join(appointment.appointment_id for appointment in appointments)
    return f"reminder:{kind.value}:{ids}:{recipient.recipient_id}"


def dispatch_batch(
    appointments: Sequence[Appointment],
    *,
    kind: ReminderKind,
    recipients: Sequence[Recipient],
    composer: MessageComposer,
    engine: DeliveryEngine,
    ledger: DedupLedger,
    scheduled_for: datetime,
) -> list[RecipientOutcome]:
    """Send one composed reminder per recipient and log every (appointment, recipient) pair.

    A recipient is skipped only when every appointment in the batch already has
    a ledger record for them under ``kind``. Otherwise the whole batch is sent
    once and a record is written for each appointment; records that already
    exist are left untouched by the ledger.
    """
    logger = get_structured_logger()
    appointment_ids = [appointment.appointment_id for appointment in appointments]
    body = composer.compose(appointments, kind)
    outcomes: list[RecipientOutcome] = []
    sends = 0

    for recipient in recipients:
        key = _batch_key(appointments, kind, recipient)

        if all(
            ledger.was_sent(appointment.appointment_id, kind, recipient.recipient_id)
            for appointment in appointments
        ):
            log_dispatch_event(
                logger,
                reminder_kind=kind.value,
                recipient=recipient.phone,
                idempotency_key=key,
                status="skipped",
                message="Reminder already sent; skipping",
            )
            outcomes.append(RecipientOutcome(recipient.recipient_id, appointment_ids, "skipped"))
            continue

        if sends:
            engine.pause_between_recipients()
        sends += 1

        outcome = engine.deliver(recipient.phone, body)
        log_dispatch_event(
            logger,
            reminder_kind=kind.value,
            recipient=recipient.phone,
            idempotency_key=key,
            status=outcome.status,
            error_code=outcome.error_code,
            error_message=outcome.error,
            message="Send succeeded" if outcome.success else "Send failed",
        )

        for appointment in appointments:
            try:
                ledger.record_attempt(
                    appointment.appointment_id,
                    kind,
                    recipient.recipient_id,
                    recipient.phone,
                    outcome,
                    scheduled_for,
                )
            except Exception as exc:
                log_dispatch_event(
                    logger,
                    reminder_kind=kind.value,
                    recipient=recipient.phone,
                    idempotency_key=key,
                    status="failed",
                    error_code=type(exc).__name__.upper(),
                    error_message=str(exc),
                    message=f"Ledger write failed for appointment {appointment.appointment_id}",
                )

        outcomes.append(RecipientOutcome(recipient.recipient_id, appointment_ids, outcome.status, outcome))

    return outcomes
