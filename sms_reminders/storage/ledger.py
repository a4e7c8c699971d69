"""Durable dedup ledger backed by ``sms_reminder_logs``.

Read errors are answered with "already sent". A ledger we cannot read must not
let a firing resend reminders that may already have gone out, so an
unreachable ledger trades an occasional missed reminder for never sending the
same reminder twice.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from sms_reminders.domain.models import DeliveryOutcome, ReminderKind, ReminderRecord
from sms_reminders.storage.db import Database, ReminderLogRow, require_database

logger = logging.getLogger(__name__)


def build_idempotency_key(appointment_id: str, kind: ReminderKind, recipient_id: str) -> str:
    return f"reminder:{kind.value}:{appointment_id}:{recipient_id}"


class DedupLedger:
    def __init__(self, database: Database | None) -> None:
        self._database = database

    def is_ready(self) -> bool:
        return self._database is not None

    def was_sent(self, appointment_id: str, kind: ReminderKind, recipient_id: str) -> bool:
        if self._database is None:
            logger.warning(
                "Ledger not configured; treating %s as already sent",
                build_idempotency_key(appointment_id, kind, recipient_id),
            )
            return True

        stmt = (
            select(ReminderLogRow.id)
            .where(
                ReminderLogRow.appointment_id == appointment_id,
                ReminderLogRow.reminder_type == kind.value,
                ReminderLogRow.recipient_user_id == recipient_id,
            )
            .limit(1)
        )
        try:
            with self._database.session() as session:
                return session.execute(stmt).first() is not None
        except SQLAlchemyError:
            logger.exception(
                "Ledger read failed; treating %s as already sent",
                build_idempotency_key(appointment_id, kind, recipient_id),
            )
            return True

    def record_attempt(
        self,
        appointment_id: str,
        kind: ReminderKind,
        recipient_id: str,
        address: str,
        outcome: DeliveryOutcome,
        scheduled_for: datetime,
    ) -> bool:
        """Insert one ledger row; returns False when the row already existed."""
        database = require_database(self._database, "Reminder ledger")
        row = ReminderLogRow(
            appointment_id=appointment_id,
            reminder_type=kind.value,
            recipient_user_id=recipient_id,
            recipient_phone=address,
            status=outcome.status,
            transport_message_id=outcome.message_id,
            transport_status=outcome.transport_status,
            error_code=outcome.error_code,
            error_message=outcome.error,
            scheduled_for=scheduled_for,
        )
        with database.session() as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.info(
                    "Reminder %s already logged (duplicate prevented)",
                    build_idempotency_key(appointment_id, kind, recipient_id),
                )
                return False
        return True

    def records(
        self,
        *,
        appointment_id: str | None = None,
        kind: ReminderKind | None = None,
    ) -> list[ReminderRecord]:
        database = require_database(self._database, "Reminder ledger")
        stmt = select(ReminderLogRow).order_by(ReminderLogRow.id)
        if appointment_id is not None:
            stmt = stmt.where(ReminderLogRow.appointment_id == appointment_id)
        if kind is not None:
            stmt = stmt.where(ReminderLogRow.reminder_type == kind.value)

        with database.session() as session:
            rows = session.scalars(stmt).all()
        return [
            ReminderRecord(
                appointment_id=row.appointment_id,
                kind=ReminderKind(row.reminder_type),
                recipient_id=row.recipient_user_id,
                recipient_phone=row.recipient_phone,
                status=row.status,
                scheduled_for=row.scheduled_for,
                sent_at=row.sent_at,
                transport_message_id=row.transport_message_id,
                transport_status=row.transport_status,
                error_code=row.error_code,
                error_message=row.error_message,
            )
            for row in rows
        ]
