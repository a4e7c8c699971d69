from __future__ import annotations

from datetime import datetime

from sqlalchemy import select

from sms_reminders.domain.models import DEFAULT_STATUS, Appointment
from sms_reminders.storage.db import AppointmentRow, Database, require_database


def _to_appointment(row: AppointmentRow) -> Appointment:
    return Appointment(
        appointment_id=row.id,
        customer_name=row.customer_name,
        scheduled_at=row.appointment_time,
        customer_phone=row.customer_phone or None,
        status=row.status or DEFAULT_STATUS,
        notes=row.notes or None,
        interests=[str(item) for item in (row.model_interests or []) if item],
    )


class AppointmentWindowFetcher:
    """Reads appointments scheduled inside an absolute time window."""

    def __init__(self, database: Database | None) -> None:
        self._database = database

    def fetch_window(self, start: datetime, end: datetime) -> list[Appointment]:
        """Appointments with ``start <= appointment_time <= end``, earliest first."""
        if start > end:
            raise ValueError(f"Window start {start.isoformat()} is after end {end.isoformat()}")
        database = require_database(self._database, "Appointment store")

        stmt = (
            select(AppointmentRow)
            .where(
                AppointmentRow.appointment_time >= start,
                AppointmentRow.appointment_time <= end,
            )
            .order_by(AppointmentRow.appointment_time, AppointmentRow.id)
        )
        with database.session() as session:
            rows = session.scalars(stmt).all()
        return [_to_appointment(row) for row in rows]
