from __future__ import annotations

from sqlalchemy import select

from sms_reminders.domain.models import Recipient
from sms_reminders.storage.db import Database, ProfileRow, require_database


class RecipientResolver:
    """Returns staff profiles that opted in to SMS reminders."""

    def __init__(self, database: Database | None) -> None:
        self._database = database

    def eligible_recipients(self) -> list[Recipient]:
        database = require_database(self._database, "Recipient store")
        stmt = (
            select(ProfileRow)
            .where(
                ProfileRow.sms_notifications_enabled.is_(True),
                ProfileRow.phone_number.is_not(None),
                ProfileRow.phone_number != "",
            )
            .order_by(ProfileRow.id)
        )
        with database.session() as session:
            rows = session.scalars(stmt).all()

        recipients: list[Recipient] = []
        for row in rows:
            phone = (row.phone_number or "").strip()
            if phone:
                recipients.append(Recipient(recipient_id=row.id, phone=phone))
        return recipients
