"""SMS body templates for single and batched appointment reminders."""

from __future__ import annotations

from datetime import tzinfo
from typing import Sequence

from sms_reminders.domain.models import DEFAULT_STATUS, Appointment, ReminderKind
from sms_reminders.utils.local_time import DEFAULT_TIMEZONE, format_for_sms

NOTES_LIMIT = 60
APPOINTMENTS_PATH = "/appointments-leads"

BATCH_HEADERS = {
    ReminderKind.DAY_BEFORE: "tomorrow",
    ReminderKind.DAY_OF: "today",
    ReminderKind.ONE_HOUR: "coming up",
}


def truncate_notes(notes: str, limit: int = NOTES_LIMIT) -> str:
    if len(notes) <= limit:
        return notes
    return notes[: limit - 3] + "..."


class MessageComposer:
    def __init__(
        self,
        *,
        base_url: str,
        brand: str = "BBB Auto",
        tz: tzinfo = DEFAULT_TIMEZONE,
    ) -> None:
        self.brand = brand
        self.tz = tz
        self.link = f"{base_url.rstrip('/')}{APPOINTMENTS_PATH}"

    def compose(self, appointments: Sequence[Appointment], kind: ReminderKind) -> str:
        if not appointments:
            raise ValueError("Cannot compose a reminder for an empty batch")
        if len(appointments) == 1:
            return self.compose_single(appointments[0])
        return self.compose_batch(appointments, kind)

    def _contact(self, appointment: Appointment) -> str:
        if appointment.customer_phone:
            return f"{appointment.customer_name} ({appointment.customer_phone})"
        return appointment.customer_name

    def compose_single(self, appointment: Appointment) -> str:
        lines = [
            f"{self.brand} Reminder:",
            self._contact(appointment),
            format_for_sms(appointment.scheduled_at, self.tz),
        ]
        if appointment.interests:
            lines.append(f"Interested in: {', '.join(appointment.interests)}")
        if appointment.notes:
            lines.append(f"Notes: {truncate_notes(appointment.notes)}")
        if appointment.status and appointment.status != DEFAULT_STATUS:
            lines.append(f"Status: {appointment.status}")
        lines.extend(["", f"View: {self.link}"])
        return "\n".join(lines)

    def compose_batch(self, appointments: Sequence[Appointment], kind: ReminderKind) -> str:
        lines = [f"{self.brand}: {len(appointments)} appointments {BATCH_HEADERS[kind]}:", ""]
        for idx, appointment in enumerate(appointments, start=1):
            when = f"   {format_for_sms(appointment.scheduled_at, self.tz)}"
            if appointment.status and appointment.status != DEFAULT_STATUS:
                when += f" [{appointment.status}]"
            lines.append(f"{idx}. {self._contact(appointment)}")
            lines.append(when)
        lines.extend(["", f"View all: {self.link}"])
        return "\n".join(lines)
