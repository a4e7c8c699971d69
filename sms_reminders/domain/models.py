from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

DEFAULT_STATUS = "scheduled"


class ReminderKind(str, Enum):
    DAY_BEFORE = "day_before"
    DAY_OF = "day_of"
    ONE_HOUR = "one_hour"

    @classmethod
    def parse(cls, value: ReminderKind | str) -> ReminderKind:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError as exc:
            choices = ", ".join(kind.value for kind in cls)
            raise ValueError(f"Unknown reminder kind {value!r}; expected one of: {choices}") from exc


class FiringStatus(str, Enum):
    NOTHING_TO_SEND = "nothing_to_send"
    ATTEMPTED = "attempted"
    ABORTED = "aborted"
    IN_FLIGHT = "in_flight"


@dataclass(slots=True)
class Appointment:
    appointment_id: str
    customer_name: str
    scheduled_at: datetime
    customer_phone: str | None = None
    status: str = DEFAULT_STATUS
    notes: str | None = None
    interests: list[str] = field(default_factory=list)


@dataclass(slots=True)
class Recipient:
    recipient_id: str
    phone: str


@dataclass(slots=True)
class TransportResult:
    """Raw outcome of one gateway call."""

    message_id: str | None = None
    status: str | None = None
    error_code: str | None = None
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.message_id is not None and self.error_code is None and self.error_message is None


@dataclass(slots=True)
class DeliveryOutcome:
    success: bool
    attempts: int = 0
    message_id: str | None = None
    transport_status: str | None = None
    error: str | None = None
    error_code: str | None = None
    permanent: bool = False

    @property
    def status(self) -> str:
        return "sent" if self.success else "failed"

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "attempts": self.attempts,
            "message_id": self.message_id,
            "transport_status": self.transport_status,
            "error": self.error,
            "error_code": self.error_code,
            "permanent": self.permanent,
        }


@dataclass(slots=True)
class ReminderRecord:
    appointment_id: str
    kind: ReminderKind
    recipient_id: str
    recipient_phone: str
    status: str
    scheduled_for: datetime
    sent_at: datetime | None = None
    transport_message_id: str | None = None
    transport_status: str | None = None
    error_code: str | None = None
    error_message: str | None = None


@dataclass(slots=True)
class RecipientOutcome:
    recipient_id: str
    appointment_ids: list[str]
    status: str
    delivery: DeliveryOutcome | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "recipient_id": self.recipient_id,
            "appointment_ids": list(self.appointment_ids),
            "status": self.status,
            "delivery": self.delivery.as_dict() if self.delivery else None,
        }


@dataclass(slots=True)
class FiringResult:
    kind: ReminderKind
    status: FiringStatus
    reason: str | None = None
    window_start: datetime | None = None
    window_end: datetime | None = None
    appointment_count: int = 0
    outcomes: list[RecipientOutcome] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == "sent")

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == "failed")

    def as_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "status": self.status.value,
            "reason": self.reason,
            "window": {
                "start": self.window_start.isoformat() if self.window_start else None,
                "end": self.window_end.isoformat() if self.window_end else None,
            },
            "appointment_count": self.appointment_count,
            "totals": {
                "sent": self.sent,
                "failed": self.failed,
                "skipped": sum(1 for outcome in self.outcomes if outcome.status == "skipped"),
            },
            "outcomes": [outcome.as_dict() for outcome in self.outcomes],
        }
