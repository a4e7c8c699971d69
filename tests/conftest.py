from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Iterator
from zoneinfo import ZoneInfo

import pytest

from sms_reminders.config import ReminderConfig
from sms_reminders.domain.models import TransportResult
from sms_reminders.jobs.tasks import ReminderRunner
from sms_reminders.orchestration.delivery import DeliveryEngine
from sms_reminders.storage.appointments import AppointmentWindowFetcher
from sms_reminders.storage.db import AppointmentRow, Database, ProfileRow
from sms_reminders.storage.ledger import DedupLedger
from sms_reminders.storage.recipients import RecipientResolver

CHICAGO = ZoneInfo("America/Chicago")
BASE_URL = "https://crm.example.test"


class FakeTransport:
    """Scripted transport: pops one result (or exception) per send, then succeeds."""

    def __init__(self, results: list[TransportResult | Exception] | None = None) -> None:
        self.results = list(results or [])
        self.sent: list[tuple[str, str]] = []

    def send(self, to: str, body: str) -> TransportResult:
        self.sent.append((to, body))
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return TransportResult(message_id=f"SM{len(self.sent):04d}", status="queued")


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def failure(code: str | None, message: str = "gateway error") -> TransportResult:
    return TransportResult(error_code=code, error_message=message)


def add_appointment(
    database: Database,
    appointment_id: str,
    scheduled_at: datetime,
    *,
    name: str = "Jane Doe",
    phone: str | None = "555-867-5309",
    status: str = "scheduled",
    notes: str | None = None,
    interests: list[str] | None = None,
) -> None:
    with database.session() as session:
        session.add(
            AppointmentRow(
                id=appointment_id,
                customer_name=name,
                customer_phone=phone,
                appointment_time=scheduled_at,
                status=status,
                notes=notes,
                model_interests=interests,
            )
        )
        session.commit()


def add_profile(database: Database, profile_id: str, phone: str | None, *, enabled: bool = True) -> None:
    with database.session() as session:
        session.add(ProfileRow(id=profile_id, phone_number=phone, sms_notifications_enabled=enabled))
        session.commit()


def make_config(tmp_path: Path, **overrides: Any) -> ReminderConfig:
    values: dict[str, Any] = {
        "timezone": CHICAGO,
        "database_url": f"sqlite:///{tmp_path / 'reminders.db'}",
        "inter_send_delay_seconds": 0.25,
        "app_base_url": BASE_URL,
        "health_snapshot_path": tmp_path / "state" / "health.json",
    }
    values.update(overrides)
    return ReminderConfig(**values)


def make_runner(
    database: Database | None,
    config: ReminderConfig,
    *,
    transport: FakeTransport | None,
    now: datetime,
    sleep: RecordingSleep | None = None,
) -> ReminderRunner:
    engine = DeliveryEngine(
        transport,
        max_attempts=config.max_attempts,
        backoff_s=config.backoff_seconds,
        inter_send_delay_s=config.inter_send_delay_seconds,
        sleep=sleep or RecordingSleep(),
    )
    return ReminderRunner(
        config=config,
        fetcher=AppointmentWindowFetcher(database),
        resolver=RecipientResolver(database),
        ledger=DedupLedger(database),
        engine=engine,
        clock=lambda: now,
    )


@pytest.fixture
def database(tmp_path: Path) -> Iterator[Database]:
    db = Database.from_url(f"sqlite:///{tmp_path / 'reminders.db'}", timeout_s=5)
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def config(tmp_path: Path) -> ReminderConfig:
    return make_config(tmp_path)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


def utc(*parts: int) -> datetime:
    return datetime(*parts, tzinfo=UTC)
