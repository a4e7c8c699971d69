from __future__ import annotations

import pytest

from sms_reminders.domain.models import Appointment, DeliveryOutcome, Recipient, ReminderKind
from sms_reminders.orchestration.delivery import DeliveryEngine
from sms_reminders.reporting.compose import MessageComposer
from sms_reminders.storage.db import Database
from sms_reminders.storage.ledger import DedupLedger
from sms_reminders.workflows.dispatch import dispatch_batch

from conftest import BASE_URL, CHICAGO, FakeTransport, RecordingSleep, failure, utc

NOW = utc(2025, 3, 9, 0, 30)
RECIPIENTS = [Recipient("user-1", "555-867-5309"), Recipient("user-2", "+15550001111")]


def _appointments(*ids: str) -> list[Appointment]:
    return [Appointment(appointment_id=i, customer_name=f"Customer {i}", scheduled_at=utc(2025, 3, 9, 19, 0)) for i in ids]


def _dispatch(
    appointments: list[Appointment],
    database: Database,
    transport: FakeTransport,
    sleep: RecordingSleep,
    recipients: list[Recipient] = RECIPIENTS,
):
    return dispatch_batch(
        appointments,
        kind=ReminderKind.DAY_BEFORE,
        recipients=recipients,
        composer=MessageComposer(base_url=BASE_URL, tz=CHICAGO),
        engine=DeliveryEngine(transport, sleep=sleep, inter_send_delay_s=0.25),
        ledger=DedupLedger(database),
        scheduled_for=NOW,
    )


def test_sends_one_message_per_recipient_and_logs_every_pair(
    database: Database,
    sleep: RecordingSleep,
) -> None:
    transport = FakeTransport()

    outcomes = _dispatch(_appointments("appt-1", "appt-2"), database, transport, sleep)

    assert [outcome.status for outcome in outcomes] == ["sent", "sent"]
    assert [to for to, _ in transport.sent] == ["+15558675309", "+15550001111"]
    assert transport.sent[0][1].startswith("BBB Auto: 2 appointments tomorrow:")
    assert sleep.calls == [0.25]

    records = DedupLedger(database).records()
    assert {(r.appointment_id, r.recipient_id) for r in records} == {
        ("appt-1", "user-1"),
        ("appt-2", "user-1"),
        ("appt-1", "user-2"),
        ("appt-2", "user-2"),
    }
    assert all(r.scheduled_for == NOW for r in records)


def test_recipient_with_every_appointment_logged_is_skipped(
    database: Database,
    sleep: RecordingSleep,
) -> None:
    ledger = DedupLedger(database)
    done = DeliveryOutcome(success=True, attempts=1, message_id="SM-old")
    ledger.record_attempt("appt-1", ReminderKind.DAY_BEFORE, "user-1", "+15558675309", done, NOW)
    transport = FakeTransport()

    outcomes = _dispatch(_appointments("appt-1"), database, transport, sleep)

    assert [(o.recipient_id, o.status) for o in outcomes] == [("user-1", "skipped"), ("user-2", "sent")]
    assert [to for to, _ in transport.sent] == ["+15550001111"]
    assert sleep.calls == []


def test_partially_logged_batch_is_resent_and_only_missing_records_written(
    database: Database,
    sleep: RecordingSleep,
) -> None:
    ledger = DedupLedger(database)
    done = DeliveryOutcome(success=True, attempts=1, message_id="SM-old")
    ledger.record_attempt("appt-1", ReminderKind.DAY_BEFORE, "user-1", "+15558675309", done, NOW)
    transport = FakeTransport()

    outcomes = _dispatch(_appointments("appt-1", "appt-2"), database, transport, sleep, RECIPIENTS[:1])

    assert [o.status for o in outcomes] == ["sent"]
    records = ledger.records(appointment_id="appt-1")
    assert [r.transport_message_id for r in records] == ["SM-old"]
    assert [r.transport_message_id for r in ledger.records(appointment_id="appt-2")] == ["SM0001"]


def test_failed_delivery_is_logged_as_failed(database: Database, sleep: RecordingSleep) -> None:
    transport = FakeTransport([failure("21211", "Invalid 'To' Phone Number")])

    outcomes = _dispatch(_appointments("appt-1"), database, transport, sleep, RECIPIENTS[:1])

    assert outcomes[0].status == "failed"
    assert outcomes[0].delivery is not None and outcomes[0].delivery.permanent
    [record] = DedupLedger(database).records()
    assert record.status == "failed"
    assert record.error_code == "21211"


def test_ledger_write_failure_does_not_stop_other_recipients(
    database: Database,
    sleep: RecordingSleep,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls: list[str] = []
    original = DedupLedger.record_attempt

    def flaky_record(self, appointment_id, kind, recipient_id, *args):
        calls.append(recipient_id)
        if recipient_id == "user-1":
            raise RuntimeError("disk full")
        return original(self, appointment_id, kind, recipient_id, *args)

    monkeypatch.setattr(DedupLedger, "record_attempt", flaky_record)
    transport = FakeTransport()

    outcomes = _dispatch(_appointments("appt-1"), database, transport, sleep)

    assert [o.status for o in outcomes] == ["sent", "sent"]
    assert calls == ["user-1", "user-2"]
    assert [r.recipient_id for r in DedupLedger(database).records()] == ["user-2"]
