"""Reminder firings executed by the scheduler and by operators."""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime
from typing import Any, Callable

from sms_reminders.adapters.twilio_transport import TwilioTransport
from sms_reminders.config import ReminderConfig, resolve_config
from sms_reminders.domain.models import (
    Appointment,
    FiringResult,
    FiringStatus,
    ReminderKind,
)
from sms_reminders.orchestration.delivery import DeliveryEngine
from sms_reminders.reporting.compose import MessageComposer
from sms_reminders.reporting.health import write_health_snapshot
from sms_reminders.reporting.stats import SchedulerState
from sms_reminders.storage.appointments import AppointmentWindowFetcher
from sms_reminders.storage.db import Database
from sms_reminders.storage.ledger import DedupLedger
from sms_reminders.storage.recipients import RecipientResolver
from sms_reminders.utils.local_time import day_window, lead_window
from sms_reminders.workflows.dispatch import dispatch_batch

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def resolve_window(kind: ReminderKind, now: datetime, config: ReminderConfig) -> tuple[datetime, datetime]:
    if kind is ReminderKind.DAY_BEFORE:
        return day_window(now, 1, config.timezone)
    if kind is ReminderKind.DAY_OF:
        return day_window(now, 0, config.timezone)
    return lead_window(now, config.one_hour_lead, config.one_hour_tolerance)


def split_batches(kind: ReminderKind, appointments: list[Appointment]) -> list[list[Appointment]]:
    """Daily kinds send the whole window together; one-hour reminders go one appointment at a time."""
    if kind is ReminderKind.ONE_HOUR:
        return [[appointment] for appointment in appointments]
    return [appointments]


class ReminderRunner:
    """Runs one reminder kind end to end and tracks scheduler statistics."""

    def __init__(
        self,
        *,
        config: ReminderConfig,
        fetcher: AppointmentWindowFetcher,
        resolver: RecipientResolver,
        ledger: DedupLedger,
        engine: DeliveryEngine,
        composer: MessageComposer | None = None,
        state: SchedulerState | None = None,
        clock: Clock = _utcnow,
    ) -> None:
        self.config = config
        self.fetcher = fetcher
        self.resolver = resolver
        self.ledger = ledger
        self.engine = engine
        self.composer = composer or MessageComposer(
            base_url=config.app_base_url,
            brand=config.brand_name,
            tz=config.timezone,
        )
        self.state = state or SchedulerState()
        self._clock = clock
        self._in_flight = {kind: threading.Lock() for kind in ReminderKind}

    def health(self) -> dict[str, Any]:
        return self.state.snapshot(
            transport_ready=self.engine.is_ready(),
            ledger_ready=self.ledger.is_ready(),
        )

    def run_now(self, kind: ReminderKind | str) -> FiringResult:
        """Operator override: fire ``kind`` immediately through the scheduled path."""
        parsed = ReminderKind.parse(kind)
        logger.info("Manual trigger requested for %s", parsed.value)
        return self.run(parsed)

    def run(self, kind: ReminderKind) -> FiringResult:
        guard = self._in_flight[kind]
        if not guard.acquire(blocking=False):
            logger.warning("%s firing already in progress; skipping this trigger", kind.value)
            return FiringResult(kind=kind, status=FiringStatus.IN_FLIGHT, reason="already_running")
        try:
            result = self._fire(kind)
        except Exception:
            logger.exception("Unexpected error in %s reminders", kind.value)
            result = self._abort(kind, "unexpected_error")
        finally:
            guard.release()

        self._persist_health()
        return result

    def _abort(self, kind: ReminderKind, reason: str, **window: Any) -> FiringResult:
        self.state.record_error()
        return FiringResult(kind=kind, status=FiringStatus.ABORTED, reason=reason, **window)

    def _fire(self, kind: ReminderKind) -> FiringResult:
        now = self._clock()
        self.state.mark_run(kind, now)
        logger.info(
            "Running %s reminder check at %s",
            kind.value,
            now.astimezone(self.config.timezone).isoformat(),
        )

        if not self.engine.is_ready():
            logger.warning("SMS transport not ready; skipping %s reminders", kind.value)
            return self._abort(kind, "transport_not_configured")

        try:
            start, end = resolve_window(kind, now, self.config)
        except ValueError:
            logger.exception("Could not resolve %s window", kind.value)
            return self._abort(kind, "window_failed")
        window = {"window_start": start, "window_end": end}

        try:
            appointments = self.fetcher.fetch_window(start, end)
        except Exception:
            logger.exception("Error fetching %s appointments", kind.value)
            return self._abort(kind, "fetch_failed", **window)

        if not appointments:
            logger.info(
                "No %s appointments between %s and %s",
                kind.value,
                start.isoformat(),
                end.isoformat(),
            )
            return FiringResult(kind=kind, status=FiringStatus.NOTHING_TO_SEND, reason="no_appointments", **window)

        try:
            recipients = self.resolver.eligible_recipients()
        except Exception:
            logger.exception("Error fetching eligible recipients for %s", kind.value)
            return self._abort(kind, "recipients_failed", appointment_count=len(appointments), **window)

        if not recipients:
            logger.info("No eligible recipients for %s reminders", kind.value)
            return FiringResult(
                kind=kind,
                status=FiringStatus.NOTHING_TO_SEND,
                reason="no_recipients",
                appointment_count=len(appointments),
                **window,
            )

        logger.info(
            "Sending %s reminders to %d recipient(s) for %d appointment(s)",
            kind.value,
            len(recipients),
            len(appointments),
        )
        result = FiringResult(
            kind=kind,
            status=FiringStatus.ATTEMPTED,
            appointment_count=len(appointments),
            **window,
        )
        for batch in split_batches(kind, appointments):
            outcomes = dispatch_batch(
                batch,
                kind=kind,
                recipients=recipients,
                composer=self.composer,
                engine=self.engine,
                ledger=self.ledger,
                scheduled_for=now,
            )
            for outcome in outcomes:
                if outcome.status == "sent":
                    self.state.record_sent()
                elif outcome.status == "failed":
                    self.state.record_error()
            result.outcomes.extend(outcomes)

        if not (result.sent or result.failed):
            result.status = FiringStatus.NOTHING_TO_SEND
            result.reason = "already_sent"

        logger.info(
            "%s reminders completed: sent=%d failed=%d skipped=%d",
            kind.value,
            result.sent,
            result.failed,
            len(result.outcomes) - result.sent - result.failed,
        )
        return result

    def _persist_health(self) -> None:
        path = self.config.health_snapshot_path
        if path is None:
            return
        try:
            write_health_snapshot(path, self.health())
        except OSError:
            logger.exception("Could not write health snapshot to %s", path)


def build_runner(config: ReminderConfig | None = None) -> ReminderRunner:
    """Wire stores, transport and engine from configuration."""
    config = config or resolve_config()

    database = None
    if config.database_url:
        database = Database.from_url(config.database_url, timeout_s=config.db_timeout_seconds)
    else:
        logger.error("Database not configured; reminders cannot be fetched or logged")

    transport = TwilioTransport.from_settings(config.twilio, timeout_s=config.transport_timeout_seconds)
    engine = DeliveryEngine(
        transport,
        max_attempts=config.max_attempts,
        backoff_s=config.backoff_seconds,
        inter_send_delay_s=config.inter_send_delay_seconds,
    )
    return ReminderRunner(
        config=config,
        fetcher=AppointmentWindowFetcher(database),
        resolver=RecipientResolver(database),
        ledger=DedupLedger(database),
        engine=engine,
    )
