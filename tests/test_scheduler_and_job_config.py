from __future__ import annotations

from datetime import UTC, datetime, time, timedelta
from pathlib import Path

import pytest
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from sms_reminders.config import resolve_config
from sms_reminders.domain.models import ReminderKind
from sms_reminders.jobs import scheduler

from conftest import CHICAGO, FakeTransport, make_runner


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in (
        "REMINDERS_DATABASE_URL",
        "DATABASE_URL",
        "REMINDERS_TIMEZONE",
        "REMINDERS_DAY_BEFORE_AT",
        "REMINDERS_DAY_OF_AT",
        "REMINDERS_ONE_HOUR_INTERVAL_MINUTES",
        "REMINDERS_MAX_ATTEMPTS",
        "REMINDERS_HEALTH_SNAPSHOT_PATH",
        "APP_BASE_URL",
        "TWILIO_ACCOUNT_SID",
        "TWILIO_AUTH_TOKEN",
        "TWILIO_PHONE_NUMBER",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_resolve_config_defaults(clean_env: pytest.MonkeyPatch) -> None:
    config = resolve_config()

    assert config.timezone.key == "America/Chicago"
    assert config.database_url is None
    assert config.day_before_at == time(18, 30)
    assert config.day_of_at == time(9, 30)
    assert config.one_hour_interval == timedelta(minutes=5)
    assert config.one_hour_lead == timedelta(minutes=60)
    assert config.one_hour_tolerance == timedelta(minutes=5)
    assert config.max_attempts == 3
    assert config.twilio is not None and config.twilio.configured is False


def test_resolve_config_reads_env(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    clean_env.setenv("DATABASE_URL", "postgres://crm")
    clean_env.setenv("REMINDERS_DATABASE_URL", "sqlite:///reminders.db")
    clean_env.setenv("REMINDERS_TIMEZONE", "America/Denver")
    clean_env.setenv("REMINDERS_DAY_BEFORE_AT", "17:45")
    clean_env.setenv("REMINDERS_ONE_HOUR_INTERVAL_MINUTES", "10")
    clean_env.setenv("REMINDERS_HEALTH_SNAPSHOT_PATH", str(tmp_path / "health.json"))
    clean_env.setenv("APP_BASE_URL", "https://crm.example.test/")
    clean_env.setenv("TWILIO_ACCOUNT_SID", "AC123")
    clean_env.setenv("TWILIO_AUTH_TOKEN", "secret")
    clean_env.setenv("TWILIO_PHONE_NUMBER", "+15550009999")

    config = resolve_config()

    assert config.database_url == "sqlite:///reminders.db"
    assert config.timezone.key == "America/Denver"
    assert config.day_before_at == time(17, 45)
    assert config.one_hour_interval == timedelta(minutes=10)
    assert config.health_snapshot_path == tmp_path / "health.json"
    assert config.app_base_url == "https://crm.example.test"
    assert config.twilio is not None and config.twilio.configured is True


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("REMINDERS_DAY_OF_AT", "9am", "REMINDERS_DAY_OF_AT must be HH:MM"),
        ("REMINDERS_DAY_OF_AT", "25:00", "REMINDERS_DAY_OF_AT must be HH:MM"),
        ("REMINDERS_TIMEZONE", "Mars/Olympus", "REMINDERS_TIMEZONE is not a known IANA timezone"),
        ("REMINDERS_MAX_ATTEMPTS", "0", "REMINDERS_MAX_ATTEMPTS must be >= 1"),
        ("REMINDERS_ONE_HOUR_INTERVAL_MINUTES", "often", "must be a number"),
    ],
)
def test_resolve_config_rejects_invalid_values(
    clean_env: pytest.MonkeyPatch,
    name: str,
    value: str,
    message: str,
) -> None:
    clean_env.setenv(name, value)

    with pytest.raises(ValueError, match=message):
        resolve_config()


def test_build_triggers_match_configured_times(config) -> None:
    triggers = scheduler.build_triggers(config)

    assert isinstance(triggers[ReminderKind.DAY_BEFORE], CronTrigger)
    assert isinstance(triggers[ReminderKind.DAY_OF], CronTrigger)
    assert isinstance(triggers[ReminderKind.ONE_HOUR], IntervalTrigger)
    assert triggers[ReminderKind.ONE_HOUR].interval == timedelta(minutes=5)

    now = datetime(2025, 3, 8, 12, 0, tzinfo=CHICAGO)
    next_day_before = triggers[ReminderKind.DAY_BEFORE].get_next_fire_time(None, now)
    next_day_of = triggers[ReminderKind.DAY_OF].get_next_fire_time(None, now)
    assert (next_day_before.hour, next_day_before.minute, next_day_before.day) == (18, 30, 8)
    assert (next_day_of.hour, next_day_of.minute, next_day_of.day) == (9, 30, 9)


def test_daily_trigger_keeps_local_wall_time_across_dst(config) -> None:
    trigger = scheduler.build_triggers(config)[ReminderKind.DAY_OF]

    standard = trigger.get_next_fire_time(None, datetime(2025, 3, 7, 12, 0, tzinfo=CHICAGO))
    daylight = trigger.get_next_fire_time(None, datetime(2025, 3, 8, 12, 0, tzinfo=CHICAGO))

    assert standard.astimezone(UTC) == datetime(2025, 3, 8, 15, 30, tzinfo=UTC)
    assert daylight.astimezone(UTC) == datetime(2025, 3, 9, 14, 30, tzinfo=UTC)


def test_build_scheduler_registers_one_single_instance_job_per_kind(database, config) -> None:
    runner = make_runner(database, config, transport=FakeTransport(), now=datetime.now(CHICAGO))

    sched = scheduler.build_scheduler(runner)

    jobs = {job.id: job for job in sched.get_jobs()}
    assert set(jobs) == {"sms_reminder_day_before", "sms_reminder_day_of", "sms_reminder_one_hour"}
    for kind in ReminderKind:
        job = jobs[scheduler.job_id(kind)]
        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.misfire_grace_time == scheduler.MISFIRE_GRACE_SECONDS
        assert job.args == (kind,)
        assert job.func == runner.run


def test_once_mode_runs_a_single_kind(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    calls: list[str] = []

    class FakeResult:
        def as_dict(self):
            return {"kind": "day_of", "status": "nothing_to_send"}

    class FakeRunner:
        def run_now(self, kind):
            calls.append(kind)
            return FakeResult()

    monkeypatch.setattr(scheduler, "build_runner", lambda: FakeRunner())

    scheduler.main(["--once", "day_of"])

    assert calls == ["day_of"]
    assert '"status": "nothing_to_send"' in capsys.readouterr().out
