"""Runtime configuration resolved from environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import time, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/Chicago"
DEFAULT_APP_BASE_URL = "https://bbb-auto-sales.netlify.app"
DEFAULT_HEALTH_SNAPSHOT_PATH = "/tmp/sms-reminders/state/health.json"


@dataclass(slots=True)
class TwilioSettings:
    account_sid: str | None = None
    auth_token: str | None = None
    from_number: str | None = None

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)


@dataclass(slots=True)
class ReminderConfig:
    timezone: ZoneInfo
    database_url: str | None = None
    day_before_at: time = time(18, 30)
    day_of_at: time = time(9, 30)
    one_hour_interval: timedelta = timedelta(minutes=5)
    one_hour_lead: timedelta = timedelta(minutes=60)
    one_hour_tolerance: timedelta = timedelta(minutes=5)
    max_attempts: int = 3
    backoff_seconds: float = 1.0
    inter_send_delay_seconds: float = 0.25
    transport_timeout_seconds: float = 10.0
    db_timeout_seconds: float = 10.0
    brand_name: str = "BBB Auto"
    app_base_url: str = DEFAULT_APP_BASE_URL
    health_snapshot_path: Path | None = Path(DEFAULT_HEALTH_SNAPSHOT_PATH)
    twilio: TwilioSettings | None = None


def _env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name, "").strip()
    return value or default


def _parse_clock(name: str, default: str) -> time:
    raw = _env(name, default) or default
    try:
        hour, minute = (int(part) for part in raw.split(":", 1))
        return time(hour, minute)
    except ValueError as exc:
        raise ValueError(f"{name} must be HH:MM (example: 18:30), got {raw!r}") from exc


def _parse_number(name: str, default: str, cast: type[int] | type[float], minimum: float) -> int | float:
    raw = _env(name, default) or default
    try:
        value = cast(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _parse_timezone(name: str) -> ZoneInfo:
    raw = _env(name, DEFAULT_TIMEZONE) or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"{name} is not a known IANA timezone: {raw!r}") from exc


def resolve_config() -> ReminderConfig:
    """Build a :class:`ReminderConfig` from the process environment."""
    snapshot_raw = _env("REMINDERS_HEALTH_SNAPSHOT_PATH", DEFAULT_HEALTH_SNAPSHOT_PATH)
    config = ReminderConfig(
        timezone=_parse_timezone("REMINDERS_TIMEZONE"),
        database_url=_env("REMINDERS_DATABASE_URL") or _env("DATABASE_URL"),
        day_before_at=_parse_clock("REMINDERS_DAY_BEFORE_AT", "18:30"),
        day_of_at=_parse_clock("REMINDERS_DAY_OF_AT", "09:30"),
        one_hour_interval=timedelta(
            minutes=_parse_number("REMINDERS_ONE_HOUR_INTERVAL_MINUTES", "5", int, 1)
        ),
        one_hour_lead=timedelta(minutes=_parse_number("REMINDERS_ONE_HOUR_LEAD_MINUTES", "60", int, 1)),
        one_hour_tolerance=timedelta(
            minutes=_parse_number("REMINDERS_ONE_HOUR_TOLERANCE_MINUTES", "5", int, 0)
        ),
        max_attempts=int(_parse_number("REMINDERS_MAX_ATTEMPTS", "3", int, 1)),
        backoff_seconds=_parse_number("REMINDERS_BACKOFF_SECONDS", "1.0", float, 0),
        inter_send_delay_seconds=_parse_number("REMINDERS_INTER_SEND_DELAY_SECONDS", "0.25", float, 0),
        transport_timeout_seconds=_parse_number("REMINDERS_TRANSPORT_TIMEOUT_SECONDS", "10", float, 0.1),
        db_timeout_seconds=_parse_number("REMINDERS_DB_TIMEOUT_SECONDS", "10", float, 0.1),
        brand_name=_env("REMINDERS_BRAND_NAME", "BBB Auto") or "BBB Auto",
        app_base_url=(_env("APP_BASE_URL", DEFAULT_APP_BASE_URL) or DEFAULT_APP_BASE_URL).rstrip("/"),
        health_snapshot_path=Path(snapshot_raw) if snapshot_raw else None,
        twilio=TwilioSettings(
            account_sid=_env("TWILIO_ACCOUNT_SID"),
            auth_token=_env("TWILIO_AUTH_TOKEN"),
            from_number=_env("TWILIO_PHONE_NUMBER"),
        ),
    )

    logger.info(
        "Resolved reminder config (timezone=%s, database=%s, twilio=%s, day_before=%s, day_of=%s, one_hour_every=%s)",
        config.timezone.key,
        "configured" if config.database_url else "missing",
        "configured" if config.twilio and config.twilio.configured else "missing",
        config.day_before_at.strftime("%H:%M"),
        config.day_of_at.strftime("%H:%M"),
        config.one_hour_interval,
    )
    return config
