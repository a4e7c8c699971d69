"""Civil-calendar helpers for a fixed reminder timezone.

All returned instants are timezone-aware UTC datetimes. Offsets are looked up
for the wall time being converted, so a window on a DST transition date uses
that date's offsets rather than whatever offset is in effect when the
calculation runs.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = ZoneInfo("America/Chicago")

DAY_START = time(0, 0, 0)
# fold=1 selects the later 23:59:59 when the zone repeats that wall time.
DAY_END = time(23, 59, 59, fold=1)


def _require_aware(instant: datetime, name: str = "reference") -> None:
    if instant.tzinfo is None or instant.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware, got naive {instant.isoformat()}")


def civil_day_bounds(target_date: date, tz: tzinfo = DEFAULT_TIMEZONE) -> tuple[datetime, datetime]:
    """Return UTC instants for 00:00:00 and 23:59:59 local time on ``target_date``."""
    start = datetime.combine(target_date, DAY_START, tzinfo=tz)
    end = datetime.combine(target_date, DAY_END, tzinfo=tz)
    return start.astimezone(UTC), end.astimezone(UTC)


def local_date(reference: datetime, tz: tzinfo = DEFAULT_TIMEZONE) -> date:
    """Civil date of ``reference`` in ``tz``."""
    _require_aware(reference)
    return reference.astimezone(tz).date()


def day_window(
    reference: datetime,
    day_offset: int = 0,
    tz: tzinfo = DEFAULT_TIMEZONE,
) -> tuple[datetime, datetime]:
    """Civil-day window ``day_offset`` days after the local date of ``reference``.

    ``day_offset=0`` is "today", ``1`` is "tomorrow".
    """
    today = local_date(reference, tz)
    try:
        target = today + timedelta(days=day_offset)
    except OverflowError as exc:
        raise ValueError(f"Date {today.isoformat()} + {day_offset} day(s) is not representable") from exc
    return civil_day_bounds(target, tz)


def lead_window(
    reference: datetime,
    lead: timedelta,
    tolerance: timedelta,
) -> tuple[datetime, datetime]:
    """Window centered ``lead`` after ``reference`` with a +/- ``tolerance`` band."""
    _require_aware(reference)
    if tolerance < timedelta(0):
        raise ValueError("tolerance must not be negative")
    center = reference.astimezone(UTC) + lead
    return center - tolerance, center + tolerance


def format_for_sms(instant: datetime, tz: tzinfo = DEFAULT_TIMEZONE) -> str:
    """Format an instant for an SMS body, e.g. ``Sun, Mar 9, 2:00 PM``."""
    _require_aware(instant, "instant")
    local = instant.astimezone(tz)
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{local:%a}, {local:%b} {local.day}, {hour}:{local:%M} {meridiem}"
