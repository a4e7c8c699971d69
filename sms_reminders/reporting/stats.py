"""Process-local scheduler statistics."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sms_reminders.domain.models import ReminderKind


@dataclass(slots=True)
class SchedulerState:
    """Last-run instants and cumulative counters, owned by the reminder runner.

    Counters reset only when the process restarts. Other components read
    :meth:`snapshot`, never the fields.
    """

    last_run: dict[ReminderKind, datetime | None] = field(
        default_factory=lambda: {kind: None for kind in ReminderKind}
    )
    total_sent: int = 0
    total_errors: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def mark_run(self, kind: ReminderKind, at: datetime) -> None:
        with self._lock:
            self.last_run[kind] = at

    def record_sent(self, count: int = 1) -> None:
        with self._lock:
            self.total_sent += count

    def record_error(self, count: int = 1) -> None:
        with self._lock:
            self.total_errors += count

    def snapshot(self, *, transport_ready: bool, ledger_ready: bool) -> dict[str, Any]:
        with self._lock:
            last_run = {
                kind.value: at.isoformat() if at else None for kind, at in self.last_run.items()
            }
            return {
                "last_run": last_run,
                "total_sent": self.total_sent,
                "total_errors": self.total_errors,
                "transport_ready": transport_ready,
                "ledger_ready": ledger_ready,
            }
