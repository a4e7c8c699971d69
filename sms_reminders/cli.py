"""Operator command line interface for SMS reminders."""

from __future__ import annotations

import argparse
import json
from dataclasses import replace
from pathlib import Path
from typing import Sequence

from sms_reminders.config import resolve_config
from sms_reminders.domain.models import FiringStatus, ReminderKind
from sms_reminders.jobs.tasks import build_runner
from sms_reminders.reporting.health import read_health_snapshot
from sms_reminders.storage.db import Database
from sms_reminders.utils.logging import configure_logging

KIND_CHOICES = tuple(kind.value for kind in ReminderKind)
OK_STATUSES = {FiringStatus.ATTEMPTED, FiringStatus.NOTHING_TO_SEND}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="reminders", description="SMS appointment reminder operations")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run-now", help="Fire one reminder kind immediately")
    run_parser.add_argument("--kind", choices=KIND_CHOICES, required=True, help="Reminder kind to fire")
    run_parser.add_argument("--summary-out", type=Path, help="Optional path for the firing summary JSON")
    run_parser.set_defaults(handler=_handle_run_now)

    health_parser = subparsers.add_parser("health", help="Show scheduler health and counters")
    health_parser.add_argument(
        "--snapshot",
        type=Path,
        help="Health snapshot written by the scheduler process (default: REMINDERS_HEALTH_SNAPSHOT_PATH)",
    )
    health_parser.set_defaults(handler=_handle_health)

    init_parser = subparsers.add_parser("init-db", help="Create reminder tables in the configured database")
    init_parser.set_defaults(handler=_handle_init_db)

    return parser


def _handle_run_now(args: argparse.Namespace) -> int:
    # The scheduler process owns the health snapshot.
    config = replace(resolve_config(), health_snapshot_path=None)
    runner = build_runner(config)
    result = runner.run_now(args.kind)
    payload = json.dumps(result.as_dict(), indent=2) + "\n"

    if args.summary_out:
        args.summary_out.parent.mkdir(parents=True, exist_ok=True)
        args.summary_out.write_text(payload, encoding="utf-8")
    print(payload, end="")
    return 0 if result.status in OK_STATUSES else 1


def _handle_health(args: argparse.Namespace) -> int:
    config = resolve_config()
    snapshot_path = args.snapshot or config.health_snapshot_path
    snapshot = read_health_snapshot(snapshot_path) if snapshot_path else None
    if snapshot is None:
        snapshot = {**build_runner(config).health(), "source": "live"}
    else:
        snapshot = {**snapshot, "source": str(snapshot_path)}
    print(json.dumps(snapshot, indent=2))
    return 0


def _handle_init_db(_args: argparse.Namespace) -> int:
    config = resolve_config()
    if not config.database_url:
        raise SystemExit("REMINDERS_DATABASE_URL (or DATABASE_URL) is required for init-db")
    database = Database.from_url(config.database_url, timeout_s=config.db_timeout_seconds)
    try:
        database.create_all()
    finally:
        database.dispose()
    print("Reminder tables are ready")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging()
    return args.handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
