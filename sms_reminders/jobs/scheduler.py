"""Scheduler process for the reminder triggers.

Run separately from the operator CLI using:
    python -m sms_reminders.jobs.scheduler
"""

from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from sms_reminders.config import ReminderConfig
from sms_reminders.domain.models import ReminderKind
from sms_reminders.jobs.tasks import ReminderRunner, build_runner
from sms_reminders.utils.logging import configure_logging

MISFIRE_GRACE_SECONDS = 1800

logger = logging.getLogger(__name__)


def job_id(kind: ReminderKind) -> str:
    return f"sms_reminder_{kind.value}"


def build_triggers(config: ReminderConfig) -> dict[ReminderKind, BaseTrigger]:
    tz = config.timezone
    return {
        ReminderKind.DAY_BEFORE: CronTrigger(
            hour=config.day_before_at.hour,
            minute=config.day_before_at.minute,
            timezone=tz,
        ),
        ReminderKind.DAY_OF: CronTrigger(
            hour=config.day_of_at.hour,
            minute=config.day_of_at.minute,
            timezone=tz,
        ),
        ReminderKind.ONE_HOUR: IntervalTrigger(
            seconds=int(config.one_hour_interval.total_seconds()),
            timezone=tz,
        ),
    }


def _log_job_state(scheduler: BlockingScheduler, event: JobExecutionEvent, config: ReminderConfig) -> None:
    """Log last and next run metadata for observability."""
    job = scheduler.get_job(event.job_id)
    job_next_run = getattr(job, "next_run_time", None) if job else None
    next_run = job_next_run.isoformat() if job_next_run else "none"
    last_run_at = (
        event.scheduled_run_time.astimezone(config.timezone).isoformat()
        if event.scheduled_run_time
        else datetime.now(tz=config.timezone).isoformat()
    )

    if event.exception:
        logger.error(
            "Job %s failed at %s; next run at %s",
            event.job_id,
            last_run_at,
            next_run,
            exc_info=event.exception,
        )
        return

    logger.info("Job %s completed at %s; next run at %s", event.job_id, last_run_at, next_run)


def build_scheduler(runner: ReminderRunner) -> BlockingScheduler:
    """Build the scheduler with one job per reminder kind."""
    config = runner.config
    scheduler = BlockingScheduler(timezone=config.timezone)

    now = datetime.now(tz=config.timezone)
    for kind, trigger in build_triggers(config).items():
        scheduler.add_job(
            runner.run,
            trigger=trigger,
            args=[kind],
            id=job_id(kind),
            name=f"{kind.value} reminders",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=MISFIRE_GRACE_SECONDS,
        )
        next_run = trigger.get_next_fire_time(None, now)
        logger.info(
            "Registered %s with %s (next run: %s)",
            job_id(kind),
            trigger,
            next_run.isoformat() if next_run else "none",
        )

    scheduler.add_listener(
        lambda event: _log_job_state(scheduler, event, config),
        EVENT_JOB_EXECUTED | EVENT_JOB_ERROR,
    )
    return scheduler


def main(argv: list[str] | None = None) -> None:
    """Entrypoint for a dedicated scheduler process."""
    parser = argparse.ArgumentParser(description="Run the SMS reminder scheduler")
    parser.add_argument(
        "--once",
        choices=[kind.value for kind in ReminderKind],
        help="Execute one reminder kind immediately and exit (manual mode)",
    )
    args = parser.parse_args(argv)

    configure_logging()
    runner = build_runner()

    if args.once:
        logger.info("Running in manual mode: executing %s once", args.once)
        result = runner.run_now(args.once)
        print(json.dumps(result.as_dict(), indent=2))
        return

    scheduler = build_scheduler(runner)
    logger.info("Starting scheduler process in %s", runner.config.timezone.key)
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")


if __name__ == "__main__":
    main()
