"""Cron-driven repeat runs on top of APScheduler."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from rolesift.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

JOB_ID = "rolesift-run"


def build_trigger(expression: str, tz_name: str) -> CronTrigger:
    """Five-field crontab expression evaluated in *tz_name*."""
    fields = (expression or "").split()
    if len(fields) != 5:
        raise ConfigurationError(
            f"schedule_cron must have 5 fields (got {len(fields)}): {expression!r}"
        )
    try:
        return CronTrigger.from_crontab(" ".join(fields), timezone=tz_name)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid schedule_cron {expression!r}: {exc}") from exc


def guarded(run: Callable[[], Any]) -> Callable[[], None]:
    """Wrap *run* so a failed run is logged and the scheduler keeps going."""

    def _job() -> None:
        logger.info("[scheduler] Triggering scrape at %s", datetime.now(timezone.utc).isoformat())
        try:
            result = run()
        except Exception:
            logger.exception("[scheduler] run failed")
            return
        if result:
            logger.warning("[scheduler] run finished with exit code %s", result)

    return _job


def run_on_schedule(
    run: Callable[[], Any],
    trigger: CronTrigger,
    *,
    tz_name: str,
    scheduler: Any = None,
) -> None:
    """Register *run* under *trigger* and block until the scheduler stops."""
    scheduler = scheduler or BlockingScheduler(timezone=tz_name)
    scheduler.add_job(
        guarded(run),
        trigger,
        id=JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    logger.info("Scheduler started; waiting for the next trigger (%s).", trigger)
    scheduler.start()
