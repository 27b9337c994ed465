"""Periodic daily job.

An APScheduler ``BackgroundScheduler`` runs :func:`run_daily_job` on a cron
expression in the configured timezone. The job generates instances for the
coming months and sweeps overdue ones; reads do the same for their own window,
so a missed run only means stale data, never corrupted state.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from dateutil.relativedelta import relativedelta

from . import metrics
from .clock import Clock, get_default_clock
from .db import Database
from .lifecycle import sweep_overdue
from .materializer import materialize_range

logger = logging.getLogger(__name__)

DAILY_JOB_ID = "recury_daily"
DEFAULT_CRON = "5 0 * * *"


@metrics.track_job(name="daily")
def run_daily_job(
    database: Database, clock: Optional[Clock] = None, months: int = 2
) -> Tuple[int, int]:
    """Materialize ``[today, today + months]`` then sweep.

    Returns ``(generated, failed)``.
    """

    clock = clock or get_default_clock()
    today = clock.today()
    with database.session() as session:
        created = materialize_range(session, today, today + relativedelta(months=months))
        failed = sweep_overdue(session, today)
    logger.info(
        "Daily job for %s: %d instance(s) generated, %d marked failed",
        today,
        len(created),
        failed,
    )
    return len(created), failed


class DailyScheduler:
    """Runs the daily job on a cron trigger.

    Parameters
    ----------
    database:
        Database the job works on.
    clock:
        Clock supplying "today"; its timezone is also the trigger timezone.
    cron:
        Crontab expression, 00:05 every day by default.
    months:
        Generation horizon of each run.
    """

    def __init__(
        self,
        database: Database,
        clock: Optional[Clock] = None,
        *,
        cron: str = DEFAULT_CRON,
        months: int = 2,
    ) -> None:
        self.database = database
        self.clock = clock or get_default_clock()
        self.months = months
        self.scheduler = BackgroundScheduler(timezone=self.clock.tz)
        trigger = CronTrigger.from_crontab(cron, timezone=self.clock.tz)
        self.scheduler.add_job(
            self.run_once,
            trigger=trigger,
            id=DAILY_JOB_ID,
            replace_existing=True,
        )

    def run_once(self) -> Tuple[int, int] | None:
        """Run the job now, logging instead of raising on failure."""

        try:
            return run_daily_job(self.database, self.clock, self.months)
        except Exception:
            logger.exception("Daily job failed")
            return None

    def start(self):
        self.scheduler.start()

    def shutdown(self, wait=True):
        self.scheduler.shutdown(wait=wait)

    def list_jobs(self):
        return self.scheduler.get_jobs()


_default_scheduler: DailyScheduler | None = None


def set_default_scheduler(scheduler: DailyScheduler | None) -> None:
    """Set the global default scheduler instance."""

    global _default_scheduler
    _default_scheduler = scheduler


def get_default_scheduler() -> DailyScheduler:
    """Return the configured default scheduler."""

    if _default_scheduler is None:
        raise RuntimeError("Default scheduler has not been initialised")
    return _default_scheduler


def create_scheduler(
    database: Database, clock: Clock, cfg: Dict[str, Any] | None = None
) -> DailyScheduler:
    """Factory returning a scheduler configured from ``cfg``."""

    cfg = cfg or {}
    return DailyScheduler(
        database,
        clock,
        cron=cfg.get("daily_job_cron", DEFAULT_CRON),
        months=int(cfg.get("generation_months", 2)),
    )


__all__ = [
    "DailyScheduler",
    "run_daily_job",
    "create_scheduler",
    "set_default_scheduler",
    "get_default_scheduler",
]
