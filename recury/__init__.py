"""Recury package root.

Recurring task templates and their materialized daily instances.
"""

from .clock import Clock, set_default_clock
from .config import load_config
from .db import Database, set_default_database
from .scheduler import create_scheduler, set_default_scheduler
from . import metrics  # noqa: F401


def initialize(*, start_scheduler: bool = True) -> None:
    """Wire configuration, database, clock and the daily job."""

    cfg = load_config()
    clock = Clock(cfg.get("timezone", "UTC"))
    set_default_clock(clock)

    database = Database(cfg["database_url"])
    database.create_all()
    set_default_database(database)

    if not cfg.get("daily_job", True):
        set_default_scheduler(None)
        return

    sched = create_scheduler(database, clock, cfg)
    set_default_scheduler(sched)
    if start_scheduler:
        sched.start()


from . import cli  # noqa: F401,E402
from . import api  # noqa: F401,E402


__all__ = [
    "scheduler",
    "cli",
    "api",
    "metrics",
    "initialize",
    "create_scheduler",
    "load_config",
]
