import sys
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy import select

# Ensure package root is on sys.path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import recury as pkg  # noqa: E402
from recury import clock as clock_module  # noqa: E402
from recury import db as db_module  # noqa: E402
from recury.clock import FixedClock, set_default_clock  # noqa: E402
from recury.db import Database, set_default_database  # noqa: E402
from recury.models import TaskInstance, TaskTemplate  # noqa: E402

scheduler_module = pkg.scheduler

TODAY = date(2024, 1, 10)


@pytest.fixture(autouse=True)
def shutdown_scheduler():
    yield
    sched = getattr(scheduler_module, "_default_scheduler", None)
    if sched is not None and sched.scheduler.running:
        sched.shutdown(wait=False)
    scheduler_module._default_scheduler = None
    db_module._default_database = None
    clock_module._default_clock = None


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    for name in (
        "RECURY_CONFIG",
        "RECURY_TIMEZONE",
        "RECURY_DAILY_JOB",
        "RECURY_DAILY_JOB_CRON",
        "RECURY_GENERATION_MONTHS",
        "RECURY_METRICS_PORT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("RECURY_DATABASE_URL", f"sqlite:///{tmp_path / 'env.db'}")
    yield


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'recury.db'}")
    db.create_all()
    set_default_database(db)
    yield db
    db.dispose()


@pytest.fixture
def clock():
    fixed = FixedClock(TODAY)
    set_default_clock(fixed)
    return fixed


@pytest.fixture
def session(database):
    with database.session() as s:
        yield s


def add_template(session, **fields):
    """Insert a template row without generating any instance."""

    fields.setdefault("title", "Task")
    fields.setdefault("schedule_kind", "DAILY")
    template = TaskTemplate(**fields)
    session.add(template)
    session.flush()
    return template


def instances_of(session, template):
    stmt = (
        select(TaskInstance)
        .where(TaskInstance.template_id == template.id)
        .order_by(TaskInstance.date)
    )
    return list(session.scalars(stmt).unique())
