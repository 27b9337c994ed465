"""Configuration helpers for Recury."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

import yaml


DEFAULT_DATABASE_URL = "sqlite:///" + str(Path.home() / ".recury" / "recury.db")


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() not in ("0", "false", "no", "off")
    return bool(value)


def load_config(path: str | None = None) -> Dict[str, Any]:
    """Load configuration from ``path`` or ``RECURY_CONFIG`` env var.

    Values found in the YAML file are overridden by environment variables:
    ``RECURY_TIMEZONE``, ``RECURY_DATABASE_URL``, ``RECURY_DAILY_JOB``,
    ``RECURY_DAILY_JOB_CRON``, ``RECURY_GENERATION_MONTHS`` and
    ``RECURY_METRICS_PORT``. Without any configuration the engine uses UTC, a
    SQLite database under ``~/.recury`` and a daily job at 00:05.
    """

    cfg: Dict[str, Any] = {}
    path = path or os.getenv("RECURY_CONFIG")
    if path and os.path.exists(path):
        with open(path, "r") as fh:
            cfg = yaml.safe_load(fh) or {}

    cfg["timezone"] = os.getenv("RECURY_TIMEZONE", cfg.get("timezone", "UTC"))

    database_url = os.getenv(
        "RECURY_DATABASE_URL", cfg.get("database_url", DEFAULT_DATABASE_URL)
    )
    if database_url.startswith("sqlite:///~"):
        database_url = "sqlite:///" + os.path.expanduser(database_url[len("sqlite:///"):])
    cfg["database_url"] = database_url

    daily_env = os.getenv("RECURY_DAILY_JOB")
    if daily_env is not None:
        cfg["daily_job"] = _as_bool(daily_env)
    else:
        cfg["daily_job"] = _as_bool(cfg.get("daily_job", True))

    cfg["daily_job_cron"] = os.getenv(
        "RECURY_DAILY_JOB_CRON", cfg.get("daily_job_cron", "5 0 * * *")
    )

    if "RECURY_GENERATION_MONTHS" in os.environ:
        cfg["generation_months"] = int(os.environ["RECURY_GENERATION_MONTHS"])
    else:
        cfg["generation_months"] = int(cfg.get("generation_months", 2))

    if "RECURY_METRICS_PORT" in os.environ:
        cfg["metrics_port"] = int(os.environ["RECURY_METRICS_PORT"])
    elif cfg.get("metrics_port") is not None:
        cfg["metrics_port"] = int(cfg["metrics_port"])
    else:
        cfg["metrics_port"] = None

    return cfg
