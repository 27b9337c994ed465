"""Prometheus metrics for instance generation and the daily job."""

from prometheus_client import Counter, Gauge, Histogram, start_http_server
import functools
import time

# Public exports
__all__ = [
    "INSTANCES_MATERIALIZED",
    "INSTANCES_FAILED",
    "JOB_RUNS",
    "JOB_LATENCY",
    "JOB_LAST_SUCCESS",
    "record_materialized",
    "record_failed",
    "start_metrics_server",
    "track_job",
]

INSTANCES_MATERIALIZED = Counter(
    "recury_instances_materialized_total",
    "Instances created by materialization",
    ["kind"],
)

INSTANCES_FAILED = Counter(
    "recury_instances_failed_total",
    "Overdue instances moved to FAILED by the sweep",
)

# One sample per run, labelled success or failure.
JOB_RUNS = Counter(
    "recury_job_runs_total",
    "Job runs by outcome",
    ["job_name", "outcome"],
)

JOB_LATENCY = Histogram(
    "recury_job_latency_seconds",
    "Time spent running a job",
    ["job_name"],
)

JOB_LAST_SUCCESS = Gauge(
    "recury_job_last_success_timestamp_seconds",
    "Unix time of the last successful run",
    ["job_name"],
)


def record_materialized(kind: str, count: int) -> None:
    if count:
        INSTANCES_MATERIALIZED.labels(kind).inc(count)


def record_failed(count: int) -> None:
    if count:
        INSTANCES_FAILED.inc(count)


def start_metrics_server(port: int = 8000) -> None:
    """Start an HTTP server to expose Prometheus metrics."""
    start_http_server(port)


def track_job(func=None, *, name: str | None = None):
    """Decorator recording outcome, latency and last success of a job.

    Usable bare as ``@track_job`` or named as ``@track_job(name="daily")``.
    """

    def decorator(func):
        job_name = name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with JOB_LATENCY.labels(job_name).time():
                try:
                    result = func(*args, **kwargs)
                except Exception:
                    JOB_RUNS.labels(job_name, "failure").inc()
                    raise
            JOB_RUNS.labels(job_name, "success").inc()
            JOB_LAST_SUCCESS.labels(job_name).set(time.time())
            return result

        return wrapper

    if func is None:
        return decorator

    return decorator(func)
