"""Entry points for the command-line interface.

The ``recury`` command exposes the dashboard, instance transitions and the
template registry on top of the default database and clock.
"""

from __future__ import annotations

import sys
from datetime import date, timedelta
from typing import List, Optional

import typer

import recury as rc
from ..clock import get_default_clock
from ..dashboard import dashboard as build_dashboard, instances_for_range
from ..db import get_default_database
from ..errors import RecuryError
from ..lifecycle import complete, delete_instance, sweep_overdue, uncomplete
from ..materializer import materialize_range
from ..metrics import start_metrics_server  # noqa: F401
from ..recurrence import next_occurrence
from ..reschedule import edit_instance, reschedule, snooze
from ..schemas import InstanceView
from .. import templates as registry


app = typer.Typer(help="Manage recurring tasks with Recury")


@app.callback()
def _global_options(
    metrics_port: int | None = typer.Option(
        None,
        "--metrics-port",
        help="Expose Prometheus metrics on PORT before executing the command",
    ),
) -> None:
    """Handle global options for the CLI."""

    if metrics_port is not None:
        start_metrics_server(metrics_port)


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise typer.BadParameter(f"invalid date '{value}', use YYYY-MM-DD") from exc


def _fail(exc: Exception) -> None:
    typer.echo(f"error: {exc}", err=True)
    raise typer.Exit(code=1) from exc


def _line(view: InstanceView) -> str:
    marker = " (overdue)" if view.overdue else ""
    return f"{view.id}\t{view.date.isoformat()}\t{view.status.value}\t{view.title}{marker}"


@app.command("dashboard")
def dashboard_cmd() -> None:
    """Show today's and tomorrow's instances."""

    today = get_default_clock().today()
    with get_default_database().session() as session:
        view = build_dashboard(session, today)

    sections = [
        ("Overdue", view.today.overdue),
        ("Today", view.today.open),
        ("Done", view.today.done),
        ("Failed", view.today.failed),
        ("Tomorrow", view.tomorrow.open + view.tomorrow.done),
    ]
    typer.echo(f"Dashboard for {view.date.isoformat()}")
    for title, items in sections:
        typer.echo(f"{title}:")
        for item in items:
            typer.echo(f"  {_line(item)}")


@app.command("instances")
def instances_cmd(
    start: str = typer.Argument(..., metavar="FROM"),
    end: str = typer.Argument(..., metavar="TO"),
    show_all: bool = typer.Option(False, "--all", help="Include deleted instances"),
) -> None:
    """List instances between FROM and TO (inclusive)."""

    first, last = _parse_date(start), _parse_date(end)
    today = get_default_clock().today()
    with get_default_database().session() as session:
        rows = instances_for_range(
            session, first, last, include_deleted=show_all, today=today
        )
        views = [InstanceView.from_instance(row, today) for row in rows]
    for view in views:
        typer.echo(_line(view))


@app.command("rebuild")
def rebuild_cmd(
    start: str = typer.Argument(..., metavar="FROM"),
    end: str = typer.Argument(..., metavar="TO"),
) -> None:
    """Generate missing instances between FROM and TO, then sweep."""

    first, last = _parse_date(start), _parse_date(end)
    today = get_default_clock().today()
    with get_default_database().session() as session:
        generated = len(materialize_range(session, first, last))
        failed = sweep_overdue(session, today)
    typer.echo(f"generated {generated}, failed {failed}")


@app.command("sweep")
def sweep_cmd() -> None:
    """Mark overdue instances of fail-on-miss templates as failed."""

    today = get_default_clock().today()
    with get_default_database().session() as session:
        failed = sweep_overdue(session, today)
    typer.echo(f"failed {failed}")


@app.command("complete")
def complete_cmd(instance_id: str) -> None:
    """Mark INSTANCE_ID as done."""

    try:
        with get_default_database().session() as session:
            instance = complete(session, instance_id)
            typer.echo(f"{instance.id} completed")
    except RecuryError as exc:
        _fail(exc)


@app.command("uncomplete")
def uncomplete_cmd(instance_id: str) -> None:
    """Reopen the completed INSTANCE_ID."""

    try:
        with get_default_database().session() as session:
            instance = uncomplete(session, instance_id)
            typer.echo(f"{instance.id} reopened")
    except RecuryError as exc:
        _fail(exc)


@app.command("delete")
def delete_cmd(instance_id: str) -> None:
    """Delete INSTANCE_ID."""

    try:
        with get_default_database().session() as session:
            instance = delete_instance(session, instance_id)
            typer.echo(f"{instance.id} deleted")
    except RecuryError as exc:
        _fail(exc)


@app.command("snooze")
def snooze_cmd(
    instance_id: str,
    to: Optional[str] = typer.Option(None, "--to", help="Target date, default tomorrow"),
) -> None:
    """Move the open INSTANCE_ID to a later day."""

    target = _parse_date(to) if to else None
    today = get_default_clock().today()
    try:
        with get_default_database().session() as session:
            instance = snooze(session, instance_id, target, today=today)
            typer.echo(f"{instance.id} moved to {instance.date.isoformat()}")
    except RecuryError as exc:
        _fail(exc)


@app.command("reschedule")
def reschedule_cmd(instance_id: str, new_date: str) -> None:
    """Move INSTANCE_ID to NEW_DATE."""

    target = _parse_date(new_date)
    try:
        with get_default_database().session() as session:
            instance = reschedule(session, instance_id, target)
            typer.echo(f"{instance.id} moved to {instance.date.isoformat()}")
    except RecuryError as exc:
        _fail(exc)


@app.command("edit")
def edit_cmd(
    instance_id: str,
    title: Optional[str] = typer.Option(None, "--title", help="Title override, '' clears"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Notes override, '' clears"),
    new_date: Optional[str] = typer.Option(None, "--date", help="Move to this date"),
) -> None:
    """Override the title or notes of a single instance."""

    target = _parse_date(new_date) if new_date else None
    try:
        with get_default_database().session() as session:
            instance = edit_instance(
                session,
                instance_id,
                custom_title=title,
                custom_notes=notes,
                new_date=target,
            )
            typer.echo(f"{instance.id} updated")
    except RecuryError as exc:
        _fail(exc)


@app.command("templates-list")
def templates_list(
    status: str = typer.Option("active", "--status", help="active, archived or all"),
    kind: Optional[str] = typer.Option(None, "--kind", help="Filter by schedule kind"),
    search: Optional[str] = typer.Option(None, "--search", help="Match title, notes or tags"),
) -> None:
    """List templates."""

    try:
        with get_default_database().session() as session:
            for template in registry.list_templates(
                session, status=status, kind=kind, search=search
            ):
                state = "active" if template.is_active else "archived"
                typer.echo(
                    f"{template.id}\t{template.schedule_kind.value}\t{state}\t{template.title}"
                )
    except (RecuryError, ValueError) as exc:
        _fail(exc)


@app.command("templates-add")
def templates_add(
    title: str,
    kind: str = typer.Option(..., "--kind", help="ONCE, DAILY, WEEKLY, MONTHLY, YEARLY or INTERVAL"),
    carry_policy: Optional[str] = typer.Option(None, "--carry-policy"),
    start: Optional[str] = typer.Option(None, "--start", help="No occurrences before this date"),
    anchor: Optional[str] = typer.Option(None, "--anchor", help="Anchor date for ONCE/INTERVAL"),
    weekdays: Optional[str] = typer.Option(None, "--weekdays", help="e.g. 1,3,5 (0 = Sunday)"),
    monthly_mode: Optional[str] = typer.Option(None, "--monthly-mode"),
    monthly_day: Optional[int] = typer.Option(None, "--monthly-day"),
    yearly_month: Optional[int] = typer.Option(None, "--yearly-month"),
    yearly_day: Optional[int] = typer.Option(None, "--yearly-day"),
    interval_unit: Optional[str] = typer.Option(None, "--interval-unit"),
    interval_value: Optional[int] = typer.Option(None, "--interval-value"),
    notes: Optional[str] = typer.Option(None, "--notes"),
    due_time: Optional[str] = typer.Option(None, "--due-time", help="HH:MM"),
) -> None:
    """Create a template called TITLE."""

    data = {
        "title": title,
        "schedule_kind": kind.upper(),
        "carry_policy": carry_policy.upper() if carry_policy else None,
        "start_date": start,
        "anchor_date": anchor,
        "weekday_set": weekdays,
        "monthly_mode": monthly_mode.upper() if monthly_mode else None,
        "monthly_day": monthly_day,
        "yearly_month": yearly_month,
        "yearly_day": yearly_day,
        "interval_unit": interval_unit.upper() if interval_unit else None,
        "interval_value": interval_value,
        "notes": notes,
        "due_time": due_time,
    }
    data = {key: value for key, value in data.items() if value is not None}
    today = get_default_clock().today()
    try:
        with get_default_database().session() as session:
            template = registry.create_template(session, data, today)
            typer.echo(f"{template.id}\t{template.title}")
    except RecuryError as exc:
        _fail(exc)


@app.command("templates-import")
def templates_import(path: str) -> None:
    """Create templates from the YAML file at PATH."""

    today = get_default_clock().today()
    try:
        with get_default_database().session() as session:
            created = registry.load_yaml(session, path, today)
            typer.echo(f"imported {len(created)} template(s)")
    except (RecuryError, OSError) as exc:
        _fail(exc)


@app.command("templates-archive")
def templates_archive(template_id: str) -> None:
    """Stop generating instances for TEMPLATE_ID."""

    try:
        with get_default_database().session() as session:
            template = registry.archive_template(session, template_id)
            typer.echo(f"{template.id} archived")
    except RecuryError as exc:
        _fail(exc)


@app.command("templates-next")
def templates_next(
    template_id: str,
    count: int = typer.Option(5, "--count", help="Number of dates to show"),
) -> None:
    """Show the next occurrence dates of TEMPLATE_ID."""

    today = get_default_clock().today()
    try:
        with get_default_database().session() as session:
            template = registry.get_template(session, template_id)
            dates: List[date] = []
            cursor = today
            while len(dates) < count:
                found = next_occurrence(template, cursor)
                if found is None:
                    break
                dates.append(found)
                cursor = found + timedelta(days=1)
    except RecuryError as exc:
        _fail(exc)
    for day in dates:
        typer.echo(day.isoformat())


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port"),
) -> None:
    """Start the HTTP API together with the daily job."""

    import uvicorn

    from ..api import app as api_app
    from ..scheduler import get_default_scheduler

    try:
        get_default_scheduler().start()
    except RuntimeError:
        typer.echo("daily job disabled", err=True)
    uvicorn.run(api_app, host=host, port=port)


def main(args: list[str] | None = None) -> None:
    """CLI entry point used by ``console_scripts`` or directly.

    Parameters
    ----------
    args:
        Optional list of CLI arguments. If ``None`` (default), the process
        arguments are used.
    """

    rc.initialize(start_scheduler=False)
    app(sys.argv[1:] if args is None else args, standalone_mode=False)


__all__ = [
    "app",
    "main",
    "dashboard_cmd",
    "instances_cmd",
    "rebuild_cmd",
    "sweep_cmd",
    "complete_cmd",
    "uncomplete_cmd",
    "delete_cmd",
    "snooze_cmd",
    "reschedule_cmd",
    "edit_cmd",
    "templates_list",
    "templates_add",
    "templates_import",
    "templates_archive",
    "templates_next",
    "serve",
    "start_metrics_server",
]
