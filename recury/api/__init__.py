from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Literal, Optional

from fastapi import Body, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from ..clock import get_default_clock
from ..dashboard import dashboard as build_dashboard, instances_for_range
from ..db import get_default_database
from ..errors import InvalidScheduleConfig, RecuryError
from ..lifecycle import complete, delete_instance, sweep_overdue, uncomplete
from ..materializer import materialize_range
from ..models import ScheduleKind
from ..reschedule import edit_instance, snooze
from ..schemas import (
    DashboardView,
    DuplicateRequest,
    InstanceEdit,
    InstanceView,
    SnoozeRequest,
    TemplateView,
)
from .. import templates as registry


app = FastAPI(title="Recury")


@app.exception_handler(RecuryError)
async def _recury_error(request: Request, exc: RecuryError) -> JSONResponse:
    content: Dict[str, Any] = {"error": exc.message}
    if isinstance(exc, InvalidScheduleConfig) and exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


def _window(start: date, end: date) -> None:
    if start > end:
        raise HTTPException(400, "'from' must not be after 'to'")


@app.get("/dashboard", response_model=DashboardView)
def get_dashboard():
    """Return today's and tomorrow's instances."""
    today = get_default_clock().today()
    with get_default_database().session() as session:
        return build_dashboard(session, today)


@app.get("/instances", response_model=List[InstanceView])
def list_instances(
    start: date = Query(..., alias="from"),
    end: date = Query(..., alias="to"),
    include_deleted: bool = False,
):
    """Return the instances of a date window, generating it first."""
    _window(start, end)
    today = get_default_clock().today()
    with get_default_database().session() as session:
        rows = instances_for_range(
            session, start, end, include_deleted=include_deleted, today=today
        )
        return [InstanceView.from_instance(row, today) for row in rows]


@app.post("/instances/{instance_id}/complete", response_model=InstanceView)
def complete_instance(instance_id: str):
    today = get_default_clock().today()
    with get_default_database().session() as session:
        return InstanceView.from_instance(complete(session, instance_id), today)


@app.post("/instances/{instance_id}/uncomplete", response_model=InstanceView)
def uncomplete_instance(instance_id: str):
    today = get_default_clock().today()
    with get_default_database().session() as session:
        return InstanceView.from_instance(uncomplete(session, instance_id), today)


@app.post("/instances/{instance_id}/snooze", response_model=InstanceView)
def snooze_instance(instance_id: str, payload: Optional[SnoozeRequest] = None):
    """Move an open instance, by default to tomorrow."""
    today = get_default_clock().today()
    to_date = payload.to_date if payload else None
    with get_default_database().session() as session:
        instance = snooze(session, instance_id, to_date, today=today)
        return InstanceView.from_instance(instance, today)


@app.patch("/instances/{instance_id}", response_model=InstanceView)
def patch_instance(instance_id: str, payload: InstanceEdit):
    """Edit per-occurrence overrides or move the instance."""
    today = get_default_clock().today()
    with get_default_database().session() as session:
        instance = edit_instance(
            session,
            instance_id,
            custom_title=payload.custom_title,
            custom_notes=payload.custom_notes,
            new_date=payload.date,
        )
        return InstanceView.from_instance(instance, today)


@app.delete("/instances/{instance_id}")
def remove_instance(instance_id: str):
    with get_default_database().session() as session:
        delete_instance(session, instance_id)
    return {"success": True}


@app.post("/rebuild-instances")
def rebuild_instances(
    start: date = Query(..., alias="from"),
    end: date = Query(..., alias="to"),
):
    """Generate missing instances for a window and sweep overdue ones."""
    _window(start, end)
    today = get_default_clock().today()
    with get_default_database().session() as session:
        generated = materialize_range(session, start, end)
        failed = sweep_overdue(session, today)
        generated_count = len(generated)
    return {
        "message": "Instances rebuilt",
        "generated_count": generated_count,
        "failed_count": failed,
    }


@app.get("/templates", response_model=List[TemplateView])
def list_templates(
    status: Literal["active", "archived", "all"] = "active",
    kind: Optional[ScheduleKind] = None,
    search: Optional[str] = None,
):
    today = get_default_clock().today()
    with get_default_database().session() as session:
        return [
            registry.template_view(template, today)
            for template in registry.list_templates(
                session, status=status, kind=kind, search=search
            )
        ]


@app.post("/templates", response_model=TemplateView, status_code=201)
def create_template(payload: Dict[str, Any] = Body(...)):
    """Create a template and generate its first month of instances."""
    today = get_default_clock().today()
    with get_default_database().session() as session:
        template = registry.create_template(session, payload, today)
        return registry.template_view(template, today)


@app.get("/templates/{template_id}", response_model=TemplateView)
def get_template(template_id: str):
    today = get_default_clock().today()
    with get_default_database().session() as session:
        return registry.template_view(registry.get_template(session, template_id), today)


@app.put("/templates/{template_id}", response_model=TemplateView)
def update_template(template_id: str, payload: Dict[str, Any] = Body(...)):
    """Apply a partial update to a template."""
    today = get_default_clock().today()
    with get_default_database().session() as session:
        template = registry.update_template(session, template_id, payload, today)
        return registry.template_view(template, today)


@app.delete("/templates/{template_id}")
def remove_template(template_id: str, hard: bool = False):
    """Archive a template, or delete it with its instances when ``hard``."""
    with get_default_database().session() as session:
        if hard:
            registry.delete_template(session, template_id)
        else:
            registry.archive_template(session, template_id)
    return {"success": True}


@app.post("/templates/{template_id}/duplicate", response_model=TemplateView, status_code=201)
def duplicate_template(template_id: str, payload: Optional[DuplicateRequest] = None):
    today = get_default_clock().today()
    request = payload or DuplicateRequest()
    with get_default_database().session() as session:
        template = registry.duplicate_template(
            session,
            template_id,
            today,
            include_schedule=request.include_schedule,
            new_title=request.title,
        )
        return registry.template_view(template, today)


__all__ = ["app"]
