"""Template registry.

Owns ``TaskTemplate`` rows: validation on the way in, generation of the first
month of instances, and invalidation of future OPEN instances when a schedule
changes.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dateutil.relativedelta import relativedelta
from pydantic import ValidationError
from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from .errors import InvalidScheduleConfig, NotFound
from .materializer import materialize
from .models import (
    SCHEDULE_FIELDS,
    InstanceStatus,
    ScheduleKind,
    TaskInstance,
    TaskTemplate,
)
from .recurrence import next_occurrence
from .schemas import TemplateCreate, TemplateUpdate, TemplateView

logger = logging.getLogger(__name__)

#: How far ahead a created or rescheduled template is generated right away.
GENERATION_HORIZON = relativedelta(months=1)

_DISPLAY_FIELDS = ("notes", "carry_policy", "due_time", "tags", "sort_order")
_NOT_NULL_FIELDS = ("title", "schedule_kind", "carry_policy", "is_active", "sort_order")


def _error_details(exc: ValidationError) -> List[Dict[str, Any]]:
    return [
        {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
        for err in exc.errors()
    ]


def _invalid(exc: ValidationError) -> InvalidScheduleConfig:
    details = _error_details(exc)
    message = "; ".join(
        f"{d['loc']}: {d['msg']}" if d["loc"] else d["msg"] for d in details
    )
    return InvalidScheduleConfig(message or "Invalid template", details=details)


def _as_create(data: TemplateCreate | Mapping[str, Any]) -> TemplateCreate:
    if isinstance(data, TemplateCreate):
        return data
    try:
        return TemplateCreate.model_validate(dict(data))
    except ValidationError as exc:
        raise _invalid(exc) from exc


def _fields(template: TaskTemplate) -> Dict[str, Any]:
    values = {name: getattr(template, name) for name in TemplateCreate.model_fields}
    values["weekday_set"] = sorted(template.weekday_set) or None
    return values


def _generate(session: Session, template: TaskTemplate, today: date) -> int:
    return len(materialize(session, template, today, today + GENERATION_HORIZON))


def get_template(session: Session, template_id: str) -> TaskTemplate:
    template = session.get(TaskTemplate, template_id)
    if template is None:
        raise NotFound(f"Template not found: {template_id}")
    return template


def list_templates(
    session: Session,
    *,
    status: str = "active",
    kind: ScheduleKind | str | None = None,
    search: str | None = None,
) -> List[TaskTemplate]:
    """Return templates filtered by ``status`` (active, archived or all)."""

    stmt = select(TaskTemplate)
    if status == "active":
        stmt = stmt.where(TaskTemplate.is_active.is_(True))
    elif status == "archived":
        stmt = stmt.where(TaskTemplate.is_active.is_(False))
    elif status != "all":
        raise ValueError(f"Unknown template status filter: {status}")
    if kind:
        stmt = stmt.where(TaskTemplate.schedule_kind == ScheduleKind(kind))
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(
                TaskTemplate.title.ilike(pattern),
                TaskTemplate.notes.ilike(pattern),
                TaskTemplate.tags.ilike(pattern),
            )
        )
    stmt = stmt.order_by(TaskTemplate.sort_order, TaskTemplate.created_at)
    return list(session.scalars(stmt))


def template_view(template: TaskTemplate, today: date) -> TemplateView:
    upcoming = next_occurrence(template, today) if template.is_active else None
    return TemplateView.from_template(template, upcoming)


def create_template(
    session: Session, data: TemplateCreate | Mapping[str, Any], today: date
) -> TaskTemplate:
    """Validate ``data``, store the template and generate its first month."""

    payload = _as_create(data)
    template = TaskTemplate(**payload.model_dump())
    session.add(template)
    session.flush()
    generated = _generate(session, template, today)
    logger.info(
        "Created template %s (%s), %d instance(s) generated",
        template.id,
        template.schedule_kind.value,
        generated,
    )
    return template


def update_template(
    session: Session,
    template_id: str,
    changes: TemplateUpdate | Mapping[str, Any],
    today: date,
) -> TaskTemplate:
    """Apply a partial update.

    When a schedule field changes, OPEN instances dated ``today`` or later are
    removed and one month is regenerated. DONE, FAILED and DELETED rows are
    history and stay.
    """

    if isinstance(changes, TemplateUpdate):
        update = changes
    else:
        try:
            update = TemplateUpdate.model_validate(dict(changes))
        except ValidationError as exc:
            raise _invalid(exc) from exc

    template = get_template(session, template_id)
    updates = {
        key: value
        for key, value in update.model_dump(exclude_unset=True).items()
        if value is not None or key not in _NOT_NULL_FIELDS
    }
    is_active = updates.pop("is_active", None)

    current = _fields(template)
    merged = {**current, **updates}
    try:
        TemplateCreate.model_validate(merged)
    except ValidationError as exc:
        raise _invalid(exc) from exc

    schedule_changed = any(
        key in updates and updates[key] != current[key] for key in SCHEDULE_FIELDS
    )
    for key, value in updates.items():
        setattr(template, key, value)

    reactivated = is_active is True and not template.is_active
    if is_active is not None:
        template.is_active = is_active

    if schedule_changed:
        result = session.execute(
            delete(TaskInstance)
            .where(
                TaskInstance.template_id == template.id,
                TaskInstance.status == InstanceStatus.OPEN,
                TaskInstance.date >= today,
            )
            .execution_options(synchronize_session="fetch")
        )
        logger.info(
            "Schedule of template %s changed, removed %d future open instance(s)",
            template.id,
            result.rowcount or 0,
        )
    session.flush()

    if schedule_changed or reactivated:
        _generate(session, template, today)
    return template


def duplicate_template(
    session: Session,
    template_id: str,
    today: date,
    *,
    include_schedule: bool = True,
    new_title: Optional[str] = None,
) -> TaskTemplate:
    """Copy a template. Without its schedule the copy is an unanchored ONCE."""

    source = get_template(session, template_id)
    copy = TaskTemplate(
        title=new_title or f"{source.title} (copy)",
        **{name: getattr(source, name) for name in _DISPLAY_FIELDS},
    )
    if include_schedule:
        for name in SCHEDULE_FIELDS:
            setattr(copy, name, getattr(source, name))
    else:
        copy.schedule_kind = ScheduleKind.ONCE
    session.add(copy)
    session.flush()
    if include_schedule:
        _generate(session, copy, today)
    logger.info("Duplicated template %s as %s", source.id, copy.id)
    return copy


def archive_template(session: Session, template_id: str) -> TaskTemplate:
    """Stop generating for a template while keeping its history."""

    template = get_template(session, template_id)
    template.is_active = False
    session.flush()
    logger.info("Archived template %s", template.id)
    return template


def delete_template(session: Session, template_id: str) -> None:
    """Remove a template and all of its instances."""

    template = get_template(session, template_id)
    session.delete(template)
    session.flush()
    logger.info("Deleted template %s", template_id)


def load_yaml(session: Session, path: str | Path, today: date) -> List[TaskTemplate]:
    """Create templates from a YAML file.

    The file holds either a list of template mappings or a mapping with a
    ``templates`` key containing that list.
    """

    with open(path, "r") as fh:
        data = yaml.safe_load(fh) or []
    if isinstance(data, dict):
        data = data.get("templates", [])
    if not isinstance(data, list):
        raise InvalidScheduleConfig(f"{path}: expected a list of templates")

    created = []
    for index, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise InvalidScheduleConfig(f"{path}: entry {index} is not a mapping")
        created.append(create_template(session, entry, today))
    return created


__all__ = [
    "GENERATION_HORIZON",
    "get_template",
    "list_templates",
    "template_view",
    "create_template",
    "update_template",
    "duplicate_template",
    "archive_template",
    "delete_template",
    "load_yaml",
]
