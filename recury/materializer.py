"""Idempotent persistence of occurrences as instance rows."""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Set

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import metrics
from .models import InstanceStatus, ScheduleKind, TaskInstance, TaskTemplate
from .recurrence import occurrences_in_range

logger = logging.getLogger(__name__)


def _existing_dates(
    session: Session, template_id: str, start: date, end: date
) -> Set[date]:
    """Dates in ``[start, end]`` already holding a row, whatever its status."""

    stmt = select(TaskInstance.date).where(
        TaskInstance.template_id == template_id,
        TaskInstance.date >= start,
        TaskInstance.date <= end,
    )
    return set(session.scalars(stmt))


def _has_any_instance(session: Session, template_id: str) -> bool:
    stmt = select(TaskInstance.id).where(TaskInstance.template_id == template_id).limit(1)
    return session.scalar(stmt) is not None


def materialize(
    session: Session, template: TaskTemplate, start: date, end: date
) -> List[TaskInstance]:
    """Create OPEN instances for every unresolved occurrence of ``template``.

    A (template, date) slot that already holds a row in any status is left
    alone. Inserts race safely with concurrent writers: each one runs in its
    own SAVEPOINT and a UNIQUE violation is treated as "already exists".
    Returns the instances created by this call.
    """

    if not template.is_active:
        return []

    dates = occurrences_in_range(template, start, end)
    if not dates:
        return []

    kind = ScheduleKind(template.schedule_kind)
    # A ONCE template has a single slot; once it owns a row, wherever that row
    # was moved to, the slot is resolved.
    if kind is ScheduleKind.ONCE and _has_any_instance(session, template.id):
        return []

    existing = _existing_dates(session, template.id, dates[0], dates[-1])
    created: List[TaskInstance] = []
    for day in dates:
        if day in existing:
            continue
        instance = TaskInstance(
            template_id=template.id, date=day, status=InstanceStatus.OPEN
        )
        try:
            with session.begin_nested():
                session.add(instance)
                session.flush()
        except IntegrityError:
            logger.debug(
                "Instance for template %s on %s already exists, skipping",
                template.id,
                day,
            )
            continue
        created.append(instance)

    metrics.record_materialized(kind.value, len(created))
    if created:
        logger.debug(
            "Materialized %d instance(s) for template %s in [%s, %s]",
            len(created),
            template.id,
            start,
            end,
        )
    return created


def active_templates(session: Session) -> List[TaskTemplate]:
    stmt = (
        select(TaskTemplate)
        .where(TaskTemplate.is_active.is_(True))
        .order_by(TaskTemplate.sort_order, TaskTemplate.created_at)
    )
    return list(session.scalars(stmt))


def materialize_range(session: Session, start: date, end: date) -> List[TaskInstance]:
    """Materialize ``[start, end]`` for every active template."""

    created: List[TaskInstance] = []
    for template in active_templates(session):
        created.extend(materialize(session, template, start, end))
    return created


__all__ = ["materialize", "materialize_range", "active_templates"]
