"""Moving single instances to another date.

Moving an occurrence of a recurring template away from its date leaves a
DELETED tombstone in the vacated slot so the materializer never recreates it.
The move and the tombstone are written in one SAVEPOINT of the caller's
transaction, after every check. A tombstone already on the target date is
deleted and written again at the vacated date.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .clock import get_default_clock
from .errors import DateConflict, InvalidStateTransition
from .lifecycle import get_instance
from .models import InstanceStatus, ScheduleKind, TaskInstance

logger = logging.getLogger(__name__)


def _slot(session: Session, template_id: str, day: date) -> Optional[TaskInstance]:
    stmt = select(TaskInstance).where(
        TaskInstance.template_id == template_id, TaskInstance.date == day
    )
    return session.scalars(stmt).first()


def _check_target(session: Session, instance: TaskInstance, new_date: date) -> Optional[TaskInstance]:
    occupant = _slot(session, instance.template_id, new_date)
    if occupant is not None and occupant.id != instance.id and occupant.is_live:
        raise DateConflict(
            f"Template already has an instance on {new_date.isoformat()}"
        )
    return occupant


def _place(session: Session, instance: TaskInstance, new_date: date) -> TaskInstance:
    original = instance.date
    if new_date == original:
        return instance

    occupant = _check_target(session, instance, new_date)
    recurring = ScheduleKind(instance.template.schedule_kind) is not ScheduleKind.ONCE

    try:
        with session.begin_nested():
            if occupant is not None:
                # A tombstone of the same template holds the target. It is
                # replaced by the tombstone written at the vacated date.
                session.delete(occupant)
                session.flush()
            instance.date = new_date
            session.flush()
            if recurring or occupant is not None:
                session.add(
                    TaskInstance(
                        template_id=instance.template_id,
                        date=original,
                        status=InstanceStatus.DELETED,
                    )
                )
                session.flush()
    except IntegrityError as exc:
        # Another writer claimed one of the two slots after the check above.
        raise DateConflict(
            f"Template already has an instance on {new_date.isoformat()}"
        ) from exc

    logger.info("Moved instance %s from %s to %s", instance.id, original, new_date)
    return instance


def reschedule(session: Session, instance_id: str, new_date: date) -> TaskInstance:
    """Move any non-deleted instance to ``new_date``."""

    instance = get_instance(session, instance_id)
    if instance.status == InstanceStatus.DELETED:
        raise InvalidStateTransition("Deleted instances cannot be rescheduled")
    return _place(session, instance, new_date)


def snooze(
    session: Session,
    instance_id: str,
    to_date: Optional[date] = None,
    *,
    today: Optional[date] = None,
) -> TaskInstance:
    """Push an OPEN instance to ``to_date`` (default: the day after ``today``)."""

    instance = get_instance(session, instance_id)
    if instance.status != InstanceStatus.OPEN:
        raise InvalidStateTransition("Only open instances can be snoozed")
    if to_date is None:
        if today is None:
            today = get_default_clock().today()
        to_date = today + timedelta(days=1)
    return _place(session, instance, to_date)


def edit_instance(
    session: Session,
    instance_id: str,
    *,
    custom_title: Optional[str] = None,
    custom_notes: Optional[str] = None,
    new_date: Optional[date] = None,
) -> TaskInstance:
    """Set per-occurrence overrides and optionally move the instance.

    ``None`` leaves a field untouched, an empty string clears the override.
    """

    instance = get_instance(session, instance_id)
    if instance.status == InstanceStatus.DELETED:
        raise InvalidStateTransition("Deleted instances cannot be edited")
    if new_date is not None:
        _check_target(session, instance, new_date)

    if custom_title is not None:
        instance.custom_title = custom_title or None
    if custom_notes is not None:
        instance.custom_notes = custom_notes or None
    if new_date is not None:
        _place(session, instance, new_date)
    else:
        session.flush()
    return instance


__all__ = ["reschedule", "snooze", "edit_instance"]
