"""Instance status transitions and the overdue sweep.

OPEN ->complete-> DONE ->uncomplete-> OPEN. Overdue OPEN instances of
FAIL_ON_MISS templates become FAILED through :func:`sweep_overdue`; those of
CARRY_OVER_STACK templates stay OPEN and are reported as overdue by readers.
DELETED is terminal.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from . import metrics
from .errors import InvalidStateTransition, NotFound
from .models import CarryPolicy, InstanceStatus, TaskInstance, TaskTemplate

logger = logging.getLogger(__name__)


def sweep_overdue(session: Session, today: date) -> int:
    """Fail every OPEN instance before ``today`` whose template fails on miss.

    Returns the number of instances transitioned. Running it again is a no-op.
    """

    fail_on_miss = select(TaskTemplate.id).where(
        TaskTemplate.carry_policy == CarryPolicy.FAIL_ON_MISS
    )
    stmt = (
        update(TaskInstance)
        .where(
            TaskInstance.status == InstanceStatus.OPEN,
            TaskInstance.date < today,
            TaskInstance.template_id.in_(fail_on_miss),
        )
        .values(status=InstanceStatus.FAILED)
        .execution_options(synchronize_session="fetch")
    )
    result = session.execute(stmt)
    count = result.rowcount or 0
    metrics.record_failed(count)
    if count:
        logger.info("Marked %d overdue instance(s) as FAILED before %s", count, today)
    return count


def is_overdue(instance: TaskInstance, today: date) -> bool:
    return instance.status == InstanceStatus.OPEN and instance.date < today


def get_instance(session: Session, instance_id: str) -> TaskInstance:
    instance = session.get(TaskInstance, instance_id)
    if instance is None:
        raise NotFound(f"Instance not found: {instance_id}")
    return instance


def complete(
    session: Session, instance_id: str, now: Optional[datetime] = None
) -> TaskInstance:
    """Mark an OPEN instance as DONE."""

    instance = get_instance(session, instance_id)
    if instance.status == InstanceStatus.DONE:
        raise InvalidStateTransition("Instance is already completed")
    if instance.status == InstanceStatus.FAILED:
        raise InvalidStateTransition("Failed instances cannot be completed")
    if instance.status == InstanceStatus.DELETED:
        raise InvalidStateTransition("Deleted instances cannot be completed")
    instance.status = InstanceStatus.DONE
    instance.completed_at = now or datetime.now(timezone.utc)
    session.flush()
    return instance


def uncomplete(session: Session, instance_id: str) -> TaskInstance:
    """Reopen a DONE instance."""

    instance = get_instance(session, instance_id)
    if instance.status != InstanceStatus.DONE:
        raise InvalidStateTransition(
            f"Only completed instances can be reopened (status is {instance.status.value})"
        )
    instance.status = InstanceStatus.OPEN
    instance.completed_at = None
    session.flush()
    return instance


def delete_instance(session: Session, instance_id: str) -> TaskInstance:
    """Tombstone an instance; the row keeps its (template, date) slot."""

    instance = get_instance(session, instance_id)
    if instance.status == InstanceStatus.DELETED:
        raise InvalidStateTransition("Instance is already deleted")
    instance.status = InstanceStatus.DELETED
    session.flush()
    logger.info("Deleted instance %s on %s", instance.id, instance.date)
    return instance


__all__ = [
    "sweep_overdue",
    "is_overdue",
    "get_instance",
    "complete",
    "uncomplete",
    "delete_instance",
]
