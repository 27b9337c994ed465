"""Read paths: the today/tomorrow dashboard and arbitrary date windows.

Every read generates its window first, then sweeps, then queries, so an
instance is never failed before it exists.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from .clock import get_default_clock
from .lifecycle import sweep_overdue
from .materializer import materialize_range
from .models import CarryPolicy, InstanceStatus, TaskInstance, TaskTemplate
from .schemas import DashboardView, InstanceView, TodayView, TomorrowView

logger = logging.getLogger(__name__)


def _bucket_key(instance: TaskInstance):
    return (instance.status != InstanceStatus.OPEN, instance.date)


def _views(instances, today: date) -> List[InstanceView]:
    return [InstanceView.from_instance(i, today) for i in sorted(instances, key=_bucket_key)]


def dashboard(session: Session, today: date) -> DashboardView:
    """Build the today/tomorrow view for ``today``."""

    tomorrow = today + timedelta(days=1)
    materialize_range(session, today, tomorrow)
    sweep_overdue(session, today)

    stmt = (
        select(TaskInstance)
        .join(TaskInstance.template)
        .where(
            TaskInstance.status != InstanceStatus.DELETED,
            or_(
                TaskInstance.date.in_([today, tomorrow]),
                and_(
                    TaskInstance.date < today,
                    TaskInstance.status == InstanceStatus.OPEN,
                    TaskTemplate.carry_policy == CarryPolicy.CARRY_OVER_STACK,
                ),
            ),
        )
        .order_by(TaskInstance.date, TaskTemplate.sort_order)
    )
    rows = session.scalars(stmt).unique().all()

    overdue, open_, done, failed = [], [], [], []
    tomorrow_open, tomorrow_done = [], []
    for instance in rows:
        if instance.date < today:
            overdue.append(instance)
        elif instance.date == today:
            if instance.status == InstanceStatus.OPEN:
                open_.append(instance)
            elif instance.status == InstanceStatus.DONE:
                done.append(instance)
            elif instance.status == InstanceStatus.FAILED:
                failed.append(instance)
        elif instance.status == InstanceStatus.OPEN:
            tomorrow_open.append(instance)
        elif instance.status == InstanceStatus.DONE:
            tomorrow_done.append(instance)

    return DashboardView(
        date=today,
        today=TodayView(
            overdue=_views(overdue, today),
            open=_views(open_, today),
            done=_views(done, today),
            failed=_views(failed, today),
        ),
        tomorrow=TomorrowView(
            open=_views(tomorrow_open, today),
            done=_views(tomorrow_done, today),
        ),
    )


def instances_for_range(
    session: Session,
    start: date,
    end: date,
    *,
    include_deleted: bool = False,
    today: Optional[date] = None,
) -> List[TaskInstance]:
    """Materialize and sweep ``[start, end]``, then return its instances.

    Rows are ordered by date, OPEN first within a day, then by status.
    """

    if start > end:
        return []
    if today is None:
        today = get_default_clock().today()

    materialize_range(session, start, end)
    sweep_overdue(session, today)

    stmt = select(TaskInstance).where(
        TaskInstance.date >= start, TaskInstance.date <= end
    )
    if not include_deleted:
        stmt = stmt.where(TaskInstance.status != InstanceStatus.DELETED)
    rows = session.scalars(stmt).unique().all()
    return sorted(
        rows,
        key=lambda i: (i.date, i.status != InstanceStatus.OPEN, i.status.value),
    )


__all__ = ["dashboard", "instances_for_range"]
