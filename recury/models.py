"""Persistent models for templates and their materialized instances."""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import List, Optional, Set
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class ScheduleKind(str, Enum):
    ONCE = "ONCE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"
    INTERVAL = "INTERVAL"


class CarryPolicy(str, Enum):
    FAIL_ON_MISS = "FAIL_ON_MISS"
    CARRY_OVER_STACK = "CARRY_OVER_STACK"


class IntervalUnit(str, Enum):
    DAY = "DAY"
    WEEK = "WEEK"
    MONTH = "MONTH"
    YEAR = "YEAR"


class MonthlyMode(str, Enum):
    FIRST_DAY = "FIRST_DAY"
    LAST_DAY = "LAST_DAY"
    SPECIFIC_DAY = "SPECIFIC_DAY"


class InstanceStatus(str, Enum):
    """Instance lifecycle status.

    DELETED is terminal and doubles as the tombstone that keeps a
    (template, date) slot resolved.
    """

    OPEN = "OPEN"
    DONE = "DONE"
    FAILED = "FAILED"
    DELETED = "DELETED"


#: Schedule fields whose change invalidates future OPEN instances.
SCHEDULE_FIELDS = (
    "schedule_kind",
    "start_date",
    "anchor_date",
    "interval_unit",
    "interval_value",
    "weekday_set",
    "monthly_mode",
    "monthly_day",
    "yearly_month",
    "yearly_day",
)


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def parse_weekdays(raw: str | None) -> Set[int]:
    """Parse a ``"1,3,5"`` weekday string, ignoring junk entries."""

    if not raw:
        return set()
    days: Set[int] = set()
    for part in raw.split(","):
        part = part.strip()
        if part.isdigit() and 0 <= int(part) <= 6:
            days.add(int(part))
    return days


def format_weekdays(days) -> str | None:
    if days is None:
        return None
    return ",".join(str(d) for d in sorted(set(days))) or None


class Base(DeclarativeBase):
    pass


class TaskTemplate(Base):
    __tablename__ = "task_templates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(255))
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    carry_policy: Mapped[CarryPolicy] = mapped_column(
        SAEnum(CarryPolicy, native_enum=False, length=32),
        default=CarryPolicy.CARRY_OVER_STACK,
    )
    schedule_kind: Mapped[ScheduleKind] = mapped_column(
        SAEnum(ScheduleKind, native_enum=False, length=16), index=True
    )
    start_date: Mapped[Optional[dt.date]] = mapped_column(Date, nullable=True)
    anchor_date: Mapped[Optional[dt.date]] = mapped_column(Date, nullable=True)
    interval_unit: Mapped[Optional[IntervalUnit]] = mapped_column(
        SAEnum(IntervalUnit, native_enum=False, length=8), nullable=True
    )
    interval_value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    weekly_days: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    monthly_mode: Mapped[Optional[MonthlyMode]] = mapped_column(
        SAEnum(MonthlyMode, native_enum=False, length=16), nullable=True
    )
    monthly_day: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    yearly_month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    yearly_day: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    due_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    tags: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    instances: Mapped[List["TaskInstance"]] = relationship(
        back_populates="template",
        cascade="all",
        passive_deletes=True,
    )

    @property
    def weekday_set(self) -> Set[int]:
        """Weekdays for WEEKLY templates, 0 = Sunday .. 6 = Saturday."""

        return parse_weekdays(self.weekly_days)

    @weekday_set.setter
    def weekday_set(self, days) -> None:
        self.weekly_days = format_weekdays(days)

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"TaskTemplate(id={self.id!r}, title={self.title!r}, kind={self.schedule_kind})"


class TaskInstance(Base):
    __tablename__ = "task_instances"
    __table_args__ = (
        UniqueConstraint("template_id", "date", name="uq_task_instances_template_date"),
        Index("ix_task_instances_status_date", "status", "date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    template_id: Mapped[str] = mapped_column(
        ForeignKey("task_templates.id", ondelete="CASCADE"), index=True
    )
    date: Mapped[dt.date] = mapped_column(Date, index=True)
    status: Mapped[InstanceStatus] = mapped_column(
        SAEnum(InstanceStatus, native_enum=False, length=16),
        default=InstanceStatus.OPEN,
    )
    completed_at: Mapped[Optional[dt.datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    custom_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    custom_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    template: Mapped[TaskTemplate] = relationship(back_populates="instances", lazy="joined")

    @property
    def is_live(self) -> bool:
        return self.status != InstanceStatus.DELETED

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return (
            f"TaskInstance(id={self.id!r}, template_id={self.template_id!r}, "
            f"date={self.date}, status={self.status.value})"
        )


__all__ = [
    "Base",
    "TaskTemplate",
    "TaskInstance",
    "ScheduleKind",
    "CarryPolicy",
    "IntervalUnit",
    "MonthlyMode",
    "InstanceStatus",
    "SCHEDULE_FIELDS",
    "parse_weekdays",
    "format_weekdays",
]
