"""Input validation and output views.

``TemplateCreate`` and ``TemplateUpdate`` validate template payloads before
anything reaches the database. The ``*View`` models are the read shapes handed
to the CLI and HTTP layers; they are built while the session is still open so
no lazy loading happens afterwards.
"""

from __future__ import annotations

import re
import datetime as dt
from typing import Annotated, Any, List, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from .models import (
    CarryPolicy,
    InstanceStatus,
    IntervalUnit,
    MonthlyMode,
    ScheduleKind,
    TaskInstance,
    TaskTemplate,
)

_DUE_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _coerce_weekdays(value: Any) -> Any:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        parts = [p.strip() for p in value.split(",")]
        if not all(p.isdigit() for p in parts):
            raise ValueError("weekday_set must be a comma separated list of 0-6")
        return [int(p) for p in parts]
    return value


def _check_weekdays(value: Optional[List[int]]) -> Optional[List[int]]:
    if value is None:
        return None
    for day in value:
        if not 0 <= day <= 6:
            raise ValueError("weekdays must be between 0 (Sunday) and 6 (Saturday)")
    return sorted(set(value))


def _check_due_time(value: Optional[str]) -> Optional[str]:
    if value in (None, ""):
        return None
    if not _DUE_TIME_RE.match(value):
        raise ValueError("due_time must use the HH:MM format")
    return value


Weekdays = Annotated[
    Optional[List[int]],
    BeforeValidator(_coerce_weekdays),
    AfterValidator(_check_weekdays),
]
DueTime = Annotated[Optional[str], AfterValidator(_check_due_time)]


class TemplateCreate(BaseModel):
    """Payload for a new template."""

    title: str = Field(min_length=1, max_length=255)
    notes: Optional[str] = Field(default=None, max_length=2000)
    schedule_kind: ScheduleKind
    carry_policy: CarryPolicy = CarryPolicy.CARRY_OVER_STACK
    start_date: Optional[dt.date] = None
    anchor_date: Optional[dt.date] = None
    interval_unit: Optional[IntervalUnit] = None
    interval_value: Optional[int] = Field(default=None, ge=1, le=365)
    weekday_set: Weekdays = None
    monthly_mode: Optional[MonthlyMode] = None
    monthly_day: Optional[int] = Field(default=None, ge=1, le=31)
    yearly_month: Optional[int] = Field(default=None, ge=1, le=12)
    yearly_day: Optional[int] = Field(default=None, ge=1, le=31)
    due_time: DueTime = None
    tags: Optional[str] = Field(default=None, max_length=500)
    sort_order: int = 0

    @model_validator(mode="after")
    def _kind_fields(self) -> "TemplateCreate":
        kind = self.schedule_kind
        if kind is ScheduleKind.ONCE and self.anchor_date is None:
            raise ValueError("ONCE templates require anchor_date")
        if kind is ScheduleKind.WEEKLY and not self.weekday_set:
            raise ValueError("WEEKLY templates require at least one weekday")
        if kind is ScheduleKind.MONTHLY:
            if self.monthly_mode is MonthlyMode.SPECIFIC_DAY and self.monthly_day is None:
                raise ValueError("SPECIFIC_DAY templates require monthly_day")
            if self.monthly_mode is None and self.monthly_day is None:
                raise ValueError("MONTHLY templates require monthly_mode or monthly_day")
        if kind is ScheduleKind.YEARLY and (
            self.yearly_month is None or self.yearly_day is None
        ):
            raise ValueError("YEARLY templates require yearly_month and yearly_day")
        if kind is ScheduleKind.INTERVAL and (
            self.anchor_date is None
            or self.interval_unit is None
            or self.interval_value is None
        ):
            raise ValueError(
                "INTERVAL templates require anchor_date, interval_unit and interval_value"
            )
        return self


class TemplateUpdate(BaseModel):
    """Partial template update; only fields that were sent are applied."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    notes: Optional[str] = Field(default=None, max_length=2000)
    is_active: Optional[bool] = None
    schedule_kind: Optional[ScheduleKind] = None
    carry_policy: Optional[CarryPolicy] = None
    start_date: Optional[dt.date] = None
    anchor_date: Optional[dt.date] = None
    interval_unit: Optional[IntervalUnit] = None
    interval_value: Optional[int] = Field(default=None, ge=1, le=365)
    weekday_set: Weekdays = None
    monthly_mode: Optional[MonthlyMode] = None
    monthly_day: Optional[int] = Field(default=None, ge=1, le=31)
    yearly_month: Optional[int] = Field(default=None, ge=1, le=12)
    yearly_day: Optional[int] = Field(default=None, ge=1, le=31)
    due_time: DueTime = None
    tags: Optional[str] = Field(default=None, max_length=500)
    sort_order: Optional[int] = None


class DuplicateRequest(BaseModel):
    include_schedule: bool = True
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)


class SnoozeRequest(BaseModel):
    to_date: Optional[dt.date] = None


class InstanceEdit(BaseModel):
    """Per-occurrence overrides. An empty string clears an override."""

    custom_title: Optional[str] = Field(default=None, max_length=255)
    custom_notes: Optional[str] = Field(default=None, max_length=2000)
    date: Optional[dt.date] = None


# ---------------------------------------------------------------------------
# Views


class TemplateSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    schedule_kind: ScheduleKind
    carry_policy: CarryPolicy
    is_active: bool
    due_time: Optional[str] = None
    tags: Optional[str] = None
    sort_order: int = 0


class TemplateView(TemplateSummary):
    notes: Optional[str] = None
    start_date: Optional[dt.date] = None
    anchor_date: Optional[dt.date] = None
    interval_unit: Optional[IntervalUnit] = None
    interval_value: Optional[int] = None
    weekday_set: List[int] = Field(default_factory=list)
    monthly_mode: Optional[MonthlyMode] = None
    monthly_day: Optional[int] = None
    yearly_month: Optional[int] = None
    yearly_day: Optional[int] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
    next_occurrence: Optional[dt.date] = None

    @field_validator("weekday_set", mode="before")
    @classmethod
    def _sorted_days(cls, value: Any) -> Any:
        return sorted(value) if value else []

    @classmethod
    def from_template(
        cls, template: TaskTemplate, next_occurrence: Optional[dt.date] = None
    ) -> "TemplateView":
        view = cls.model_validate(template)
        view.next_occurrence = next_occurrence
        return view


class InstanceView(BaseModel):
    """One instance with its display fields resolved against the template."""

    id: str
    template_id: str
    date: dt.date
    status: InstanceStatus
    title: str
    notes: Optional[str] = None
    custom_title: Optional[str] = None
    custom_notes: Optional[str] = None
    completed_at: Optional[dt.datetime] = None
    created_at: Optional[dt.datetime] = None
    overdue: bool = False
    template: TemplateSummary

    @classmethod
    def from_instance(
        cls, instance: TaskInstance, today: Optional[dt.date] = None
    ) -> "InstanceView":
        template = instance.template
        overdue = (
            today is not None
            and instance.status == InstanceStatus.OPEN
            and instance.date < today
        )
        return cls(
            id=instance.id,
            template_id=instance.template_id,
            date=instance.date,
            status=instance.status,
            title=instance.custom_title or template.title,
            notes=instance.custom_notes or template.notes,
            custom_title=instance.custom_title,
            custom_notes=instance.custom_notes,
            completed_at=instance.completed_at,
            created_at=instance.created_at,
            overdue=overdue,
            template=TemplateSummary.model_validate(template),
        )


class TodayView(BaseModel):
    overdue: List[InstanceView] = Field(default_factory=list)
    open: List[InstanceView] = Field(default_factory=list)
    done: List[InstanceView] = Field(default_factory=list)
    failed: List[InstanceView] = Field(default_factory=list)


class TomorrowView(BaseModel):
    open: List[InstanceView] = Field(default_factory=list)
    done: List[InstanceView] = Field(default_factory=list)


class DashboardView(BaseModel):
    date: dt.date
    today: TodayView
    tomorrow: TomorrowView


__all__ = [
    "TemplateCreate",
    "TemplateUpdate",
    "DuplicateRequest",
    "SnoozeRequest",
    "InstanceEdit",
    "TemplateSummary",
    "TemplateView",
    "InstanceView",
    "TodayView",
    "TomorrowView",
    "DashboardView",
]
