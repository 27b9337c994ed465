from datetime import date

from recury.dashboard import dashboard, instances_for_range
from recury.lifecycle import complete, delete_instance
from recury.materializer import materialize
from recury.models import CarryPolicy, InstanceStatus, ScheduleKind

from conftest import TODAY, add_template

YESTERDAY = date(2024, 1, 9)
TOMORROW = date(2024, 1, 11)


def _ids(views):
    return [v.id for v in views]


def test_carry_over_instance_is_overdue_on_dashboard(session):
    tpl = add_template(
        session,
        schedule_kind=ScheduleKind.DAILY,
        carry_policy=CarryPolicy.CARRY_OVER_STACK,
        start_date=YESTERDAY,
    )
    [missed] = materialize(session, tpl, YESTERDAY, YESTERDAY)

    view = dashboard(session, TODAY)

    assert view.date == TODAY
    assert _ids(view.today.overdue) == [missed.id]
    assert view.today.overdue[0].overdue is True
    assert [v.date for v in view.today.open] == [TODAY]
    assert [v.date for v in view.tomorrow.open] == [TOMORROW]
    assert view.today.failed == []


def test_fail_on_miss_instance_is_swept_before_reading(session):
    tpl = add_template(
        session,
        schedule_kind=ScheduleKind.DAILY,
        carry_policy=CarryPolicy.FAIL_ON_MISS,
        start_date=YESTERDAY,
    )
    [missed] = materialize(session, tpl, YESTERDAY, YESTERDAY)

    view = dashboard(session, TODAY)

    assert missed.status == InstanceStatus.FAILED
    assert view.today.overdue == []
    assert missed.id not in _ids(view.today.failed)
    assert [v.date for v in view.today.open] == [TODAY]


def test_dashboard_buckets_and_ordering(session):
    first = add_template(session, schedule_kind=ScheduleKind.DAILY, title="First", sort_order=0)
    second = add_template(session, schedule_kind=ScheduleKind.DAILY, title="Second", sort_order=1)
    [done] = materialize(session, first, TODAY, TODAY)
    complete(session, done.id)
    [tomorrow_done] = materialize(session, second, TOMORROW, TOMORROW)
    complete(session, tomorrow_done.id)

    view = dashboard(session, TODAY)

    assert _ids(view.today.done) == [done.id]
    assert [v.title for v in view.today.open] == ["Second"]
    assert [v.title for v in view.tomorrow.open] == ["First"]
    assert _ids(view.tomorrow.done) == [tomorrow_done.id]


def test_deleted_instances_are_hidden(session):
    tpl = add_template(session, schedule_kind=ScheduleKind.ONCE, anchor_date=TODAY)
    [instance] = materialize(session, tpl, TODAY, TODAY)
    delete_instance(session, instance.id)

    view = dashboard(session, TODAY)
    assert view.today.open == []
    assert view.today.done == []


def test_custom_title_resolves_in_views(session):
    tpl = add_template(session, schedule_kind=ScheduleKind.ONCE, anchor_date=TODAY, title="Base")
    [instance] = materialize(session, tpl, TODAY, TODAY)
    instance.custom_title = "Override"
    session.flush()

    [view] = dashboard(session, TODAY).today.open
    assert view.title == "Override"
    assert view.template.title == "Base"


def test_daily_range_end_to_end(session, clock):
    add_template(session, schedule_kind=ScheduleKind.DAILY, start_date=date(2024, 1, 1))

    rows = instances_for_range(
        session, date(2024, 1, 1), date(2024, 1, 3), today=date(2024, 1, 1)
    )

    assert [r.date for r in rows] == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]
    assert all(r.status == InstanceStatus.OPEN for r in rows)


def test_range_orders_open_first_and_hides_tombstones(session):
    a = add_template(session, schedule_kind=ScheduleKind.ONCE, anchor_date=TODAY, title="A")
    b = add_template(session, schedule_kind=ScheduleKind.ONCE, anchor_date=TODAY, title="B")
    c = add_template(session, schedule_kind=ScheduleKind.ONCE, anchor_date=TODAY, title="C")
    [done] = materialize(session, a, TODAY, TODAY)
    [open_] = materialize(session, b, TODAY, TODAY)
    [deleted] = materialize(session, c, TODAY, TODAY)
    complete(session, done.id)
    delete_instance(session, deleted.id)

    rows = instances_for_range(session, TODAY, TODAY, today=TODAY)
    assert [r.id for r in rows] == [open_.id, done.id]

    with_deleted = instances_for_range(session, TODAY, TODAY, today=TODAY, include_deleted=True)
    assert [r.id for r in with_deleted] == [open_.id, deleted.id, done.id]


def test_range_uses_default_clock_for_sweep(session, clock):
    tpl = add_template(
        session,
        schedule_kind=ScheduleKind.DAILY,
        carry_policy=CarryPolicy.FAIL_ON_MISS,
    )
    rows = instances_for_range(session, YESTERDAY, TODAY)

    statuses = {r.date: r.status for r in rows if r.template_id == tpl.id}
    assert statuses == {YESTERDAY: InstanceStatus.FAILED, TODAY: InstanceStatus.OPEN}
