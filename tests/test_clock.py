from datetime import date, datetime, timezone

from recury.clock import Clock, FixedClock, get_default_clock, set_default_clock


def test_today_uses_configured_timezone():
    clock = Clock("Europe/Berlin")
    # 23:30 UTC on 30 March is already 31 March in Berlin.
    assert clock.today(datetime(2024, 3, 30, 23, 30, tzinfo=timezone.utc)) == date(2024, 3, 31)
    assert Clock("UTC").today(datetime(2024, 3, 30, 23, 30, tzinfo=timezone.utc)) == date(2024, 3, 30)


def test_day_boundaries_are_stable_across_dst():
    clock = Clock("Europe/Berlin")
    # Clocks jump from 02:00 to 03:00 local time on 31 March 2024.
    before = datetime(2024, 3, 31, 0, 30, tzinfo=timezone.utc)  # 01:30 CET
    after = datetime(2024, 3, 31, 1, 30, tzinfo=timezone.utc)  # 03:30 CEST
    end_of_day = datetime(2024, 3, 31, 21, 59, tzinfo=timezone.utc)  # 23:59 CEST
    assert clock.today(before) == clock.today(after) == clock.today(end_of_day) == date(2024, 3, 31)
    assert clock.tomorrow(after) == date(2024, 4, 1)


def test_naive_datetimes_are_utc():
    clock = Clock("America/New_York")
    assert clock.today(datetime(2024, 1, 10, 3, 0)) == date(2024, 1, 9)


def test_fixed_clock():
    clock = FixedClock(date(2024, 1, 10))
    assert clock.today() == date(2024, 1, 10)
    assert clock.tomorrow() == date(2024, 1, 11)
    assert clock.now().date() == date(2024, 1, 10)


def test_default_clock_falls_back_to_utc():
    assert str(get_default_clock().tz) == "UTC"
    fixed = FixedClock(date(2024, 1, 10))
    set_default_clock(fixed)
    assert get_default_clock() is fixed
