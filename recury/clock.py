"""Clock and timezone provider.

The core never asks for the current time itself. ``today`` is always passed in
explicitly; this module supplies it at the edges (API, CLI and the daily job)
from a single configured timezone.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone as dt_timezone
from zoneinfo import ZoneInfo


class Clock:
    """Yield calendar days in a fixed timezone."""

    def __init__(self, timezone: str | ZoneInfo = "UTC") -> None:
        self.tz = ZoneInfo(timezone) if isinstance(timezone, str) else timezone

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self, now: datetime | None = None) -> date:
        """Return the calendar day of ``now`` (default: current time) in ``tz``.

        Naive datetimes are interpreted as UTC.
        """

        if now is None:
            return self.now().date()
        if now.tzinfo is None:
            now = now.replace(tzinfo=dt_timezone.utc)
        return now.astimezone(self.tz).date()

    def tomorrow(self, now: datetime | None = None) -> date:
        return self.today(now) + timedelta(days=1)


class FixedClock(Clock):
    """Clock pinned to a given day, used by tests and replays."""

    def __init__(self, day: date, timezone: str | ZoneInfo = "UTC") -> None:
        super().__init__(timezone)
        self.day = day

    def now(self) -> datetime:
        return datetime.combine(self.day, datetime.min.time(), tzinfo=self.tz)

    def today(self, now: datetime | None = None) -> date:
        if now is not None:
            return super().today(now)
        return self.day


# ---------------------------------------------------------------------------
# Default clock accessor

_default_clock: Clock | None = None


def set_default_clock(clock: Clock) -> None:
    """Set the global default clock instance."""

    global _default_clock
    _default_clock = clock


def get_default_clock() -> Clock:
    """Return the configured clock, falling back to a UTC clock."""

    if _default_clock is None:
        return Clock("UTC")
    return _default_clock


__all__ = ["Clock", "FixedClock", "set_default_clock", "get_default_clock"]
