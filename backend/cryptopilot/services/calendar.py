"""Calendar-day helpers shared by valuation, history and reconciliation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

HISTORY_RANGES = ("7d", "30d", "1y")


class InvalidRangeError(ValueError):
    """Raised when a history range is not one of the supported windows."""


@dataclass(frozen=True)
class DateWindow:
    start: date
    end: date

    def days(self) -> list[date]:
        return enumerate_days(self.start, self.end)


def enumerate_days(start: date, end: date) -> list[date]:
    """Every calendar day from ``start`` to ``end`` inclusive; empty when start > end."""

    span = (end - start).days
    return [start + timedelta(days=offset) for offset in range(span + 1)]


def one_year_before(day: date) -> date:
    try:
        return day.replace(year=day.year - 1)
    except ValueError:
        # Feb 29 -> Feb 28
        return day.replace(year=day.year - 1, day=28)


class Calendar:
    """Resolve "today" and transaction days in the configured timezone.

    Stored timestamps are UTC; naive values read back from the database are
    treated as UTC, while naive values supplied by callers are interpreted in
    the configured timezone (see :meth:`normalize_timestamp`).
    """

    def __init__(self, tz_name: str = "UTC", *, today: date | None = None):
        self._tz = ZoneInfo(tz_name)
        self._tz_name = tz_name
        self._fixed_today = today

    @property
    def tz_name(self) -> str:
        return self._tz_name

    @property
    def tz(self) -> ZoneInfo:
        return self._tz

    def now(self) -> datetime:
        return datetime.now(self._tz)

    def today(self) -> date:
        if self._fixed_today is not None:
            return self._fixed_today
        return self.now().date()

    def day_of(self, timestamp: datetime) -> date:
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return timestamp.astimezone(self._tz).date()

    def normalize_timestamp(self, value: datetime | None) -> datetime:
        """Aware UTC instant truncated to whole seconds; ``None`` means now."""

        if value is None:
            value = self.now()
        elif value.tzinfo is None:
            value = value.replace(tzinfo=self._tz)
        return value.astimezone(timezone.utc).replace(microsecond=0)

    def start_of_day(self, day: date) -> datetime:
        """UTC instant at which ``day`` begins in the configured timezone."""

        local = datetime(day.year, day.month, day.day, tzinfo=self._tz)
        return local.astimezone(timezone.utc)

    def end_of_day(self, day: date) -> datetime:
        """UTC instant at which the day after ``day`` begins."""

        return self.start_of_day(day + timedelta(days=1))

    def window_for_range(self, range_name: str) -> DateWindow:
        today = self.today()
        if range_name == "7d":
            return DateWindow(today - timedelta(days=7), today)
        if range_name == "30d":
            return DateWindow(today - timedelta(days=30), today)
        if range_name == "1y":
            return DateWindow(one_year_before(today), today)
        raise InvalidRangeError(
            f"Invalid range {range_name!r}; expected one of {', '.join(HISTORY_RANGES)}"
        )


__all__ = [
    "Calendar",
    "DateWindow",
    "HISTORY_RANGES",
    "InvalidRangeError",
    "enumerate_days",
    "one_year_before",
]
