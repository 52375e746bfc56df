"""Working-day calendar collaborator.

The workflow never counts days itself: it asks a ``WorkingDayCalendar`` how
many working days fall inside each calendar year a request spans. The
default implementation counts Monday to Friday and skips an optional set of
holidays; deployments with a real holiday calendar install their own via
``set_calendar``.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable


@runtime_checkable
class WorkingDayCalendar(Protocol):
    """Interface for the working-day resolver."""

    async def working_days_between(self, start: date, end: date) -> int:
        """Count working days in the closed interval [start, end]."""
        ...


class WeekdayCalendar:
    """Counts Mon-Fri, excluding configured holidays."""

    def __init__(self, holidays: Iterable[date] = ()) -> None:
        self._holidays: set[date] = set(holidays)

    def add_holiday(self, day: date) -> None:
        self._holidays.add(day)

    async def working_days_between(self, start: date, end: date) -> int:
        """Count working days in the closed interval [start, end]."""
        total = 0
        current = start
        one_day = timedelta(days=1)
        while current <= end:
            if current.weekday() < 5 and current not in self._holidays:
                total += 1
            current += one_day
        return total


_calendar: WorkingDayCalendar = WeekdayCalendar()


def get_calendar() -> WorkingDayCalendar:
    """Return the active working-day calendar."""
    return _calendar


def set_calendar(calendar: WorkingDayCalendar) -> None:
    """Override the calendar (for testing or production wiring)."""
    global _calendar
    _calendar = calendar


def split_by_year(start: date, end: date) -> list[tuple[int, date, date]]:
    """Split [start, end] into one closed segment per calendar year."""
    segments: list[tuple[int, date, date]] = []
    for year in range(start.year, end.year + 1):
        segment_start = max(start, date(year, 1, 1))
        segment_end = min(end, date(year, 12, 31))
        segments.append((year, segment_start, segment_end))
    return segments


async def working_days_by_year(
    start: date,
    end: date,
    calendar: WorkingDayCalendar | None = None,
) -> dict[int, int]:
    """Working days per year for [start, end]. Years with no working days are omitted."""
    calendar = calendar or get_calendar()
    days_by_year: dict[int, int] = {}
    for year, segment_start, segment_end in split_by_year(start, end):
        days = await calendar.working_days_between(segment_start, segment_end)
        if days > 0:
            days_by_year[year] = days
    return days_by_year
