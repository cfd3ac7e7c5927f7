"""
Week-of-term arithmetic.

Week numbers count 7-day blocks from the semester start date:
- the start date and the six days after it are week 1
- dates before the start give 0 or negative numbers (never an error)

The week grid (which weekday is the first column) only affects how a week
is drawn and which dates a "week containing X" query covers. When the
semester starts on the grid's first weekday, term weeks and grid rows line
up exactly; otherwise one grid row spans the end of one term week and the
start of the next.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import List

from campusschedule.model import WeekConfig, WeekStartDay


def week_start(day: date, week_start_day: WeekStartDay) -> date:
    """
    First date of the grid week containing `day`.
    """
    offset = (day.isoweekday() - int(week_start_day)) % 7
    return day - timedelta(days=offset)


def week_dates(day: date, week_start_day: WeekStartDay) -> List[date]:
    first = week_start(day, week_start_day)
    return [first + timedelta(days=i) for i in range(7)]


def week_number(day: date, config: WeekConfig) -> int:
    """
    Week-of-term number for `day`.

    Monotonically non-decreasing in `day`; floor division keeps the days
    just before the start at week 0 instead of rounding them into week 1.
    """
    days = (day - config.semester_start_date).days
    return days // 7 + 1


def date_for_week(week: int, day_of_week: int, config: WeekConfig) -> date:
    """
    Concrete date of ISO weekday `day_of_week` inside term week `week`.

    Inverse of week_number: week_number(date_for_week(w, d)) == w.
    """
    block_start = config.semester_start_date + timedelta(days=(week - 1) * 7)
    offset = (day_of_week - block_start.isoweekday()) % 7
    return block_start + timedelta(days=offset)


def column_index(day_of_week: int, week_start_day: WeekStartDay) -> int:
    """
    Grid column (0-6) of an ISO weekday for the configured first weekday.
    """
    return (day_of_week - int(week_start_day)) % 7
