"""
Recurrence expansion: which courses meet on a given date.

A course meets on date D when:
    week_number(D) in course.weeks AND course.day_of_week == D.isoweekday()

The week grid start day never changes which literal weekday a course is on.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable, List

from loguru import logger

from campusschedule.model import Course, Occurrence, WeekConfig
from campusschedule.timeslots import TimeSlotTable
from campusschedule.weeks import week_dates, week_number


def _sort_key(occ: Occurrence) -> tuple:
    return (occ.date, occ.course.time_slot, occ.course.id)


def occurrences_on(
    day: date,
    courses: Iterable[Course],
    config: WeekConfig,
    table: TimeSlotTable,
) -> List[Occurrence]:
    """
    All occurrences on `day`, ordered by time slot, then course id.
    """
    w = week_number(day, config)
    if w <= 0:
        # before the term starts: nothing meets
        return []

    d = day.isoweekday()
    out: List[Occurrence] = []
    for course in courses:
        if course.day_of_week != d or w not in course.weeks:
            continue
        rng = table.course_range(course, config)
        out.append(
            Occurrence(
                course=course,
                date=day,
                week=w,
                start=datetime.combine(day, rng.start),
                end=datetime.combine(day, rng.end),
            )
        )

    out.sort(key=_sort_key)
    return out


def occurrences_between(
    first: date,
    last: date,
    courses: Iterable[Course],
    config: WeekConfig,
    table: TimeSlotTable,
) -> List[Occurrence]:
    """
    Occurrences for every date in [first, last], in date order.
    """
    course_list = list(courses)
    out: List[Occurrence] = []
    day = first
    while day <= last:
        out.extend(occurrences_on(day, course_list, config, table))
        day += timedelta(days=1)
    logger.debug("Expanded {} occurrences between {} and {}", len(out), first, last)
    return out


def occurrences_for_week(
    day: date,
    courses: Iterable[Course],
    config: WeekConfig,
    table: TimeSlotTable,
) -> List[Occurrence]:
    """
    Union of occurrences_on over the 7 grid dates of the week containing `day`.
    """
    dates = week_dates(day, config.week_start_day)
    return occurrences_between(dates[0], dates[-1], courses, config, table)
