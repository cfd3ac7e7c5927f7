"""
Overlap layout and conflict detection.

Given the occurrences of one day, place overlapping ones side by side.
Overlap rule:
    start < other_end AND end > other_start
(touching endpoints do not overlap)

Columns are assigned first-fit in start order, which never uses more
columns than the largest set of mutually overlapping occurrences. Every
occurrence of a connected overlap cluster reports the same total width.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, List, Tuple

from loguru import logger

from campusschedule.model import Course, Occurrence, PositionedBlock, WeekConfig
from campusschedule.recurrence import occurrences_on
from campusschedule.timeslots import TimeSlotTable
from campusschedule.weeks import week_dates


def _overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and a_end > b_start


def _layout_key(occ: Occurrence) -> tuple:
    return (occ.start, occ.end, occ.course.id)


def layout_day(occurrences: Iterable[Occurrence]) -> List[PositionedBlock]:
    """
    Assign a column and a cluster width to every occurrence.

    Output order is the sweep order: (start, end, course id).
    """
    ordered = sorted(occurrences, key=_layout_key)

    blocks: List[PositionedBlock] = []
    column_ends: List[datetime] = []
    cluster: List[Tuple[Occurrence, int]] = []
    cluster_end: datetime | None = None

    def flush() -> None:
        if not cluster:
            return
        total = max(col for _, col in cluster) + 1
        for occ, col in cluster:
            blocks.append(PositionedBlock(occurrence=occ, column=col, total_columns=total))
        cluster.clear()

    for occ in ordered:
        if cluster_end is not None and occ.start >= cluster_end:
            # nothing still running: the previous cluster is closed
            flush()
            column_ends.clear()
            cluster_end = None

        col = next((i for i, end in enumerate(column_ends) if end <= occ.start), None)
        if col is None:
            col = len(column_ends)
            column_ends.append(occ.end)
        else:
            column_ends[col] = occ.end

        cluster.append((occ, col))
        cluster_end = occ.end if cluster_end is None else max(cluster_end, occ.end)

    flush()
    return blocks


def layout_week(
    day: date,
    courses: Iterable[Course],
    config: WeekConfig,
    table: TimeSlotTable,
) -> List[PositionedBlock]:
    """
    Positioned blocks for the visible week containing `day`, in date order.
    """
    course_list = list(courses)
    blocks: List[PositionedBlock] = []
    for d in week_dates(day, config.week_start_day):
        blocks.extend(layout_day(occurrences_on(d, course_list, config, table)))

    wide = sum(1 for b in blocks if b.total_columns > 1)
    if wide:
        logger.debug("Week of {}: {} of {} blocks share their slot", day, wide, len(blocks))
    return blocks


def find_conflicts(occurrences: Iterable[Occurrence]) -> List[Tuple[Occurrence, Occurrence]]:
    """
    Find overlapping occurrence pairs (A,B), each pair appears once (i<j).
    Overlap only if same date AND time intervals overlap.
    """
    items = sorted(occurrences, key=lambda o: (o.date,) + _layout_key(o))
    conflicts: List[Tuple[Occurrence, Occurrence]] = []

    # O(n^2) is fine for typical timetable sizes
    for i in range(len(items)):
        a = items[i]
        for j in range(i + 1, len(items)):
            b = items[j]
            if a.date != b.date:
                continue
            if _overlaps(a.start, a.end, b.start, b.end):
                conflicts.append((a, b))

    return conflicts
