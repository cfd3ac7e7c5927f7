"""
Notification hand-off records.

The engine only decides WHAT should be announced and WHEN; delivery,
permissions and bookkeeping of scheduled ids belong to the scheduler that
consumes these records.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List

from loguru import logger

from campusschedule.model import Exam, Occurrence, Scheduled


COURSE_PREFIX = "course_"
EXAM_PREFIX = "exam_"


@dataclass(frozen=True)
class NotificationRequest:
    id: str
    title: str
    body: str
    fire_date: datetime


def course_notifications(
    occurrences: Iterable[Occurrence],
    lead: timedelta,
    now: datetime,
) -> List[NotificationRequest]:
    """
    One request per future occurrence, fired `lead` before it starts.

    Ids are unique per course and week so a scheduler can replace an
    earlier request for the same meeting.
    """
    out: List[NotificationRequest] = []
    for occ in occurrences:
        fire = occ.start - lead
        if fire <= now:
            continue
        out.append(
            NotificationRequest(
                id=f"{COURSE_PREFIX}{occ.course.id}_week{occ.week}",
                title=occ.course.name,
                body=occ.course.location,
                fire_date=fire,
            )
        )
    out.sort(key=lambda r: (r.fire_date, r.id))
    logger.debug("Prepared {} course notifications", len(out))
    return out


def exam_notifications(
    exams: Iterable[Exam],
    lead: timedelta,
    now: datetime,
) -> List[NotificationRequest]:
    """
    One request per exam that has a time and has not started yet.
    Exams without a time are skipped.
    """
    out: List[NotificationRequest] = []
    for exam in exams:
        if not isinstance(exam.exam_time, Scheduled):
            continue
        fire = exam.exam_time.start - lead
        if fire <= now:
            continue
        out.append(
            NotificationRequest(
                id=f"{EXAM_PREFIX}{exam.id}",
                title=exam.course_name,
                body=exam.location,
                fire_date=fire,
            )
        )
    out.sort(key=lambda r: (r.fire_date, r.id))
    return out
