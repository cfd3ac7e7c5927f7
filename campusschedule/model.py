"""
Central data model definitions used across the project.

This module defines the canonical structure of the schedule objects so that:
- all engine modules (weeks, recurrence, layout, ics) share the same field names
- invalid courses are rejected once, at construction time
- derived values (occurrences, positioned blocks) stay separate from stored ones
"""

from __future__ import annotations

import enum
import re
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Union

from campusschedule.errors import CourseValidationError


# High contrast colours that stay readable in light and dark themes.
PALETTE: tuple[str, ...] = (
    "#FF6B6B", "#4ECDC4", "#45B7D1", "#96CEB4", "#FFD93D",
    "#FF9E9E", "#A8D8EA", "#FF90EE", "#98FB98", "#FFA500",
    "#87CEEB", "#F08080", "#20B2AA", "#FFB6C1", "#3CB371",
    "#DDA0DD", "#F7DC6F", "#BB8FCE", "#85C1E9", "#F8B88B",
)

_HEX_COLOR = re.compile(r"^#(?:[0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$")


def is_hex_color(text: str) -> bool:
    return bool(_HEX_COLOR.match(text))


def _new_id() -> str:
    return uuid.uuid4().hex


def _djb2(text: str) -> int:
    h = 5381
    for byte in text.encode("utf-8"):
        h = ((h << 5) + h + byte) & 0xFFFFFFFFFFFFFFFF
    return h & 0x7FFFFFFF


def color_for(name: str) -> str:
    """
    Deterministic palette colour for a course name.

    The same name always maps to the same colour, across runs and machines.
    """
    return PALETTE[_djb2(name) % len(PALETTE)]


class WeekStartDay(enum.IntEnum):
    """
    First column of the week grid, using ISO weekday numbers.
    """

    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6
    SUNDAY = 7


class TimelineDisplayMode(str, enum.Enum):
    STANDARD = "standard"
    CLASS_TIME = "class_time"


@dataclass(frozen=True)
class WeekConfig:
    """
    Configuration shared by every engine call.

    It is passed in explicitly each time and never cached by the engine.
    """

    semester_start_date: date
    week_start_day: WeekStartDay = WeekStartDay.MONDAY
    calendar_start_hour: int = 8
    calendar_end_hour: int = 21
    timeline_display_mode: TimelineDisplayMode = TimelineDisplayMode.STANDARD

    def with_semester_start(self, start: date) -> "WeekConfig":
        return replace(self, semester_start_date=start)


@dataclass
class Schedule:
    """
    One academic term's container of courses.
    """

    name: str
    term_name: str
    created_at: datetime
    is_active: bool = False
    # week 1 of this schedule; None means "use the configured start"
    semester_start_date: Optional[date] = None
    id: str = field(default_factory=_new_id)


@dataclass(frozen=True)
class Course:
    """
    One recurring weekly class.

    weeks: week-of-term numbers the class meets on (need not be contiguous)
    day_of_week: ISO weekday, 1 = Monday ... 7 = Sunday
    time_slot / duration: first period index and number of consecutive periods
    """

    name: str
    instructor: str
    location: str
    weeks: FrozenSet[int]
    day_of_week: int
    time_slot: int
    duration: int = 2
    color: str = ""
    schedule_id: str = ""
    id: str = field(default_factory=_new_id)

    def __post_init__(self) -> None:
        weeks = self.weeks
        if isinstance(weeks, (str, bytes)) or not isinstance(weeks, Iterable):
            raise CourseValidationError("weeks", f"expected a collection of week numbers, got {weeks!r}")
        weeks = frozenset(weeks)
        if not weeks:
            raise CourseValidationError("weeks", "must contain at least one week")
        for w in weeks:
            if isinstance(w, bool) or not isinstance(w, int) or w < 1:
                raise CourseValidationError("weeks", f"week numbers must be positive integers, got {w!r}")
        object.__setattr__(self, "weeks", weeks)

        if isinstance(self.day_of_week, bool) or not isinstance(self.day_of_week, int) or not 1 <= self.day_of_week <= 7:
            raise CourseValidationError("day_of_week", f"must be between 1 and 7, got {self.day_of_week!r}")
        if isinstance(self.time_slot, bool) or not isinstance(self.time_slot, int) or self.time_slot < 1:
            raise CourseValidationError("time_slot", f"must be a positive integer, got {self.time_slot!r}")
        if isinstance(self.duration, bool) or not isinstance(self.duration, int) or self.duration < 1:
            raise CourseValidationError("duration", f"must be at least 1, got {self.duration!r}")

        if not self.color:
            object.__setattr__(self, "color", color_for(self.name))
        elif not is_hex_color(self.color):
            raise CourseValidationError("color", f"expected #RRGGBB or #AARRGGBB, got {self.color!r}")

    @property
    def last_slot(self) -> int:
        return self.time_slot + self.duration - 1

    def sorted_weeks(self) -> List[int]:
        return sorted(self.weeks)


@dataclass(frozen=True)
class PeriodEntry:
    """
    One period of a course as the academic system lists it: the same class
    over periods 3 and 4 arrives as two entries.
    """

    name: str
    instructor: str
    location: str
    weeks: FrozenSet[int]
    day_of_week: int
    time_slot: int


def merge_periods(entries: Iterable[PeriodEntry], schedule_id: str = "") -> List[Course]:
    """
    Build Courses from per-period entries.

    Entries sharing name, instructor, location, weekday and weeks are
    grouped; every run of consecutive periods in a group becomes one Course
    (time_slot = first period, duration = run length). A gap starts a new
    Course. Colours come from the course name.

    Output is ordered by (day_of_week, time_slot, name).
    """
    groups: Dict[tuple, set] = {}
    for e in entries:
        key = (e.name, e.instructor, e.location, e.day_of_week, frozenset(e.weeks))
        groups.setdefault(key, set()).add(e.time_slot)

    courses: List[Course] = []
    for (name, instructor, location, dow, weeks), slots in groups.items():
        ordered = sorted(slots)
        run_start = prev = ordered[0]
        for slot in ordered[1:] + [None]:
            if slot is not None and slot == prev + 1:
                prev = slot
                continue
            courses.append(
                Course(
                    name=name,
                    instructor=instructor,
                    location=location,
                    weeks=weeks,
                    day_of_week=dow,
                    time_slot=run_start,
                    duration=prev - run_start + 1,
                    schedule_id=schedule_id,
                )
            )
            if slot is not None:
                run_start = prev = slot

    courses.sort(key=lambda c: (c.day_of_week, c.time_slot, c.name))
    return courses


@dataclass(frozen=True)
class Occurrence:
    """
    One concrete meeting of a course. Derived on demand, never stored.
    """

    course: Course
    date: date
    week: int
    start: datetime
    end: datetime

    @property
    def time_slot(self) -> int:
        return self.course.time_slot


@dataclass(frozen=True)
class PositionedBlock:
    """
    An occurrence placed into a display column for the renderer.
    """

    occurrence: Occurrence
    column: int
    total_columns: int

    @property
    def course(self) -> Course:
        return self.occurrence.course

    @property
    def day_of_week(self) -> int:
        return self.occurrence.date.isoweekday()

    @property
    def start(self) -> datetime:
        return self.occurrence.start

    @property
    def end(self) -> datetime:
        return self.occurrence.end


# ---------------------------------------------------------------------------
# Exams
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Scheduled:
    start: datetime
    end: Optional[datetime] = None


@dataclass(frozen=True)
class Unscheduled:
    pass


ExamTime = Union[Scheduled, Unscheduled]


@dataclass(frozen=True)
class Exam:
    id: str
    course_name: str
    location: str
    exam_time: ExamTime


_EXAM_TIME = re.compile(
    r"^\s*(\d{4})\s*(?:年|-)\s*(\d{1,2})\s*(?:月|-)\s*(\d{1,2})\s*日?\s+"
    r"(\d{1,2}):(\d{2})(?:\s*-{1,2}\s*(\d{1,2}):(\d{2}))?\s*$"
)


def parse_exam_time(text: Optional[str]) -> ExamTime:
    """
    Parse an exam time string from the academic system.

    Accepted forms:
        "2025年12月18日 18:30--20:30"
        "2025年12月18日 18:30"
        "2025-12-18 18:30-20:30"

    Blank or unrecognised input means the exam has no time yet.
    """
    if not text or not text.strip():
        return Unscheduled()

    m = _EXAM_TIME.match(text)
    if not m:
        return Unscheduled()

    year, month, day, sh, sm, eh, em = m.groups()
    try:
        start = datetime(int(year), int(month), int(day), int(sh), int(sm))
        end = datetime(int(year), int(month), int(day), int(eh), int(em)) if eh is not None else None
    except ValueError:
        return Unscheduled()

    if end is not None and end <= start:
        end = None
    return Scheduled(start=start, end=end)


def activate(schedules: Iterable[Schedule], schedule_id: str) -> List[Schedule]:
    """
    Return the schedules with exactly `schedule_id` active.

    Other schedules are deactivated, never removed.
    Raises KeyError if no schedule has that id.
    """
    items = list(schedules)
    if not any(s.id == schedule_id for s in items):
        raise KeyError(schedule_id)
    return [replace(s, is_active=(s.id == schedule_id)) for s in items]
