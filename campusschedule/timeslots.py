"""
Class period table.

Maps a period index ("period 3") to a local wall-clock time range.

Two sources of period times exist:
- an explicit table (the school's real timetable), used verbatim
- uniform slices of the visible calendar range [start hour, end hour)

The timeline display mode never changes wall-clock times; it only changes
the vertical scale factor reported alongside a range.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import time
from typing import List, Optional, Sequence, Tuple

from campusschedule.errors import CourseValidationError
from campusschedule.model import Course, TimelineDisplayMode, WeekConfig


# An event end within this many minutes of a period end counts as that end.
END_TOLERANCE_MINUTES = 2

CLASS_TIME_SCALE = 2.0


def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def _clock(minutes: int) -> time:
    if minutes >= 24 * 60:
        return time(23, 59)
    return time(minutes // 60, minutes % 60)


def parse_clock(text: str) -> time:
    """
    Parse 'HHMM' or 'HH:MM' into a time.
    Raises ValueError for invalid formats.
    """
    s = text.strip()
    if ":" in s:
        hh, mm = s.split(":", 1)
    elif len(s) == 4 and s.isdigit():
        hh, mm = s[:2], s[2:]
    else:
        raise ValueError(f"Invalid time format: {text!r}")
    h = int(hh)
    m = int(mm)
    if not (0 <= h <= 23 and 0 <= m <= 59):
        raise ValueError(f"Invalid time value: {text!r}")
    return time(h, m)


@dataclass(frozen=True)
class ClassPeriod:
    number: int
    start: time
    end: time

    @property
    def start_minutes(self) -> int:
        return _minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return _minutes(self.end)

    @property
    def length(self) -> int:
        return self.end_minutes - self.start_minutes


@dataclass(frozen=True)
class SlotRange:
    start: time
    end: time
    scale: float


DEFAULT_PERIODS: Tuple[ClassPeriod, ...] = (
    ClassPeriod(1, time(8, 0), time(8, 40)),
    ClassPeriod(2, time(8, 45), time(9, 25)),
    ClassPeriod(3, time(9, 45), time(10, 25)),
    ClassPeriod(4, time(10, 35), time(11, 15)),
    ClassPeriod(5, time(11, 20), time(12, 0)),
    ClassPeriod(6, time(13, 30), time(14, 10)),
    ClassPeriod(7, time(14, 15), time(14, 55)),
    ClassPeriod(8, time(15, 15), time(15, 55)),
    ClassPeriod(9, time(16, 0), time(16, 40)),
    ClassPeriod(10, time(18, 30), time(19, 10)),
    ClassPeriod(11, time(19, 15), time(19, 55)),
    ClassPeriod(12, time(20, 5), time(20, 45)),
)


class TimeSlotTable:
    """
    Period index <-> wall-clock time lookups.

    The table holds no configuration of its own: every lookup takes the
    WeekConfig so uniform periods follow the current calendar bounds.
    """

    def __init__(self, periods: Optional[Sequence[ClassPeriod]] = None, period_count: int = 12) -> None:
        if period_count < 1:
            raise ValueError(f"period_count must be positive, got {period_count}")
        self._periods: Optional[Tuple[ClassPeriod, ...]] = None
        if periods:
            ordered = tuple(sorted(periods, key=lambda p: p.number))
            for expected, p in enumerate(ordered, start=1):
                if p.number != expected:
                    raise ValueError(f"Periods must be numbered 1..n without gaps, found {p.number} at {expected}")
                if p.length <= 0:
                    raise ValueError(f"Period {p.number} ends before it starts")
            self._periods = ordered
        self.period_count = len(self._periods) if self._periods else period_count

    @classmethod
    def default(cls) -> "TimeSlotTable":
        return cls(DEFAULT_PERIODS)

    @classmethod
    def from_json(cls, text: str) -> "TimeSlotTable":
        """
        Build a table from a calendar.json document:

            {"classtime": [{"name": "1", "start_time": "0800", "end_time": "0840"}, ...]}
        """
        data = json.loads(text)
        entries = data.get("classtime") if isinstance(data, dict) else None
        if not isinstance(entries, list) or not entries:
            raise ValueError("calendar JSON has no 'classtime' list")

        periods: List[ClassPeriod] = []
        for entry in entries:
            periods.append(
                ClassPeriod(
                    number=int(entry["name"]),
                    start=parse_clock(str(entry["start_time"])),
                    end=parse_clock(str(entry["end_time"])),
                )
            )
        return cls(periods)

    @property
    def is_explicit(self) -> bool:
        return self._periods is not None

    def periods(self, config: WeekConfig) -> Tuple[ClassPeriod, ...]:
        if self._periods is not None:
            return self._periods

        if not 0 <= config.calendar_start_hour < config.calendar_end_hour <= 24:
            raise ValueError(
                f"Invalid calendar bounds {config.calendar_start_hour}-{config.calendar_end_hour}"
            )
        base = config.calendar_start_hour * 60
        total = (config.calendar_end_hour - config.calendar_start_hour) * 60
        n = self.period_count
        return tuple(
            ClassPeriod(i, _clock(base + (i - 1) * total // n), _clock(base + i * total // n))
            for i in range(1, n + 1)
        )

    def max_period(self, config: WeekConfig) -> int:
        return len(self.periods(config))

    def scale(self, config: WeekConfig) -> float:
        if config.timeline_display_mode == TimelineDisplayMode.CLASS_TIME:
            return CLASS_TIME_SCALE
        return 1.0

    def time_range(self, slot: int, duration: int, config: WeekConfig) -> SlotRange:
        """
        Start of `slot` to end of `slot + duration - 1`.
        """
        periods = self.periods(config)
        if not 1 <= slot <= len(periods):
            raise CourseValidationError("time_slot", f"period {slot} is outside 1..{len(periods)}")
        if duration < 1 or slot + duration - 1 > len(periods):
            raise CourseValidationError(
                "duration", f"{duration} periods from period {slot} exceed the last period {len(periods)}"
            )
        first = periods[slot - 1]
        last = periods[slot + duration - 2]
        return SlotRange(start=first.start, end=last.end, scale=self.scale(config))

    def course_range(self, course: Course, config: WeekConfig) -> SlotRange:
        return self.time_range(course.time_slot, course.duration, config)

    def validate_course(self, course: Course, config: WeekConfig) -> None:
        max_p = self.max_period(config)
        if course.time_slot > max_p:
            raise CourseValidationError("time_slot", f"period {course.time_slot} is outside 1..{max_p}")
        if course.last_slot > max_p:
            raise CourseValidationError(
                "duration", f"{course.duration} periods from period {course.time_slot} exceed the last period {max_p}"
            )

    def slot_for_time(self, clock: time, config: WeekConfig) -> Optional[int]:
        """
        Nearest period whose start lies within half a period of `clock`.

        Equidistant candidates resolve to the lower period.
        Returns None if no period starts close enough.
        """
        m = _minutes(clock)
        candidates = [
            (abs(p.start_minutes - m), p.number)
            for p in self.periods(config)
            if abs(p.start_minutes - m) * 2 <= p.length
        ]
        if not candidates:
            return None
        return min(candidates)[1]

    def nearest_slot(self, clock: time, config: WeekConfig) -> int:
        m = _minutes(clock)
        return min((abs(p.start_minutes - m), p.number) for p in self.periods(config))[1]

    def span_for(self, slot: int, end_clock: time, config: WeekConfig) -> Tuple[int, bool]:
        """
        Number of consecutive periods from `slot` needed to reach `end_clock`.

        The flag is False when the end does not land on a period end; the
        count is then rounded up to the next period (or stops at the last one).
        """
        periods = self.periods(config)
        end_m = _minutes(end_clock)
        count = 0
        for p in periods[slot - 1:]:
            count += 1
            if p.end_minutes >= end_m - END_TOLERANCE_MINUTES:
                return count, abs(p.end_minutes - end_m) <= END_TOLERANCE_MINUTES
        return max(count, 1), False
