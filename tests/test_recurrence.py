"""
Unit tests for recurrence expansion.
"""

import unittest
from datetime import date, datetime

from campusschedule.model import Course, WeekConfig, WeekStartDay
from campusschedule.recurrence import occurrences_between, occurrences_for_week, occurrences_on
from campusschedule.timeslots import TimeSlotTable

START = date(2025, 2, 24)


def _course(cid: str, weeks, dow: int, slot: int, duration: int = 1, name: str = "") -> Course:
    return Course(
        id=cid,
        name=name or cid,
        instructor="",
        location="Room 1",
        weeks=frozenset(weeks),
        day_of_week=dow,
        time_slot=slot,
        duration=duration,
    )


class TestOccurrencesOn(unittest.TestCase):
    def setUp(self) -> None:
        self.table = TimeSlotTable.default()
        self.config = WeekConfig(semester_start_date=START, week_start_day=WeekStartDay.MONDAY)
        self.course = _course("algebra", {1, 2, 3, 5}, dow=2, slot=3, duration=2)

    def test_meets_in_listed_week(self) -> None:
        occs = occurrences_on(date(2025, 3, 11), [self.course], self.config, self.table)
        self.assertEqual(len(occs), 1)
        occ = occs[0]
        self.assertEqual(occ.week, 3)
        self.assertEqual(occ.date, date(2025, 3, 11))
        self.assertEqual(occ.start, datetime(2025, 3, 11, 9, 45))
        self.assertEqual(occ.end, datetime(2025, 3, 11, 11, 15))

    def test_absent_week_has_no_occurrence(self) -> None:
        self.assertEqual(occurrences_on(date(2025, 3, 18), [self.course], self.config, self.table), [])

    def test_other_weekday_has_no_occurrence(self) -> None:
        self.assertEqual(occurrences_on(date(2025, 3, 12), [self.course], self.config, self.table), [])

    def test_before_term_has_no_occurrence(self) -> None:
        early = _course("early", {1}, dow=2, slot=1)
        self.assertEqual(occurrences_on(date(2025, 2, 18), [early], self.config, self.table), [])

    def test_week_start_day_does_not_move_weekday(self) -> None:
        config = WeekConfig(semester_start_date=START, week_start_day=WeekStartDay.SUNDAY)
        occs = occurrences_on(date(2025, 3, 11), [self.course], config, self.table)
        self.assertEqual([o.week for o in occs], [3])

    def test_ordering_by_slot_then_id(self) -> None:
        courses = [
            _course("b", {1}, dow=1, slot=3),
            _course("c", {1}, dow=1, slot=1),
            _course("a", {1}, dow=1, slot=3),
        ]
        occs = occurrences_on(START, courses, self.config, self.table)
        self.assertEqual([o.course.id for o in occs], ["c", "a", "b"])


class TestWeekQueries(unittest.TestCase):
    def setUp(self) -> None:
        self.table = TimeSlotTable.default()
        self.courses = [
            _course("mon", {1, 2}, dow=1, slot=1),
            _course("wed", {1, 2}, dow=3, slot=2),
            _course("sun", {1, 2}, dow=7, slot=5),
        ]

    def test_week_is_union_of_days(self) -> None:
        config = WeekConfig(semester_start_date=START, week_start_day=WeekStartDay.MONDAY)
        occs = occurrences_for_week(date(2025, 3, 5), self.courses, config, self.table)
        self.assertEqual([o.course.id for o in occs], ["mon", "wed", "sun"])
        self.assertEqual({o.week for o in occs}, {2})

    def test_sunday_grid_covers_previous_sunday(self) -> None:
        config = WeekConfig(semester_start_date=START, week_start_day=WeekStartDay.SUNDAY)
        occs = occurrences_for_week(date(2025, 3, 5), self.courses, config, self.table)
        # grid row Sun 2025-03-02 .. Sat 2025-03-08
        self.assertEqual([(o.course.id, o.date) for o in occs], [
            ("sun", date(2025, 3, 2)),
            ("mon", date(2025, 3, 3)),
            ("wed", date(2025, 3, 5)),
        ])
        self.assertEqual([o.week for o in occs], [1, 2, 2])

    def test_between_is_inclusive(self) -> None:
        config = WeekConfig(semester_start_date=START)
        occs = occurrences_between(date(2025, 2, 24), date(2025, 3, 3), self.courses, config, self.table)
        self.assertEqual([o.date for o in occs], [date(2025, 2, 24), date(2025, 2, 26), date(2025, 3, 2), date(2025, 3, 3)])


if __name__ == "__main__":
    unittest.main()
