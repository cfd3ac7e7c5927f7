"""
Unit tests for week-of-term arithmetic.

Rules:
- the semester start date and the 6 days after it are week 1
- earlier dates give 0 or negative numbers
- week numbers never decrease as the date moves forward
"""

import unittest
from datetime import date, timedelta

from campusschedule.model import WeekConfig, WeekStartDay
from campusschedule.weeks import column_index, date_for_week, week_dates, week_number, week_start

START = date(2025, 2, 24)  # a Monday


class TestWeekNumber(unittest.TestCase):
    def test_first_week_for_every_week_start_day(self) -> None:
        for wsd in WeekStartDay:
            config = WeekConfig(semester_start_date=START, week_start_day=wsd)
            self.assertEqual(week_number(START, config), 1, wsd)
            self.assertEqual(week_number(START + timedelta(days=6), config), 1, wsd)
            self.assertEqual(week_number(START + timedelta(days=7), config), 2, wsd)

    def test_first_week_when_term_starts_midweek(self) -> None:
        wednesday = date(2025, 2, 26)
        for wsd in (WeekStartDay.MONDAY, WeekStartDay.SUNDAY):
            config = WeekConfig(semester_start_date=wednesday, week_start_day=wsd)
            for offset in range(7):
                self.assertEqual(week_number(wednesday + timedelta(days=offset), config), 1)

    def test_before_term_is_not_positive(self) -> None:
        config = WeekConfig(semester_start_date=START)
        self.assertEqual(week_number(START - timedelta(days=1), config), 0)
        self.assertEqual(week_number(START - timedelta(days=7), config), 0)
        self.assertEqual(week_number(START - timedelta(days=8), config), -1)

    def test_monotonic(self) -> None:
        for wsd in (WeekStartDay.MONDAY, WeekStartDay.SUNDAY):
            config = WeekConfig(semester_start_date=START, week_start_day=wsd)
            day = START - timedelta(days=40)
            prev = week_number(day, config)
            for _ in range(200):
                day += timedelta(days=1)
                cur = week_number(day, config)
                self.assertLessEqual(prev, cur)
                prev = cur

    def test_scenario_dates(self) -> None:
        config = WeekConfig(semester_start_date=START, week_start_day=WeekStartDay.MONDAY)
        self.assertEqual(week_number(date(2025, 3, 11), config), 3)
        self.assertEqual(week_number(date(2025, 3, 18), config), 4)


class TestWeekGrid(unittest.TestCase):
    def test_week_start_monday_and_sunday(self) -> None:
        tuesday = date(2025, 3, 11)
        self.assertEqual(week_start(tuesday, WeekStartDay.MONDAY), date(2025, 3, 10))
        self.assertEqual(week_start(tuesday, WeekStartDay.SUNDAY), date(2025, 3, 9))
        # a Sunday is the first day of its own Sunday-started week
        self.assertEqual(week_start(date(2025, 3, 9), WeekStartDay.SUNDAY), date(2025, 3, 9))

    def test_week_dates(self) -> None:
        dates = week_dates(date(2025, 3, 12), WeekStartDay.SUNDAY)
        self.assertEqual(len(dates), 7)
        self.assertEqual(dates[0], date(2025, 3, 9))
        self.assertEqual(dates[-1], date(2025, 3, 15))

    def test_column_index(self) -> None:
        self.assertEqual(column_index(1, WeekStartDay.MONDAY), 0)
        self.assertEqual(column_index(7, WeekStartDay.MONDAY), 6)
        self.assertEqual(column_index(7, WeekStartDay.SUNDAY), 0)
        self.assertEqual(column_index(1, WeekStartDay.SUNDAY), 1)


class TestDateForWeek(unittest.TestCase):
    def test_inverse_of_week_number(self) -> None:
        for start in (START, date(2025, 2, 27)):
            for wsd in (WeekStartDay.MONDAY, WeekStartDay.SUNDAY):
                config = WeekConfig(semester_start_date=start, week_start_day=wsd)
                for w in (1, 2, 7, 16):
                    for dow in range(1, 8):
                        d = date_for_week(w, dow, config)
                        self.assertEqual(d.isoweekday(), dow)
                        self.assertEqual(week_number(d, config), w)

    def test_known_date(self) -> None:
        config = WeekConfig(semester_start_date=START)
        self.assertEqual(date_for_week(3, 2, config), date(2025, 3, 11))


if __name__ == "__main__":
    unittest.main()
