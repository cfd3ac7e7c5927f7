"""
Unit tests for schedule persistence.

These tests focus on:
- Round trip of a schedule, its courses and its semester start
- Several schedules per user, at most one active, none lost on activation
- Corrupt or missing data loading as "nothing stored"
"""

import tempfile
import unittest
from datetime import date, datetime

from campusschedule.errors import CourseValidationError
from campusschedule.model import Course, Schedule
from campusschedule.storage import (
    DirectoryStore,
    MemoryStore,
    activate_schedule,
    delete_schedule,
    dump_schedule,
    index_key,
    list_schedule_ids,
    load_active_schedule,
    load_schedule,
    load_schedules,
    save_schedule,
    schedule_key,
)


def _schedule(sid: str = "s1", name: str = "Spring", active: bool = True) -> Schedule:
    return Schedule(
        id=sid,
        name=name,
        term_name="2025 Spring",
        created_at=datetime(2025, 2, 20, 9, 30),
        is_active=active,
        semester_start_date=date(2025, 2, 24),
    )


def _courses():
    return [
        Course(
            id="c1",
            name="高等数学",
            instructor="Dr. Li",
            location="Room 101",
            weeks={1, 2, 3, 5},
            day_of_week=2,
            time_slot=3,
            duration=2,
            schedule_id="s1",
        ),
        Course(id="c2", name="Lab", instructor="", location="", weeks={9}, day_of_week=4, time_slot=6, duration=1),
    ]


class StoreContract:
    """
    Shared checks, mixed into one TestCase per store implementation.
    """

    def make_store(self):
        raise NotImplementedError

    def test_round_trip(self) -> None:
        store = self.make_store()
        save_schedule(store, "Alice", _schedule(), _courses())

        loaded = load_schedule(store, "alice", "s1")
        self.assertIsNotNone(loaded)
        schedule, courses = loaded
        self.assertEqual(schedule, _schedule())
        self.assertEqual(schedule.semester_start_date, date(2025, 2, 24))
        self.assertEqual(courses, _courses())

    def test_schedule_without_semester_start(self) -> None:
        store = self.make_store()
        schedule = Schedule(id="s1", name="Spring", term_name="", created_at=datetime(2025, 2, 20))
        save_schedule(store, "alice", schedule, [])
        self.assertIsNone(load_schedule(store, "alice", "s1")[0].semester_start_date)

    def test_missing_key(self) -> None:
        store = self.make_store()
        self.assertIsNone(load_schedule(store, "nobody", "s1"))
        self.assertEqual(load_schedules(store, "nobody"), [])
        self.assertIsNone(load_active_schedule(store, "nobody"))

    def test_corrupt_payload(self) -> None:
        store = self.make_store()
        save_schedule(store, "alice", _schedule(), [])
        store.put(schedule_key("alice", "s1"), b"{not json")
        self.assertIsNone(load_schedule(store, "alice", "s1"))
        self.assertEqual(load_schedules(store, "alice"), [])

    def test_invalid_course_payload(self) -> None:
        store = self.make_store()
        data = dump_schedule(_schedule(), _courses()).replace(b'"duration": 2', b'"duration": 0')
        store.put(schedule_key("alice", "s1"), data)
        self.assertIsNone(load_schedule(store, "alice", "s1"))

    def test_corrupt_index(self) -> None:
        store = self.make_store()
        store.put(index_key("alice"), b"[broken")
        self.assertEqual(list_schedule_ids(store, "alice"), [])
        save_schedule(store, "alice", _schedule(), [])
        self.assertEqual(list_schedule_ids(store, "alice"), ["s1"])

    def test_several_schedules_are_kept(self) -> None:
        store = self.make_store()
        save_schedule(store, "alice", _schedule("old", "Autumn"), [])
        save_schedule(store, "alice", _schedule("new", "Spring", active=False), [])
        activate_schedule(store, "alice", "new")

        loaded = {s.id: s.is_active for s, _ in load_schedules(store, "alice")}
        self.assertEqual(loaded, {"old": False, "new": True})
        self.assertEqual(load_active_schedule(store, "alice")[0].name, "Spring")

        # and back again
        activate_schedule(store, "alice", "old")
        self.assertEqual(load_active_schedule(store, "alice")[0].id, "old")
        self.assertEqual(len(load_schedules(store, "alice")), 2)

    def test_saving_same_id_replaces_it(self) -> None:
        store = self.make_store()
        save_schedule(store, "alice", _schedule(), _courses())
        save_schedule(store, "alice", _schedule(name="Renamed"), [])
        self.assertEqual(list_schedule_ids(store, "alice"), ["s1"])
        schedule, courses = load_schedule(store, "alice", "s1")
        self.assertEqual((schedule.name, courses), ("Renamed", []))

    def test_activate_unknown_id(self) -> None:
        store = self.make_store()
        save_schedule(store, "alice", _schedule(), [])
        with self.assertRaises(KeyError):
            activate_schedule(store, "alice", "missing")
        # nothing changed
        self.assertTrue(load_schedule(store, "alice", "s1")[0].is_active)

    def test_owners_are_separate(self) -> None:
        store = self.make_store()
        save_schedule(store, "alice", _schedule(), [])
        self.assertEqual(load_schedules(store, "bob"), [])

    def test_delete_removes_courses(self) -> None:
        store = self.make_store()
        save_schedule(store, "alice", _schedule(), _courses())
        delete_schedule(store, "alice", "s1")
        self.assertIsNone(load_schedule(store, "alice", "s1"))
        self.assertEqual(list_schedule_ids(store, "alice"), [])
        # deleting twice is harmless
        delete_schedule(store, "alice", "s1")

    def test_foreign_course_rejected(self) -> None:
        foreign = Course(
            name="X", instructor="", location="", weeks={1}, day_of_week=1, time_slot=1, schedule_id="other"
        )
        store = self.make_store()
        with self.assertRaises(CourseValidationError) as ctx:
            save_schedule(store, "alice", _schedule(), [foreign])
        self.assertEqual(ctx.exception.field, "schedule_id")
        self.assertEqual(list_schedule_ids(store, "alice"), [])


class TestMemoryStore(StoreContract, unittest.TestCase):
    def make_store(self):
        return MemoryStore()

    def test_keys(self) -> None:
        store = MemoryStore()
        save_schedule(store, " Bob ", _schedule(), [])
        self.assertEqual(store.keys(), ["schedule:bob:s1", "schedules:bob"])

    def test_version_one_payload_loads(self) -> None:
        store = MemoryStore()
        store.put(
            schedule_key("bob", "s1"),
            b'{"version": 1, "schedule": {"id": "s1", "name": "Old", "created_at": "2024-09-01T08:00:00"}, "courses": []}',
        )
        schedule, courses = load_schedule(store, "bob", "s1")
        self.assertEqual(schedule.name, "Old")
        self.assertIsNone(schedule.semester_start_date)
        self.assertEqual(courses, [])


class TestDirectoryStore(StoreContract, unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)

    def make_store(self):
        return DirectoryStore(self._tmp.name)

    def test_any_key_is_a_valid_file_name(self) -> None:
        store = self.make_store()
        store.put("schedule:a/b\\c", b"data")
        self.assertEqual(store.get("schedule:a/b\\c"), b"data")


if __name__ == "__main__":
    unittest.main()
