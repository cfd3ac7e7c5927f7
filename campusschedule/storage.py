"""
Persistent storage for schedules and their courses.

The engine never talks to a particular persistence technology. It only
needs a keyed byte store:

    get(key) -> bytes | None
    put(key, data)
    delete(key)

Two stores ship with the package:
- MemoryStore: a dict, for tests and short-lived sessions
- DirectoryStore: one file per key under a directory

Each schedule is written as one JSON document holding the schedule and all
of its courses, so deleting the key deletes the courses with it. A user may
keep several schedules (one per term); a small index per user lists their
ids, and at most one of them is active.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

from loguru import logger

from campusschedule.errors import CourseValidationError
from campusschedule.model import Course, Schedule, activate


SCHEMA_VERSION = 2


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[bytes]: ...

    def put(self, key: str, data: bytes) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    def __init__(self) -> None:
        self._data: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def put(self, key: str, data: bytes) -> None:
        self._data[key] = bytes(data)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return sorted(self._data)


class DirectoryStore:
    """
    Stores each key as a file inside `root`.

    Keys are hashed into file names so any string (user names, paths with
    slashes) is a valid key.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
        return self.root / f"{digest}.json"

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def put(self, key: str, data: bytes) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)

    def delete(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()


def _owner(owner: str) -> str:
    return owner.strip().lower()


def schedule_key(owner: str, schedule_id: str) -> str:
    """
    Store key of one schedule kept for one user.
    """
    return f"schedule:{_owner(owner)}:{schedule_id}"


def index_key(owner: str) -> str:
    """
    Store key of the list of schedule ids a user owns.
    """
    return f"schedules:{_owner(owner)}"


def _course_to_dict(course: Course) -> Dict[str, Any]:
    return {
        "id": course.id,
        "name": course.name,
        "instructor": course.instructor,
        "location": course.location,
        "weeks": course.sorted_weeks(),
        "day_of_week": course.day_of_week,
        "time_slot": course.time_slot,
        "duration": course.duration,
        "color": course.color,
        "schedule_id": course.schedule_id,
    }


def _course_from_dict(data: Dict[str, Any]) -> Course:
    return Course(
        id=str(data["id"]),
        name=str(data["name"]),
        instructor=str(data.get("instructor", "")),
        location=str(data.get("location", "")),
        weeks=frozenset(data["weeks"]),
        day_of_week=data["day_of_week"],
        time_slot=data["time_slot"],
        duration=data["duration"],
        color=str(data.get("color", "")),
        schedule_id=str(data.get("schedule_id", "")),
    )


def dump_schedule(schedule: Schedule, courses: List[Course]) -> bytes:
    start = schedule.semester_start_date
    payload = {
        "version": SCHEMA_VERSION,
        "schedule": {
            "id": schedule.id,
            "name": schedule.name,
            "term_name": schedule.term_name,
            "created_at": schedule.created_at.isoformat(),
            "is_active": schedule.is_active,
            "semester_start_date": start.isoformat() if start is not None else None,
        },
        "courses": [_course_to_dict(c) for c in courses],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")


def parse_schedule(data: bytes) -> Optional[Tuple[Schedule, List[Course]]]:
    """
    Decode a stored schedule.

    Returns None if the payload is corrupted or does not validate.
    It never crashes the application on bad stored data.
    Version 1 payloads have no semester start and load with None.
    """
    try:
        payload = json.loads(data.decode("utf-8"))
        raw = payload["schedule"]
        start = raw.get("semester_start_date")
        schedule = Schedule(
            id=str(raw["id"]),
            name=str(raw["name"]),
            term_name=str(raw.get("term_name", "")),
            created_at=datetime.fromisoformat(raw["created_at"]),
            is_active=bool(raw.get("is_active", False)),
            semester_start_date=date.fromisoformat(start) if start else None,
        )
        courses = [_course_from_dict(c) for c in payload.get("courses", [])]
    except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
        # CourseValidationError is a ValueError
        logger.warning("Ignoring unreadable stored schedule: {}", exc)
        return None
    return schedule, courses


def list_schedule_ids(store: KeyValueStore, owner: str) -> List[str]:
    """
    Ids of the schedules a user owns, in the order they were first saved.
    A missing or unreadable index means no schedules.
    """
    data = store.get(index_key(owner))
    if data is None:
        return []
    try:
        ids = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable schedule index of {!r}: {}", owner, exc)
        return []
    if not isinstance(ids, list):
        logger.warning("Ignoring schedule index of {!r}: expected a list", owner)
        return []
    return [str(i) for i in ids]


def _write_index(store: KeyValueStore, owner: str, ids: List[str]) -> None:
    store.put(index_key(owner), json.dumps(ids).encode("utf-8"))


def save_schedule(store: KeyValueStore, owner: str, schedule: Schedule, courses: List[Course]) -> None:
    """
    Store this schedule and its courses for `owner`, replacing any earlier
    version with the same id. Other schedules of the owner are untouched.

    Every course must belong to this schedule or not be owned yet.
    """
    for c in courses:
        if c.schedule_id and c.schedule_id != schedule.id:
            raise CourseValidationError("schedule_id", f"course {c.id} belongs to schedule {c.schedule_id}")

    store.put(schedule_key(owner, schedule.id), dump_schedule(schedule, courses))
    ids = list_schedule_ids(store, owner)
    if schedule.id not in ids:
        ids.append(schedule.id)
        _write_index(store, owner, ids)
    logger.debug("Saved schedule {!r} with {} courses for {}", schedule.name, len(courses), owner)


def load_schedule(store: KeyValueStore, owner: str, schedule_id: str) -> Optional[Tuple[Schedule, List[Course]]]:
    data = store.get(schedule_key(owner, schedule_id))
    if data is None:
        return None
    return parse_schedule(data)


def load_schedules(store: KeyValueStore, owner: str) -> List[Tuple[Schedule, List[Course]]]:
    """
    Every readable schedule of `owner`; unreadable ones are skipped.
    """
    out = []
    for schedule_id in list_schedule_ids(store, owner):
        loaded = load_schedule(store, owner, schedule_id)
        if loaded is not None:
            out.append(loaded)
    return out


def load_active_schedule(store: KeyValueStore, owner: str) -> Optional[Tuple[Schedule, List[Course]]]:
    """
    The owner's active schedule, or None if none is active.
    """
    return next((item for item in load_schedules(store, owner) if item[0].is_active), None)


def activate_schedule(store: KeyValueStore, owner: str, schedule_id: str) -> Schedule:
    """
    Make `schedule_id` the owner's only active schedule.

    The others are saved again as inactive, never deleted.
    Raises KeyError if the owner has no readable schedule with that id.
    """
    loaded = load_schedules(store, owner)
    courses_by_id = {s.id: courses for s, courses in loaded}
    before = {s.id: s.is_active for s, _ in loaded}

    active = None
    for schedule in activate([s for s, _ in loaded], schedule_id):
        if schedule.is_active != before[schedule.id]:
            store.put(schedule_key(owner, schedule.id), dump_schedule(schedule, courses_by_id[schedule.id]))
        if schedule.is_active:
            active = schedule
    logger.debug("Activated schedule {} for {}", schedule_id, owner)
    return active


def delete_schedule(store: KeyValueStore, owner: str, schedule_id: str) -> None:
    """
    Delete a schedule together with all of its courses.
    """
    store.delete(schedule_key(owner, schedule_id))
    ids = list_schedule_ids(store, owner)
    if schedule_id in ids:
        ids.remove(schedule_id)
        _write_index(store, owner, ids)
