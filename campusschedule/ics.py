"""
iCalendar (.ics) export and import.

Export writes one VCALENDAR for a schedule. Each course becomes either
- a single weekly VEVENT with RRULE (+ EXDATE for missing weeks), when its
  weeks cover at least half of the range between first and last week, or
- one VEVENT per week otherwise (sparse courses, e.g. weeks 1 and 9).

Import reads the same subset back (and what common calendar apps produce):
VEVENTs with SUMMARY, LOCATION, DESCRIPTION, DTSTART, DTEND, optional weekly
RRULE and EXDATE. Broken events are skipped and reported, never fatal.

All times are local wall-clock times; TZID parameters and a trailing 'Z'
are accepted but not converted.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from campusschedule.errors import CourseValidationError, ICSParseError, ImportNotice
from campusschedule.model import Course, Schedule, WeekConfig, is_hex_color
from campusschedule.timeslots import SlotRange, TimeSlotTable
from campusschedule.weeks import date_for_week, week_number, week_start


PRODID = "-//CampusSchedule//EN"
UID_DOMAIN = "campusschedule"
COLOR_PROPERTY = "X-CAMPUS-COLOR"

DEFAULT_MAX_WEEKS = 52

BYDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

_LOCAL_FORMAT = "%Y%m%dT%H%M%S"


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def _ics_escape(text: str) -> str:
    """
    Escape text for ICS TEXT values.
    """
    return (
        text.replace("\\", "\\\\").replace("\r\n", "\\n").replace("\n", "\\n").replace(";", "\\;").replace(",", "\\,")
    )


_ESCAPED = re.compile(r"\\([\\;,nN])")


def _ics_unescape(text: str) -> str:
    return _ESCAPED.sub(lambda m: "\n" if m.group(1) in "nN" else m.group(1), text)


def _fold(line: str) -> str:
    """
    Fold a content line at 75 octets without splitting a UTF-8 character.
    """
    if len(line.encode("utf-8")) <= 75:
        return line

    parts: List[str] = []
    cur = ""
    cur_len = 0
    limit = 75
    for ch in line:
        n = len(ch.encode("utf-8"))
        if cur_len + n > limit:
            parts.append(cur)
            cur = ch
            cur_len = n
            # continuation lines start with a space, which counts too
            limit = 74
        else:
            cur += ch
            cur_len += n
    parts.append(cur)
    return "\r\n ".join(parts)


def _unfold(text: str) -> List[str]:
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    lines: List[str] = []
    for raw in normalized.split("\n"):
        if raw[:1] in (" ", "\t") and lines:
            lines[-1] += raw[1:]
        else:
            lines.append(raw)
    return lines


def _dt_local(value: datetime) -> str:
    return value.strftime(_LOCAL_FORMAT)


def _utc_stamp(value: datetime) -> str:
    # naive values are local wall-clock time
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y%m%dT%H%M%SZ")


def _digest(*parts: str) -> str:
    h = hashlib.sha1("\x1f".join(parts).encode("utf-8"))
    return h.hexdigest()


def course_uid(course: Course, schedule: Schedule) -> str:
    """
    Stable UID base for a course: repeated exports give the same value.
    """
    return _digest(course.id, schedule.id)[:24]


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def uses_rrule(weeks: Sequence[int]) -> bool:
    """
    True when the weekly RRULE form should be used for these weeks.
    """
    ordered = sorted(set(weeks))
    span = ordered[-1] - ordered[0] + 1
    return len(ordered) * 2 >= span


def _event_lines(
    uid: str,
    stamp: str,
    course: Course,
    day: date,
    rng: SlotRange,
    recurrence: Sequence[str] = (),
) -> List[str]:
    lines = [
        "BEGIN:VEVENT",
        f"UID:{uid}@{UID_DOMAIN}",
        f"DTSTAMP:{stamp}",
        f"DTSTART:{_dt_local(datetime.combine(day, rng.start))}",
        f"DTEND:{_dt_local(datetime.combine(day, rng.end))}",
    ]
    lines.extend(recurrence)
    lines.append(f"SUMMARY:{_ics_escape(course.name)}")
    if course.location:
        lines.append(f"LOCATION:{_ics_escape(course.location)}")
    if course.instructor:
        lines.append(f"DESCRIPTION:{_ics_escape(course.instructor)}")
    lines.append(f"{COLOR_PROPERTY}:{course.color}")
    lines.append("END:VEVENT")
    return lines


def export_ics(
    schedule: Schedule,
    courses: Sequence[Course],
    config: WeekConfig,
    table: TimeSlotTable,
) -> str:
    """
    Render a schedule and its courses as iCalendar text (CRLF line endings).

    The output depends only on the arguments, so exporting an unchanged
    schedule twice yields identical bytes.
    """
    lines: List[str] = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        f"X-WR-CALNAME:{_ics_escape(schedule.name)}",
    ]
    if schedule.term_name:
        lines.append(f"X-WR-CALDESC:{_ics_escape(schedule.term_name)}")

    stamp = _utc_stamp(schedule.created_at)
    event_count = 0

    for course in courses:
        table.validate_course(course, config)
        rng = table.course_range(course, config)
        weeks = course.sorted_weeks()
        uid = course_uid(course, schedule)
        byday = BYDAY_CODES[course.day_of_week - 1]

        if uses_rrule(weeks):
            span = weeks[-1] - weeks[0] + 1
            recurrence = [f"RRULE:FREQ=WEEKLY;BYDAY={byday};COUNT={span}"]
            present = set(weeks)
            for w in range(weeks[0], weeks[-1] + 1):
                if w in present:
                    continue
                missing = datetime.combine(date_for_week(w, course.day_of_week, config), rng.start)
                recurrence.append(f"EXDATE:{_dt_local(missing)}")
            first = date_for_week(weeks[0], course.day_of_week, config)
            lines.extend(_event_lines(uid, stamp, course, first, rng, recurrence))
            event_count += 1
        else:
            for w in weeks:
                day = date_for_week(w, course.day_of_week, config)
                lines.extend(_event_lines(f"{uid}-w{w}", stamp, course, day, rng))
                event_count += 1

    lines.append("END:VCALENDAR")
    logger.info("Exported {} courses as {} events for schedule {!r}", len(courses), event_count, schedule.name)

    # ICS standard uses CRLF
    return "\r\n".join(_fold(line) for line in lines) + "\r\n"


def write_ics(text: str, out_path: str | Path) -> Path:
    """
    Write exported text to a file, creating parent directories.
    """
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(text.encode("utf-8"))
    return out


def read_ics(path: str | Path) -> str:
    return Path(path).read_bytes().decode("utf-8-sig")


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


@dataclass
class ImportResult:
    """
    Schedule fields and courses recovered from an ICS document.
    """

    schedule_id: str
    name: str
    term_name: str
    semester_start_date: date
    courses: List[Course]
    warnings: List[ImportNotice] = field(default_factory=list)

    def to_schedule(self, created_at: datetime, is_active: bool = False) -> Schedule:
        return Schedule(
            id=self.schedule_id,
            name=self.name,
            term_name=self.term_name,
            created_at=created_at,
            is_active=is_active,
            semester_start_date=self.semester_start_date,
        )


@dataclass
class _Property:
    name: str
    params: Dict[str, str]
    value: str


@dataclass
class _RawEvent:
    uid: str
    summary: str
    location: str
    description: str
    color: str
    start: datetime
    end: datetime
    dates: List[datetime] = field(default_factory=list)


@dataclass
class _CourseDraft:
    name: str
    instructor: str
    location: str
    color: str
    day_of_week: int
    time_slot: int
    duration: int
    weeks: set = field(default_factory=set)


class _SkipEvent(Exception):
    """Internal: abandon the current VEVENT with a reason."""


def _split_content_line(line: str) -> Optional[_Property]:
    """
    Split 'NAME;PARAM=x:VALUE' into its parts. Colons inside quoted
    parameter values do not end the name part.
    """
    in_quotes = False
    for i, ch in enumerate(line):
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == ":" and not in_quotes:
            head, value = line[:i], line[i + 1:]
            break
    else:
        return None

    pieces = head.split(";")
    params: Dict[str, str] = {}
    for piece in pieces[1:]:
        if "=" in piece:
            k, v = piece.split("=", 1)
            params[k.strip().upper()] = v.strip().strip('"')
    return _Property(name=pieces[0].strip().upper(), params=params, value=value.strip())


def _parse_dt(prop: _Property) -> Tuple[datetime, bool]:
    """
    Parse a DATE-TIME or DATE value. Returns (value, is_date_only).
    Raises ValueError for unparsable input.
    """
    raw = prop.value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1]
    if prop.params.get("VALUE") == "DATE" or (len(raw) == 8 and raw.isdigit()):
        return datetime.strptime(raw, "%Y%m%d"), True
    for fmt in (_LOCAL_FORMAT, "%Y%m%dT%H%M"):
        try:
            return datetime.strptime(raw, fmt), False
        except ValueError:
            continue
    raise ValueError(f"unparsable date-time {prop.value!r}")


def _parse_rule(value: str) -> Dict[str, str]:
    rule: Dict[str, str] = {}
    for part in value.split(";"):
        if "=" in part:
            k, v = part.split("=", 1)
            rule[k.strip().upper()] = v.strip().upper()
    return rule


def _expand_rrule(start: datetime, value: str, max_weeks: int) -> Tuple[List[datetime], bool]:
    """
    Expand a weekly RRULE into concrete start times.

    Bounded by COUNT, UNTIL and `max_weeks` (whichever is hit first).
    Returns (dates, truncated) where truncated means COUNT was cut short
    by the horizon. Raises _SkipEvent for rules outside the weekly subset.
    """
    rule = _parse_rule(value)
    if rule.get("FREQ") != "WEEKLY":
        raise _SkipEvent(f"unsupported recurrence {value!r} (only FREQ=WEEKLY)")

    try:
        interval = int(rule.get("INTERVAL", "1"))
        count = int(rule["COUNT"]) if "COUNT" in rule else None
    except ValueError:
        raise _SkipEvent(f"malformed recurrence {value!r}")
    if interval < 1 or (count is not None and count < 1):
        raise _SkipEvent(f"malformed recurrence {value!r}")

    until: Optional[datetime] = None
    if "UNTIL" in rule:
        try:
            parsed, date_only = _parse_dt(_Property("UNTIL", {}, rule["UNTIL"]))
        except ValueError:
            raise _SkipEvent(f"malformed UNTIL in {value!r}")
        until = datetime.combine(parsed.date(), time.max) if date_only else parsed

    days: List[int] = []
    for code in rule.get("BYDAY", "").split(","):
        code = code.strip()[-2:]
        if not code:
            continue
        if code not in BYDAY_CODES:
            raise _SkipEvent(f"unsupported BYDAY {code!r}")
        days.append(BYDAY_CODES.index(code) + 1)
    if not days:
        days = [start.isoweekday()]
    days = sorted(set(days))

    monday = start.date() - timedelta(days=start.isoweekday() - 1)
    out: List[datetime] = []
    for k in range(0, max_weeks, interval):
        week_begin = monday + timedelta(days=7 * k)
        for dow in days:
            dt = datetime.combine(week_begin + timedelta(days=dow - 1), start.time())
            if dt < start:
                continue
            if until is not None and dt > until:
                return out, False
            out.append(dt)
            if count is not None and len(out) >= count:
                return out, False

    truncated = count is not None and len(out) < count
    return out, truncated


def _parse_components(lines: List[str]) -> Tuple[Dict[str, str], List[List[_Property]]]:
    """
    Collect calendar-level properties and the property lists of each VEVENT.

    Nested components inside a VEVENT (e.g. VALARM) are ignored.
    """
    calendar_props: Dict[str, str] = {}
    events: List[List[_Property]] = []
    current: Optional[List[_Property]] = None
    nested = 0

    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        upper = line.upper()
        if upper == "BEGIN:VEVENT":
            current = []
            nested = 0
            continue
        if upper == "END:VEVENT":
            if current is not None:
                events.append(current)
            current = None
            continue
        if current is not None:
            if upper.startswith("BEGIN:"):
                nested += 1
                continue
            if upper.startswith("END:"):
                nested = max(0, nested - 1)
                continue
            if nested:
                continue
            prop = _split_content_line(line)
            if prop is not None:
                current.append(prop)
            continue

        prop = _split_content_line(line)
        if prop is not None and prop.name not in ("BEGIN", "END"):
            calendar_props.setdefault(prop.name, prop.value)

    return calendar_props, events


def _first(props: List[_Property], name: str) -> Optional[_Property]:
    return next((p for p in props if p.name == name), None)


def _build_event(props: List[_Property], max_weeks: int, notices: List[ImportNotice]) -> _RawEvent:
    uid_prop = _first(props, "UID")
    summary_prop = _first(props, "SUMMARY")
    uid = uid_prop.value if uid_prop else ""
    summary = _ics_unescape(summary_prop.value) if summary_prop else ""

    start_prop = _first(props, "DTSTART")
    if start_prop is None:
        raise _SkipEvent("missing DTSTART")
    try:
        start, start_date_only = _parse_dt(start_prop)
    except ValueError as exc:
        raise _SkipEvent(str(exc))
    if start_date_only:
        raise _SkipEvent("all-day event has no class time")

    end_prop = _first(props, "DTEND")
    if end_prop is None:
        raise _SkipEvent("missing DTEND")
    try:
        end, _ = _parse_dt(end_prop)
    except ValueError as exc:
        raise _SkipEvent(str(exc))
    if end <= start:
        raise _SkipEvent("zero-length event")
    if end.date() != start.date():
        raise _SkipEvent("event spans more than one day")

    location_prop = _first(props, "LOCATION")
    description_prop = _first(props, "DESCRIPTION")
    color_prop = _first(props, COLOR_PROPERTY)
    event = _RawEvent(
        uid=uid,
        summary=summary or "Untitled course",
        location=_ics_unescape(location_prop.value) if location_prop else "",
        description=_ics_unescape(description_prop.value) if description_prop else "",
        color=color_prop.value if color_prop else "",
        start=start,
        end=end,
    )

    rrule_prop = _first(props, "RRULE")
    if rrule_prop is not None:
        dates, truncated = _expand_rrule(start, rrule_prop.value, max_weeks)
        if truncated:
            notices.append(ImportNotice(uid, event.summary, f"recurrence cut off after {max_weeks} weeks"))
    else:
        dates = [start]

    excluded: set = set()
    for prop in props:
        if prop.name != "EXDATE":
            continue
        for value in prop.value.split(","):
            try:
                ex, _ = _parse_dt(_Property("EXDATE", prop.params, value))
            except ValueError:
                notices.append(ImportNotice(uid, event.summary, f"ignored unparsable EXDATE {value!r}"))
                continue
            excluded.add(ex.date())

    event.dates = [d for d in dates if d.date() not in excluded]
    if not event.dates:
        raise _SkipEvent("every occurrence is excluded")
    return event


def _term_name(earliest: date) -> str:
    season = "Spring" if 2 <= earliest.month <= 7 else "Autumn"
    return f"{earliest.year} {season}"


def import_ics(
    text: str,
    config: WeekConfig,
    table: TimeSlotTable,
    *,
    infer_semester_start: bool = False,
    best_effort: bool = False,
    max_weeks: int = DEFAULT_MAX_WEEKS,
    schedule_id: Optional[str] = None,
) -> ImportResult:
    """
    Turn iCalendar text back into a schedule's fields and its courses.

    - Events sharing (SUMMARY, LOCATION, weekday, first period) fold into one
      course whose weeks collect every occurrence.
    - With infer_semester_start, week 1 is the grid week of the earliest
      occurrence in the file instead of config.semester_start_date.
    - With best_effort, events whose start matches no period snap to the
      nearest one instead of being dropped.

    Raises ICSParseError only if the text is not a calendar at all.
    """
    lines = _unfold(text.lstrip("\ufeff"))
    if not any(line.strip().upper() == "BEGIN:VCALENDAR" for line in lines):
        raise ICSParseError("input is not an iCalendar document (no BEGIN:VCALENDAR)")

    calendar_props, components = _parse_components(lines)
    notices: List[ImportNotice] = []

    events: List[_RawEvent] = []
    for props in components:
        try:
            events.append(_build_event(props, max_weeks, notices))
        except _SkipEvent as exc:
            uid_prop = _first(props, "UID")
            summary_prop = _first(props, "SUMMARY")
            notices.append(
                ImportNotice(
                    uid=uid_prop.value if uid_prop else "",
                    summary=_ics_unescape(summary_prop.value) if summary_prop else "",
                    reason=str(exc),
                )
            )

    if not components:
        notices.append(ImportNotice("", "", "calendar contains no events"))

    all_dates = [d for ev in events for d in ev.dates]
    earliest = min(all_dates).date() if all_dates else None

    cfg = config
    if infer_semester_start and earliest is not None:
        cfg = config.with_semester_start(week_start(earliest, config.week_start_day))
        logger.debug("Inferred semester start {} from earliest event {}", cfg.semester_start_date, earliest)

    name = _ics_unescape(calendar_props.get("X-WR-CALNAME", "")) or "Imported schedule"
    if "X-WR-CALDESC" in calendar_props:
        term_name = _ics_unescape(calendar_props["X-WR-CALDESC"])
    else:
        term_name = _term_name(earliest or cfg.semester_start_date)
    sid = schedule_id or _digest("schedule", name, term_name)[:16]

    drafts: Dict[Tuple[str, str, int, int], _CourseDraft] = {}
    for ev in events:
        slot = table.slot_for_time(ev.start.time(), cfg)
        if slot is None:
            if not best_effort:
                notices.append(
                    ImportNotice(ev.uid, ev.summary, f"no class period starts near {ev.start:%H:%M}; event omitted")
                )
                continue
            slot = table.nearest_slot(ev.start.time(), cfg)
            notices.append(ImportNotice(ev.uid, ev.summary, f"start {ev.start:%H:%M} snapped to period {slot}"))

        duration, exact = table.span_for(slot, ev.end.time(), cfg)
        if not exact:
            notices.append(
                ImportNotice(
                    ev.uid,
                    ev.summary,
                    f"end {ev.end:%H:%M} is not a period end; rounded up to {duration} period(s)",
                )
            )

        before_term = 0
        for occ in ev.dates:
            w = week_number(occ.date(), cfg)
            if w <= 0:
                before_term += 1
                continue
            dow = occ.isoweekday()
            key = (ev.summary, ev.location, dow, slot)
            draft = drafts.get(key)
            if draft is None:
                draft = _CourseDraft(
                    name=ev.summary,
                    instructor=ev.description,
                    location=ev.location,
                    color=ev.color,
                    day_of_week=dow,
                    time_slot=slot,
                    duration=duration,
                )
                drafts[key] = draft
            elif draft.duration != duration:
                notices.append(
                    ImportNotice(
                        ev.uid,
                        ev.summary,
                        f"length differs from earlier events of this course; keeping {max(draft.duration, duration)} period(s)",
                    )
                )
                draft.duration = max(draft.duration, duration)
            draft.weeks.add(w)

        if before_term:
            notices.append(
                ImportNotice(ev.uid, ev.summary, f"{before_term} occurrence(s) before the semester start ignored")
            )

    courses: List[Course] = []
    for key, draft in drafts.items():
        try:
            course = Course(
                id=_digest(sid, *map(str, key))[:16],
                name=draft.name,
                instructor=draft.instructor,
                location=draft.location,
                weeks=frozenset(draft.weeks),
                day_of_week=draft.day_of_week,
                time_slot=draft.time_slot,
                duration=draft.duration,
                color=draft.color if is_hex_color(draft.color) else "",
                schedule_id=sid,
            )
        except CourseValidationError as exc:
            notices.append(ImportNotice("", draft.name, f"invalid course: {exc}"))
            continue
        courses.append(course)

    courses.sort(key=lambda c: (c.name, c.day_of_week, c.time_slot))

    for notice in notices:
        logger.warning("ICS import: {}", notice)
    logger.info("Imported {} courses from {} events ({} warnings)", len(courses), len(events), len(notices))

    return ImportResult(
        schedule_id=sid,
        name=name,
        term_name=term_name,
        semester_start_date=cfg.semester_start_date,
        courses=courses,
        warnings=notices,
    )
