"""
CLI (Command Line Interface).

This module provides quick terminal commands, e.g.:

    campusschedule weeknum 2025-03-11
    campusschedule day 2025-03-11
    campusschedule week 2025-03-11
    campusschedule conflicts 2025-03-11
    campusschedule import timetable.ics --infer-start
    campusschedule export out.ics
    campusschedule schedules
    campusschedule activate <schedule id>
    campusschedule notify --now 2025-03-10T07:00

Note:
- Settings (semester start, week start day, period table...) come from
  CAMPUS_SCHEDULE_* environment variables, see campusschedule/config.py
- Schedules are stored under --data-dir per --owner; day/week/export/...
  use the active one and count weeks from its stored semester start
"""

from __future__ import annotations

import argparse
import sys
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import List, Optional, Tuple

from loguru import logger
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from campusschedule.config import Settings
from campusschedule.errors import ICSParseError
from campusschedule.ics import export_ics, import_ics, read_ics, write_ics
from campusschedule.layout import find_conflicts, layout_day, layout_week
from campusschedule.model import Course, Schedule, WeekConfig
from campusschedule.notifications import course_notifications
from campusschedule.recurrence import occurrences_between, occurrences_for_week, occurrences_on
from campusschedule.storage import DirectoryStore, activate_schedule, load_active_schedule, load_schedules, save_schedule
from campusschedule.weeks import week_number

console = Console()

WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def configure_logging(verbose: bool = False) -> None:
    """
    Route package logs to stderr. Quiet (warnings only) unless verbose.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "WARNING",
        format="<level>{level: <8}</level> | {name}:{function} - {message}",
    )
    logger.enable("campusschedule")


def _iso_date(text: str) -> date:
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {text!r}")


def _iso_datetime(text: str) -> datetime:
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DDTHH:MM, got {text!r}")


def _load(settings: Settings, quiet: bool = False) -> Optional[Tuple[Schedule, List[Course]]]:
    """
    Load the active schedule of the configured owner.
    Prints a hint (unless quiet) and returns None if there is nothing to show.
    """
    store = DirectoryStore(settings.data_dir)
    loaded = load_active_schedule(store, settings.owner)
    if loaded is None and not quiet:
        console.print("No active schedule. Import one with: campusschedule import <file.ics>")
    return loaded


def _week_config(settings: Settings, schedule: Optional[Schedule]) -> WeekConfig:
    """
    Settings-based WeekConfig, counting weeks from the schedule's own
    semester start when it has one.
    """
    config = settings.week_config()
    if schedule is not None and schedule.semester_start_date is not None:
        return config.with_semester_start(schedule.semester_start_date)
    return config


def _blocks_table(title: str, blocks) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAVY)
    table.add_column("Day")
    table.add_column("Time")
    table.add_column("Course")
    table.add_column("Location")
    table.add_column("Week", justify="right")
    table.add_column("Column", justify="right")

    for b in blocks:
        occ = b.occurrence
        table.add_row(
            f"{WEEKDAYS[b.day_of_week - 1]} {occ.date.isoformat()}",
            f"{b.start:%H:%M}-{b.end:%H:%M}",
            f"[{b.course.color}]■[/] {escape(b.course.name)}",
            escape(b.course.location),
            str(occ.week),
            f"{b.column + 1}/{b.total_columns}",
        )
    return table


def _cmd_weeknum(args: argparse.Namespace, settings: Settings) -> int:
    loaded = _load(settings, quiet=True)
    config = _week_config(settings, loaded[0] if loaded else None)
    w = week_number(args.date, config)
    if w <= 0:
        console.print(f"{args.date.isoformat()}: before the semester starts (week {w})")
    else:
        console.print(f"{args.date.isoformat()}: week {w}")
    return 0


def _cmd_day(args: argparse.Namespace, settings: Settings) -> int:
    loaded = _load(settings)
    if loaded is None:
        return 0
    schedule, courses = loaded

    config = _week_config(settings, schedule)
    occs = occurrences_on(args.date, courses, config, settings.time_slot_table())
    if not occs:
        console.print(f"No classes on {args.date.isoformat()}.")
        return 0

    console.print(_blocks_table(f"Classes on {args.date.isoformat()}", layout_day(occs)))
    return 0


def _cmd_week(args: argparse.Namespace, settings: Settings) -> int:
    loaded = _load(settings)
    if loaded is None:
        return 0
    schedule, courses = loaded

    config = _week_config(settings, schedule)
    blocks = layout_week(args.date, courses, config, settings.time_slot_table())
    w = week_number(args.date, config)
    if not blocks:
        console.print(f"No classes in the week of {args.date.isoformat()} (week {w}).")
        return 0

    console.print(_blocks_table(f"{schedule.name}: week {w}", blocks))
    return 0


def _cmd_conflicts(args: argparse.Namespace, settings: Settings) -> int:
    """
    Print overlapping classes in the week containing the given date.
    """
    loaded = _load(settings)
    if loaded is None:
        return 0
    schedule, courses = loaded

    occs = occurrences_for_week(args.date, courses, _week_config(settings, schedule), settings.time_slot_table())
    confs = find_conflicts(occs)
    if not confs:
        console.print("No conflicts found.")
        return 0

    console.print(f"Conflicts found: {len(confs)}")
    for a, b in confs:
        console.print(
            f"- {a.date.isoformat()} {a.start:%H:%M}-{a.end:%H:%M} {a.course.name}"
            f"  <->  {b.start:%H:%M}-{b.end:%H:%M} {b.course.name}",
            markup=False,
        )
    return 0


def _cmd_import(args: argparse.Namespace, settings: Settings) -> int:
    """
    Import an .ics file, store it and make it the owner's active schedule.
    Earlier schedules are kept, deactivated.
    """
    path = Path(args.file)
    try:
        text = read_ics(path)
    except OSError as exc:
        console.print(f"Cannot read {path}: {exc}")
        return 1

    try:
        result = import_ics(
            text,
            settings.week_config(),
            settings.time_slot_table(),
            infer_semester_start=args.infer_start,
            best_effort=args.best_effort,
            max_weeks=settings.max_recurrence_weeks,
        )
    except ICSParseError as exc:
        console.print(f"Import failed: {exc}")
        return 1

    store = DirectoryStore(settings.data_dir)
    schedule = result.to_schedule(created_at=datetime.now().astimezone())
    save_schedule(store, settings.owner, schedule, result.courses)
    activate_schedule(store, settings.owner, schedule.id)

    console.print(f"Imported {len(result.courses)} courses into '{schedule.name}' ({schedule.term_name})", markup=False)
    if args.infer_start:
        console.print(f"Semester start inferred as {result.semester_start_date.isoformat()}")
    for notice in result.warnings:
        console.print(f"  warning: {notice}", markup=False)
    return 0


def _cmd_schedules(args: argparse.Namespace, settings: Settings) -> int:
    loaded = load_schedules(DirectoryStore(settings.data_dir), settings.owner)
    if not loaded:
        console.print("No schedules stored yet.")
        return 0

    table = Table(title="Schedules", box=box.SIMPLE_HEAVY)
    table.add_column("Active")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Term")
    table.add_column("Week 1")
    table.add_column("Courses", justify="right")
    for schedule, courses in loaded:
        start = schedule.semester_start_date
        table.add_row(
            "*" if schedule.is_active else "",
            schedule.id,
            escape(schedule.name),
            escape(schedule.term_name),
            start.isoformat() if start else "-",
            str(len(courses)),
        )
    console.print(table)
    return 0


def _cmd_activate(args: argparse.Namespace, settings: Settings) -> int:
    try:
        schedule = activate_schedule(DirectoryStore(settings.data_dir), settings.owner, args.schedule_id)
    except KeyError:
        console.print(f"No schedule with id {args.schedule_id}", markup=False)
        return 1
    console.print(f"Active schedule: {schedule.name}", markup=False)
    return 0


def _cmd_export(args: argparse.Namespace, settings: Settings) -> int:
    loaded = _load(settings)
    if loaded is None:
        return 0
    schedule, courses = loaded

    if not courses:
        console.print("No courses to export.")
        return 0

    text = export_ics(schedule, courses, _week_config(settings, schedule), settings.time_slot_table())
    out = write_ics(text, args.out)
    console.print(f"Exported {len(courses)} courses to: {out}")
    return 0


def _cmd_notify(args: argparse.Namespace, settings: Settings) -> int:
    """
    List the notifications a scheduler should register for the next days.
    """
    loaded = _load(settings)
    if loaded is None:
        return 0
    schedule, courses = loaded

    now = args.now or datetime.now()
    occs = occurrences_between(
        now.date(),
        now.date() + timedelta(days=args.days),
        courses,
        _week_config(settings, schedule),
        settings.time_slot_table(),
    )
    requests = course_notifications(occs, settings.notification_lead, now)
    if not requests:
        console.print("Nothing to notify.")
        return 0

    table = Table(title="Upcoming notifications", box=box.SIMPLE_HEAVY)
    table.add_column("Fire at")
    table.add_column("Title")
    table.add_column("Location")
    table.add_column("Id")
    for r in requests:
        table.add_row(f"{r.fire_date:%Y-%m-%d %H:%M}", escape(r.title), escape(r.body), r.id)
    console.print(table)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="campusschedule", description="Campus course schedule CLI")
    parser.add_argument("--data-dir", type=Path, default=None, help="Directory of the schedule store")
    parser.add_argument("--owner", type=str, default=None, help="Whose schedule to use")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_weeknum = sub.add_parser("weeknum", help="Show the week-of-term of a date")
    p_weeknum.add_argument("date", type=_iso_date, help="Date (YYYY-MM-DD)")

    p_day = sub.add_parser("day", help="Show classes on a date")
    p_day.add_argument("date", type=_iso_date, help="Date (YYYY-MM-DD)")

    p_week = sub.add_parser("week", help="Show classes in the week containing a date")
    p_week.add_argument("date", type=_iso_date, help="Date (YYYY-MM-DD)")

    p_conf = sub.add_parser("conflicts", help="Show overlapping classes in a week")
    p_conf.add_argument("date", type=_iso_date, help="Any date in the week (YYYY-MM-DD)")

    p_import = sub.add_parser("import", help="Import an .ics file")
    p_import.add_argument("file", type=str, help="Input file path (e.g. timetable.ics)")
    p_import.add_argument("--infer-start", action="store_true", help="Use the earliest event's week as week 1")
    p_import.add_argument("--best-effort", action="store_true", help="Snap unmatched start times to the nearest period")

    sub.add_parser("schedules", help="List stored schedules")

    p_activate = sub.add_parser("activate", help="Make a stored schedule the active one")
    p_activate.add_argument("schedule_id", type=str, help="Schedule id (see: campusschedule schedules)")

    p_export = sub.add_parser("export", help="Export the stored schedule to .ics")
    p_export.add_argument("out", type=str, help="Output file path (e.g. out.ics)")

    p_notify = sub.add_parser("notify", help="List upcoming class notifications")
    p_notify.add_argument("--now", type=_iso_datetime, default=None, help="Reference time (default: now)")
    p_notify.add_argument("--days", type=int, default=7, help="How many days ahead")

    return parser


COMMANDS = {
    "weeknum": _cmd_weeknum,
    "day": _cmd_day,
    "week": _cmd_week,
    "conflicts": _cmd_conflicts,
    "import": _cmd_import,
    "schedules": _cmd_schedules,
    "activate": _cmd_activate,
    "export": _cmd_export,
    "notify": _cmd_notify,
}


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)

    overrides = {}
    if args.data_dir is not None:
        overrides["data_dir"] = args.data_dir
    if args.owner is not None:
        overrides["owner"] = args.owner
    settings = Settings(**overrides)

    handler = COMMANDS.get(args.command)
    if handler is None:
        raise SystemExit(2)
    raise SystemExit(handler(args, settings))
