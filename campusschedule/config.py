"""
User settings.

Values come from the environment (prefix CAMPUS_SCHEDULE_) or a local .env
file, e.g.

    CAMPUS_SCHEDULE_SEMESTER_START_DATE=2025-02-24
    CAMPUS_SCHEDULE_WEEK_START_DAY=7
    CAMPUS_SCHEDULE_PERIOD_TABLE_FILE=calendar.json

The engine never reads settings itself: callers turn them into a WeekConfig
and a TimeSlotTable and pass those along.
"""

from __future__ import annotations

from datetime import date, timedelta
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from campusschedule.model import TimelineDisplayMode, WeekConfig, WeekStartDay
from campusschedule.timeslots import TimeSlotTable


class Settings(BaseSettings):
    # Term
    semester_start_date: date = date(2025, 2, 24)
    week_start_day: WeekStartDay = WeekStartDay.MONDAY

    # Calendar view
    calendar_start_hour: int = Field(default=8, ge=0, le=23)
    calendar_end_hour: int = Field(default=21, ge=1, le=24)
    timeline_display_mode: TimelineDisplayMode = TimelineDisplayMode.STANDARD

    # Periods: explicit table file, built-in campus table, or uniform slices
    period_table_file: Optional[Path] = None
    uniform_periods: bool = False
    period_count: int = Field(default=12, ge=1)

    # Notifications / import
    notification_lead_minutes: int = Field(default=15, ge=0)
    max_recurrence_weeks: int = Field(default=52, ge=1)

    # Storage
    data_dir: Path = Path.home() / ".campusschedule"
    owner: str = "default"

    model_config = SettingsConfigDict(env_prefix="CAMPUS_SCHEDULE_", env_file=".env", extra="ignore")

    @field_validator("week_start_day", mode="before")
    @classmethod
    def parse_week_start_day(cls, value):
        """Accept ISO numbers ("7") as well as weekday names ("sunday")."""
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                return int(text)
            try:
                return WeekStartDay[text.upper()]
            except KeyError:
                raise ValueError(f"unknown week start day {value!r}")
        return value

    @model_validator(mode="after")
    def check_hours(self) -> "Settings":
        if self.calendar_start_hour >= self.calendar_end_hour:
            raise ValueError(
                f"calendar_start_hour ({self.calendar_start_hour}) must be before "
                f"calendar_end_hour ({self.calendar_end_hour})"
            )
        return self

    def week_config(self) -> WeekConfig:
        return WeekConfig(
            semester_start_date=self.semester_start_date,
            week_start_day=self.week_start_day,
            calendar_start_hour=self.calendar_start_hour,
            calendar_end_hour=self.calendar_end_hour,
            timeline_display_mode=self.timeline_display_mode,
        )

    def time_slot_table(self) -> TimeSlotTable:
        if self.period_table_file is not None:
            return TimeSlotTable.from_json(self.period_table_file.read_text(encoding="utf-8"))
        if self.uniform_periods:
            return TimeSlotTable(period_count=self.period_count)
        return TimeSlotTable.default()

    @property
    def notification_lead(self) -> timedelta:
        return timedelta(minutes=self.notification_lead_minutes)
