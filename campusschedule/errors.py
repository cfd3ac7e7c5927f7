"""
Error types shared by the schedule engine.

Two kinds of problems exist:
- invalid data handed to the engine (raised as exceptions, never coerced)
- recoverable problems while importing a calendar file (collected as notices)
"""

from __future__ import annotations

from dataclasses import dataclass


class CourseValidationError(ValueError):
    """
    Raised when a Course violates one of its invariants.

    The offending field name is kept on the exception so callers can
    point the user at the right input.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


class ICSParseError(ValueError):
    """
    Raised only when the input is not an iCalendar document at all.
    """


@dataclass(frozen=True)
class ImportNotice:
    """
    One skipped or adjusted VEVENT reported back by the ICS importer.
    """

    uid: str
    summary: str
    reason: str

    def __str__(self) -> str:
        label = self.summary or self.uid or "(unnamed event)"
        return f"{label}: {self.reason}"
