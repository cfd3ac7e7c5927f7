"""
campusschedule: weekly course schedules, week-of-term arithmetic,
overlap layout and iCalendar import/export.
"""

from loguru import logger

__version__ = "0.1.0"

# Library default: stay silent until an application (e.g. the CLI) enables logging.
logger.disable("campusschedule")
