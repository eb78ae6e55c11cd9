"""
Error taxonomy shared by the parsers, the fetcher and the feed builder.

- SourceFormatError / NoTimetableFoundError: the primary timetable source is
  unusable, callers must surface them.
- EmptyDocumentError: the page exists but is (still) empty, a benign outcome.
- NetworkError: transport failure for one URL.
- CalendarScrapeError: the auxiliary academic calendar is unavailable.
"""

from __future__ import annotations

from typing import Optional


class ScheduleError(Exception):
    """Base class for all ubbschedule errors."""


class SourceFormatError(ScheduleError):
    """URL does not match .../orar/{YEAR}-{SEMESTER}/tabelar/{CODE}.html."""


class EmptyDocumentError(ScheduleError):
    def __init__(self, size: int, url: str = "") -> None:
        self.size = size
        self.url = url
        super().__init__(f"Empty timetable page ({size} bytes) - program may not have started yet")


class NoTimetableFoundError(ScheduleError):
    """Document is present but no table looks like a timetable."""


class NetworkError(ScheduleError):
    def __init__(self, url: str, message: str, status: Optional[int] = None) -> None:
        self.url = url
        self.status = status
        super().__init__(f"{message} ({url})")


class CalendarScrapeError(ScheduleError):
    """Academic calendar page unreachable or unparseable."""
