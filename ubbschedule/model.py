"""
Central data model definitions used across the project.

This module defines the canonical structure of the objects passed between
the parsers, the academic-calendar scraper and the calendar feed builder so
that:
- all modules share the same field names
- string fields are always strings (empty, never None)
- scraped pages and caller-supplied JSON end up in the same model
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, List, Optional


ENTRY_FIELDS = ("day", "hours", "frequency", "room", "group", "type", "subject", "teacher")


class PeriodType:
    TEACHING = "teaching"
    VACATION = "vacation"
    EXAMS = "exams"
    RETAKES = "retakes"
    PRACTICE = "practice"
    PREPARATION = "preparation"
    GRADUATION = "graduation"
    FREE_DAY = "free-day"


class Frequency:
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    ODD_WEEKS = "oddweeks"
    EVEN_WEEKS = "evenweeks"

    ALL = (WEEKLY, BIWEEKLY, ODD_WEEKS, EVEN_WEEKS)


class EventType:
    LECTURE = "lecture"
    LAB = "lab"
    SEMINAR = "seminar"
    CUSTOM = "custom"

    ALL = (LECTURE, LAB, SEMINAR, CUSTOM)


# ---------------------------------------------------------------------------
# Scraped timetables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UrlMetadata:
    academic_year: str
    semester: str
    specialization: str
    year_of_study: str

    @property
    def default_group(self) -> str:
        return f"{self.specialization}{self.year_of_study}"


@dataclass
class TimetableEntry:
    """
    One row of a timetable table.

    `group` is the "Formatia" value exactly as printed (e.g. "211/1").
    """

    day: str = ""
    hours: str = ""
    frequency: str = ""
    room: str = ""
    group: str = ""
    type: str = ""
    subject: str = ""
    teacher: str = ""

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimetableEntry":
        return cls(**{name: str(data.get(name) or "") for name in ENTRY_FIELDS})


@dataclass(frozen=True)
class Timetable:
    academic_year: str
    semester: str
    specialization: str
    year_of_study: str
    entries: List[TimetableEntry] = field(default_factory=list)
    group_name: str = ""

    @classmethod
    def from_metadata(
        cls, metadata: UrlMetadata, entries: List[TimetableEntry], group_name: str = ""
    ) -> "Timetable":
        return cls(
            academic_year=metadata.academic_year,
            semester=metadata.semester,
            specialization=metadata.specialization,
            year_of_study=metadata.year_of_study,
            entries=entries,
            group_name=group_name,
        )

    @property
    def metadata(self) -> UrlMetadata:
        return UrlMetadata(self.academic_year, self.semester, self.specialization, self.year_of_study)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "academic_year": self.academic_year,
            "semester": self.semester,
            "specialization": self.specialization,
            "year_of_study": self.year_of_study,
            "entries": [e.to_dict() for e in self.entries],
        }
        if self.group_name:
            out["group_name"] = self.group_name
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Timetable":
        return cls(
            academic_year=str(data.get("academic_year", "")),
            semester=str(data.get("semester", "")),
            specialization=str(data.get("specialization", "")),
            year_of_study=str(data.get("year_of_study", "")),
            entries=[TimetableEntry.from_dict(e) for e in data.get("entries", []) if isinstance(e, dict)],
            group_name=str(data.get("group_name", "")),
        )


# ---------------------------------------------------------------------------
# Academic calendar
# ---------------------------------------------------------------------------


@dataclass
class AcademicPeriod:
    start_date: date
    end_date: date
    type: str
    description: str = ""
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        if self.start_date > self.end_date:
            raise ValueError(f"Period starts after it ends: {self.start_date} > {self.end_date}")

    def contains(self, day: date) -> bool:
        if isinstance(day, datetime):
            day = day.date()
        return self.start_date <= day <= self.end_date


@dataclass
class SemesterStructure:
    semester: str
    year_type: Optional[str] = None
    periods: List[AcademicPeriod] = field(default_factory=list)


@dataclass
class AcademicYearStructure:
    academic_year: str
    language: str
    semesters: List[SemesterStructure]
    last_scraped: datetime


# ---------------------------------------------------------------------------
# User events
# ---------------------------------------------------------------------------


@dataclass
class RecurrenceRule:
    frequency: str = Frequency.WEEKLY
    days_of_week: List[int] = field(default_factory=list)  # 0 = Sunday
    until: Optional[date] = None
    count: Optional[int] = None


@dataclass
class UserEvent:
    id: str
    title: str
    start_time: datetime
    end_time: datetime
    location: str = ""
    description: str = ""
    is_recurring: bool = False
    recurrence_rule: Optional[RecurrenceRule] = None
    type: str = EventType.LECTURE
    color: str = ""


@dataclass
class UserTimetable:
    user_id: str
    events: List[UserEvent] = field(default_factory=list)
    last_modified: str = ""
    semester_start: Optional[date] = None
    semester_end: Optional[date] = None
    # "1" or "2", as in the timetable URL
    semester: Optional[str] = None


@dataclass(frozen=True)
class TimeOfDay:
    hour: int
    minute: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimeOfDay":
        return cls(hour=int(data.get("hour", 0)), minute=int(data.get("minute", 0)))


@dataclass
class UserTimetableEntry:
    """
    Timetable row as sent by the frontend (JSON), e.g.:

        {"id": 3, "day": "Monday",
         "interval": {"start": {"hour": 8, "minute": 0}, "end": {"hour": 10, "minute": 0}},
         "subjectName": "Algebra", "teacher": "...", "frequency": "oddweeks",
         "type": "lecture", "room": "C310", "format": "211/1"}
    """

    id: str
    day: str
    start: TimeOfDay
    end: TimeOfDay
    subject: str = ""
    teacher: str = ""
    frequency: str = Frequency.WEEKLY
    type: str = EventType.LECTURE
    room: str = ""
    format: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserTimetableEntry":
        interval = data.get("interval") or {}
        return cls(
            id=str(data.get("id", "")),
            day=str(data.get("day", "")),
            start=TimeOfDay.from_dict(interval.get("start") or {}),
            end=TimeOfDay.from_dict(interval.get("end") or {}),
            subject=str(data.get("subjectName") or data.get("subject") or ""),
            teacher=str(data.get("teacher") or ""),
            frequency=str(data.get("frequency") or Frequency.WEEKLY),
            type=str(data.get("type") or EventType.LECTURE),
            room=str(data.get("room") or ""),
            format=str(data.get("format") or ""),
        )


# ---------------------------------------------------------------------------
# Feed output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Occurrence:
    """One concrete instance of a (possibly recurring) event."""

    event_id: str
    title: str
    start: datetime
    end: datetime
    location: str = ""
    description: str = ""
    type: str = EventType.LECTURE


@dataclass(frozen=True)
class PeriodBlock:
    """All-day block for an academic period; end_date is inclusive."""

    id: str
    type: str
    title: str
    start_date: date
    end_date: date
    description: str = ""


@dataclass
class FetchResult:
    url: str
    text: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.text is not None
