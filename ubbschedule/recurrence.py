"""
Recurrence & exclusion synthesis.

Turns timetable rows into recurring UserEvents and those into series
definitions (anchor, weekly interval, end bound, excluded dates) that respect
the academic calendar:

- "sapt. 1" / "sapt. 2" classes happen in odd / even weeks of the SEMESTER,
  week 1 being the week the semester starts in (not ISO week numbers)
- the series ends with the last teaching period of the semester when the
  academic calendar is known
- each vacation / free day that falls on the class weekday is excluded
- recurring classes whose first occurrence is a non-teaching day are dropped
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterable, List, Optional, Sequence, Tuple

from ubbschedule.academic_calendar import applicable_semesters, is_non_teaching_day
from ubbschedule.config import get_settings
from ubbschedule.headers import strip_diacritics
from ubbschedule.model import (
    AcademicYearStructure,
    EventType,
    Frequency,
    Occurrence,
    PeriodType,
    RecurrenceRule,
    SemesterStructure,
    TimetableEntry,
    UserEvent,
    UserTimetable,
    UserTimetableEntry,
)

logger = logging.getLogger(__name__)

DEFAULT_SEMESTER_WEEKS = 14
MAX_OCCURRENCES = 500

_DAYS = {
    "duminica": 0,
    "sunday": 0,
    "luni": 1,
    "monday": 1,
    "marti": 2,
    "tuesday": 2,
    "miercuri": 3,
    "wednesday": 3,
    "joi": 4,
    "thursday": 4,
    "vineri": 5,
    "friday": 5,
    "sambata": 6,
    "saturday": 6,
}

_ODD_WEEK = re.compile(r"\bsapt\.?\s*1\b|\bs\s*1\b")
_EVEN_WEEK = re.compile(r"\bsapt\.?\s*2\b|\bs\s*2\b")
_FULL_RANGE = re.compile(r"\b1\s*-\s*14\b")
_HOURS = re.compile(r"(\d{1,2})(?:[:.](\d{2}))?\s*[-–—]\s*(\d{1,2})(?:[:.](\d{2}))?")


def _fold(text: Optional[str]) -> str:
    return " ".join(strip_diacritics((text or "").lower()).split())


# ---------------------------------------------------------------------------
# Free text -> enums (total functions)
# ---------------------------------------------------------------------------


def parse_day_of_week(text: str) -> Optional[int]:
    """Romanian or English weekday name -> 0..6 (0 = Sunday); None if unknown."""
    return _DAYS.get(_fold(text))


def parse_frequency(text: str) -> str:
    """
    Map the raw frequency marker to a Frequency value.

        "sapt. 1", "săpt. 1", "S1 (...)"  -> oddweeks
        "sapt. 2", "săpt. 2", "S2 (...)"  -> evenweeks
        "1-14", "sapt", ""                -> weekly
        anything else                     -> weekly
    """
    folded = _fold(text)
    if folded in Frequency.ALL:
        return folded
    if _FULL_RANGE.search(folded):
        return Frequency.WEEKLY
    if _ODD_WEEK.search(folded):
        return Frequency.ODD_WEEKS
    if _EVEN_WEEK.search(folded):
        return Frequency.EVEN_WEEKS
    if "biweekly" in folded or "bi-weekly" in folded:
        return Frequency.BIWEEKLY
    if not folded or "sapt" in folded or "weekly" in folded:
        return Frequency.WEEKLY

    logger.debug("Unrecognized frequency %r, assuming weekly", text)
    return Frequency.WEEKLY


def parse_event_type(text: str) -> str:
    folded = _fold(text)
    if "curs" in folded or folded in ("c", "lecture"):
        return EventType.LECTURE
    if "lab" in folded or folded == "l":
        return EventType.LAB
    if "seminar" in folded or folded == "s":
        return EventType.SEMINAR
    if folded == "custom":
        return EventType.CUSTOM

    return EventType.LECTURE


def parse_hours(text: str) -> Optional[Tuple[time, time]]:
    """ "8-10", "08:00 - 10:00", "8.30-10" -> (start, end); None if unusable."""
    m = _HOURS.search(text or "")
    if not m:
        return None
    sh, sm, eh, em = m.groups()
    try:
        start = time(int(sh), int(sm or 0))
        end = time(int(eh), int(em or 0))
    except ValueError:
        return None
    if end <= start:
        return None
    return start, end


# ---------------------------------------------------------------------------
# Date helpers
# ---------------------------------------------------------------------------


def js_weekday(day: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return day.isoweekday() % 7


def monday_of_week(day: date) -> date:
    return day - timedelta(days=day.weekday())


def next_weekday(from_date: date, weekday: int) -> date:
    """First date on or after from_date that falls on `weekday` (0 = Sunday)."""
    return from_date + timedelta(days=(weekday - js_weekday(from_date)) % 7)


def default_semester_dates(today: Optional[date] = None) -> Tuple[date, date]:
    """
    Semesters start on the Monday of the week containing October 1st
    (autumn, until January 31st) or February 1st (spring, until June 30th).
    """
    today = today or date.today()
    if today.month >= 10 or today.month == 1:
        year = today.year if today.month >= 10 else today.year - 1
        return monday_of_week(date(year, 10, 1)), date(year + 1, 1, 31)
    return monday_of_week(date(today.year, 2, 1)), date(today.year, 6, 30)


def semester_week(day: date, semester_start: date) -> int:
    """1-based week of the semester; week 1 is odd."""
    return (day - semester_start).days // 7 + 1


# ---------------------------------------------------------------------------
# Entries -> events
# ---------------------------------------------------------------------------


def _event_id(*parts: str) -> str:
    return hashlib.sha1("|".join(parts).encode("utf-8")).hexdigest()[:20]


def _at(day: date, t: time, tz: tzinfo) -> datetime:
    return datetime.combine(day, t).replace(tzinfo=tz)


def entry_to_event(
    entry: TimetableEntry,
    semester_start: date,
    semester_end: Optional[date] = None,
    tz: Optional[tzinfo] = None,
) -> Optional[UserEvent]:
    """
    Convert one scraped row. Rows with an unknown day or unusable hours are
    skipped (None).
    """
    tz = tz or get_settings().timezone

    weekday = parse_day_of_week(entry.day)
    if weekday is None:
        logger.warning("Invalid day %r for %s", entry.day, entry.subject)
        return None

    hours = parse_hours(entry.hours)
    if hours is None:
        logger.warning("Invalid hours %r for %s", entry.hours, entry.subject)
        return None
    start, end = hours

    first = next_weekday(semester_start, weekday)
    return UserEvent(
        id=_event_id(*(getattr(entry, name) for name in ("day", "hours", "frequency", "room", "group", "type", "subject"))),
        title=f"{entry.subject} ({entry.type})" if entry.type else entry.subject,
        start_time=_at(first, start, tz),
        end_time=_at(first, end, tz),
        location=entry.room,
        description=f"Teacher: {entry.teacher}\nGroup: {entry.group}\nType: {entry.type}",
        is_recurring=True,
        recurrence_rule=RecurrenceRule(
            frequency=parse_frequency(entry.frequency),
            days_of_week=[weekday],
            until=semester_end,
        ),
        type=parse_event_type(entry.type),
    )


def entries_to_events(
    entries: Iterable[TimetableEntry],
    semester_start: date,
    semester_end: Optional[date] = None,
    tz: Optional[tzinfo] = None,
) -> List[UserEvent]:
    events = (entry_to_event(e, semester_start, semester_end, tz) for e in entries)
    return [e for e in events if e is not None]


def user_entry_to_event(
    entry: UserTimetableEntry,
    semester_start: date,
    semester_end: Optional[date] = None,
    tz: Optional[tzinfo] = None,
) -> Optional[UserEvent]:
    tz = tz or get_settings().timezone

    weekday = parse_day_of_week(entry.day)
    if weekday is None:
        logger.warning("Invalid day %r in entry %s", entry.day, entry.id)
        return None

    try:
        start = time(entry.start.hour, entry.start.minute)
        end = time(entry.end.hour, entry.end.minute)
    except ValueError:
        logger.warning("Invalid interval in entry %s", entry.id)
        return None

    first = next_weekday(semester_start, weekday)
    return UserEvent(
        id=entry.id or _event_id(entry.day, str(start), entry.subject, entry.format),
        title=f"{entry.subject} ({entry.type})",
        start_time=_at(first, start, tz),
        end_time=_at(first, end, tz),
        location=entry.room,
        description=f"Teacher: {entry.teacher}\nFormat: {entry.format}\nType: {entry.type}",
        is_recurring=True,
        recurrence_rule=RecurrenceRule(
            frequency=parse_frequency(entry.frequency),
            days_of_week=[weekday],
            until=semester_end,
        ),
        type=parse_event_type(entry.type),
    )


def user_entries_to_events(
    entries: Iterable[UserTimetableEntry],
    semester_start: Optional[date] = None,
    semester_end: Optional[date] = None,
    tz: Optional[tzinfo] = None,
) -> List[UserEvent]:
    """
    Convert caller-supplied JSON rows. Without a semester start the current
    default semester is used; semester_end only becomes an explicit end date
    when the caller supplied it.
    """
    start = semester_start or default_semester_dates()[0]
    events = (user_entry_to_event(e, start, semester_end, tz) for e in entries)
    return [e for e in events if e is not None]


def timetable_from_entries(
    user_id: str,
    entries: Sequence,
    semester_start: Optional[date] = None,
    semester_end: Optional[date] = None,
    tz: Optional[tzinfo] = None,
    semester: Optional[str] = None,
) -> UserTimetable:
    """
    Build a UserTimetable from scraped TimetableEntry rows or caller
    UserTimetableEntry rows. The caller's semester end is kept on the
    timetable as a fallback bound, not as an explicit per-event end.
    `semester` ("1"/"2") picks the academic calendar semester later on.
    """
    default_start, default_end = default_semester_dates()
    start = semester_start or default_start

    user_rows = [e for e in entries if isinstance(e, UserTimetableEntry)]
    scraped_rows = [e for e in entries if not isinstance(e, UserTimetableEntry)]
    events = user_entries_to_events(user_rows, start, None, tz) + entries_to_events(scraped_rows, start, None, tz)

    return UserTimetable(
        user_id=user_id,
        events=events,
        last_modified=datetime.now(tz or get_settings().timezone).isoformat(timespec="seconds"),
        semester_start=start,
        semester_end=semester_end or (default_end if semester_start is None else None),
        semester=semester,
    )


# ---------------------------------------------------------------------------
# Semester boundaries
# ---------------------------------------------------------------------------


_SEMESTER_NUMERALS = {"1": "I", "2": "II"}


def semester_numeral(semester: Optional[str]) -> Optional[str]:
    """Timetable semester code ("1", "2") -> academic calendar name ("I", "II")."""
    if not semester:
        return None
    code = semester.strip().upper()
    return _SEMESTER_NUMERALS.get(code, code)


def find_semester(
    structure: AcademicYearStructure,
    day: Optional[date] = None,
    is_terminal_year: bool = False,
    semester: Optional[str] = None,
) -> Optional[SemesterStructure]:
    """
    Semester of the cohort named by `semester` ("1"/"2" or "I"/"II"), else the
    one whose periods contain `day`.
    """
    candidates = [s for s in applicable_semesters(structure, is_terminal_year) if s.periods]

    numeral = semester_numeral(semester)
    if numeral is not None:
        return next((s for s in candidates if s.semester == numeral), None)

    if day is None:
        return None
    for candidate in candidates:
        first = min(p.start_date for p in candidate.periods)
        last = max(p.end_date for p in candidate.periods)
        if first <= day <= last:
            return candidate
    return None


def determine_semester_end(
    structure: AcademicYearStructure,
    day: Optional[date] = None,
    is_terminal_year: bool = False,
    semester: Optional[str] = None,
) -> Optional[date]:
    """End of the last teaching period of the semester (see find_semester)."""
    found = find_semester(structure, day, is_terminal_year, semester)
    if found is None:
        return None
    for period in reversed(found.periods):
        if period.type == PeriodType.TEACHING:
            return period.end_date
    return max(p.end_date for p in found.periods)


def determine_semester_start(
    structure: AcademicYearStructure,
    day: Optional[date] = None,
    is_terminal_year: bool = False,
    semester: Optional[str] = None,
) -> Optional[date]:
    """Start of the first teaching period of the semester (see find_semester)."""
    found = find_semester(structure, day, is_terminal_year, semester)
    if found is None:
        return None
    teaching = [p.start_date for p in found.periods if p.type == PeriodType.TEACHING]
    return min(teaching) if teaching else min(p.start_date for p in found.periods)


def resolve_until(
    rule: RecurrenceRule,
    anchor: date,
    semester_end: Optional[date] = None,
    structure: Optional[AcademicYearStructure] = None,
    is_terminal_year: bool = False,
    semester: Optional[str] = None,
) -> Tuple[Optional[date], Optional[int]]:
    """
    (until, count) of a series, by precedence:
    explicit rule.until > last teaching day from the academic calendar >
    semester_end > rule.count > 14 weeks after the anchor.
    """
    if rule.until is not None:
        return rule.until, None
    if structure is not None:
        end = determine_semester_end(structure, anchor, is_terminal_year, semester)
        if end is not None:
            return end, None
    if semester_end is not None:
        return semester_end, None
    if rule.count:
        return None, rule.count
    return anchor + timedelta(weeks=DEFAULT_SEMESTER_WEEKS), None


def align_to_parity(
    anchor: date,
    frequency: str,
    semester_start: Optional[date],
) -> Tuple[date, int]:
    """
    (first occurrence, interval in weeks) for a frequency.

    For odd/even weeks the first occurrence is moved one week later when it
    lands in a semester week of the wrong parity.
    """
    if frequency == Frequency.WEEKLY:
        return anchor, 1
    if frequency == Frequency.BIWEEKLY or semester_start is None:
        return anchor, 2

    is_odd = semester_week(anchor, semester_start) % 2 == 1
    if is_odd != (frequency == Frequency.ODD_WEEKS):
        anchor += timedelta(weeks=1)
    return anchor, 2


# ---------------------------------------------------------------------------
# Exclusions
# ---------------------------------------------------------------------------


def exclusion_dates(
    event: UserEvent,
    structure: Optional[AcademicYearStructure],
    weekdays: Optional[Iterable[int]] = None,
    *,
    first: Optional[date] = None,
    until: Optional[date] = None,
    is_terminal_year: bool = False,
) -> List[datetime]:
    """
    Every vacation / free day of the cohort's semesters that falls on the
    event weekday, at the event start time, clipped to [first, until].
    """
    if structure is None:
        return []

    wanted = set(weekdays) if weekdays is not None else {js_weekday(event.start_time.date())}
    start_time = event.start_time.time()
    tz = event.start_time.tzinfo

    out = set()
    for semester in applicable_semesters(structure, is_terminal_year):
        for period in semester.periods:
            if period.type not in (PeriodType.VACATION, PeriodType.FREE_DAY):
                continue
            day = period.start_date if first is None else max(period.start_date, first)
            last = period.end_date if until is None else min(period.end_date, until)
            while day <= last:
                if js_weekday(day) in wanted:
                    out.add(_at(day, start_time, tz))
                day += timedelta(days=1)
    return sorted(out)


def should_suppress(
    event: UserEvent,
    structure: Optional[AcademicYearStructure],
    first_day: Optional[date] = None,
) -> bool:
    """
    Recurring (non-custom) events whose first occurrence is a non-teaching
    day are dropped from the feed.
    """
    if structure is None or not event.is_recurring:
        return False
    if event.type == EventType.CUSTOM:
        return False
    return is_non_teaching_day(first_day or event.start_time.date(), structure)


# ---------------------------------------------------------------------------
# Series
# ---------------------------------------------------------------------------


@dataclass
class SeriesDefinition:
    event: UserEvent
    start: datetime
    end: datetime
    frequency: Optional[str] = None
    interval: int = 1
    by_day: List[int] = field(default_factory=list)
    until: Optional[date] = None
    count: Optional[int] = None
    exdates: List[datetime] = field(default_factory=list)

    @property
    def is_recurring(self) -> bool:
        return self.frequency is not None


def synthesize(
    event: UserEvent,
    *,
    structure: Optional[AcademicYearStructure] = None,
    semester_start: Optional[date] = None,
    semester_end: Optional[date] = None,
    is_terminal_year: bool = False,
    semester: Optional[str] = None,
) -> Optional[SeriesDefinition]:
    """
    Series definition for one event, None if the event must be dropped.

    `semester` ("1"/"2") selects the academic calendar semester; without it
    the semester containing the event start is used. Without an academic
    calendar (structure=None) no exclusions are computed and the end falls
    back to the caller bounds.
    """
    if not event.is_recurring or event.recurrence_rule is None:
        return SeriesDefinition(event=event, start=event.start_time, end=event.end_time)

    rule = event.recurrence_rule
    original_day = event.start_time.date()

    if semester_start is None and structure is not None:
        semester_start = determine_semester_start(structure, original_day, is_terminal_year, semester)

    anchor, interval = align_to_parity(original_day, rule.frequency, semester_start)
    shift = anchor - original_day

    if should_suppress(event, structure, anchor):
        logger.info("Dropping %s: first occurrence %s is a non-teaching day", event.title, anchor)
        return None

    until, count = resolve_until(rule, anchor, semester_end, structure, is_terminal_year, semester)
    by_day = sorted(set(rule.days_of_week)) or [js_weekday(anchor)]

    return SeriesDefinition(
        event=event,
        start=event.start_time + shift,
        end=event.end_time + shift,
        frequency=rule.frequency,
        interval=interval,
        by_day=by_day,
        until=until,
        count=count,
        exdates=exclusion_dates(
            event, structure, by_day, first=anchor, until=until, is_terminal_year=is_terminal_year
        ),
    )


def _occurrence(series: SeriesDefinition, start: datetime) -> Occurrence:
    ev = series.event
    end = _at(start.date() + (series.end.date() - series.start.date()), series.end.time(), series.end.tzinfo)
    return Occurrence(
        event_id=ev.id,
        title=ev.title,
        start=start,
        end=end,
        location=ev.location,
        description=ev.description,
        type=ev.type,
    )


def expand(series: SeriesDefinition) -> List[Occurrence]:
    """
    Concrete occurrences of a series, in chronological order.

    Weeks are stepped by `interval` from the anchor week; exclusion dates are
    removed after the until/count bound is applied.
    """
    if not series.is_recurring:
        return [_occurrence(series, series.start)]

    anchor = series.start.date()
    week_start = monday_of_week(anchor)
    start_time = series.start.time()
    tz = series.start.tzinfo
    excluded = set(series.exdates)
    # Monday-first order inside a week
    days = sorted(series.by_day, key=lambda d: (d - 1) % 7)

    out: List[Occurrence] = []
    generated = 0
    week = 0
    while generated < MAX_OCCURRENCES:
        base = week_start + timedelta(weeks=week)
        if series.until is not None and base > series.until:
            break
        for weekday in days:
            day = base + timedelta(days=(weekday - 1) % 7)
            if day < anchor:
                continue
            if series.until is not None and day > series.until:
                break
            if series.count is not None and generated >= series.count:
                break
            generated += 1
            start = _at(day, start_time, tz)
            if start not in excluded:
                out.append(_occurrence(series, start))
        if series.count is not None and generated >= series.count:
            break
        week += series.interval

    return out
