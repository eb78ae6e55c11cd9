"""
Calendar feed assembly.

Combines the synthesized class series with the academic calendar periods
(vacations, free days, exam sessions, ...) into one Feed, and renders it as
iCalendar text. The academic calendar is auxiliary: when it cannot be scraped
the feed is still produced, without exclusions and period blocks.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from ubbschedule.academic_calendar import applicable_semesters
from ubbschedule.cache import AcademicCalendarCache, get_default_cache
from ubbschedule.config import Settings, get_settings
from ubbschedule.errors import CalendarScrapeError
from ubbschedule.export_ics import render_feed
from ubbschedule.model import AcademicYearStructure, Occurrence, PeriodBlock, PeriodType, UserTimetable
from ubbschedule.recurrence import SeriesDefinition, expand, synthesize

logger = logging.getLogger(__name__)

EXAM_PERIOD_TYPES = (
    PeriodType.EXAMS,
    PeriodType.RETAKES,
    PeriodType.PREPARATION,
    PeriodType.PRACTICE,
    PeriodType.GRADUATION,
)

PERIOD_TITLES = {
    PeriodType.VACATION: "Vacation",
    PeriodType.FREE_DAY: "Free day",
    PeriodType.EXAMS: "Exam session",
    PeriodType.RETAKES: "Retake session",
    PeriodType.PREPARATION: "Exam preparation",
    PeriodType.PRACTICE: "Practice",
    PeriodType.GRADUATION: "Graduation exams",
}


@dataclass
class FeedOptions:
    language: str = "ro-en"
    is_terminal_year: bool = False
    include_vacations: bool = True
    include_exam_periods: bool = True
    include_free_days: bool = True
    expand_occurrences: bool = False
    # inclusive (first, last) day; events starting outside are left out
    window: Optional[Tuple[date, date]] = None

    def wants(self, period_type: str) -> bool:
        if period_type == PeriodType.VACATION:
            return self.include_vacations
        if period_type == PeriodType.FREE_DAY:
            return self.include_free_days
        if period_type in EXAM_PERIOD_TYPES:
            return self.include_exam_periods
        return False


@dataclass
class Feed:
    series: List[SeriesDefinition] = field(default_factory=list)
    occurrences: List[Occurrence] = field(default_factory=list)
    blocks: List[PeriodBlock] = field(default_factory=list)
    structure: Optional[AcademicYearStructure] = None


def _overlaps(start: date, end: date, window: Optional[Tuple[date, date]]) -> bool:
    if window is None:
        return True
    return start <= window[1] and end >= window[0]


def _block_title(period_type: str, description: str) -> str:
    label = PERIOD_TITLES.get(period_type, period_type)
    return f"{label}: {description}" if description else label


def period_blocks(structure: Optional[AcademicYearStructure], options: FeedOptions) -> List[PeriodBlock]:
    """All-day blocks for the requested period types of the applicable semesters."""
    if structure is None:
        return []

    blocks: List[PeriodBlock] = []
    seen = set()
    for semester in applicable_semesters(structure, options.is_terminal_year):
        for period in semester.periods:
            if not options.wants(period.type):
                continue
            if not _overlaps(period.start_date, period.end_date, options.window):
                continue

            key = (period.type, period.start_date, period.end_date)
            if key in seen:
                continue
            seen.add(key)

            blocks.append(
                PeriodBlock(
                    id=f"{period.type}-{period.start_date:%Y%m%d}-{period.end_date:%Y%m%d}",
                    type=period.type,
                    title=_block_title(period.type, period.description),
                    start_date=period.start_date,
                    end_date=period.end_date,
                    description=period.notes or "",
                )
            )
    return blocks


def assemble_feed(
    timetable: UserTimetable,
    structure: Optional[AcademicYearStructure] = None,
    options: Optional[FeedOptions] = None,
) -> Feed:
    options = options or FeedOptions()
    feed = Feed(structure=structure)

    for event in timetable.events:
        if options.window and not _overlaps(event.start_time.date(), event.start_time.date(), options.window):
            continue

        series = synthesize(
            event,
            structure=structure,
            semester_start=timetable.semester_start,
            semester_end=timetable.semester_end,
            is_terminal_year=options.is_terminal_year,
            semester=timetable.semester,
        )
        if series is None:
            continue

        feed.series.append(series)
        feed.occurrences.extend(expand(series))

    feed.blocks = period_blocks(structure, options)

    logger.info(
        "Feed for %s: %d series, %d occurrences, %d period blocks",
        timetable.user_id,
        len(feed.series),
        len(feed.occurrences),
        len(feed.blocks),
    )
    return feed


def load_structure(
    options: FeedOptions,
    cache: Optional[AcademicCalendarCache] = None,
) -> Optional[AcademicYearStructure]:
    """Academic calendar for the options' language, None when unavailable."""
    cache = cache or get_default_cache()
    try:
        structure = cache.get(options.language)
    except CalendarScrapeError as exc:
        logger.warning("Academic calendar unavailable, generating feed without it: %s", exc)
        return None

    if structure is None:
        logger.warning("Academic calendar has no %s section", options.language)
    return structure


def structure_for_year(
    structure: Optional[AcademicYearStructure],
    academic_year: Optional[str],
) -> Optional[AcademicYearStructure]:
    """
    The structure if it describes `academic_year` (first year, e.g. "2025" for
    2025-2026), else None. Structures with an unknown year are accepted.
    """
    if structure is None or not academic_year:
        return structure
    first_year = structure.academic_year.split("-", 1)[0]
    if not first_year.isdigit() or first_year == academic_year:
        return structure
    logger.warning(
        "Academic calendar is for %s, timetable for %s; ignoring the calendar",
        structure.academic_year,
        academic_year,
    )
    return None


def generate_feed(
    timetable: UserTimetable,
    options: Optional[FeedOptions] = None,
    *,
    cache: Optional[AcademicCalendarCache] = None,
    settings: Optional[Settings] = None,
) -> str:
    """
    iCalendar text for a user timetable.

    Never fails because of the academic calendar; errors of the timetable
    itself propagate.
    """
    options = options or FeedOptions()
    settings = settings or get_settings()

    structure = load_structure(options, cache)
    feed = assemble_feed(timetable, structure, options)
    return render_feed(
        feed,
        tz_name=settings.timezone_name,
        calendar_name=settings.calendar_name,
        expanded=options.expand_occurrences,
    )


def feed_summary(timetable: UserTimetable) -> Dict[str, Any]:
    recurring = [e for e in timetable.events if e.is_recurring]
    starts = [e.start_time for e in timetable.events]
    ends = [e.end_time for e in timetable.events]
    return {
        "total_events": len(timetable.events),
        "recurring_events": len(recurring),
        "one_time_events": len(timetable.events) - len(recurring),
        "by_type": dict(Counter(e.type for e in timetable.events)),
        "date_range": (min(starts), max(ends)) if starts else None,
    }
