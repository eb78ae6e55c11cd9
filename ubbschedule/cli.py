"""
CLI (Command Line Interface).

    ubbschedule parse URL [URL ...] [--out-dir DIR] [--by-group]
    ubbschedule calendar [--url URL] [--language ro-en|hu-de]
    ubbschedule feed SOURCE OUT.ics [--group G] [--language ...] [--terminal] [--expand]

SOURCE of `feed` is a timetable URL, a timetable JSON written by `parse`, or
a frontend entries JSON.
"""

from __future__ import annotations

import argparse
import logging
from datetime import date
from pathlib import Path
from typing import List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn, TimeRemainingColumn
from rich.table import Table

from ubbschedule import __version__
from ubbschedule.academic_calendar import LANGUAGES, find_structure, scrape_academic_calendar
from ubbschedule.cache import build_cache
from ubbschedule.config import get_settings
from ubbschedule.errors import EmptyDocumentError, NoTimetableFoundError, ScheduleError
from ubbschedule.export_ics import count_events, render_feed
from ubbschedule.feed import FeedOptions, assemble_feed, feed_summary, load_structure, structure_for_year
from ubbschedule.log import setup_logging
from ubbschedule.model import AcademicYearStructure, Timetable, UrlMetadata
from ubbschedule.parse import parse_many, parse_timetable, parse_timetables_by_group
from ubbschedule.recurrence import default_semester_dates, determine_semester_start, timetable_from_entries
from ubbschedule.storage import (
    is_user_entries_file,
    load_timetable,
    load_user_entries,
    save_timetable,
    timetable_filename,
)

console = Console()


def _cmd_parse(args: argparse.Namespace) -> int:
    """
    Fetch and parse timetable pages, one JSON file per timetable.
    """
    urls: List[str] = [u.strip() for u in args.urls if u.strip()]
    if not urls:
        console.print("Please provide at least one URL.")
        return 1

    progress = Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeRemainingColumn(),
        console=console,
    )
    task = progress.add_task("Fetching...", total=len(urls))

    with progress:
        report = parse_many(
            urls,
            by_group=args.by_group,
            batch_size=args.batch_size,
            delay=args.delay,
            on_result=lambda _: progress.advance(task),
        )

    out_dir = Path(args.out_dir)
    for timetable in report.timetables:
        path = save_timetable(timetable, out_dir / timetable_filename(timetable))
        console.print(f"OK    {path} ({len(timetable.entries)} entries)")

    for url, error in report.failures.items():
        label = "EMPTY" if isinstance(error, EmptyDocumentError) else "FAIL "
        console.print(f"{label} {url}: {error}")

    fatal = [e for e in report.failures.values() if not isinstance(e, EmptyDocumentError)]
    if not report.timetables and fatal:
        return 1
    return 0


def _cmd_calendar(args: argparse.Namespace) -> int:
    """
    Print the periods of the academic calendar.
    """
    try:
        structures = scrape_academic_calendar(args.url)
    except ScheduleError as exc:
        console.print(f"Academic calendar unavailable: {exc}")
        return 1

    structure = find_structure(structures, args.language)
    if structure is None:
        console.print(f"No {args.language} section in the academic calendar.")
        return 1

    table = Table(title=f"Academic year {structure.academic_year} ({structure.language})", box=box.SIMPLE)
    for col in ("Semester", "From", "To", "Type", "Description"):
        table.add_column(col)

    for semester in structure.semesters:
        label = semester.semester + (f" ({semester.year_type})" if semester.year_type else "")
        for period in semester.periods:
            table.add_row(
                label,
                period.start_date.isoformat(),
                period.end_date.isoformat(),
                period.type,
                period.description,
            )

    console.print(table)
    return 0


def _source_semester(meta: UrlMetadata) -> Optional[date]:
    """Default first day of the semester a timetable belongs to."""
    try:
        year = int(meta.academic_year)
    except ValueError:
        return None
    reference = date(year, 10, 1) if meta.semester == "1" else date(year + 1, 2, 1)
    return default_semester_dates(reference)[0]


def _semester_start(
    meta: Optional[UrlMetadata],
    structure: Optional[AcademicYearStructure],
    is_terminal_year: bool,
) -> Optional[date]:
    """First teaching day of the timetable's semester, from the academic calendar when known."""
    if meta is None:
        return None
    if structure is not None:
        start = determine_semester_start(structure, is_terminal_year=is_terminal_year, semester=meta.semester)
        if start is not None:
            return start
    return _source_semester(meta)


def _pick_group(timetables: List[Timetable], group: str) -> Timetable:
    wanted = "".join(group.lower().split())
    for timetable in timetables:
        if wanted in "".join(timetable.group_name.lower().split()):
            return timetable
    names = ", ".join(t.group_name for t in timetables)
    raise NoTimetableFoundError(f"No group matching {group!r} (found: {names})")


def _load_entries(source: str, group: Optional[str] = None):
    """(entries, metadata) of a feed source; metadata is None for entries JSON."""
    if source.startswith(("http://", "https://")):
        if group:
            timetable = _pick_group(parse_timetables_by_group(source), group)
        else:
            timetable = parse_timetable(source)
        return timetable.entries, timetable.metadata
    if is_user_entries_file(source):
        return load_user_entries(source), None
    timetable = load_timetable(source)
    return timetable.entries, timetable.metadata


def _cmd_feed(args: argparse.Namespace) -> int:
    """
    Build an iCalendar feed from a timetable and the academic calendar.
    """
    try:
        entries, meta = _load_entries(args.source, args.group)
    except (ScheduleError, ValueError, OSError) as exc:
        console.print(f"Cannot read timetable: {exc}")
        return 1

    settings = get_settings()
    options = FeedOptions(
        language=args.language,
        is_terminal_year=args.terminal,
        include_vacations=not args.no_vacations,
        include_exam_periods=not args.no_exams,
        include_free_days=not args.no_free_days,
        expand_occurrences=args.expand,
    )
    structure = load_structure(options, build_cache(settings))
    if meta is not None:
        structure = structure_for_year(structure, meta.academic_year)

    timetable = timetable_from_entries(
        args.user_id,
        entries,
        semester_start=args.semester_start or _semester_start(meta, structure, args.terminal),
        semester_end=args.semester_end,
        tz=settings.timezone,
        semester=meta.semester if meta is not None else None,
    )
    if not timetable.events:
        console.print("No usable entries in the timetable.")
        return 1

    text = render_feed(
        assemble_feed(timetable, structure, options),
        tz_name=settings.timezone_name,
        calendar_name=settings.calendar_name,
        expanded=options.expand_occurrences,
    )

    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(text.encode("utf-8"))

    summary = feed_summary(timetable)
    console.print(
        f"Exported {count_events(text)} calendar events "
        f"({summary['recurring_events']} recurring classes) to: {out}"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="ubbschedule", description="UBB timetable parser and calendar feeds")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_parse = sub.add_parser("parse", help="Parse timetable pages to JSON")
    p_parse.add_argument("urls", nargs="+", help="Timetable URLs (.../orar/2025-1/tabelar/INFO3.html)")
    p_parse.add_argument("--out-dir", default=".", help="Directory for the JSON files")
    p_parse.add_argument("--by-group", action="store_true", help="One timetable per group heading")
    p_parse.add_argument("--batch-size", type=int, default=None, help="Concurrent requests per batch")
    p_parse.add_argument("--delay", type=float, default=None, help="Pause between batches (seconds)")

    p_cal = sub.add_parser("calendar", help="Show the academic calendar")
    p_cal.add_argument("--url", default=None, help="Academic calendar page")
    p_cal.add_argument("--language", choices=LANGUAGES, default="ro-en")

    p_feed = sub.add_parser("feed", help="Export a timetable as an .ics feed")
    p_feed.add_argument("source", help="Timetable URL, timetable JSON or entries JSON")
    p_feed.add_argument("out", help="Output file path (e.g. schedule.ics)")
    p_feed.add_argument("--group", default=None, help="Only this group heading of a timetable URL (e.g. 211)")
    p_feed.add_argument("--language", choices=LANGUAGES, default="ro-en")
    p_feed.add_argument("--terminal", action="store_true", help="Final year of study")
    p_feed.add_argument("--no-vacations", action="store_true")
    p_feed.add_argument("--no-exams", action="store_true")
    p_feed.add_argument("--no-free-days", action="store_true")
    p_feed.add_argument("--expand", action="store_true", help="One event per occurrence instead of RRULEs")
    p_feed.add_argument("--semester-start", type=date.fromisoformat, default=None, help="YYYY-MM-DD")
    p_feed.add_argument("--semester-end", type=date.fromisoformat, default=None, help="YYYY-MM-DD")
    p_feed.add_argument("--user-id", default="local")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    if args.command == "parse":
        raise SystemExit(_cmd_parse(args))
    if args.command == "calendar":
        raise SystemExit(_cmd_calendar(args))
    if args.command == "feed":
        raise SystemExit(_cmd_feed(args))

    raise SystemExit(2)
