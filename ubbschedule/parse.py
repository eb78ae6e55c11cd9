"""
Parsing (timetable HTML -> structured Timetable).

- Validates the source URL and derives the timetable metadata from it
- Finds EVERY table whose first row looks like a timetable header
  (a page holds one table per student group)
- Projects each data row through the header -> field mapping

Important rules:
- The group ("Formatia") value is kept exactly as printed, e.g. "211/1"
- The URL-derived "{specialization}{year}" group is only a default for
  tables that have no group column at all
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from bs4 import BeautifulSoup
from bs4.element import Tag

from ubbschedule.config import get_settings
from ubbschedule.errors import (
    EmptyDocumentError,
    NetworkError,
    NoTimetableFoundError,
    ScheduleError,
    SourceFormatError,
)
from ubbschedule.fetch import Fetcher, fetch_document, fetch_many
from ubbschedule.headers import HeaderMatch, score_headers
from ubbschedule.model import Timetable, TimetableEntry, UrlMetadata
from ubbschedule.normalize import EntryBuilder

logger = logging.getLogger(__name__)

URL_REGEX = re.compile(r"/orar/(\d{4})-(\d)/tabelar/([A-Za-z0-9]+)\.html$", re.IGNORECASE)
_FILENAME_REGEX = re.compile(r"^([A-Za-z]+)(\d+)$")
_TRAILING_DIGITS = re.compile(r"\d+$")
_GROUP_HEADING = re.compile(r"\b\d{2,}\b")


# ---------------------------------------------------------------------------
# URL metadata
# ---------------------------------------------------------------------------


def extract_url_metadata(url: str) -> UrlMetadata:
    """
    Derive {academic_year, semester, specialization, year_of_study} from a URL
    like https://www.cs.ubbcluj.ro/files/orar/2025-1/tabelar/INFO3.html.
    """
    m = URL_REGEX.search((url or "").strip())
    if not m:
        raise SourceFormatError(
            f"URL does not match expected pattern {{YEAR}}-{{SEMESTER}}/tabelar/{{CODE}}.html: {url!r}"
        )
    academic_year, semester, filename = m.groups()

    fm = _FILENAME_REGEX.match(filename)
    if fm:
        specialization, year_of_study = fm.groups()
    else:
        # names like MaAI4CI1 mix letters and digits
        specialization = _TRAILING_DIGITS.sub("", filename)
        ym = _TRAILING_DIGITS.search(filename)
        year_of_study = ym.group(0) if ym else "1"

    return UrlMetadata(
        academic_year=academic_year,
        semester=semester,
        specialization=specialization,
        year_of_study=year_of_study,
    )


# ---------------------------------------------------------------------------
# Table extraction
# ---------------------------------------------------------------------------


@dataclass
class TimetableTable:
    element: Tag
    match: HeaderMatch

    @property
    def score(self) -> int:
        return self.match.score

    @property
    def has_group_column(self) -> bool:
        return "group" in self.match.mapping.values()


def _header_cells(table: Tag) -> List[str]:
    first_row = table.find("tr")
    if first_row is None:
        return []
    return [cell.get_text(" ") for cell in first_row.find_all(["th", "td"])]


def match_table(table: Tag) -> Optional[TimetableTable]:
    cells = _header_cells(table)
    if not cells:
        return None
    match = score_headers(cells)
    if not match.is_timetable:
        return None
    return TimetableTable(element=table, match=match)


def find_timetable_tables(soup: BeautifulSoup) -> List[TimetableTable]:
    """Return every table of the page that scores as a timetable."""
    found: List[TimetableTable] = []
    for table in soup.find_all("table"):
        candidate = match_table(table)
        if candidate is None:
            continue
        logger.debug("Found timetable table with score %d", candidate.score)
        found.append(candidate)
    return found


def parse_table_entries(table: TimetableTable, default_group: str = "") -> List[TimetableEntry]:
    entries: List[TimetableEntry] = []
    mapping = table.match.mapping

    rows = table.element.find_all("tr")
    for tr in rows[1:]:
        cells = tr.find_all("td")
        if not cells:
            continue

        builder = EntryBuilder(default_group=default_group, has_group_column=table.has_group_column)
        for ci, td in enumerate(cells):
            key = mapping.get(ci)
            if key:
                builder.set(key, td.get_text(" "))

        entry = builder.build()
        if entry is not None:
            entries.append(entry)

    return entries


def _no_tables_error(html: str, url: str) -> ScheduleError:
    size = len(html.encode("utf-8"))
    if size < get_settings().empty_page_bytes:
        return EmptyDocumentError(size, url)
    return NoTimetableFoundError(f"Could not locate any timetable tables on the page ({url})")


# ---------------------------------------------------------------------------
# Page parsing
# ---------------------------------------------------------------------------


def parse_timetable_html(html: str, url: str) -> Timetable:
    """
    Parse a complete timetable page. Entries of all tables are merged.
    """
    metadata = extract_url_metadata(url)
    soup = BeautifulSoup(html, "html.parser")

    tables = find_timetable_tables(soup)
    if not tables:
        raise _no_tables_error(html, url)

    entries: List[TimetableEntry] = []
    for table in tables:
        entries.extend(parse_table_entries(table, default_group=metadata.default_group))

    return Timetable.from_metadata(metadata, entries)


def parse_timetables_by_group_html(html: str, url: str) -> List[Timetable]:
    """
    One Timetable per group heading ("Grupa 211" followed by its table).

    Entries keep the raw formation value; no default group is filled in.
    """
    metadata = extract_url_metadata(url)
    soup = BeautifulSoup(html, "html.parser")

    out: List[Timetable] = []
    for heading in soup.find_all(["h1", "h2", "h3"]):
        heading_text = heading.get_text(" ", strip=True)
        if not _GROUP_HEADING.search(heading_text):
            continue

        table_el = heading.find_next_sibling("table")
        if table_el is None:
            continue

        table = match_table(table_el)
        if table is None:
            continue

        entries = parse_table_entries(table)
        if entries:
            out.append(Timetable.from_metadata(metadata, entries, group_name=heading_text))

    if not out:
        raise _no_tables_error(html, url)
    return out


def parse_timetable(url: str, *, fetch: Fetcher = fetch_document) -> Timetable:
    extract_url_metadata(url)
    return parse_timetable_html(fetch(url), url)


def parse_timetables_by_group(url: str, *, fetch: Fetcher = fetch_document) -> List[Timetable]:
    extract_url_metadata(url)
    return parse_timetables_by_group_html(fetch(url), url)


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------


@dataclass
class BatchReport:
    timetables: List[Timetable]
    failures: Dict[str, ScheduleError]

    @property
    def empty(self) -> List[str]:
        return [u for u, e in self.failures.items() if isinstance(e, EmptyDocumentError)]


def _log_failure(url: str, error: ScheduleError) -> None:
    name = url.rsplit("/", 1)[-1]
    if isinstance(error, EmptyDocumentError):
        logger.info("Empty: %s", name)
    elif isinstance(error, NoTimetableFoundError):
        logger.warning("No data: %s", name)
    elif isinstance(error, SourceFormatError):
        logger.error("URL pattern: %s", name)
    else:
        logger.error("Failed: %s: %s", name, error)


def parse_many(
    urls: Sequence[str],
    *,
    by_group: bool = False,
    fetch: Fetcher = fetch_document,
    batch_size: Optional[int] = None,
    delay: Optional[float] = None,
    on_result=None,
) -> BatchReport:
    """
    Fetch and parse many timetable pages. Failures are collected per URL.
    """
    failures: Dict[str, ScheduleError] = {}
    valid: List[str] = []
    for url in urls:
        try:
            extract_url_metadata(url)
        except SourceFormatError as exc:
            failures[url] = exc
            _log_failure(url, exc)
            continue
        valid.append(url)

    timetables: List[Timetable] = []
    results = fetch_many(valid, fetch=fetch, batch_size=batch_size, delay=delay, on_result=on_result)
    for result in results:
        if not result.ok:
            error = result.error
            if not isinstance(error, ScheduleError):
                error = NetworkError(result.url, str(error))
            failures[result.url] = error
            _log_failure(result.url, error)
            continue
        try:
            if by_group:
                timetables.extend(parse_timetables_by_group_html(result.text, result.url))
            else:
                timetables.append(parse_timetable_html(result.text, result.url))
        except ScheduleError as exc:
            failures[result.url] = exc
            _log_failure(result.url, exc)

    logger.info("Parsed %d timetables, %d failures", len(timetables), len(failures))
    return BatchReport(timetables=timetables, failures=failures)


def timetable_to_json(timetable: Timetable, pretty: bool = True) -> str:
    return json.dumps(timetable.to_dict(), ensure_ascii=False, indent=2 if pretty else None)
