"""
Academic calendar ("Structura anului universitar").

The faculty publishes one page with two sections, Romanian/English and
Hungarian/German lines of study. Each section is an <h1> followed by a table:

    SEMESTRUL I                                   (header row, <th>)
    29.09.2025 - 21.12.2025 | Activitate didactică (7 săptămâni (luni, 01.12.2025, ...
    22.12.2025 - 04.01.2026 | Vacanța de iarnă
    ...
    SEMESTRUL II - ani neterminali
    SEMESTRUL II - ani terminali

Each data row becomes an AcademicPeriod, classified from its description.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Iterable, List, Optional, Tuple

from bs4 import BeautifulSoup
from bs4.element import Tag

from ubbschedule.config import get_settings
from ubbschedule.errors import CalendarScrapeError, NetworkError
from ubbschedule.fetch import Fetcher, fetch_document
from ubbschedule.headers import strip_diacritics
from ubbschedule.model import AcademicPeriod, AcademicYearStructure, PeriodType, SemesterStructure

logger = logging.getLogger(__name__)

LANGUAGES = ("ro-en", "hu-de")

_DATE_RANGE = re.compile(r"(\d{2})\.(\d{2})\.(\d{4})\s*-\s*(\d{2})\.(\d{2})\.(\d{4})")
_DASHES = str.maketrans({"–": "-", "—": "-"})
_ACADEMIC_YEAR = re.compile(r"(\d{4})\s*-\s*(\d{4})")

_FREE_DAY_MARKER = re.compile(r"[–—-]\s*zil?e?\s+liber[ăae]", re.IGNORECASE)
_FREE_DAY_BLOCK = re.compile(r"\(([^)]+[–—-]\s*zil?e?\s+liber[ăae])", re.IGNORECASE)
_FREE_DAY_ITEM = re.compile(
    r"(luni|mar[țţt]i|miercuri|joi|vineri|s[âa]mb[ăa]t[ăa]|duminic[ăa]),?\s+"
    r"(\d{2}\.\d{2}\.\d{4}),\s+"
    r"([^,]+?)(?=\s+(?:și|şi|si)\s|\s*[–—-]|\s*$)",
    re.IGNORECASE,
)

# Ordered: the first matching rule wins. Keywords are diacritic-free.
_PERIOD_RULES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (PeriodType.TEACHING, ("activitate didactica", "pregatirea anului")),
    (PeriodType.VACATION, ("vacant",)),
    (PeriodType.EXAMS, ("sesiune de examene", "sesiune examene", "sesiunea de examene")),
    (PeriodType.RETAKES, ("restant",)),
    (PeriodType.PRACTICE, ("practica",)),
    (PeriodType.PREPARATION, ("pregatirea examenului",)),
    (PeriodType.GRADUATION, ("licenta", "disertatie")),
    (PeriodType.FREE_DAY, ("zi libera", "zi nelucratoare", "sarbatoare", "free day", "holiday")),
)


# ---------------------------------------------------------------------------
# Cell parsing
# ---------------------------------------------------------------------------


def parse_date_range(text: str) -> Optional[Tuple[date, date]]:
    """
    Parse "DD.MM.YYYY - DD.MM.YYYY" (hyphen, en dash or em dash).
    """
    m = _DATE_RANGE.search((text or "").translate(_DASHES))
    if not m:
        return None
    sd, sm, sy, ed, em, ey = (int(x) for x in m.groups())
    try:
        return date(sy, sm, sd), date(ey, em, ed)
    except ValueError:
        return None


def _fold(text: str) -> str:
    return strip_diacritics(text.lower())


def classify_period(description: str) -> str:
    folded = _fold(description or "")
    for period_type, keywords in _PERIOD_RULES:
        if any(k in folded for k in keywords):
            return period_type
    return PeriodType.TEACHING


def _parse_day(text: str) -> Optional[date]:
    try:
        return datetime.strptime(text, "%d.%m.%Y").date()
    except ValueError:
        return None


def extract_free_days(
    description: str,
    notes: Optional[str],
    period_start: date,
    period_end: date,
) -> List[AcademicPeriod]:
    """
    Pull public holidays out of a teaching period description, e.g.
    "7 săptămâni (luni, 01.12.2025, Ziua Marii Uniri - zi liberă)".
    """
    full_text = f"{description} {notes or ''}"
    if not _FREE_DAY_MARKER.search(full_text):
        return []

    block = _FREE_DAY_BLOCK.search(full_text)
    if not block:
        return []

    out: List[AcademicPeriod] = []
    for m in _FREE_DAY_ITEM.finditer(block.group(1)):
        day = _parse_day(m.group(2))
        label = m.group(3).strip()
        if day is None or len(label) <= 2:
            continue
        if period_start <= day <= period_end:
            out.append(
                AcademicPeriod(
                    start_date=day,
                    end_date=day,
                    type=PeriodType.FREE_DAY,
                    description=label,
                    notes="Zi liberă națională",
                )
            )
    return out


# ---------------------------------------------------------------------------
# Table / page parsing
# ---------------------------------------------------------------------------


def _semester_from_header(header: str) -> Optional[SemesterStructure]:
    # "SEMESTRUL II" contains "SEMESTRUL I", so check II first
    if "SEMESTRUL II" in header:
        if "neterminali" in header:
            return SemesterStructure(semester="II", year_type="non-terminal")
        if "terminali" in header:
            return SemesterStructure(semester="II", year_type="terminal")
        return SemesterStructure(semester="II")
    if "SEMESTRUL I" in header:
        return SemesterStructure(semester="I")
    return None


def parse_calendar_table(table: Tag) -> List[SemesterStructure]:
    semesters: List[SemesterStructure] = []
    current: Optional[SemesterStructure] = None

    for row in table.find_all("tr"):
        header = " ".join(th.get_text(" ", strip=True) for th in row.find_all("th"))

        if "SEMESTRUL" in header:
            current = _semester_from_header(header)
            if current is not None:
                semesters.append(current)
            continue

        cells = row.find_all("td")
        if len(cells) < 2 or current is None:
            continue

        date_text = cells[0].get_text(" ", strip=True)
        description = cells[1].get_text(" ", strip=True)
        notes = cells[2].get_text(" ", strip=True) if len(cells) >= 3 else None

        date_range = parse_date_range(date_text)
        if date_range is None:
            continue
        start, end = date_range
        if start > end:
            logger.warning("Skipping inverted period %s (%s)", date_text, description)
            continue

        current.periods.append(
            AcademicPeriod(
                start_date=start,
                end_date=end,
                type=classify_period(description),
                description=description,
                notes=notes,
            )
        )
        current.periods.extend(extract_free_days(description, notes, start, end))

    return semesters


def _section_language(heading_text: str) -> Optional[str]:
    folded = _fold(heading_text)
    if "romana" in folded and "engleza" in folded:
        return "ro-en"
    if "maghiara" in folded and "germana" in folded:
        return "hu-de"
    return None


def extract_academic_year(soup: BeautifulSoup) -> str:
    title = soup.select_one("h2.title")
    m = _ACADEMIC_YEAR.search(title.get_text(" ", strip=True)) if title else None
    return f"{m.group(1)}-{m.group(2)}" if m else "Unknown"


def parse_academic_calendar_html(html: str, *, now: Optional[datetime] = None) -> List[AcademicYearStructure]:
    soup = BeautifulSoup(html, "html.parser")
    academic_year = extract_academic_year(soup)
    scraped_at = now or datetime.now(get_settings().timezone)

    results: List[AcademicYearStructure] = []
    for heading in soup.find_all("h1"):
        language = _section_language(heading.get_text(" ", strip=True))
        if language is None:
            continue

        table = heading.find_next_sibling("table")
        if table is None:
            logger.warning("No table after the %s section heading", language)
            continue

        results.append(
            AcademicYearStructure(
                academic_year=academic_year,
                language=language,
                semesters=parse_calendar_table(table),
                last_scraped=scraped_at,
            )
        )
    return results


def scrape_academic_calendar(
    url: Optional[str] = None,
    *,
    fetch: Fetcher = fetch_document,
) -> List[AcademicYearStructure]:
    """
    Fetch and parse the academic calendar page.

    Raises CalendarScrapeError when the page cannot be fetched or holds no
    recognizable language section.
    """
    url = url or get_settings().academic_calendar_url
    logger.info("Fetching academic calendar from %s", url)

    try:
        html = fetch(url)
    except NetworkError as exc:
        raise CalendarScrapeError(f"Academic calendar unreachable: {exc}") from exc

    try:
        results = parse_academic_calendar_html(html)
    except (ValueError, AttributeError) as exc:
        raise CalendarScrapeError(f"Academic calendar unparseable: {exc}") from exc

    if not results:
        raise CalendarScrapeError(f"No academic calendar sections found at {url}")

    logger.info("Scraped academic calendar %s (%d language variants)", results[0].academic_year, len(results))
    return results


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def _as_date(day) -> date:
    return day.date() if isinstance(day, datetime) else day


def find_structure(structures: Iterable[AcademicYearStructure], language: str) -> Optional[AcademicYearStructure]:
    return next((s for s in structures if s.language == language), None)


def _periods_of_type(structure: AcademicYearStructure, period_type: str) -> List[AcademicPeriod]:
    return [p for semester in structure.semesters for p in semester.periods if p.type == period_type]


def get_vacations(structure: AcademicYearStructure) -> List[AcademicPeriod]:
    return _periods_of_type(structure, PeriodType.VACATION)


def get_free_days(structure: AcademicYearStructure) -> List[AcademicPeriod]:
    return _periods_of_type(structure, PeriodType.FREE_DAY)


def is_vacation(day, structure: AcademicYearStructure) -> bool:
    day = _as_date(day)
    return any(p.contains(day) for p in get_vacations(structure))


def is_free_day(day, structure: AcademicYearStructure) -> bool:
    day = _as_date(day)
    return any(p.contains(day) for p in get_free_days(structure))


def is_non_teaching_day(day, structure: AcademicYearStructure) -> bool:
    """True if no classes are held: vacation or free day."""
    return is_vacation(day, structure) or is_free_day(day, structure)


def applicable_semesters(structure: AcademicYearStructure, is_terminal_year: bool = False) -> List[SemesterStructure]:
    """
    Semesters that apply to a cohort: semester II exists in a terminal and a
    non-terminal flavour, only the matching one is kept.
    """
    wanted = "terminal" if is_terminal_year else "non-terminal"
    return [
        s for s in structure.semesters if not (s.semester == "II" and s.year_type and s.year_type != wanted)
    ]


def get_current_period(
    day,
    structure: AcademicYearStructure,
    is_terminal_year: bool = False,
) -> Optional[AcademicPeriod]:
    day = _as_date(day)
    for semester in applicable_semesters(structure, is_terminal_year):
        for period in semester.periods:
            if period.contains(day):
                return period
    return None
