"""
iCalendar (.ics) export.

We convert an assembled feed into a calendar file (or subscription body)
that can be imported into:
- Google Calendar
- Outlook
- Apple Calendar

Recurring classes are written as one VEVENT with RRULE + EXDATE; in expanded
mode every occurrence becomes its own VEVENT. Academic periods are all-day
events.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import List, Optional
from zoneinfo import ZoneInfo

from ubbschedule.config import get_settings
from ubbschedule.model import EventType, Occurrence, PeriodBlock, PeriodType
from ubbschedule.recurrence import SeriesDefinition

PRODID = "-//ubbschedule//UBB Smart Schedule//EN"
UID_DOMAIN = "ubbschedule"
MAX_LINE_OCTETS = 75
ALARM_MINUTES = 15

_BYDAY = ("SU", "MO", "TU", "WE", "TH", "FR", "SA")

# RFC 7986 COLOR takes CSS3 color names
PERIOD_COLORS = {
    PeriodType.VACATION: "green",
    PeriodType.FREE_DAY: "red",
    PeriodType.EXAMS: "orange",
    PeriodType.RETAKES: "orangered",
    PeriodType.PREPARATION: "royalblue",
    PeriodType.PRACTICE: "darkcyan",
    PeriodType.GRADUATION: "purple",
}


def _ics_escape(text: str) -> str:
    """
    Escape text for ICS fields.
    """
    return (
        text.replace("\\", "\\\\").replace("\r\n", "\\n").replace("\n", "\\n").replace(";", "\\;").replace(",", "\\,")
    )


def fold_line(line: str) -> List[str]:
    """
    Split a content line into chunks of at most 75 octets (UTF-8), never
    inside a multi-byte character. Continuation chunks start with a space.
    """
    out: List[str] = []
    current = ""
    size = 0
    limit = MAX_LINE_OCTETS
    for ch in line:
        n = len(ch.encode("utf-8"))
        if size + n > limit:
            out.append(current)
            current = " "
            size = 1
        current += ch
        size += n
    out.append(current)
    return out


# ---------------------------------------------------------------------------
# Date formatting
# ---------------------------------------------------------------------------


def _dt_local(dt: datetime, tz: ZoneInfo) -> str:
    """
    Wall-clock time in `tz` as 'YYYYMMDDTHHMMSS'.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(tz)
    return dt.strftime("%Y%m%dT%H%M%S")


def _dt_utc(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _until_utc(day: date, tz: ZoneInfo) -> str:
    """Last second of `day` in `tz`, as UTC."""
    return _dt_utc(datetime.combine(day, time(23, 59, 59)).replace(tzinfo=tz))


def _offset(delta: Optional[timedelta]) -> str:
    minutes = int((delta or timedelta()).total_seconds() // 60)
    sign = "+" if minutes >= 0 else "-"
    minutes = abs(minutes)
    return f"{sign}{minutes // 60:02d}{minutes % 60:02d}"


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------


def vtimezone_lines(tz_name: str, year: Optional[int] = None) -> List[str]:
    """
    VTIMEZONE for an EU-style zone: summer time from the last Sunday of March
    to the last Sunday of October, both switches at 01:00 UTC.
    """
    tz = ZoneInfo(tz_name)
    year = year or datetime.now(tz).year
    winter = datetime(year, 1, 15, 12, tzinfo=tz).utcoffset()
    summer = datetime(year, 7, 15, 12, tzinfo=tz).utcoffset()
    winter_abbr = datetime(year, 1, 15, 12, tzinfo=tz).tzname() or tz_name
    summer_abbr = datetime(year, 7, 15, 12, tzinfo=tz).tzname() or tz_name

    lines = ["BEGIN:VTIMEZONE", f"TZID:{tz_name}", f"X-LIC-LOCATION:{tz_name}"]
    if winter == summer:
        lines += [
            "BEGIN:STANDARD",
            f"TZOFFSETFROM:{_offset(winter)}",
            f"TZOFFSETTO:{_offset(winter)}",
            f"TZNAME:{winter_abbr}",
            "DTSTART:19700101T000000",
            "END:STANDARD",
        ]
    else:
        # local wall time of the 01:00 UTC switch, before the change
        spring_at = (datetime(1970, 1, 1, 1) + winter).strftime("T%H%M%S")
        autumn_at = (datetime(1970, 1, 1, 1) + summer).strftime("T%H%M%S")
        lines += [
            "BEGIN:DAYLIGHT",
            f"TZOFFSETFROM:{_offset(winter)}",
            f"TZOFFSETTO:{_offset(summer)}",
            f"TZNAME:{summer_abbr}",
            f"DTSTART:19700329{spring_at}",
            "RRULE:FREQ=YEARLY;BYMONTH=3;BYDAY=-1SU",
            "END:DAYLIGHT",
            "BEGIN:STANDARD",
            f"TZOFFSETFROM:{_offset(summer)}",
            f"TZOFFSETTO:{_offset(winter)}",
            f"TZNAME:{winter_abbr}",
            f"DTSTART:19701025{autumn_at}",
            "RRULE:FREQ=YEARLY;BYMONTH=10;BYDAY=-1SU",
            "END:STANDARD",
        ]
    lines.append("END:VTIMEZONE")
    return lines


def rrule_value(series: SeriesDefinition, tz: ZoneInfo) -> str:
    parts = ["FREQ=WEEKLY"]
    if series.interval > 1:
        parts.append(f"INTERVAL={series.interval}")
    if series.by_day:
        parts.append("BYDAY=" + ",".join(_BYDAY[d] for d in series.by_day))
    if series.until is not None:
        parts.append(f"UNTIL={_until_utc(series.until, tz)}")
    elif series.count:
        parts.append(f"COUNT={series.count}")
    return ";".join(parts)


def _alarm_lines(event_type: str) -> List[str]:
    if event_type not in (EventType.LECTURE, EventType.LAB):
        return []
    return [
        "BEGIN:VALARM",
        "ACTION:DISPLAY",
        "DESCRIPTION:Reminder",
        f"TRIGGER:-PT{ALARM_MINUTES}M",
        "END:VALARM",
    ]


def _text_lines(title: str, location: str, description: str, event_type: str, color: str = "") -> List[str]:
    lines = [f"SUMMARY:{_ics_escape(title)}"]
    if location:
        lines.append(f"LOCATION:{_ics_escape(location)}")
    if description:
        lines.append(f"DESCRIPTION:{_ics_escape(description)}")
    lines.append(f"CATEGORIES:{_ics_escape(event_type)}")
    if color:
        lines.append(f"COLOR:{color}")
    return lines


def series_lines(series: SeriesDefinition, tz: ZoneInfo, dtstamp: str) -> List[str]:
    ev = series.event
    lines = [
        "BEGIN:VEVENT",
        f"UID:{_ics_escape(ev.id)}@{UID_DOMAIN}",
        f"DTSTAMP:{dtstamp}",
        f"DTSTART;TZID={tz.key}:{_dt_local(series.start, tz)}",
        f"DTEND;TZID={tz.key}:{_dt_local(series.end, tz)}",
    ]
    lines += _text_lines(ev.title, ev.location, ev.description, ev.type, ev.color)
    if series.is_recurring:
        lines.append(f"RRULE:{rrule_value(series, tz)}")
        if series.exdates:
            stamps = ",".join(_dt_local(d, tz) for d in series.exdates)
            lines.append(f"EXDATE;TZID={tz.key}:{stamps}")
    lines += _alarm_lines(ev.type)
    lines.append("END:VEVENT")
    return lines


def occurrence_lines(occ: Occurrence, tz: ZoneInfo, dtstamp: str, color: str = "") -> List[str]:
    lines = [
        "BEGIN:VEVENT",
        f"UID:{_ics_escape(occ.event_id)}-{_dt_local(occ.start, tz)}@{UID_DOMAIN}",
        f"DTSTAMP:{dtstamp}",
        f"DTSTART;TZID={tz.key}:{_dt_local(occ.start, tz)}",
        f"DTEND;TZID={tz.key}:{_dt_local(occ.end, tz)}",
    ]
    lines += _text_lines(occ.title, occ.location, occ.description, occ.type, color)
    lines += _alarm_lines(occ.type)
    lines.append("END:VEVENT")
    return lines


def block_lines(block: PeriodBlock, dtstamp: str) -> List[str]:
    # DTEND of an all-day event is exclusive
    end = block.end_date + timedelta(days=1)
    lines = [
        "BEGIN:VEVENT",
        f"UID:{_ics_escape(block.id)}@{UID_DOMAIN}",
        f"DTSTAMP:{dtstamp}",
        f"DTSTART;VALUE=DATE:{block.start_date:%Y%m%d}",
        f"DTEND;VALUE=DATE:{end:%Y%m%d}",
    ]
    lines += _text_lines(block.title, "", block.description, block.type, PERIOD_COLORS.get(block.type, ""))
    lines += ["TRANSP:TRANSPARENT", "END:VEVENT"]
    return lines


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


def render_feed(
    feed,
    tz_name: Optional[str] = None,
    calendar_name: Optional[str] = None,
    expanded: bool = False,
    now: Optional[datetime] = None,
) -> str:
    """
    Render a Feed as iCalendar text (CRLF line endings, folded lines).
    """
    if tz_name is None or calendar_name is None:
        settings = get_settings()
        tz_name = tz_name or settings.timezone_name
        calendar_name = calendar_name or settings.calendar_name

    tz = ZoneInfo(tz_name)
    dtstamp = _dt_utc(now or datetime.now(timezone.utc))
    year = feed.series[0].start.year if feed.series else None

    lines: List[str] = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        f"X-WR-CALNAME:{_ics_escape(calendar_name)}",
        f"X-WR-TIMEZONE:{tz_name}",
        "REFRESH-INTERVAL;VALUE=DURATION:PT12H",
        "X-PUBLISHED-TTL:PT12H",
    ]
    lines += vtimezone_lines(tz_name, year)

    if expanded:
        colors = {s.event.id: s.event.color for s in feed.series}
        for occ in feed.occurrences:
            lines += occurrence_lines(occ, tz, dtstamp, colors.get(occ.event_id, ""))
    else:
        for series in feed.series:
            lines += series_lines(series, tz, dtstamp)

    for block in feed.blocks:
        lines += block_lines(block, dtstamp)

    lines.append("END:VCALENDAR")

    folded: List[str] = []
    for line in lines:
        folded.extend(fold_line(line))

    # ICS standard uses CRLF
    return "\r\n".join(folded) + "\r\n"


def count_events(text: str) -> int:
    return sum(1 for line in text.split("\r\n") if line == "BEGIN:VEVENT")


def export_feed_to_ics(feed, out_path: str | Path, **render_options) -> int:
    """
    Write a feed to an .ics file. Returns number of exported VEVENTs.
    """
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)

    text = render_feed(feed, **render_options)
    out.write_bytes(text.encode("utf-8"))
    return count_events(text)


def validate_ics(text: str) -> List[str]:
    """
    Structural checks on rendered calendar text. Returns the problems found
    (empty list for a well-formed calendar).
    """
    problems: List[str] = []
    if not text.endswith("\r\n"):
        problems.append("calendar does not end with CRLF")

    lines = text.split("\r\n")
    if lines and lines[-1] == "":
        lines.pop()

    if not lines or lines[0] != "BEGIN:VCALENDAR":
        problems.append("missing BEGIN:VCALENDAR")
    if not lines or lines[-1] != "END:VCALENDAR":
        problems.append("missing END:VCALENDAR")

    stack: List[str] = []
    props: set = set()
    for n, line in enumerate(lines, 1):
        if "\n" in line or "\r" in line:
            problems.append(f"line {n}: bare line break")
        if len(line.encode("utf-8")) > MAX_LINE_OCTETS:
            problems.append(f"line {n}: longer than {MAX_LINE_OCTETS} octets")
        if line.startswith(" "):
            continue

        name = line.split(":", 1)[0].split(";", 1)[0]
        if name == "BEGIN":
            stack.append(line[6:])
            if line == "BEGIN:VEVENT":
                props = set()
        elif name == "END":
            component = line[4:]
            if not stack or stack[-1] != component:
                problems.append(f"line {n}: unbalanced END:{component}")
                continue
            stack.pop()
            if component == "VEVENT":
                for required in ("UID", "DTSTAMP", "DTSTART"):
                    if required not in props:
                        problems.append(f"line {n}: VEVENT without {required}")
        elif stack and stack[-1] == "VEVENT":
            props.add(name)

    if stack:
        problems.append(f"unclosed components: {', '.join(stack)}")
    return problems
