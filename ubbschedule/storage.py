"""
JSON files used by the CLI.

- parsed timetables: one file per timetable, Timetable.to_dict() layout
- user entries: the frontend export, either a list of entry objects or
  {"entries": [...]}

Malformed files raise ValueError naming the file, so the CLI can report them.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List

from ubbschedule.model import Timetable, UserTimetableEntry


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValueError(f"{path}: not valid JSON ({exc})") from exc


def timetable_filename(timetable: Timetable) -> str:
    """e.g. 2025-1_INFO3.json, or 2025-1_INFO3_211.json for a group timetable."""
    name = f"{timetable.academic_year}-{timetable.semester}_{timetable.specialization}{timetable.year_of_study}"
    if timetable.group_name:
        suffix = "".join(ch for ch in timetable.group_name if ch.isalnum())
        name = f"{name}_{suffix}"
    return f"{name}.json"


def save_timetable(timetable: Timetable, path: str | Path) -> Path:
    """
    Save a timetable as JSON. Creates parent directories if needed.
    """
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(timetable.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    return out


def load_timetable(path: str | Path) -> Timetable:
    src = Path(path)
    data = _read_json(src)
    if not isinstance(data, dict) or not isinstance(data.get("entries"), list):
        raise ValueError(f"{src}: expected an object with an 'entries' list")
    return Timetable.from_dict(data)


def load_user_entries(path: str | Path) -> List[UserTimetableEntry]:
    src = Path(path)
    data = _read_json(src)
    if isinstance(data, dict):
        data = data.get("entries")
    if not isinstance(data, list):
        raise ValueError(f"{src}: expected a list of timetable entries")

    entries: List[UserTimetableEntry] = []
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            raise ValueError(f"{src}: entry {i} is not an object")
        try:
            entries.append(UserTimetableEntry.from_dict(item))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{src}: entry {i} is malformed ({exc})") from exc
    return entries


def is_user_entries_file(path: str | Path) -> bool:
    """True for frontend exports (entries with an 'interval'), False otherwise."""
    data = _read_json(Path(path))
    if isinstance(data, dict) and "academic_year" not in data:
        data = data.get("entries")
    return isinstance(data, list) and any(isinstance(e, dict) and "interval" in e for e in data)
