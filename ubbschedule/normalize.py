"""
Cell cleanup and the row builder.

Every function here is idempotent: cleaning an already clean value returns it
unchanged.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import replace
from typing import Dict, Optional

from ubbschedule.model import ENTRY_FIELDS, TimetableEntry

_SPACES = re.compile(r"\s+")
_COMMAS = re.compile(r"\s*(?:,\s*)+")

# Legacy cedilla forms that Romanian pages still mix with the comma-below ones.
_CEDILLA = str.maketrans({"ş": "ș", "Ş": "Ș", "ţ": "ț", "Ţ": "Ț"})


def clean_cell(text: Optional[str]) -> str:
    if not text:
        return ""
    s = unicodedata.normalize("NFC", text.replace("\u00a0", " ")).translate(_CEDILLA)
    return _SPACES.sub(" ", s).strip()


def clean_teacher(text: Optional[str]) -> str:
    s = _COMMAS.sub(", ", clean_cell(text))
    return s.strip(", ").strip()


def normalize_entry(entry: TimetableEntry) -> TimetableEntry:
    values = {name: clean_cell(getattr(entry, name)) for name in ENTRY_FIELDS}
    values["teacher"] = clean_teacher(values["teacher"])
    return replace(entry, **values)


class EntryBuilder:
    """
    Collects the cells of one table row.

    build() returns None for spacer rows (no day, subject and hours), otherwise
    a TimetableEntry with every field set.
    """

    def __init__(self, default_group: str = "", has_group_column: bool = False) -> None:
        self.default_group = default_group
        self.has_group_column = has_group_column
        self._values: Dict[str, str] = {}
        self._group_seen = False

    def set(self, field_name: str, raw_text: Optional[str]) -> "EntryBuilder":
        if field_name not in ENTRY_FIELDS:
            raise KeyError(field_name)
        text = clean_cell(raw_text)
        if field_name == "group":
            self._group_seen = True
            self._values["group"] = text
        elif text:
            self._values[field_name] = text
        return self

    @property
    def has_core(self) -> bool:
        return any(self._values.get(k) for k in ("day", "subject", "hours"))

    def build(self) -> Optional[TimetableEntry]:
        if not self.has_core:
            return None

        values = {name: self._values.get(name, "") for name in ENTRY_FIELDS}

        # an explicit group cell is kept as printed, never synthesized
        if not (self.has_group_column and self._group_seen):
            values["group"] = self.default_group

        values["teacher"] = clean_teacher(values["teacher"])
        return TimetableEntry(**values)
