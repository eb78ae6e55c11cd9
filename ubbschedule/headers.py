"""
Header vocabulary and scoring.

University pages contain plenty of layout tables. A table counts as a
timetable only if its first row contains at least three cells that match the
Romanian header vocabulary below. New synonyms go into HEADER_SYNONYMS only.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from typing import Dict, Iterable, List


MIN_HEADER_CELLS = 3
MIN_SCORE = 3

_NON_WORD = re.compile(r"[^\w\s]", re.UNICODE)
_SPACES = re.compile(r"\s+")


def strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_header(text: str) -> str:
    """Lowercase, strip diacritics and punctuation, collapse whitespace."""
    s = strip_diacritics((text or "").lower())
    s = _NON_WORD.sub("", s).replace("_", "")
    s = _SPACES.sub(" ", s)
    return s.strip()


# field name -> synonyms as printed on the pages
_VOCABULARY: Dict[str, tuple] = {
    "day": ("zi", "ziua", "ziua săptămânii"),
    "hours": ("ore", "ora", "orele", "interval orar"),
    "frequency": ("frecvența", "frecventa/se", "frecvența săptămânală"),
    "room": ("sala", "locație", "sala/lab", "sala/locație"),
    "group": ("grup", "grupa", "formație", "formația", "formatia/seria", "serie"),
    "type": ("tip", "tipul", "forma"),
    "subject": ("disciplina", "materie", "curs"),
    "teacher": (
        "profesor",
        "cadre didactice",
        "cadrul didactic",
        "titular",
        "titular curs",
        "titular/seminar",
    ),
}

HEADER_SYNONYMS: Dict[str, str] = {
    normalize_header(synonym): field_name
    for field_name, synonyms in _VOCABULARY.items()
    for synonym in synonyms
}


@dataclass
class HeaderMatch:
    score: int
    headers: List[str]
    mapping: Dict[int, str] = field(default_factory=dict)

    @property
    def is_timetable(self) -> bool:
        return is_timetable_header(self)


def is_timetable_header(match: HeaderMatch) -> bool:
    non_empty = [h for h in match.headers if h]
    return len(non_empty) >= MIN_HEADER_CELLS and match.score >= MIN_SCORE


def build_column_mapping(headers: Iterable[str]) -> Dict[int, str]:
    """Column index -> TimetableEntry field, for already normalized headers."""
    mapping: Dict[int, str] = {}
    for i, h in enumerate(headers):
        key = HEADER_SYNONYMS.get(h)
        if key:
            mapping[i] = key
    return mapping


def score_headers(raw_headers: Iterable[str]) -> HeaderMatch:
    headers = [normalize_header(h) for h in raw_headers]
    score = sum(1 for h in headers if h and h in HEADER_SYNONYMS)
    return HeaderMatch(score=score, headers=headers, mapping=build_column_mapping(headers))
