"""
Process-wide cache for the scraped academic calendar.

The cache owns one immutable CacheEntry (all language variants + the time
they were fetched). A refresh replaces the entry as a whole, so readers see
either the old or the new calendar, never a mix. Refreshes are serialized by
a lock; callers that waited for a running refresh reuse its result.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, List, NamedTuple, Optional

from ubbschedule.academic_calendar import find_structure, scrape_academic_calendar
from ubbschedule.config import Settings, get_settings
from ubbschedule.errors import CalendarScrapeError
from ubbschedule.model import AcademicYearStructure

logger = logging.getLogger(__name__)

Loader = Callable[[], List[AcademicYearStructure]]
Clock = Callable[[], datetime]


class CacheEntry(NamedTuple):
    structures: tuple
    fetched_at: datetime


class AcademicCalendarCache:
    def __init__(
        self,
        loader: Optional[Loader] = None,
        ttl: timedelta = timedelta(hours=24),
        clock: Optional[Clock] = None,
    ) -> None:
        self._loader = loader or scrape_academic_calendar
        self.ttl = ttl
        self._clock = clock or datetime.now
        self._entry: Optional[CacheEntry] = None
        self._lock = threading.Lock()

    @property
    def fetched_at(self) -> Optional[datetime]:
        entry = self._entry
        return entry.fetched_at if entry else None

    def _is_fresh(self, entry: Optional[CacheEntry]) -> bool:
        return entry is not None and self._clock() - entry.fetched_at < self.ttl

    def is_fresh(self) -> bool:
        return self._is_fresh(self._entry)

    def invalidate(self) -> None:
        self._entry = None
        logger.info("Academic calendar cache invalidated")

    def refresh(self) -> List[AcademicYearStructure]:
        """
        Scrape again and swap the cached entry.

        Raises CalendarScrapeError; the previous entry stays in place then.
        """
        with self._lock:
            return list(self._refresh_locked().structures)

    def _refresh_locked(self) -> CacheEntry:
        try:
            structures = self._loader()
        except CalendarScrapeError:
            raise
        except Exception as exc:
            raise CalendarScrapeError(f"Academic calendar loader failed: {exc}") from exc

        entry = CacheEntry(structures=tuple(structures), fetched_at=self._clock())
        self._entry = entry
        logger.info("Academic calendar cached (%d language variants)", len(entry.structures))
        return entry

    def structures(self) -> List[AcademicYearStructure]:
        entry = self._entry
        if not self._is_fresh(entry):
            with self._lock:
                entry = self._entry
                # another thread may have refreshed while we waited
                if not self._is_fresh(entry):
                    entry = self._refresh_locked()
        return list(entry.structures)

    def get(self, language: str = "ro-en") -> Optional[AcademicYearStructure]:
        """Structure for one language variant, None if the page lacks it."""
        return find_structure(self.structures(), language)


_default_cache: Optional[AcademicCalendarCache] = None
_default_lock = threading.Lock()


def build_cache(settings: Optional[Settings] = None) -> AcademicCalendarCache:
    settings = settings or get_settings()
    return AcademicCalendarCache(
        loader=lambda: scrape_academic_calendar(settings.academic_calendar_url),
        ttl=timedelta(hours=settings.calendar_cache_hours),
        clock=lambda: datetime.now(settings.timezone),
    )


def get_default_cache() -> AcademicCalendarCache:
    global _default_cache
    with _default_lock:
        if _default_cache is None:
            _default_cache = build_cache()
        return _default_cache
