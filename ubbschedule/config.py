from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Bucharest"
DEFAULT_CALENDAR_URL = "https://www.cs.ubbcluj.ro/invatamant/structura-anului-universitar/"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122 Safari/537.36"
)


@dataclass(frozen=True)
class Settings:
    timezone: ZoneInfo
    academic_calendar_url: str = DEFAULT_CALENDAR_URL
    request_timeout: float = 15.0
    batch_size: int = 5
    batch_delay: float = 0.1
    calendar_cache_hours: float = 24.0
    empty_page_bytes: int = 1000
    user_agent: str = DEFAULT_USER_AGENT
    calendar_name: str = "UBB Smart Schedule"

    @property
    def timezone_name(self) -> str:
        return self.timezone.key


def get_timezone() -> ZoneInfo:
    tz_name = os.getenv("UBB_TIMEZONE", DEFAULT_TIMEZONE)
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Invalid UBB_TIMEZONE %s, falling back to %s", tz_name, DEFAULT_TIMEZONE)
        return ZoneInfo(DEFAULT_TIMEZONE)


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        logger.warning("Invalid %s=%r, using %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("%s must be positive, using %s", name, default)
        return default
    return value


def get_settings() -> Settings:
    return Settings(
        timezone=get_timezone(),
        academic_calendar_url=os.getenv("UBB_ACADEMIC_CALENDAR_URL", DEFAULT_CALENDAR_URL),
        request_timeout=_env_number("UBB_REQUEST_TIMEOUT", 15.0, float),
        batch_size=_env_number("UBB_BATCH_SIZE", 5, int),
        batch_delay=_env_number("UBB_BATCH_DELAY", 0.1, float),
        calendar_cache_hours=_env_number("UBB_CALENDAR_CACHE_HOURS", 24.0, float),
        empty_page_bytes=_env_number("UBB_EMPTY_PAGE_BYTES", 1000, int),
        user_agent=os.getenv("UBB_USER_AGENT", DEFAULT_USER_AGENT),
        calendar_name=os.getenv("UBB_CALENDAR_NAME", "UBB Smart Schedule"),
    )
