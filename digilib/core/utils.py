"""
Utility helpers shared across routers/services.
"""

from datetime import datetime, timezone
from math import ceil
from typing import Optional

DEFAULT_PAGE_SIZE = 15
MIN_PAGE_SIZE = 5
MAX_PAGE_SIZE = 50


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize datetimes read back from the database.

    SQLite hands back naive values; every timestamp is written in UTC, so a
    naive value is tagged as UTC rather than interpreted as local time.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def clamp_page(page: Optional[int], limit: Optional[int]) -> tuple[int, int]:
    page_value = max(1, int(page or 1))
    limit_value = int(limit or DEFAULT_PAGE_SIZE)
    limit_value = min(MAX_PAGE_SIZE, max(MIN_PAGE_SIZE, limit_value))
    return page_value, limit_value


def total_pages(total: int, limit: int) -> int:
    if limit <= 0:
        return 0
    return ceil(total / limit)


def like_pattern(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
