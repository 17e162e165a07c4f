"""
Core Utilities

Shared helpers used across the services.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """
    Return timezone-aware UTC datetime.

    Use this instead of datetime.utcnow() which returns naive datetime.
    """
    return datetime.now(timezone.utc)


def clamp_page(page: int, limit: int, default_limit: int, max_limit: int) -> tuple:
    """Normalise pagination input into (page, limit, offset)."""
    page = max(1, page or 1)
    limit = limit or default_limit
    limit = max(1, min(limit, max_limit))
    return page, limit, (page - 1) * limit
