"""
Date helpers shared by the coverage and risk evaluators.
"""

from datetime import date, datetime
from typing import Any, Optional


def to_date(value: Any) -> Optional[date]:
    """
    Normalize a date-like value to a date.

    Accepts date, datetime, or ISO strings ("2025-03-01", "2025-03-01T10:00:00Z").
    Anything unparseable becomes None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    return None


def format_short(value: Optional[date]) -> str:
    """Short label for messages, e.g. 'Mar 5'."""
    if value is None:
        return ""
    return f"{value.strftime('%b')} {value.day}"
