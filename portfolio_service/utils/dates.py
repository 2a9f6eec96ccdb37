"""
Date helpers shared by the filter, view date and comparison stages.
"""

from datetime import date, datetime
from typing import Any, Optional, Tuple


class InvalidDateRangeError(ValueError):
    """Raised when a date range has its start after its end."""
    pass


def parse_date(value: Any) -> Optional[date]:
    """
    Parse an ISO date or datetime into a date.

    Accepts date/datetime objects and strings like '2024-01-01' or
    '2024-01-01T00:00:00'. Returns None for empty values.

    Raises:
        ValueError: If a non-empty value cannot be parsed
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(f"Unsupported date value: {value!r}")


def require_date(value: Any, name: str = "date") -> date:
    """Parse a caller-supplied date argument; None is not allowed."""
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"{name} is required")
    return parsed


def validate_range(start: Any, end: Any) -> Tuple[date, date]:
    """Parse and validate an inclusive [start, end] range."""
    start_date = require_date(start, "start")
    end_date = require_date(end, "end")
    if start_date > end_date:
        raise InvalidDateRangeError(f"Invalid date range: start {start_date} is after end {end_date}")
    return start_date, end_date
