"""Calendar date helpers shared by the stores and the availability engine."""

from __future__ import annotations

import datetime as dt
import re
from typing import Iterator

from .errors import ValidationError

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
INVALID_DATE_MESSAGE = "Invalid date format. Please use YYYY-MM-DD"

MAX_RANGE_DAYS = 366


def parse_date(value: str | dt.date | None, *, field: str = "date") -> dt.date:
    """Parse a strict ``YYYY-MM-DD`` string (or pass a date straight through)."""

    if isinstance(value, dt.datetime):
        raise ValidationError(INVALID_DATE_MESSAGE)
    if isinstance(value, dt.date):
        return value
    if not value:
        raise ValidationError(f"{field} is required")
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise ValidationError(INVALID_DATE_MESSAGE)
    try:
        return dt.date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(INVALID_DATE_MESSAGE) from exc


def daterange(start: dt.date, end: dt.date) -> Iterator[dt.date]:
    """Yield every date from ``start`` through ``end`` inclusive."""

    current = start
    while current <= end:
        yield current
        current += dt.timedelta(days=1)


def parse_range(start: str | dt.date, end: str | dt.date) -> tuple[dt.date, dt.date]:
    start_date = parse_date(start, field="startDate")
    end_date = parse_date(end, field="endDate")
    if end_date < start_date:
        raise ValidationError("End date must not be before start date")
    if (end_date - start_date).days >= MAX_RANGE_DAYS:
        raise ValidationError(f"Date range cannot exceed {MAX_RANGE_DAYS} days")
    return start_date, end_date
