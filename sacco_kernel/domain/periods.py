"""
Reporting period helpers.

A reporting month is always the ``date`` of day 1 of its month.  All month
arithmetic in the kernel goes through this module.
"""

from __future__ import annotations

from datetime import date, datetime, timezone


def normalize_reporting_month(value: date | datetime) -> date:
    """Return day 1 of the month containing ``value``.

    Aware datetimes are converted to UTC before the month is taken.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        value = value.date()
    return value.replace(day=1)


def add_months(month: date, delta: int) -> date:
    """Shift a normalized month by ``delta`` months (negative goes back)."""
    index = month.year * 12 + (month.month - 1) + delta
    return date(index // 12, index % 12 + 1, 1)


def trailing_months(as_of: date | datetime, count: int) -> tuple[date, ...]:
    """
    The ``count`` reporting months ending with the month of ``as_of``.

    Newest first: ``trailing_months(date(2024, 3, 15), 3)`` is
    ``(2024-03-01, 2024-02-01, 2024-01-01)``.
    """
    if count < 1:
        raise ValueError("count must be at least 1")
    current = normalize_reporting_month(as_of)
    return tuple(add_months(current, -i) for i in range(count))
