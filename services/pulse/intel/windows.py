"""
Calendar window helpers shared by the pillar evaluators.

All rules work at day granularity. A trailing window of N days ending at
`today` covers the N calendar dates today-N+1 .. today inclusive.
"""
from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Tuple, TypeVar

T = TypeVar("T")


def as_day(now: Optional[datetime | date] = None) -> date:
    if now is None:
        return date.today()
    if isinstance(now, datetime):
        return now.date()
    return now


def in_trailing(d: date, today: date, days: int) -> bool:
    """True when d falls within the last `days` calendar days (today included)."""
    return today - timedelta(days=days) < d <= today


def in_range(d: date, start: date, end: date) -> bool:
    return start <= d <= end


def trailing(records: Iterable[T], today: date, days: int) -> List[T]:
    return [r for r in records if in_trailing(r.date, today, days)]


def preceding(records: Iterable[T], today: date, days: int, offset: int) -> List[T]:
    """Records in the `days`-long block that ends `offset` days before today."""
    end = today - timedelta(days=offset)
    start = end - timedelta(days=days - 1)
    return [r for r in records if in_range(r.date, start, end)]


def days_since(d: date, today: date) -> int:
    return (today - d).days


def distinct_days(records: Iterable) -> int:
    return len({r.date for r in records})


def month_start(d: date) -> date:
    return d.replace(day=1)


def days_in_month(d: date) -> int:
    return calendar.monthrange(d.year, d.month)[1]


def shift_month(d: date, months: int) -> date:
    """First day of the month `months` away from d's month (negative = past)."""
    index = d.year * 12 + (d.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def month_bounds(d: date, months_back: int) -> Tuple[date, date]:
    """(first, last) day of the month `months_back` before d's month."""
    start = shift_month(d, -months_back)
    return start, start.replace(day=days_in_month(start))


def month_key(d: date) -> Tuple[int, int]:
    return d.year, d.month


def project_month(total: float, today: date) -> float:
    """Linear month-end projection from the spend so far this month."""
    return total / today.day * days_in_month(today)
