"""
Calendar helpers shared by the leave ledger, attendance and payroll.

Months are zero-based (January = 0) throughout the payroll layer.
"""
import calendar
import re
from datetime import date, datetime, timedelta
from typing import Iterator, Tuple

from ems.core.exceptions import ValidationError

_MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


def local_day(moment: datetime) -> date:
    """Calendar day of `moment` in the server's local timezone (naive values are taken as local)."""
    return moment.astimezone().date()


def today() -> date:
    return local_day(datetime.now())


def inclusive_days(start: date, end: date) -> int:
    """Number of calendar days in [start, end], counting both ends."""
    return (end - start).days + 1


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def month_bounds(month: int, year: int) -> Tuple[date, date]:
    """First and last calendar day of a zero-based month."""
    if not 0 <= month <= 11:
        raise ValidationError(f"Month must be between 0 and 11, got {month}")
    first = date(year, month + 1, 1)
    last = date(year, month + 1, calendar.monthrange(year, month + 1)[1])
    return first, last


def overlap_days(start: date, end: date, window_start: date, window_end: date) -> int:
    """Days of [start, end] that fall inside [window_start, window_end]; 0 when disjoint."""
    clipped_start = max(start, window_start)
    clipped_end = min(end, window_end)
    if clipped_end < clipped_start:
        return 0
    return inclusive_days(clipped_start, clipped_end)


def parse_month(value: str) -> Tuple[int, int]:
    """Parse "YYYY-MM" into (zero-based month, year)."""
    match = _MONTH_PATTERN.match(value or "")
    if not match:
        raise ValidationError(f"Invalid month '{value}', expected YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month '{value}', expected YYYY-MM")
    return month - 1, year
