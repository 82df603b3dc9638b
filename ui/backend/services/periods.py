"""Month arithmetic on ``YYYY-MM`` period strings."""
import re
from datetime import date
from typing import Tuple

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"
_MONTH_RE = re.compile(MONTH_PATTERN)


def current_month(today: date = None) -> str:
    today = today or date.today()
    return month_of(today)


def month_of(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def parse_month(month: str) -> Tuple[int, int]:
    if not month or not _MONTH_RE.match(month):
        raise ValueError(f"Invalid month {month!r}; expected YYYY-MM")
    year, mon = month.split("-")
    return int(year), int(mon)


def add_months(month: str, count: int) -> str:
    year, mon = parse_month(month)
    index = year * 12 + (mon - 1) + count
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def months_between(start: str, end: str) -> int:
    """Number of whole months from ``start`` to ``end`` (negative if end is earlier)."""
    sy, sm = parse_month(start)
    ey, em = parse_month(end)
    return (ey * 12 + em) - (sy * 12 + sm)


def month_bounds(month: str) -> Tuple[date, date]:
    """Return ``[first_day, first_day_of_next_month)`` for the month."""
    year, mon = parse_month(month)
    start = date(year, mon, 1)
    ny, nm = parse_month(add_months(month, 1))
    return start, date(ny, nm, 1)
