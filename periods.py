import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

MONTH_KEY_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def parse_month_key(value: str) -> tuple[int, int]:
    match = MONTH_KEY_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid month '{value}', expected YYYY-MM")
    return int(match.group(1)), int(match.group(2))


def month_period(value: str) -> Period:
    year, month = parse_month_key(value)
    start = date(year, month, 1)
    end = date(year, month, days_in_month(year, month))
    return Period(value, start, end)


def shift_month(value: str, months: int) -> str:
    year, month = parse_month_key(value)
    total = year * 12 + (month - 1) + months
    return f"{total // 12:04d}-{total % 12 + 1:02d}"


def trailing_months(today: date, count: int) -> list[str]:
    """Oldest first, ending with the month containing ``today``."""
    current = month_key(today)
    return [shift_month(current, -offset) for offset in range(count - 1, -1, -1)]


def clamp_day(value: str, day: int) -> date:
    year, month = parse_month_key(value)
    return date(year, month, min(max(day, 1), days_in_month(year, month)))


def resolve_period(
    month: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or date.today()
    if month:
        return month_period(month)
    if start or end:
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    return month_period(month_key(today))
