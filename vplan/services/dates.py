from __future__ import annotations

import re
from datetime import date
from typing import NamedTuple, Optional

DATE_RE = re.compile(r"(\d{1,2})\.(\d{1,2})\.")

# indexed by day-of-week with Sunday = 0
WEEKDAYS = ("Sonntag", "Montag", "Dienstag", "Mittwoch", "Donnerstag", "Freitag", "Samstag")

SCHOOL_YEAR_START_MONTH = 8


class ResolvedDay(NamedTuple):
    day: date
    weekday: str


def has_date(label: str) -> bool:
    return DATE_RE.search(label) is not None


def school_year_base(today: date) -> int:
    """Calendar year in which the current school year started."""
    return today.year if today.month >= SCHOOL_YEAR_START_MONTH else today.year - 1


def resolve_day(label: str, today: Optional[date] = None) -> Optional[ResolvedDay]:
    """
    Turn a label such as ``"25.8. Montag"`` into a concrete date.

    The label has no year. Months from August on belong to the year the
    current school year started in, earlier months to the following year.
    Returns None when the label holds no date or an impossible one.
    """
    m = DATE_RE.search(label or "")
    if not m:
        return None
    day_num, month_num = int(m.group(1)), int(m.group(2))
    base = school_year_base(today or date.today())
    year = base if month_num >= SCHOOL_YEAR_START_MONTH else base + 1
    try:
        resolved = date(year, month_num, day_num)
    except ValueError:
        return None
    return ResolvedDay(resolved, WEEKDAYS[resolved.isoweekday() % 7])
