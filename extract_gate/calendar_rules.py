"""extract_gate.calendar_rules

Calendar engine for extract dates.

Two canonical forms are in play:
- REGISTRY (`MM/DD/YYYY`): how the load registry reports extract dates.
- FILE (`YYYYMMDD`): how extract files embed their date.

Both parse to `datetime.date`, which is the only form ever compared.

Day arithmetic
--------------
`day_of_year` is kept for reporting, but day differences are computed with
`day_number` (proleptic ordinal), so a gap across December 31 is a true
elapsed-day count.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Union

from .config import (
    PY_DATE_COMPACT_FORMAT,
    PY_REGISTRY_DATE_FORMAT,
    SUNDAY,
    TUESDAY,
    MONDAY,
    WEEKDAY_NAMES,
)
from .errors import InvalidDateFormatError
from .models import DateForm

_FORMATS = {
    DateForm.REGISTRY: PY_REGISTRY_DATE_FORMAT,
    DateForm.FILE: PY_DATE_COMPACT_FORMAT,
}

# Digit positions of each form; strptime alone accepts "2/5/2025" and "2025 2 5".
_LAYOUTS = {
    DateForm.REGISTRY: ((0, 2), (3, 5), (6, 10)),
    DateForm.FILE: ((0, 4), (4, 6), (6, 8)),
}
_LENGTHS = {DateForm.REGISTRY: 10, DateForm.FILE: 8}

# Days added to the last recorded extract date, keyed by the run's weekday.
DAY_OFFSETS = {
    SUNDAY: 2,
    MONDAY: 1,
    TUESDAY: 3,
}
DEFAULT_DAY_OFFSET = 1


def _is_well_formed(value: str, form: DateForm) -> bool:
    if len(value) != _LENGTHS[form]:
        return False
    if not all(value[a:b].isdigit() for a, b in _LAYOUTS[form]):
        return False
    if form == DateForm.REGISTRY:
        return value[2] == "/" and value[5] == "/"
    return True


def parse(value: str, form: DateForm) -> date:
    """Parse `value` in `form` into a date.

    Raises:
        InvalidDateFormatError: Wrong length, non-numeric parts, or an
            impossible calendar date (e.g. 20250229).
    """
    if not isinstance(value, str) or not _is_well_formed(value, form):
        raise InvalidDateFormatError(str(value), form.value)
    try:
        return datetime.strptime(value, _FORMATS[form]).date()
    except ValueError as e:
        raise InvalidDateFormatError(value, form.value) from e


def format(value: date, form: DateForm) -> str:
    """Render `value` in `form`; the exact inverse of `parse`."""
    if form == DateForm.REGISTRY:
        return f"{value.month:02d}/{value.day:02d}/{value.year:04d}"
    return f"{value.year:04d}{value.month:02d}{value.day:02d}"


def day_of_year(value: date) -> int:
    """Ordinal position of `value` within its calendar year (Jan 1 == 1)."""
    return value.timetuple().tm_yday


def lenient_file_date(value: str) -> date:
    """Resolve a FILE-form value, rolling an overflowing day into later months.

    `20250229` resolves to 2025-03-01. Only the day may overflow; year and
    month must be valid and every position numeric.

    Gate runs only reach this through `check_cross_cadence`, whose values have
    already passed strict validation, so the day overflow applies only when
    callers pass raw FILE-form values to this helper or `day_number` directly.
    """
    if not _is_well_formed(value, DateForm.FILE):
        raise InvalidDateFormatError(value, DateForm.FILE.value)
    year, month, day = int(value[0:4]), int(value[4:6]), int(value[6:8])
    if year < 1 or not 1 <= month <= 12 or day < 1:
        raise InvalidDateFormatError(value, DateForm.FILE.value)
    return date(year, month, 1) + timedelta(days=day - 1)


def day_number(value: Union[date, str]) -> int:
    """Continuous day count for gap arithmetic.

    Accepts a date or a FILE-form string. Strings are resolved with
    `lenient_file_date` so a corrupted day field still yields a countable gap.
    """
    if isinstance(value, str):
        value = lenient_file_date(value)
    return value.toordinal()


def day_gap(later: Union[date, str], earlier: Union[date, str]) -> int:
    return day_number(later) - day_number(earlier)


def offset_for_day_of_week(day: Union[int, str, date]) -> int:
    """Days to add to the last recorded date to get today's expected extract date.

    Args:
        day: Weekday number (Monday=0), a weekday name ("Tue", "Tuesday"), or a
            date whose weekday is used.

    Returns:
        2 on Sunday, 3 on Tuesday, 1 on every other day (Monday included).
    """
    return DAY_OFFSETS.get(_weekday(day), DEFAULT_DAY_OFFSET)


def is_no_load_day(day: Union[int, str, date]) -> bool:
    """Monday runs are flagged "no loads on Monday" but still proceed."""
    return _weekday(day) == MONDAY


def _weekday(day: Union[int, str, date]) -> int:
    if isinstance(day, date):
        return day.weekday()
    if isinstance(day, str):
        key = day.strip()[:3].title()
        if key not in WEEKDAY_NAMES:
            raise ValueError(f"Unknown day of week: {day!r}")
        return WEEKDAY_NAMES.index(key)
    if isinstance(day, int) and MONDAY <= day <= SUNDAY:
        return day
    raise ValueError(f"Unknown day of week: {day!r}")


def weekday_name(value: date) -> str:
    return WEEKDAY_NAMES[value.weekday()]


def is_end_of_month_boundary(value: date, month_end: date) -> bool:
    """True when `value` is the day right after the recorded month-end date."""
    return value == month_end + timedelta(days=1)
