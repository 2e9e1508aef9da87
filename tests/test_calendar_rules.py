from datetime import date, timedelta

import pytest

from extract_gate.calendar_rules import (
    day_gap,
    day_number,
    day_of_year,
    format,
    is_end_of_month_boundary,
    is_no_load_day,
    lenient_file_date,
    offset_for_day_of_week,
    parse,
)
from extract_gate.errors import InvalidDateFormatError
from extract_gate.models import DateForm


@pytest.mark.parametrize("form", [DateForm.REGISTRY, DateForm.FILE])
def test_parse_format_round_trip_across_leap_year(form):
    day = date(2024, 1, 1)
    while day <= date(2025, 1, 1):
        assert parse(format(day, form), form) == day
        day += timedelta(days=1)


def test_forms():
    assert format(date(2025, 2, 22), DateForm.REGISTRY) == "02/22/2025"
    assert format(date(2025, 2, 22), DateForm.FILE) == "20250222"
    assert parse("02/21/2025", DateForm.REGISTRY) == date(2025, 2, 21)
    assert parse("20250222", DateForm.FILE) == date(2025, 2, 22)


@pytest.mark.parametrize(
    "value,form",
    [
        ("20250229", DateForm.FILE),
        ("2025022", DateForm.FILE),
        ("2025 2 5", DateForm.FILE),
        ("2025AB22", DateForm.FILE),
        ("2/5/2025", DateForm.REGISTRY),
        ("02-22-2025", DateForm.REGISTRY),
        ("13/01/2025", DateForm.REGISTRY),
        ("20250222", DateForm.REGISTRY),
    ],
)
def test_parse_rejects_invalid_values(value, form):
    with pytest.raises(InvalidDateFormatError) as excinfo:
        parse(value, form)
    assert excinfo.value.value == value


def test_invalid_date_format_is_a_value_error():
    with pytest.raises(ValueError):
        parse("20251301", DateForm.FILE)


@pytest.mark.parametrize(
    "day,expected",
    [("Sun", 2), ("Mon", 1), ("Tue", 3), ("Wed", 1), ("Thu", 1), ("Fri", 1), ("Sat", 1)],
)
def test_offset_for_day_of_week(day, expected):
    assert offset_for_day_of_week(day) == expected


def test_offset_accepts_dates_numbers_and_full_names():
    assert offset_for_day_of_week(date(2025, 2, 25)) == 3  # Tuesday
    assert offset_for_day_of_week(6) == 2
    assert offset_for_day_of_week("Sunday") == 2
    assert offset_for_day_of_week("tuesday") == 3


def test_offset_rejects_unknown_day():
    with pytest.raises(ValueError):
        offset_for_day_of_week("Funday")
    with pytest.raises(ValueError):
        offset_for_day_of_week(7)


def test_monday_is_no_load_day():
    assert is_no_load_day(date(2025, 2, 24))
    assert not is_no_load_day(date(2025, 2, 25))


def test_day_of_year():
    assert day_of_year(date(2025, 1, 1)) == 1
    assert day_of_year(date(2024, 12, 31)) == 366


def test_day_gap_within_year():
    weekly = date(2025, 2, 25)
    assert day_gap("20250227", weekly) == 2
    assert day_gap(date(2025, 2, 26), weekly) == 1
    assert day_gap(date(2025, 2, 28), weekly) == 3


def test_day_gap_crosses_year_boundary():
    assert day_gap(date(2025, 1, 1), date(2024, 12, 30)) == 2
    assert day_number(date(2025, 1, 1)) - day_number(date(2024, 12, 31)) == 1


def test_lenient_file_date_rolls_day_overflow():
    assert lenient_file_date("20250229") == date(2025, 3, 1)
    assert lenient_file_date("20240229") == date(2024, 2, 29)
    assert day_gap("20250229", date(2025, 2, 25)) == 4


@pytest.mark.parametrize("value", ["20251301", "20250200", "2025022A", "2025022"])
def test_lenient_file_date_still_rejects_garbage(value):
    with pytest.raises(InvalidDateFormatError):
        lenient_file_date(value)


def test_end_of_month_boundary():
    month_end = date(2025, 2, 22)
    assert is_end_of_month_boundary(date(2025, 2, 23), month_end)
    assert not is_end_of_month_boundary(date(2025, 2, 22), month_end)
    assert not is_end_of_month_boundary(date(2025, 3, 2), month_end)
