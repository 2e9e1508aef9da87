from __future__ import annotations

import os
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
import pytest

from extract_gate import config
from extract_gate.calendar_rules import format
from extract_gate.config import build_gate_config
from extract_gate.errors import RegistryUnavailableError
from extract_gate.models import DateForm, ExtractSpec


class FakeRegistry:
    """In-memory extract registry.

    `fail_on` holds method names that raise `RegistryUnavailableError`.
    """

    def __init__(
        self,
        last_dates: Optional[Dict[str, date]] = None,
        holidays: Optional[List[date]] = None,
        report_months: Optional[Dict[str, Tuple[date, date]]] = None,
        fail_on: Optional[List[str]] = None,
    ) -> None:
        self.last_dates = dict(last_dates or {})
        self.holidays = set(holidays or [])
        self.report_months = dict(report_months or {})
        self.fail_on = set(fail_on or [])
        self.recorded_holidays: List[date] = []
        self.loads: List[Dict[str, Any]] = []
        self.gate_runs: List[Dict[str, Any]] = []
        self.calls: List[str] = []

    def _call(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_on:
            raise RegistryUnavailableError(operation, "injected failure")

    def max_extract_date(self, name: str) -> Optional[date]:
        self._call("max_extract_date")
        return self.last_dates.get(name)

    def find_holiday(self, day: date) -> Optional[date]:
        self._call("find_holiday")
        return day if day in self.holidays else None

    def record_holiday(self, holiday_date: date) -> None:
        self._call("record_holiday")
        self.recorded_holidays.append(holiday_date)

    def report_month_for(self, day: date) -> str:
        self._call("report_month_for")
        for name, (start, end) in self.report_months.items():
            if start <= day <= end:
                return name
        raise RegistryUnavailableError("report_month_for", f"no report month covers {day}")

    def month_bounds(self, report_month: str) -> Tuple[date, date]:
        self._call("month_bounds")
        return self.report_months[report_month]

    def record_load(self, name: str, extract_date: date, record_count: int) -> None:
        self.calls.append("record_load")
        self.loads.append({"loadname": name, "extrdt": extract_date, "numrec": record_count})
        self.last_dates[name] = extract_date

    def loads_recorded_on(self, day: date) -> pd.DataFrame:
        self._call("loads_recorded_on")
        return pd.DataFrame(self.loads, columns=["loadname", "extrdt", "numrec"])

    def record_gate_run(self, row: Dict[str, Any]) -> None:
        self.calls.append("record_gate_run")
        self.gate_runs.append(row)


def write_extract(directory, spec: ExtractSpec, value, width: Optional[int] = None, extra_lines: int = 0) -> str:
    """Write an extract file for `spec` whose first line carries `value` at the spec's columns.

    `value` may be a date (written in FILE form) or a raw string.
    """
    if isinstance(value, date):
        value = format(value, DateForm.FILE)
    width = width or spec.end + 10
    line = ["X"] * width
    line[spec.start - 1 : spec.start - 1 + len(value)] = list(value)
    path = os.path.join(str(directory), spec.name)
    with open(path, "w", encoding="latin-1") as handle:
        handle.write("".join(line) + "\n")
        for i in range(extra_lines):
            handle.write(f"record {i}\n")
    return path


@pytest.fixture(autouse=True)
def quiet_logging():
    config.LOGGING_VERBOSE = False
    yield
    config.LOGGING_VERBOSE = False


@pytest.fixture
def inbound_dir(tmp_path):
    path = tmp_path / "inbound"
    path.mkdir()
    return path


@pytest.fixture
def load_dir(tmp_path):
    path = tmp_path / "loads"
    path.mkdir()
    return path


@pytest.fixture
def gate_config(inbound_dir, load_dir):
    return build_gate_config(
        inbound_dir=str(inbound_dir),
        load_dir=str(load_dir),
        environment="TEST",
        poll_interval_seconds=0.01,
        max_wait_seconds=0.2,
        max_attempts_per_file=3,
    )


@pytest.fixture
def make_extract(inbound_dir):
    def _make(spec: ExtractSpec, value, **kwargs) -> str:
        return write_extract(inbound_dir, spec, value, **kwargs)

    return _make


@pytest.fixture
def make_registry():
    return FakeRegistry
