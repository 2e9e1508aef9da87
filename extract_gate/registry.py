"""extract_gate.registry

Capability interface for the extract registry (the system of record for the
last successfully loaded date per extract name).

The engine depends only on this protocol. The production implementation lives
in `extract_gate.spark_registry` (Spark SQL over Delta tables).

Contract notes:
- Every method may raise `RegistryUnavailableError`.
- "No record" is `None`; implementations must never substitute a default date.
- `record_load` and `record_gate_run` are best effort: implementations log
  failures instead of raising them, since the load they describe has already
  completed.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional, Protocol, Tuple

import pandas as pd


class ExtractRegistry(Protocol):
    def max_extract_date(self, name: str) -> Optional[date]:
        """Most recent recorded extract date for `name`, or None if never loaded."""
        ...

    def find_holiday(self, day: date) -> Optional[date]:
        """Return `day` if it is a recorded holiday, otherwise None."""
        ...

    def record_holiday(self, holiday_date: date) -> None:
        """Record holiday marker loads so the next run's expected dates line up."""
        ...

    def report_month_for(self, day: date) -> str:
        ...

    def month_bounds(self, report_month: str) -> Tuple[date, date]:
        ...

    def record_load(self, name: str, extract_date: date, record_count: int) -> None:
        ...

    def loads_recorded_on(self, day: date) -> pd.DataFrame:
        """Load-log rows whose load timestamp falls on `day` (end-of-run report)."""
        ...

    def record_gate_run(self, row: Dict[str, Any]) -> None:
        ...
