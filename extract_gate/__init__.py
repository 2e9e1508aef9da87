"""Extract gate package (Databricks).

Overview
--------
This package decides whether the day's (or week's) fixed-width extract files
are the correct, in-sequence extracts before any downstream load may run.

At a high level a gate run:
1) Computes the expected extract date per extract from the last recorded load
	date and a calendar offset (day-of-week offsets for daily runs, +7 for
	weekly runs, the reporting-month end for the EOM-only extract).
2) Skips the daily run when yesterday was a recorded holiday, recording
	holiday marker loads so the next run lines up.
3) Waits, bounded and cancellable, until every required file is present.
4) Reads each file's date from a fixed column range of its first line and
	compares it with the expected date.
5) On Tuesdays, checks that the daily E5 extract trails the weekly E9 extract
	by exactly two days.
6) Returns PROCEED or ABORT with structured reasons, writes a run-log row and,
	optionally, runs the load scripts and records the loads.

Runtime assumptions
-------------------
- Designed to run inside Databricks where `spark` is available.
- The registry lives in Delta tables (`delta.tables.DeltaTable`).

Public entrypoints
------------------
`run_daily_gate(run_date=None, verbose_logging=False, ...) -> ReconciliationResult`
`run_weekly_gate(run_date=None, verbose_logging=False, ...) -> ReconciliationResult`
"""

from .models import GateDecision, ReconciliationResult
from .orchestrator import run_daily_gate, run_weekly_gate

__all__ = ["run_daily_gate", "run_weekly_gate", "ReconciliationResult", "GateDecision"]
