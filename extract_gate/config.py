from __future__ import annotations

"""Central configuration for the extract gate.

Why this file exists
--------------------
This module is the single source of truth for:
- Date formats used by the registry and by extract file contents
- Registry table names (Delta tables)
- The extract catalogue: field positions and cadence per extract, in the
  priority order the arrival watcher checks them
- Pipeline profiles (daily, weekly) and the explicit run configuration
  (`GateConfig`) handed to the engine at construction time

Maintenance rules
-----------------
1) Prefer changing values here rather than scattering constants across modules.
2) Modules never read this file's defaults mid-run: the entrypoints build a
   `GateConfig` once and pass it down.
3) Keep field positions in the catalogue; the engine only knows `ExtractSpec`.
"""

import inspect
import os
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional, Tuple

from .models import Cadence, CrossCadenceRule, ExtractSpec, SequenceProbe

# =====================================================================================
# LOGGING CONFIGURATION
# =====================================================================================
LOGGING_VERBOSE = False


def log_message(message: str, level: str = "INFO", depth: int = 0) -> None:
    """Print a structured, readable log line.

    Args:
        message: Human-readable message.
        level: One of "INFO", "DEBUG", "WARN", "ERROR".
        depth: Indentation level (each level adds two leading spaces).
    """
    if level in ("INFO", "WARN", "ERROR") or (level == "DEBUG" and LOGGING_VERBOSE):
        timestamp = datetime.now().strftime(PY_DATETIME_FORMAT)
        caller = inspect.stack()[1].function
        indent = "  " * depth
        caller_str = "" if caller == "<module>" else caller
        if caller_str:
            print(f"[{level:5}] | {timestamp} | {caller_str:40} | {indent}{message}")
        else:
            print(f"[{level:5}] | {timestamp} | {indent}{message}")


class Stopwatch:
    """Elapsed-time helper for stage timing in log lines."""

    def __init__(self) -> None:
        self._start = time.monotonic()

    def elapsed(self) -> float:
        return time.monotonic() - self._start

    def format(self) -> str:
        seconds = self.elapsed()
        if seconds < 60:
            return f"{seconds:.2f}s"
        minutes, seconds = divmod(int(seconds), 60)
        hours, minutes = divmod(minutes, 60)
        if hours:
            return f"{hours}h {minutes}m {seconds}s"
        return f"{minutes}m {seconds}s"


def to_local_fuse_path(path: str) -> str:
    """Convert a DBFS URI into the `/dbfs/...` FUSE path used by Python file I/O.

    `dbfs:/mnt/x` and `dbfs/mnt/x` both become `/dbfs/mnt/x`; any other path is
    returned unchanged.
    """
    if path.startswith("dbfs:/"):
        return "/dbfs/" + path[len("dbfs:/"):].lstrip("/")
    if path.startswith("dbfs/"):
        return "/" + path
    return path


# =====================================================================================
# DATE FORMAT CONSTANTS
# =====================================================================================
PY_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
PY_DATE_COMPACT_FORMAT = "%Y%m%d"
PY_REGISTRY_DATE_FORMAT = "%m/%d/%Y"

WEEKDAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY, SUNDAY = range(7)

# =====================================================================================
# REGISTRY TABLES
# =====================================================================================
LOAD_LOG_TABLE_NAME = "extract_load_log"
HOLIDAY_TABLE_NAME = "extract_holidays"
REPORT_MONTH_TABLE_NAME = "extract_report_months"
GATE_RUN_LOG_TABLE_NAME = "extract_gate_run_log"

LOAD_LOG_TABLE_SCHEMA = """
    loadname STRING, extrdt DATE, loaddt TIMESTAMP, loaded_by STRING, numrec LONG
"""

GATE_RUN_LOG_SCHEMA = """
    run_id STRING, pipeline STRING, run_date DATE, run_timestamp_utc TIMESTAMP,
    environment STRING, decision STRING, final_state STRING, reasons STRING,
    warnings STRING, outcomes STRING, load_stats STRING, error_message STRING,
    duration_seconds DOUBLE
"""

HOLIDAY_LOADED_BY = "HOLIDAY"

# =====================================================================================
# EXTRACT CATALOGUE
# =====================================================================================
# Order matters: the arrival watcher checks files in this order and the load
# step runs them in this order.

DAILY_EXTRACTS: Tuple[ExtractSpec, ...] = (
    ExtractSpec("E5", 65, 72, Cadence.DAILY),
    ExtractSpec("E3", 3, 10, Cadence.DAILY),
    ExtractSpec("E8", 28, 35, Cadence.DAILY),
    ExtractSpec("E7", 78, 85, Cadence.DAILY),
    ExtractSpec("EB", 48, 55, Cadence.DAILY),
)

# Weekly E? extracts share E1's schedule; E3 is also loaded daily, so its own
# watermark is not the weekly one.
WEEKLY_EXTRACTS: Tuple[ExtractSpec, ...] = (
    ExtractSpec("S1", 46, 53, Cadence.WEEKLY),
    ExtractSpec("E1", 3, 10, Cadence.WEEKLY),
    ExtractSpec("E2", 121, 128, Cadence.WEEKLY, date_anchor="E1"),
    ExtractSpec("E4", 69, 76, Cadence.WEEKLY, date_anchor="E1"),
    ExtractSpec("E3", 3, 10, Cadence.WEEKLY, date_anchor="E1"),
    ExtractSpec("EA", 3, 10, Cadence.WEEKLY, date_anchor="E1"),
    ExtractSpec("E9", 3, 10, Cadence.WEEKLY, date_anchor="E1"),
    ExtractSpec("E6", 11, 18, Cadence.EOM_ONLY),
)


@dataclass(frozen=True)
class PipelineProfile:
    """Static description of one cadence pipeline.

    Attributes:
        name: "daily" or "weekly"; used in log lines and the run log.
        extracts: Extract specs in priority order.
        holiday_check: Skip the run when yesterday was a recorded holiday.
        cross_cadence: Rule checked after date validation on its trigger weekday.
        sequence_probe: Informational pre-check run before awaiting files.
    """

    name: str
    extracts: Tuple[ExtractSpec, ...]
    holiday_check: bool = False
    cross_cadence: Optional[CrossCadenceRule] = None
    sequence_probe: Optional[SequenceProbe] = None

    def spec(self, name: str) -> ExtractSpec:
        for extract in self.extracts:
            if extract.name == name:
                return extract
        raise KeyError(name)


CROSS_CADENCE_GAP_DAYS = 2
WEEKLY_OFFSET_DAYS = 7
DAILY_SEQUENCE_GAP_DAYS = 1

DAILY_PROFILE = PipelineProfile(
    name="daily",
    extracts=DAILY_EXTRACTS,
    holiday_check=True,
    cross_cadence=CrossCadenceRule(
        daily_extract="E5",
        weekly_extract="E9",
        trigger_weekday=TUESDAY,
    ),
)

WEEKLY_PROFILE = PipelineProfile(
    name="weekly",
    extracts=WEEKLY_EXTRACTS,
    sequence_probe=SequenceProbe(extract="E3", expected_gap=DAILY_SEQUENCE_GAP_DAYS),
)

# =====================================================================================
# RUN CONFIGURATION
# =====================================================================================

INBOUND_DIR = "dbfs:/mnt/extract-gate/ftp"
LOAD_DIR = "dbfs:/mnt/extract-gate/loads"
POLL_INTERVAL_SECONDS = 300.0
MAX_WAIT_SECONDS = 6 * 60 * 60.0
EOM_EXTRACT_LAG_DAYS = 1

# Host names per environment; the current host comes from SERVER_NAME.
DEV_SERVER_NAME = os.environ.get("EXTRACT_GATE_DEV_SERVER")
TEST_SERVER_NAME = os.environ.get("EXTRACT_GATE_TEST_SERVER")
PROD_SERVER_NAME = os.environ.get("EXTRACT_GATE_PROD_SERVER")


@dataclass(frozen=True)
class GateConfig:
    """Explicit configuration for one gate run.

    Built once by the entrypoint (`build_gate_config`) and passed into the
    engine, watcher and loader. Nothing downstream reads process state.
    """

    inbound_dir: str = INBOUND_DIR
    load_dir: str = LOAD_DIR
    environment: str = "UNKNOWN"
    loaded_by: str = "extract_gate"
    poll_interval_seconds: float = POLL_INTERVAL_SECONDS
    max_wait_seconds: float = MAX_WAIT_SECONDS
    max_attempts_per_file: Optional[int] = None
    cross_cadence_gap_days: int = CROSS_CADENCE_GAP_DAYS
    weekly_offset_days: int = WEEKLY_OFFSET_DAYS
    eom_extract_lag_days: int = EOM_EXTRACT_LAG_DAYS
    verbose_logging: bool = False

    def __post_init__(self) -> None:
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        if self.max_wait_seconds < 0:
            raise ValueError("max_wait_seconds must not be negative")
        if self.max_attempts_per_file is not None and self.max_attempts_per_file < 1:
            raise ValueError("max_attempts_per_file must be at least 1")

    @property
    def local_inbound_dir(self) -> str:
        return to_local_fuse_path(self.inbound_dir)

    @property
    def local_load_dir(self) -> str:
        return to_local_fuse_path(self.load_dir)


def build_gate_config(server_name: Optional[str] = None, **overrides: Any) -> GateConfig:
    """Return a `GateConfig` from the module defaults with `overrides` applied.

    Unless `environment` is overridden, it is resolved from `server_name`
    (default: the `SERVER_NAME` environment variable) against the configured
    host names.
    """
    if "environment" not in overrides:
        overrides["environment"] = resolve_environment(
            server_name or os.environ.get("SERVER_NAME"), DEV_SERVER_NAME, TEST_SERVER_NAME, PROD_SERVER_NAME
        )
    return replace(GateConfig(), **overrides)


def resolve_environment(server_name: Optional[str], dev_name: Optional[str], test_name: Optional[str], prod_name: Optional[str]) -> str:
    """Map a host name onto the environment label used in log and report headers."""
    if server_name:
        if server_name == dev_name:
            return "DEVELOPMENT"
        if server_name == test_name:
            return "TEST"
        if server_name == prod_name:
            return "PRODUCTION"
    return "UNKNOWN"
