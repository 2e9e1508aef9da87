"""extract_gate.orchestrator

Entrypoints for the daily and weekly extract gates.

Each entrypoint wires together:
- the run configuration (`GateConfig`) and the verbose logging toggle
- the extract registry (Spark/Delta on Databricks unless one is passed in)
- the reconciliation engine for the pipeline profile
- the optional post-gate load step
- the run-log row and the end-of-run load report

Execution environment
--------------------
- Designed to run in Databricks where a `spark` session is available; the
  runtime is only imported when no registry is passed in.
- Spark session timezone is pinned to UTC so registry DATE/TIMESTAMP values do
  not drift with the driver timezone.
- The default run date is the current UTC date.

Usage
-----
    from extract_gate import run_daily_gate
    result = run_daily_gate()                       # today, Spark registry
    result = run_daily_gate("02/22/2025")           # explicit run date
    result = run_weekly_gate(run_loads_on_proceed=True)

The returned `ReconciliationResult` carries the decision, per-extract outcomes
and structured abort reasons.
"""

from __future__ import annotations

import json
import threading
import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional, Union

from . import config
from .calendar_rules import parse
from .config import DAILY_PROFILE, WEEKLY_PROFILE, GateConfig, PipelineProfile, build_gate_config, log_message
from .engine import ReconciliationEngine
from .errors import RegistryUnavailableError
from .loader import ScriptRunner, run_loads
from .models import DateForm, ReconciliationResult
from .registry import ExtractRegistry


def _databricks_spark():
    from databricks.sdk.runtime import spark

    return spark


def build_spark_registry(gate_config: GateConfig, spark=None) -> ExtractRegistry:
    """Build the Delta-backed registry on the Databricks session, pinned to UTC."""
    from .spark_registry import SparkExtractRegistry

    spark = spark or _databricks_spark()
    spark.conf.set("spark.sql.session.timeZone", "UTC")
    log_message("Pinned spark.sql.session.timeZone to UTC", level="DEBUG", depth=1)
    registry = SparkExtractRegistry(
        spark,
        loaded_by=gate_config.loaded_by,
        holiday_extracts=[spec.name for spec in DAILY_PROFILE.extracts],
    )
    registry.initialize_registry_tables()
    return registry


def resolve_run_date(run_date: Union[None, str, date]) -> date:
    """Accept None (today, UTC), a date, or a REGISTRY-form string (MM/DD/YYYY)."""
    if run_date is None:
        return datetime.now(timezone.utc).date()
    if isinstance(run_date, datetime):
        return run_date.date()
    if isinstance(run_date, date):
        return run_date
    return parse(run_date.strip(), DateForm.REGISTRY)


def _log_load_report(registry: ExtractRegistry, day: date) -> None:
    try:
        report = registry.loads_recorded_on(day)
    except RegistryUnavailableError as e:
        log_message(f"Load report unavailable: {e}", level="ERROR", depth=1)
        return
    if report is None or report.empty:
        log_message(f"No loads recorded on {day}.", depth=1)
        return
    log_message(f"Loads recorded on {day}:\n{report.to_string(index=False)}", depth=1)


def _build_run_log_row(
    run_id: str,
    run_start_utc: datetime,
    result: Optional[ReconciliationResult],
    run_date: Optional[date],
    profile: PipelineProfile,
    gate_config: GateConfig,
    load_stats: Dict[str, Any],
    error_message: Optional[str],
) -> Dict[str, Any]:
    duration_seconds = (datetime.now(timezone.utc) - run_start_utc).total_seconds()
    summary = result.to_dict() if result is not None else {}
    return {
        "run_id": run_id,
        "pipeline": profile.name,
        "run_date": run_date,
        "run_timestamp_utc": run_start_utc,
        "environment": gate_config.environment,
        "decision": summary.get("decision"),
        "final_state": summary.get("state"),
        "reasons": json.dumps(summary.get("reasons", [])),
        "warnings": json.dumps(summary.get("warnings", [])),
        "outcomes": json.dumps(summary.get("outcomes", {})),
        "load_stats": json.dumps(load_stats),
        "error_message": error_message,
        "duration_seconds": duration_seconds,
    }


def run_gate(
    profile: PipelineProfile,
    run_date: Union[None, str, date] = None,
    verbose_logging: bool = False,
    gate_config: Optional[GateConfig] = None,
    registry: Optional[ExtractRegistry] = None,
    cancel_event: Optional[threading.Event] = None,
    run_loads_on_proceed: bool = False,
    runner: Optional[ScriptRunner] = None,
) -> ReconciliationResult:
    """Run one gate for `profile` and, optionally, the load step on PROCEED.

    Args:
        profile: `DAILY_PROFILE` or `WEEKLY_PROFILE`.
        run_date: Run date; None means today (UTC).
        verbose_logging: Enables DEBUG log lines.
        gate_config: Run configuration; built from the defaults when omitted.
        registry: Extract registry; the Spark registry when omitted.
        cancel_event: Setting it from another thread cancels the file wait.
        run_loads_on_proceed: Run `loader.run_loads` after a PROCEED decision.
        runner: Load script runner passed to the load step.

    Returns:
        The decided `ReconciliationResult`. An ABORT is a normal return value.

    Raises:
        LoadFailedError: A load script failed after a PROCEED decision.
    """
    gate_config = gate_config or build_gate_config(verbose_logging=verbose_logging)
    config.LOGGING_VERBOSE = verbose_logging or gate_config.verbose_logging

    run_id = str(uuid.uuid4())
    run_start_utc = datetime.now(timezone.utc)
    timer = config.Stopwatch()
    result: Optional[ReconciliationResult] = None
    resolved_date: Optional[date] = None
    load_stats: Dict[str, Any] = {}
    error_message: Optional[str] = None

    log_message(f"Starting {profile.name.upper()} extract gate (run id {run_id})")
    try:
        resolved_date = resolve_run_date(run_date)
        registry = registry or build_spark_registry(gate_config)

        engine = ReconciliationEngine(profile, gate_config, registry, cancel_event=cancel_event)
        result = engine.run(resolved_date)

        if result.proceed and run_loads_on_proceed:
            load_stats = run_loads(result, profile, gate_config, registry, runner=runner)
        elif run_loads_on_proceed:
            log_message("Skipping loads (gate decided ABORT).", depth=1)

        _log_load_report(registry, run_start_utc.date())
        return result

    except Exception as e:
        error_message = str(e)
        log_message(f"FATAL: An error occurred during the {profile.name} extract gate: {e}", level="ERROR")
        raise

    finally:
        if registry is not None:
            registry.record_gate_run(
                _build_run_log_row(
                    run_id, run_start_utc, result, resolved_date, profile, gate_config, load_stats, error_message
                )
            )
        log_message(f"{profile.name.upper()} extract gate finished in {timer.format()}.")


def run_daily_gate(
    run_date: Union[None, str, date] = None,
    verbose_logging: bool = False,
    gate_config: Optional[GateConfig] = None,
    registry: Optional[ExtractRegistry] = None,
    cancel_event: Optional[threading.Event] = None,
    run_loads_on_proceed: bool = False,
    runner: Optional[ScriptRunner] = None,
) -> ReconciliationResult:
    """Daily gate: holiday skip, day-of-week offsets, Tuesday cross-cadence check."""
    return run_gate(
        DAILY_PROFILE,
        run_date=run_date,
        verbose_logging=verbose_logging,
        gate_config=gate_config,
        registry=registry,
        cancel_event=cancel_event,
        run_loads_on_proceed=run_loads_on_proceed,
        runner=runner,
    )


def run_weekly_gate(
    run_date: Union[None, str, date] = None,
    verbose_logging: bool = False,
    gate_config: Optional[GateConfig] = None,
    registry: Optional[ExtractRegistry] = None,
    cancel_event: Optional[threading.Event] = None,
    run_loads_on_proceed: bool = False,
    runner: Optional[ScriptRunner] = None,
) -> ReconciliationResult:
    """Weekly gate: +7 day offsets, E3 sequence pre-check, E6 on EOM runs only."""
    return run_gate(
        WEEKLY_PROFILE,
        run_date=run_date,
        verbose_logging=verbose_logging,
        gate_config=gate_config,
        registry=registry,
        cancel_event=cancel_event,
        run_loads_on_proceed=run_loads_on_proceed,
        runner=runner,
    )
