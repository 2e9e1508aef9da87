"""extract_gate.loader

Post-gate load step. Runs only after the gate has decided PROCEED.

For each validated extract, in priority order:
1) Stage the inbound file into the load directory as `<NAME>.dat` and move
   the previous run's `<NAME>.out` aside to `<NAME>.out.prev`.
2) Run the load script `<load_dir>/c.proc<NAME>` with its output captured in
   `<load_dir>/<NAME>.out`.
3) Fail the step if the script exits non-zero or its output reports errors.
4) Record the load in the registry (best effort).

The script runner is injectable so the step can be driven without real load
scripts.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from typing import Any, Callable, Dict, List, Optional

from .config import GateConfig, PipelineProfile, Stopwatch, log_message
from .errors import LoadFailedError
from .models import OutcomeStatus, ReconciliationResult
from .registry import ExtractRegistry

ScriptRunner = Callable[[str, str], int]


def run_load_script(script_path: str, out_path: str) -> int:
    """Run `script_path`, writing stdout and stderr to `out_path`. Returns the exit code."""
    with open(out_path, "w", encoding="utf-8") as out:
        completed = subprocess.run([script_path], stdout=out, stderr=subprocess.STDOUT, check=False)
    return completed.returncode


def _count_lines(path: str) -> int:
    with open(path, "rb") as handle:
        return sum(1 for _ in handle)


def _read_output(path: str) -> List[str]:
    if not os.path.exists(path):
        return []
    with open(path, "r", encoding="utf-8", errors="replace") as handle:
        return [line.rstrip("\n") for line in handle]


def find_error_lines(lines: List[str]) -> List[str]:
    """Lines reporting a load error: `ERROR` first, then `err` in any case."""
    errors = [line for line in lines if "ERROR" in line]
    if errors:
        return errors
    return [line for line in lines if "err" in line.lower()]


def rotate_previous_output(out_path: str) -> Optional[str]:
    """Move last run's `<NAME>.out` aside as `<NAME>.out.prev`. Returns the backup path, if any."""
    if not os.path.exists(out_path):
        return None
    backup = f"{out_path}.prev"
    os.replace(out_path, backup)
    log_message(f"Previous output backed up to {os.path.basename(backup)}", level="DEBUG", depth=2)
    return backup


def stage_extract(inbound_dir: str, load_dir: str, name: str) -> str:
    """Copy the inbound extract into the load directory as `<name>.dat`."""
    os.makedirs(load_dir, exist_ok=True)
    target = os.path.join(load_dir, f"{name}.dat")
    shutil.copyfile(os.path.join(inbound_dir, name), target)
    return target


def run_loads(
    result: ReconciliationResult,
    profile: PipelineProfile,
    gate_config: GateConfig,
    registry: ExtractRegistry,
    runner: Optional[ScriptRunner] = None,
) -> Dict[str, Dict[str, Any]]:
    """Load every validated extract of a PROCEED run.

    Returns:
        Per-extract stats: extract date, record count and duration.

    Raises:
        ValueError: The gate did not decide PROCEED.
        LoadFailedError: A load script failed; later extracts are not loaded.
    """
    if not result.proceed:
        raise ValueError(f"Loads require a PROCEED decision, got {result.decision}")

    runner = runner or run_load_script
    inbound_dir = gate_config.local_inbound_dir
    load_dir = gate_config.local_load_dir
    stats: Dict[str, Dict[str, Any]] = {}

    log_message(f"Begin loading {profile.name} extracts...")
    step_timer = Stopwatch()

    for spec in profile.extracts:
        outcome = result.outcomes.get(spec.name)
        if outcome is None or outcome.status != OutcomeStatus.MATCH:
            log_message(f"Skipping {spec.name} (not validated in this run).", level="DEBUG", depth=1)
            continue

        log_message(f"{spec.name} extract loading...............", depth=1)
        load_timer = Stopwatch()
        staged = stage_extract(inbound_dir, load_dir, spec.name)
        out_path = os.path.join(load_dir, f"{spec.name}.out")
        rotate_previous_output(out_path)

        exit_code = runner(os.path.join(load_dir, f"c.proc{spec.name}"), out_path)
        output = _read_output(out_path)
        if exit_code != 0:
            log_message(f"ERROR: {spec.name} load script exited with code {exit_code}", level="ERROR", depth=1)
            raise LoadFailedError(spec.name, f"exit code {exit_code}")

        error_lines = find_error_lines(output)
        if error_lines:
            log_message(f"ERROR: Errors found in {spec.name}.out file...EXITING", level="ERROR", depth=1)
            for line in error_lines:
                log_message(line, level="ERROR", depth=2)
            raise LoadFailedError(spec.name, error_lines[0])

        if output:
            log_message(output[-1], depth=2)

        record_count = _count_lines(staged)
        registry.record_load(spec.name, outcome.actual, record_count)
        stats[spec.name] = {
            "extract_date": outcome.actual.isoformat(),
            "record_count": record_count,
            "duration_seconds": load_timer.elapsed(),
        }
        log_message(f"{spec.name} extract loaded ({record_count:,} records) in {load_timer.format()}", depth=1)

    log_message(f"End loading {profile.name} extracts in {step_timer.format()}.")
    return stats
