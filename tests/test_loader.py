import os
from datetime import date

import pytest

from extract_gate.config import DAILY_EXTRACTS, DAILY_PROFILE
from extract_gate.engine import ReconciliationEngine
from extract_gate.errors import LoadFailedError
from extract_gate.loader import find_error_lines, rotate_previous_output, run_load_script, run_loads, stage_extract
from extract_gate.models import GateDecision, ReconciliationResult

DAILY_NAMES = [spec.name for spec in DAILY_EXTRACTS]


class RecordingRunner:
    """Stands in for the load scripts; writes canned output per extract."""

    def __init__(self, outputs=None, exit_codes=None):
        self.outputs = outputs or {}
        self.exit_codes = exit_codes or {}
        self.scripts = []

    def __call__(self, script_path, out_path):
        self.scripts.append(os.path.basename(script_path))
        name = os.path.basename(out_path)[: -len(".out")]
        with open(out_path, "a", encoding="utf-8") as out:
            out.write(self.outputs.get(name, f"{name} rows loaded\n"))
        return self.exit_codes.get(name, 0)


@pytest.fixture
def proceeded(gate_config, make_extract, make_registry):
    registry = make_registry(last_dates={name: date(2025, 2, 21) for name in DAILY_NAMES})
    for spec in DAILY_EXTRACTS:
        make_extract(spec, "20250222", extra_lines=4)
    result = ReconciliationEngine(DAILY_PROFILE, gate_config, registry).run(date(2025, 2, 22))
    assert result.proceed
    return result, registry


def test_run_loads_stages_runs_and_records(proceeded, gate_config, load_dir):
    result, registry = proceeded
    runner = RecordingRunner()

    stats = run_loads(result, DAILY_PROFILE, gate_config, registry, runner=runner)

    assert runner.scripts == [f"c.proc{name}" for name in DAILY_NAMES]
    assert list(stats) == DAILY_NAMES
    assert stats["E5"] == {
        "extract_date": "2025-02-22",
        "record_count": 5,
        "duration_seconds": stats["E5"]["duration_seconds"],
    }
    assert (load_dir / "E5.dat").exists()
    assert (load_dir / "E5.out").read_text() == "E5 rows loaded\n"
    assert [(row["loadname"], row["extrdt"], row["numrec"]) for row in registry.loads][0] == (
        "E5",
        date(2025, 2, 22),
        5,
    )
    assert registry.last_dates["EB"] == date(2025, 2, 22)


def test_stale_output_from_earlier_run_is_set_aside(proceeded, gate_config, load_dir):
    result, registry = proceeded
    (load_dir / "E5.out").write_text("ORA-01400 ERROR: cannot insert NULL\n")
    runner = RecordingRunner(outputs={"E5": "100 rows loaded\n"})

    stats = run_loads(result, DAILY_PROFILE, gate_config, registry, runner=runner)

    assert list(stats) == DAILY_NAMES
    assert (load_dir / "E5.out").read_text() == "100 rows loaded\n"
    assert (load_dir / "E5.out.prev").read_text() == "ORA-01400 ERROR: cannot insert NULL\n"
    assert not (load_dir / "E3.out.prev").exists()


def test_rotate_previous_output(tmp_path):
    out_path = str(tmp_path / "E3.out")
    assert rotate_previous_output(out_path) is None

    (tmp_path / "E3.out").write_text("old\n")
    (tmp_path / "E3.out.prev").write_text("older\n")
    assert rotate_previous_output(out_path) == out_path + ".prev"
    assert not os.path.exists(out_path)
    assert (tmp_path / "E3.out.prev").read_text() == "old\n"


@pytest.mark.skipif(os.name == "nt", reason="needs a POSIX shell")
def test_run_load_script_overwrites_output(tmp_path):
    script = tmp_path / "c.procE5"
    script.write_text("#!/bin/sh\necho 12 rows loaded\n")
    script.chmod(0o755)
    out_path = tmp_path / "E5.out"
    out_path.write_text("stale ERROR line\n")

    assert run_load_script(str(script), str(out_path)) == 0
    assert out_path.read_text() == "12 rows loaded\n"


def test_error_in_output_stops_loads(proceeded, gate_config):
    result, registry = proceeded
    runner = RecordingRunner(outputs={"E8": "ORA-00001 ERROR: unique constraint violated\n"})

    with pytest.raises(LoadFailedError) as excinfo:
        run_loads(result, DAILY_PROFILE, gate_config, registry, runner=runner)

    assert excinfo.value.name == "E8"
    assert runner.scripts == ["c.procE5", "c.procE3", "c.procE8"]
    assert [row["loadname"] for row in registry.loads] == ["E5", "E3"]


def test_lowercase_err_in_output_stops_loads(proceeded, gate_config):
    result, registry = proceeded
    runner = RecordingRunner(outputs={"E5": "SQL*Loader: 3 rows rejected, see err file\n"})

    with pytest.raises(LoadFailedError):
        run_loads(result, DAILY_PROFILE, gate_config, registry, runner=runner)
    assert registry.loads == []


def test_non_zero_exit_stops_loads(proceeded, gate_config):
    result, registry = proceeded
    runner = RecordingRunner(exit_codes={"E3": 2})

    with pytest.raises(LoadFailedError) as excinfo:
        run_loads(result, DAILY_PROFILE, gate_config, registry, runner=runner)

    assert excinfo.value.detail == "exit code 2"


def test_loads_refused_without_proceed(gate_config, make_registry):
    result = ReconciliationResult(pipeline="daily", run_date=date(2025, 2, 22), decision=GateDecision.ABORT)

    with pytest.raises(ValueError):
        run_loads(result, DAILY_PROFILE, gate_config, make_registry(), runner=RecordingRunner())


def test_find_error_lines():
    assert find_error_lines(["ok", "ERROR at line 3", "error again"]) == ["ERROR at line 3"]
    assert find_error_lines(["ok", "Err: rejected"]) == ["Err: rejected"]
    assert find_error_lines(["100 rows loaded"]) == []


def test_stage_extract_creates_load_dir(tmp_path):
    inbound = tmp_path / "in"
    inbound.mkdir()
    (inbound / "E7").write_text("line\n")

    staged = stage_extract(str(inbound), str(tmp_path / "new" / "loads"), "E7")

    assert staged.endswith(os.path.join("loads", "E7.dat"))
    assert open(staged).read() == "line\n"
