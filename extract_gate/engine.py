"""extract_gate.engine

Reconciliation engine: decides whether this run's extract files are the
correct, in-sequence extracts before any load is allowed to run.

State machine
-------------
INIT -> AWAITING_FILES -> VALIDATING_DATES -> CROSS_CADENCE_CHECK -> GATE_DECIDED

- INIT: compute the day offset. Daily runs first check whether yesterday was
  a recorded holiday; if so the registry records holiday markers and the run
  ends in ABORT(HolidaySkip), an intentional no-op.
- AWAITING_FILES: the arrival watcher blocks until every required file is
  present. Timeout and cancellation end the run in ABORT.
- VALIDATING_DATES: every extract's file date is compared with its expected
  date (last recorded date + calendar offset). All extracts are evaluated and
  every mismatch is reported.
- CROSS_CADENCE_CHECK: only on the rule's trigger weekday. The daily anchor's
  file date must trail the weekly anchor's last recorded date by exactly the
  configured gap.

Only file absence is retried (by the watcher). Date problems are never retried,
and a registry failure ends the run in ABORT(RegistryUnavailable).
"""

from __future__ import annotations

import os
import threading
from datetime import date, timedelta
from typing import List, Optional, Union

from .arrival import ArrivalWatcher
from .calendar_rules import (
    day_gap,
    format,
    is_end_of_month_boundary,
    is_no_load_day,
    offset_for_day_of_week,
    parse,
    weekday_name,
)
from .config import WEEKDAY_NAMES, GateConfig, PipelineProfile, Stopwatch, log_message
from .errors import (
    ArrivalTimeoutError,
    EmptyFileError,
    FieldOutOfRangeError,
    InvalidDateFormatError,
    RegistryUnavailableError,
    WatchCancelledError,
)
from .fields import read_extract_field
from .models import (
    AbortReason,
    ArrivalTimeout,
    Cadence,
    Cancelled,
    CrossCadenceRule,
    DateForm,
    DateMismatch,
    EmptyFile,
    ExtractOutcome,
    ExtractSpec,
    FieldOutOfRange,
    FileUnreadable,
    GateDecision,
    GateState,
    HolidaySkip,
    InvalidDateFormat,
    NoPriorLoad,
    OutcomeStatus,
    ReconciliationResult,
    RegistryUnavailable,
    SequenceGapViolation,
    SequenceProbe,
)
from .registry import ExtractRegistry


def check_cross_cadence(
    daily_file_value: Union[str, date], weekly_last_date: date, expected_gap: int
) -> Optional[SequenceGapViolation]:
    """Return a violation unless the daily file date trails the weekly date by `expected_gap` days.

    `daily_file_value` may be the raw FILE-form field; an overflowing day
    (e.g. 20250229) still yields a day count so the violation carries it.
    """
    gap = day_gap(daily_file_value, weekly_last_date)
    if gap == expected_gap:
        return None
    return SequenceGapViolation(expected=expected_gap, actual=gap)


class ReconciliationEngine:
    """Runs one gate decision for a pipeline profile.

    Args:
        profile: Daily or weekly pipeline description.
        gate_config: Explicit run configuration.
        registry: Extract registry capability.
        watcher: Arrival watcher; built from `gate_config` when omitted.
        cancel_event: Shared with the default watcher so callers can cancel.
    """

    def __init__(
        self,
        profile: PipelineProfile,
        gate_config: GateConfig,
        registry: ExtractRegistry,
        watcher: Optional[ArrivalWatcher] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.profile = profile
        self.gate_config = gate_config
        self.registry = registry
        self.watcher = watcher or ArrivalWatcher.from_config(gate_config, cancel_event=cancel_event)
        self.inbound_dir = self.watcher.directory
        self._eom_expected: Optional[date] = None

    def cancel(self) -> None:
        """Unblock a run that is waiting for files; it ends in ABORT(Cancelled)."""
        self.watcher.cancel()

    # ---------------------------------------------------------------------------------
    # state handling
    # ---------------------------------------------------------------------------------

    def _transition(self, result: ReconciliationResult, new_state: GateState) -> None:
        result.transitions.append((result.state, new_state))
        log_message(f"{result.state.value} -> {new_state.value}", level="DEBUG", depth=1)
        result.state = new_state

    def _abort(self, result: ReconciliationResult, *reasons: AbortReason) -> ReconciliationResult:
        result.reasons.extend(reasons)
        result.decision = GateDecision.ABORT
        if result.state != GateState.GATE_DECIDED:
            self._transition(result, GateState.GATE_DECIDED)
        for reason in result.reasons:
            log_message(f"ABORT: {reason.to_dict()}", level="ERROR", depth=1)
        return result

    def _proceed(self, result: ReconciliationResult) -> ReconciliationResult:
        result.decision = GateDecision.PROCEED
        self._transition(result, GateState.GATE_DECIDED)
        log_message(f"Gate decision for {self.profile.name} run on {result.run_date}: PROCEED", depth=1)
        return result

    # ---------------------------------------------------------------------------------
    # run
    # ---------------------------------------------------------------------------------

    def run(self, run_date: date) -> ReconciliationResult:
        """Run the gate for `run_date` and return the decided result."""
        result = ReconciliationResult(pipeline=self.profile.name, run_date=run_date)
        timer = Stopwatch()
        log_message(
            f"Begin {self.profile.name} extract gate on {self.gate_config.environment} "
            f"for {format(run_date, DateForm.REGISTRY)} ({weekday_name(run_date)})"
        )
        try:
            self._run(result)
        except RegistryUnavailableError as e:
            self._abort(result, RegistryUnavailable(operation=e.operation, detail=e.detail))
        finally:
            log_message(
                f"End {self.profile.name} extract gate: {result.decision.value if result.decision else 'UNDECIDED'} "
                f"in {timer.format()}"
            )
        return result

    def _run(self, result: ReconciliationResult) -> None:
        run_date = result.run_date

        if any(spec.cadence == Cadence.DAILY for spec in self.profile.extracts):
            result.day_offset = offset_for_day_of_week(run_date)
            if is_no_load_day(run_date):
                result.warnings.append("No loads on Monday")
                log_message("No loads on Monday; continuing.", level="WARN", depth=1)
        else:
            result.day_offset = self.gate_config.weekly_offset_days
        log_message(f"Days to add to the last extract date: {result.day_offset}", depth=1)

        if self.profile.holiday_check and self._is_holiday_skip(result):
            return

        required = self._required_extracts(result)

        if self.profile.sequence_probe is not None:
            self._probe_sequence(result, self.profile.sequence_probe)

        self._transition(result, GateState.AWAITING_FILES)
        try:
            result.poll_states = self.watcher.wait_for([spec.name for spec in required])
        except ArrivalTimeoutError as e:
            result.poll_states = list(self.watcher.poll_states)
            result.outcomes[e.name] = ExtractOutcome(name=e.name, status=OutcomeStatus.MISSING, detail=str(e))
            self._abort(result, ArrivalTimeout(name=e.name, waited_seconds=e.waited_seconds, attempts=e.attempts))
            return
        except WatchCancelledError as e:
            result.poll_states = list(self.watcher.poll_states)
            self._abort(result, Cancelled(name=e.name))
            return

        self._transition(result, GateState.VALIDATING_DATES)
        reasons = self._validate_dates(result, required)
        if reasons:
            self._abort(result, *reasons)
            return

        rule = self.profile.cross_cadence
        if rule is not None and run_date.weekday() == rule.trigger_weekday:
            self._transition(result, GateState.CROSS_CADENCE_CHECK)
            violation = self._check_cross_cadence(result, rule)
            if violation is not None:
                self._abort(result, violation)
                return
        elif rule is not None:
            log_message(
                f"Skipping weekly/daily comparison (only runs on {WEEKDAY_NAMES[rule.trigger_weekday]}).",
                level="DEBUG",
                depth=1,
            )

        self._proceed(result)

    # ---------------------------------------------------------------------------------
    # steps
    # ---------------------------------------------------------------------------------

    def _is_holiday_skip(self, result: ReconciliationResult) -> bool:
        yesterday = result.run_date - timedelta(days=1)
        holiday = self.registry.find_holiday(yesterday)
        if holiday is None:
            log_message(f"Yesterday {format(yesterday, DateForm.REGISTRY)} was not a holiday, continue process", depth=1)
            return False

        log_message(f"Yesterday {format(holiday, DateForm.REGISTRY)} was a holiday, recording holiday loads", depth=1)
        self.registry.record_holiday(holiday)
        self._abort(result, HolidaySkip(holiday_date=holiday))
        return True

    def _required_extracts(self, result: ReconciliationResult) -> List[ExtractSpec]:
        self._eom_expected = None
        required = [spec for spec in self.profile.extracts if spec.cadence != Cadence.EOM_ONLY]
        eom_specs = [spec for spec in self.profile.extracts if spec.cadence == Cadence.EOM_ONLY]
        if not eom_specs:
            return required

        extract_day = result.run_date - timedelta(days=self.gate_config.eom_extract_lag_days)
        report_month = self.registry.report_month_for(extract_day)
        month_start, month_end = self.registry.month_bounds(report_month)
        log_message(f"EOM report month {report_month}: {month_start} -> {month_end}", level="DEBUG", depth=1)

        if is_end_of_month_boundary(result.run_date, month_end):
            result.eom_included = True
            self._eom_expected = extract_day
            log_message(f"EOM run: expecting {', '.join(s.name for s in eom_specs)} dated {extract_day}", depth=1)
            return list(self.profile.extracts)

        next_eom = month_end + timedelta(days=1)
        log_message(
            f"No {', '.join(s.name for s in eom_specs)}, next EOM is {format(next_eom, DateForm.REGISTRY)}", depth=1
        )
        return required

    def _probe_sequence(self, result: ReconciliationResult, probe: SequenceProbe) -> None:
        """Warn when the probe extract's current file does not follow its last load."""
        if not self.watcher.is_present(probe.extract):
            log_message(f"{probe.extract} not present yet; skipping sequence check.", level="DEBUG", depth=1)
            return

        last_loaded = self.registry.max_extract_date(probe.extract)
        if last_loaded is None:
            result.warnings.append(f"No prior {probe.extract} load recorded")
            return

        spec = self.profile.spec(probe.extract)
        try:
            current = parse(read_extract_field(self.inbound_dir, spec), DateForm.FILE)
        except (EmptyFileError, FieldOutOfRangeError, InvalidDateFormatError, OSError) as e:
            result.warnings.append(f"{probe.extract} sequence check skipped: {e}")
            log_message(f"{probe.extract} sequence check skipped: {e}", level="WARN", depth=1)
            return

        gap = day_gap(current, last_loaded)
        log_message(f"Current {probe.extract} -> {current}, previous -> {last_loaded}, difference -> {gap} days", depth=1)
        if gap != probe.expected_gap:
            message = f"{probe.extract} extract is not current: {gap} days after last load (expected {probe.expected_gap})"
            result.warnings.append(message)
            log_message(message, level="WARN", depth=1)

    def _expected_date(self, spec: ExtractSpec, result: ReconciliationResult) -> Optional[date]:
        if spec.cadence == Cadence.EOM_ONLY:
            return self._eom_expected

        last_loaded = self.registry.max_extract_date(spec.registry_name)
        log_message(f"Last {spec.registry_name} extract date loaded: {last_loaded}", depth=1)
        if last_loaded is None:
            return None
        if spec.cadence == Cadence.WEEKLY:
            return last_loaded + timedelta(days=self.gate_config.weekly_offset_days)
        return last_loaded + timedelta(days=result.day_offset)

    def _validate_dates(self, result: ReconciliationResult, specs: List[ExtractSpec]) -> List[AbortReason]:
        reasons: List[AbortReason] = []
        for spec in specs:
            outcome, reason = self._validate_extract(spec, result)
            result.outcomes[spec.name] = outcome
            if reason is not None:
                reasons.append(reason)
        return reasons

    def _validate_extract(self, spec: ExtractSpec, result: ReconciliationResult):
        expected = self._expected_date(spec, result)
        if expected is None:
            log_message(f"ERROR: no prior {spec.registry_name} load recorded", level="ERROR", depth=1)
            return (
                ExtractOutcome(spec.name, OutcomeStatus.MISSING, detail="no prior load"),
                NoPriorLoad(name=spec.registry_name),
            )

        try:
            raw = read_extract_field(self.inbound_dir, spec)
        except EmptyFileError as e:
            return (
                ExtractOutcome(spec.name, OutcomeStatus.INVALID, expected=expected, detail=str(e)),
                EmptyFile(name=spec.name, path=e.path),
            )
        except FieldOutOfRangeError as e:
            return (
                ExtractOutcome(spec.name, OutcomeStatus.INVALID, expected=expected, detail=str(e)),
                FieldOutOfRange(name=spec.name, start=e.start, end=e.end, line_length=e.line_length),
            )
        except OSError as e:
            log_message(f"ERROR: {spec.name} extract file could not be read: {e}", level="ERROR", depth=1)
            return (
                ExtractOutcome(spec.name, OutcomeStatus.MISSING, expected=expected, detail=str(e)),
                FileUnreadable(name=spec.name, path=os.path.join(self.inbound_dir, spec.name), detail=str(e)),
            )

        try:
            actual = parse(raw, DateForm.FILE)
        except InvalidDateFormatError as e:
            log_message(f"ERROR: {spec.name} extract date {raw!r} is not a valid date", level="ERROR", depth=1)
            return (
                ExtractOutcome(spec.name, OutcomeStatus.INVALID, expected=expected, raw_value=raw, detail=str(e)),
                InvalidDateFormat(name=spec.name, value=raw, form=DateForm.FILE),
            )

        if actual == expected:
            log_message(f"{spec.name} extract date is correct....... {raw}", depth=1)
            return ExtractOutcome(spec.name, OutcomeStatus.MATCH, expected=expected, actual=actual, raw_value=raw), None

        log_message(
            f"ERROR: {spec.name} extract date {raw} is incorrect (expected {format(expected, DateForm.FILE)})",
            level="ERROR",
            depth=1,
        )
        return (
            ExtractOutcome(spec.name, OutcomeStatus.MISMATCH, expected=expected, actual=actual, raw_value=raw),
            DateMismatch(name=spec.name, expected=expected, actual=actual),
        )

    def _check_cross_cadence(self, result: ReconciliationResult, rule: CrossCadenceRule) -> Optional[AbortReason]:
        weekly_last = self.registry.max_extract_date(rule.weekly_extract)
        if weekly_last is None:
            return NoPriorLoad(name=rule.weekly_extract)

        daily_value = result.outcomes[rule.daily_extract].raw_value
        expected_gap = self.gate_config.cross_cadence_gap_days
        result.cross_cadence_gap = day_gap(daily_value, weekly_last)

        log_message(f"Current {rule.daily_extract}  -> {daily_value}", depth=1)
        log_message(f"Previous {rule.weekly_extract} -> {format(weekly_last, DateForm.FILE)}", depth=1)
        log_message(f"Difference   -> {result.cross_cadence_gap} days", depth=1)

        violation = check_cross_cadence(daily_value, weekly_last, expected_gap)
        if violation is None:
            log_message(f"Weekly extract date is current ........... {weekly_last}", depth=1)
        else:
            log_message(f"Weekly loads did not run (last {rule.weekly_extract} {weekly_last})", level="ERROR", depth=1)
        return violation
