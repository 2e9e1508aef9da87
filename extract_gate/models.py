"""extract_gate.models

Value types shared by the gate modules.

Everything here is plain data: the extract catalogue entries (`ExtractSpec`),
the per-run accumulator handed back to the caller (`ReconciliationResult`), and
the structured abort reasons the reporting layer renders without re-parsing.

Abort reasons are frozen dataclasses. Each one exposes `kind` (an `AbortKind`)
and `to_dict()` so the run log can store them as JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Cadence(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    EOM_ONLY = "EOM_ONLY"


class DateForm(str, Enum):
    """Serialization forms of an extract date."""

    REGISTRY = "REGISTRY"  # MM/DD/YYYY
    FILE = "FILE"  # YYYYMMDD


class GateState(str, Enum):
    INIT = "INIT"
    AWAITING_FILES = "AWAITING_FILES"
    VALIDATING_DATES = "VALIDATING_DATES"
    CROSS_CADENCE_CHECK = "CROSS_CADENCE_CHECK"
    GATE_DECIDED = "GATE_DECIDED"


class GateDecision(str, Enum):
    PROCEED = "PROCEED"
    ABORT = "ABORT"


class OutcomeStatus(str, Enum):
    MATCH = "MATCH"
    MISMATCH = "MISMATCH"
    MISSING = "MISSING"
    INVALID = "INVALID"


class AbortKind(str, Enum):
    EMPTY_FILE = "EmptyFile"
    FIELD_OUT_OF_RANGE = "FieldOutOfRange"
    INVALID_DATE_FORMAT = "InvalidDateFormat"
    REGISTRY_UNAVAILABLE = "RegistryUnavailable"
    NO_PRIOR_LOAD = "NoPriorLoad"
    DATE_MISMATCH = "DateMismatch"
    SEQUENCE_GAP_VIOLATION = "SequenceGapViolation"
    TIMEOUT = "Timeout"
    CANCELLED = "Cancelled"
    HOLIDAY_SKIP = "HolidaySkip"
    FILE_UNREADABLE = "FileUnreadable"


@dataclass(frozen=True)
class ExtractSpec:
    """One tracked extract type.

    Attributes:
        name: Logical extract name (also the inbound file name), e.g. "E5".
        start: 1-based inclusive start column of the date field.
        end: 1-based inclusive end column of the date field.
        cadence: Delivery frequency class.
        date_anchor: Registry name whose last recorded date seeds this
            extract's expected date; defaults to `name`.
    """

    name: str
    start: int
    end: int
    cadence: Cadence = Cadence.DAILY
    date_anchor: Optional[str] = None

    def __post_init__(self) -> None:
        if self.start < 1 or self.end < self.start:
            raise ValueError(f"Invalid field position for {self.name}: {self.start}-{self.end}")

    @property
    def position(self) -> str:
        return f"{self.start}-{self.end}"

    @property
    def registry_name(self) -> str:
        return self.date_anchor or self.name


@dataclass(frozen=True)
class CrossCadenceRule:
    """Daily file date that must trail a weekly recorded date by a fixed gap."""

    daily_extract: str
    weekly_extract: str
    trigger_weekday: int  # Monday=0 ... Sunday=6


@dataclass(frozen=True)
class SequenceProbe:
    """Informational check that an extract's file date follows its last load."""

    extract: str
    expected_gap: int


@dataclass
class PollState:
    name: str
    attempts: int = 0
    elapsed_seconds: float = 0.0
    found: bool = False


@dataclass
class ExtractOutcome:
    name: str
    status: OutcomeStatus
    expected: Optional[date] = None
    actual: Optional[date] = None
    raw_value: Optional[str] = None
    detail: Optional[str] = None


# =====================================================================================
# ABORT REASONS
# =====================================================================================


def _jsonable(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True)
class AbortReason:
    kind = None  # type: AbortKind

    def to_dict(self) -> Dict[str, Any]:
        payload = {key: _jsonable(value) for key, value in self.__dict__.items()}
        return {"kind": self.kind.value, **payload}


@dataclass(frozen=True)
class DateMismatch(AbortReason):
    kind = AbortKind.DATE_MISMATCH
    name: str
    expected: date
    actual: date


@dataclass(frozen=True)
class SequenceGapViolation(AbortReason):
    kind = AbortKind.SEQUENCE_GAP_VIOLATION
    expected: int
    actual: int


@dataclass(frozen=True)
class HolidaySkip(AbortReason):
    kind = AbortKind.HOLIDAY_SKIP
    holiday_date: date


@dataclass(frozen=True)
class ArrivalTimeout(AbortReason):
    kind = AbortKind.TIMEOUT
    name: str
    waited_seconds: float
    attempts: int


@dataclass(frozen=True)
class Cancelled(AbortReason):
    kind = AbortKind.CANCELLED
    name: Optional[str] = None


@dataclass(frozen=True)
class RegistryUnavailable(AbortReason):
    kind = AbortKind.REGISTRY_UNAVAILABLE
    operation: str
    detail: str


@dataclass(frozen=True)
class NoPriorLoad(AbortReason):
    kind = AbortKind.NO_PRIOR_LOAD
    name: str


@dataclass(frozen=True)
class EmptyFile(AbortReason):
    kind = AbortKind.EMPTY_FILE
    name: str
    path: str


@dataclass(frozen=True)
class FileUnreadable(AbortReason):
    kind = AbortKind.FILE_UNREADABLE
    name: str
    path: str
    detail: str


@dataclass(frozen=True)
class FieldOutOfRange(AbortReason):
    kind = AbortKind.FIELD_OUT_OF_RANGE
    name: str
    start: int
    end: int
    line_length: int


@dataclass(frozen=True)
class InvalidDateFormat(AbortReason):
    kind = AbortKind.INVALID_DATE_FORMAT
    name: str
    value: str
    form: DateForm


# =====================================================================================
# RUN RESULT
# =====================================================================================


@dataclass
class ReconciliationResult:
    """Accumulator for one gate run.

    Owned and mutated by `ReconciliationEngine` while the run is in progress,
    then returned to the caller as the sole hand-off to the load step.
    """

    pipeline: str
    run_date: date
    state: GateState = GateState.INIT
    decision: Optional[GateDecision] = None
    day_offset: Optional[int] = None
    outcomes: Dict[str, ExtractOutcome] = field(default_factory=dict)
    cross_cadence_gap: Optional[int] = None
    reasons: List[AbortReason] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    poll_states: List[PollState] = field(default_factory=list)
    transitions: List[Tuple[GateState, GateState]] = field(default_factory=list)
    eom_included: bool = False

    @property
    def proceed(self) -> bool:
        return self.decision == GateDecision.PROCEED

    @property
    def reason(self) -> Optional[AbortReason]:
        return self.reasons[0] if self.reasons else None

    @property
    def expected_dates(self) -> Dict[str, date]:
        return {name: o.expected for name, o in self.outcomes.items() if o.expected is not None}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pipeline": self.pipeline,
            "run_date": self.run_date.isoformat(),
            "state": self.state.value,
            "decision": self.decision.value if self.decision else None,
            "day_offset": self.day_offset,
            "cross_cadence_gap": self.cross_cadence_gap,
            "eom_included": self.eom_included,
            "outcomes": {
                name: {
                    "status": o.status.value,
                    "expected": _jsonable(o.expected),
                    "actual": _jsonable(o.actual),
                    "raw_value": o.raw_value,
                    "detail": o.detail,
                }
                for name, o in self.outcomes.items()
            },
            "reasons": [r.to_dict() for r in self.reasons],
            "warnings": list(self.warnings),
        }
