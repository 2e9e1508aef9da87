"""Exception taxonomy for the extract gate.

The engine catches these and turns them into structured abort reasons
(`extract_gate.models`). Outside the engine they propagate normally.
"""

from __future__ import annotations

from typing import Optional


class ExtractGateError(Exception):
    """Base class for every error raised by this package."""


class EmptyFileError(ExtractGateError):
    def __init__(self, path: str):
        super().__init__(f"File is empty: {path}")
        self.path = path


class FieldOutOfRangeError(ExtractGateError):
    def __init__(self, start: int, end: int, line_length: int):
        super().__init__(f"Line is too short ({line_length} chars) to extract position {start}-{end}")
        self.start = start
        self.end = end
        self.line_length = line_length


class InvalidDateFormatError(ExtractGateError, ValueError):
    def __init__(self, value: str, form: str):
        super().__init__(f"Invalid {form} date value: {value!r}")
        self.value = value
        self.form = form


class RegistryUnavailableError(ExtractGateError):
    def __init__(self, operation: str, detail: str = ""):
        super().__init__(f"Registry unavailable during {operation}: {detail}")
        self.operation = operation
        self.detail = detail


class ArrivalTimeoutError(ExtractGateError):
    def __init__(self, name: str, waited_seconds: float, attempts: int):
        super().__init__(f"{name} extract file not found after {waited_seconds:.0f}s ({attempts} checks)")
        self.name = name
        self.waited_seconds = waited_seconds
        self.attempts = attempts


class WatchCancelledError(ExtractGateError):
    def __init__(self, name: Optional[str] = None):
        super().__init__(f"Arrival watch cancelled while waiting for {name or 'extract files'}")
        self.name = name


class LoadFailedError(ExtractGateError):
    def __init__(self, name: str, detail: str):
        super().__init__(f"Errors found in {name} load: {detail}")
        self.name = name
        self.detail = detail
