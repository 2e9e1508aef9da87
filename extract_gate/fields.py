"""extract_gate.fields

Fixed-position field reader.

Extract files carry their extract date at a declared column range of the first
line. Ranges are 1-based and inclusive, the same way the extract layouts are
documented (e.g. E5 date at 65-72).

Only the first line is read; the rest of the file is never touched.
"""

from __future__ import annotations

import os
from typing import Union

from .errors import EmptyFileError, FieldOutOfRangeError
from .models import ExtractSpec


def _check_range(start: int, end: int) -> None:
    if start < 1 or end < start:
        raise ValueError(f"Invalid field range {start}-{end}: require start >= 1 and end >= start")


def read_first_line(path: Union[str, os.PathLike]) -> str:
    """Return the first line of `path` without its line terminator.

    Raises:
        EmptyFileError: The file has no content.
    """
    with open(path, "r", encoding="latin-1", newline="") as handle:
        line = handle.readline()
    if line == "":
        raise EmptyFileError(str(path))
    return line.rstrip("\r\n")


def extract_field(line: str, start: int, end: int) -> str:
    """Return `line[start..end]` (1-based, inclusive).

    Raises:
        FieldOutOfRangeError: `line` is shorter than `end`. The value is never
            truncated or padded.
    """
    _check_range(start, end)
    if len(line) < end:
        raise FieldOutOfRangeError(start, end, len(line))
    return line[start - 1 : end]


def read_field(path: Union[str, os.PathLike], start: int, end: int) -> str:
    """Read the field at `start`-`end` from the first line of `path`."""
    _check_range(start, end)
    return extract_field(read_first_line(path), start, end)


def read_extract_field(directory: str, spec: ExtractSpec) -> str:
    """Read the date field of `spec` from its file under `directory`."""
    return read_field(os.path.join(directory, spec.name), spec.start, spec.end)
