"""Clip-list parsing.

The clip list is a headerless CSV with one clip per row:

    start_offset_ms, volume, pan, source_path

Row order has no effect on the mix; it only shows up in error messages.
"""
from __future__ import annotations

import csv
import math
from pathlib import Path
from typing import Iterable, List, Sequence

from .errors import InputFormatError
from .types import ClipSpec

COLUMNS = ("start_offset_ms", "volume", "pan", "source_path")


def _parse_float(row_num: int, column: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise InputFormatError(row_num, f"{column} is not a number: {raw!r}") from None
    if not math.isfinite(value):
        raise InputFormatError(row_num, f"{column} must be finite, got {raw!r}")
    return value


def parse_clip_row(row_num: int, row: Sequence[str]) -> ClipSpec:
    fields = [f.strip() for f in row]
    if len(fields) != len(COLUMNS):
        raise InputFormatError(row_num, f"expected {len(COLUMNS)} columns, got {len(fields)}")
    start, volume, pan, source = fields
    if not source:
        raise InputFormatError(row_num, "source_path is empty")
    return ClipSpec(
        start_offset_ms=_parse_float(row_num, "start_offset_ms", start),
        volume=_parse_float(row_num, "volume", volume),
        pan=_parse_float(row_num, "pan", pan),
        source_path=source,
    )


def parse_clip_rows(rows: Iterable[Sequence[str]]) -> List[ClipSpec]:
    """Turn CSV rows into `ClipSpec`s; blank rows are skipped."""
    specs: List[ClipSpec] = []
    for row_num, row in enumerate(rows, 1):
        if not row or all(not f.strip() for f in row):
            continue
        specs.append(parse_clip_row(row_num, row))
    return specs


def load_clip_list(path: str | Path) -> List[ClipSpec]:
    """Read and parse a clip-list CSV file."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            return parse_clip_rows(csv.reader(f))
    except OSError as exc:
        raise InputFormatError(0, f"Cannot read clip list {path}: {exc}") from exc
    except (csv.Error, UnicodeDecodeError) as exc:
        raise InputFormatError(0, f"Malformed CSV in {path}: {exc}") from exc
