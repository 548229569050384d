"""Row validation pipeline — pure functions, no side effects."""

from __future__ import annotations

import math
import re
from collections import Counter
from collections.abc import Iterable, Mapping
from numbers import Real
from typing import Any, cast

import pandas as pd

from sales_intake.columns import ColumnMap
from sales_intake.dates import InvalidDate, normalize_month
from sales_intake.models import ErrorCode, FieldError, IngestReport, IngestResult, SalesRecord

NUMERIC_FIELDS: tuple[str, ...] = ("actual", "lastYear", "mom", "yoy")

_DECIMAL_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


# ── Cell helpers ────────────────────────────────────────────────


def _is_blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    try:
        return bool(pd.isna(cast(Any, value)))
    except (TypeError, ValueError):
        return False


def _parse_decimal(text: str) -> float | None:
    # Longest leading decimal wins, so "12%" reads as 12.
    match = _DECIMAL_RE.match(text.replace(",", "").strip())
    if match is None:
        return None
    return float(match.group())


# ── Numeric coercion ────────────────────────────────────────────


def coerce_number(value: object, field_name: str, row: int | None) -> float | FieldError:
    """Turn a raw cell into a finite float, or describe why it cannot be.

    Blank cells yield ``MISSING_FIELD``; anything that does not parse to a
    finite number yields ``INVALID_NUMBER`` quoting the raw value. Grouping
    commas are stripped and a trailing suffix such as ``%`` is ignored; no
    other locale handling is done.
    """
    if _is_blank(value):
        return FieldError(
            row=row,
            field=field_name,
            message=f"{field_name} is empty",
            code=ErrorCode.MISSING_FIELD,
        )

    number: float | None
    if isinstance(value, Real) and not isinstance(value, bool):
        number = float(value)
    elif isinstance(value, str):
        number = _parse_decimal(value)
    else:
        number = None

    if number is None or not math.isfinite(number):
        return FieldError(
            row=row,
            field=field_name,
            message=f"{field_name} is not a valid number: {value}",
            code=ErrorCode.INVALID_NUMBER,
        )
    return number


# ── Row mapping ─────────────────────────────────────────────────


def map_row(
    raw: Mapping[str, Any], column_map: ColumnMap, row: int
) -> tuple[SalesRecord | None, list[FieldError]]:
    """Map one raw row to a record, or to every error found on it.

    A missing or unparseable month abandons the row immediately. The four
    numeric fields are always all checked so one pass reports every bad cell.
    """
    month_raw = raw.get(column_map.month)
    if _is_blank(month_raw):
        return None, [
            FieldError(row=row, field="month", message="month is empty", code=ErrorCode.MISSING_FIELD)
        ]

    try:
        month = normalize_month(month_raw)
    except InvalidDate as exc:
        return None, [
            FieldError(row=row, field="month", message=str(exc), code=ErrorCode.PARSE_ERROR)
        ]

    errors: list[FieldError] = []
    values: dict[str, float] = {}
    for name in NUMERIC_FIELDS:
        result = coerce_number(raw.get(getattr(column_map, name)), name, row)
        if isinstance(result, FieldError):
            errors.append(result)
        else:
            values[name] = result

    if errors:
        return None, errors

    record = SalesRecord(
        month=month,
        actual=values["actual"],
        last_year=values["lastYear"],
        mom=values["mom"],
        yoy=values["yoy"],
    )
    return record, []


def map_rows(rows: Iterable[Mapping[str, Any]], column_map: ColumnMap) -> IngestResult:
    """Map every row (ordinals start at 1) and collect records and errors in order."""
    result = IngestResult()
    for row, raw in enumerate(rows, start=1):
        record, errors = map_row(raw, column_map, row)
        if record is not None:
            result.records.append(record)
        result.errors.extend(errors)
    return result


# ── Run summary ─────────────────────────────────────────────────


def summarize(result: IngestResult) -> IngestReport:
    """Derive row counts and per-code error totals from *result*."""
    failed_rows = {error.row for error in result.errors if error.row is not None}
    rows_out = len(result.records)
    rows_in = rows_out + len(failed_rows)
    counts = Counter(error.code.value for error in result.errors)
    missing = [
        error.field
        for error in result.errors
        if error.code is ErrorCode.MISSING_COLUMN and error.field is not None
    ]

    report = IngestReport(
        rows_in=rows_in,
        rows_out=rows_out,
        dropped_rows=rows_in - rows_out,
        missing_columns=missing,
        error_counts=dict(sorted(counts.items())),
    )
    if missing:
        report.warnings.append(f"Missing required columns: {', '.join(missing)}")
    structural = [error for error in result.errors if error.row is None and error.field is None]
    for error in structural:
        report.warnings.append(error.message)
    if report.dropped_rows:
        report.warnings.append(f"Dropped {report.dropped_rows} rows with invalid/missing values")
    if rows_in and not rows_out:
        report.warnings.append("No valid rows remain after validation")

    months = Counter(record.month for record in result.records)
    duplicated = sorted((m for m, n in months.items() if n > 1), key=lambda m: int(m[:-1]))
    if duplicated:
        report.warnings.append(f"Duplicate months: {', '.join(duplicated)}")
    return report
