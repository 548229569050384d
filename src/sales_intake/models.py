"""Data models shared across the package: records, errors, run artifacts."""

from __future__ import annotations

import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from numbers import Integral, Real
from typing import Any

from sales_intake import RECORD_FIELDS

_MONTH_LABEL_RE = re.compile(r"^(?:[1-9]|1[0-2])月$")


class ErrorCode(str, Enum):
    """Stable error vocabulary surfaced to callers."""

    MISSING_FIELD = "MISSING_FIELD"
    INVALID_NUMBER = "INVALID_NUMBER"
    MISSING_COLUMN = "MISSING_COLUMN"
    PARSE_ERROR = "PARSE_ERROR"
    CSV_PARSE_ERROR = "CSV_PARSE_ERROR"
    EXCEL_PARSE_ERROR = "EXCEL_PARSE_ERROR"
    NO_SHEET = "NO_SHEET"
    EMPTY_SHEET = "EMPTY_SHEET"
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_finite_float(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise TypeError(f"{field_name} must be a number")
    result = float(value)
    if not math.isfinite(result):
        raise ValueError(f"{field_name} must be a finite number")
    return result


def _to_month_label(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError("month must be a string")
    if not _MONTH_LABEL_RE.fullmatch(value):
        raise ValueError(f"month must look like '1月'..'12月', got {value!r}")
    return value


def _to_string_list(values: Sequence[Any] | None, field_name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        normalized.append(item)
    return normalized


@dataclass(frozen=True)
class SalesRecord:
    """One validated month of sales metrics.

    ``actual`` and ``last_year`` are absolute values; ``mom`` and ``yoy`` are
    percentage points. All four are finite floats.
    """

    month: str
    actual: float
    last_year: float
    mom: float
    yoy: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "month", _to_month_label(self.month))
        object.__setattr__(self, "actual", _to_finite_float(self.actual, "actual"))
        object.__setattr__(self, "last_year", _to_finite_float(self.last_year, "lastYear"))
        object.__setattr__(self, "mom", _to_finite_float(self.mom, "mom"))
        object.__setattr__(self, "yoy", _to_finite_float(self.yoy, "yoy"))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> SalesRecord:
        """Build a record from a mapping keyed by the canonical field names."""
        if not isinstance(payload, Mapping):
            raise TypeError("record must be a mapping")
        missing = [name for name in RECORD_FIELDS if name not in payload]
        if missing:
            raise ValueError(f"record is missing fields: {', '.join(missing)}")
        return cls(
            month=payload["month"],
            actual=payload["actual"],
            last_year=payload["lastYear"],
            mom=payload["mom"],
            yoy=payload["yoy"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "actual": self.actual,
            "lastYear": self.last_year,
            "mom": self.mom,
            "yoy": self.yoy,
        }


@dataclass(frozen=True)
class FieldError:
    """A problem found while ingesting a file.

    ``row`` is the 1-based data-row ordinal and ``field`` the semantic field
    name; both are ``None`` for file-level (structural) errors.
    """

    message: str
    code: ErrorCode
    row: int | None = None
    field: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.row is not None:
            payload["row"] = self.row
        if self.field is not None:
            payload["field"] = self.field
        payload["message"] = self.message
        payload["code"] = self.code.value
        return payload


@dataclass
class IngestResult:
    """Outcome of ingesting one file: every record that parsed plus every error."""

    records: list[SalesRecord] = field(default_factory=list)
    errors: list[FieldError] = field(default_factory=list)

    @classmethod
    def failed(cls, message: str, code: ErrorCode) -> IngestResult:
        """A structural failure: one file-level error and no records."""
        return cls(records=[], errors=[FieldError(message=message, code=code)])

    def to_dict(self) -> dict[str, Any]:
        return {
            "records": [record.to_dict() for record in self.records],
            "errors": [error.to_dict() for error in self.errors],
        }


def validate_records(payload: Any) -> list[SalesRecord]:
    """Re-validate a JSON-like list of record mappings.

    Raises
    ------
    ValueError
        If *payload* is not a list, or any item fails validation. The message
        names the offending index.
    """
    if isinstance(payload, (str, bytes)) or not isinstance(payload, Sequence):
        raise ValueError("records payload must be a list")
    records: list[SalesRecord] = []
    for idx, item in enumerate(payload):
        try:
            records.append(SalesRecord.from_dict(item))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"record {idx}: {exc}") from exc
    return records


@dataclass
class IngestReport:
    """Per-run summary written to ``ingest_report.json``.

    Contract invariant: ``dropped_rows == rows_in - rows_out``.
    """

    rows_in: int = 0
    rows_out: int = 0
    dropped_rows: int = 0
    missing_columns: list[str] = field(default_factory=list)
    error_counts: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        self.dropped_rows = _to_non_negative_int(self.dropped_rows, "dropped_rows")
        self.missing_columns = _to_string_list(self.missing_columns, "missing_columns")
        self.warnings = _to_string_list(self.warnings, "warnings")
        self.error_counts = {
            str(code): _to_non_negative_int(count, f"error_counts[{code}]")
            for code, count in (self.error_counts or {}).items()
        }
        if self.rows_out > self.rows_in:
            raise ValueError("rows_out must be <= rows_in")
        expected_dropped = self.rows_in - self.rows_out
        if self.dropped_rows != expected_dropped:
            raise ValueError("dropped_rows must equal rows_in - rows_out")

    @property
    def error_total(self) -> int:
        return sum(self.error_counts.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "dropped_rows": self.dropped_rows,
            "missing_columns": list(self.missing_columns),
            "error_counts": dict(self.error_counts),
            "warnings": list(self.warnings),
        }


@dataclass
class RunManifest:
    """Audit-trail manifest for a single CLI run."""

    tool: str = "sales-intake"
    version: str = ""
    command: str = ""
    input_path: str = ""
    output_dir: str = ""
    created_at_utc: str = ""
    rows_in: int = 0
    rows_out: int = 0
    sha256: str = ""
    status: str = "success"
    error_message: str = ""

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        if self.status not in {"success", "failed"}:
            raise ValueError(f"status must be 'success' or 'failed', got {self.status!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "command": self.command,
            "input_path": self.input_path,
            "output_dir": self.output_dir,
            "created_at_utc": self.created_at_utc,
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "sha256": self.sha256,
            "status": self.status,
            "error_message": self.error_message,
        }
