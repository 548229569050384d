"""I/O helpers — decode uploaded files into records, write JSON artifacts."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import date, datetime
from io import BytesIO
from pathlib import Path
from typing import Any, Literal

import pandas as pd

from sales_intake.columns import COLUMN_SYNONYMS, SynonymTable, resolve_columns
from sales_intake.models import ErrorCode, IngestResult
from sales_intake.pipeline import map_rows

logger = logging.getLogger(__name__)

ExcelEngine = Literal["openpyxl", "xlrd"]
CSV_ENCODINGS: tuple[str, ...] = ("utf-8-sig", "utf-8", "gb18030", "latin-1")


# ── Delimited text ───────────────────────────────────────────────


def _read_csv_bytes(data: bytes, delimiter: str) -> pd.DataFrame:
    last_exc: Exception | None = None
    for encoding in CSV_ENCODINGS:
        try:
            return pd.read_csv(
                BytesIO(data),
                dtype="string",
                sep=delimiter,
                encoding=encoding,
                encoding_errors="strict",
                keep_default_na=False,
                skip_blank_lines=True,
                index_col=False,
            )
        except pd.errors.EmptyDataError:
            return pd.DataFrame()
        except (UnicodeDecodeError, pd.errors.ParserError) as exc:
            last_exc = exc
    raise ValueError(f"decode or parse failed: {last_exc}") from last_exc


def decode_csv(
    data: bytes, synonyms: SynonymTable = COLUMN_SYNONYMS, delimiter: str = ","
) -> IngestResult:
    """Decode CSV bytes: first row is the header, blank lines are skipped."""
    try:
        frame = _read_csv_bytes(data, delimiter)
    except ValueError as exc:
        logger.debug("CSV parse failed", exc_info=True)
        return IngestResult.failed(f"CSV parse failed: {exc}", ErrorCode.CSV_PARSE_ERROR)

    headers = [str(column) for column in frame.columns]
    logger.debug("CSV headers: %s (%d data rows)", headers, len(frame))
    column_map, errors = resolve_columns(headers, synonyms)
    if column_map is None:
        return IngestResult(records=[], errors=errors)

    return map_rows(frame.to_dict(orient="records"), column_map)


# ── Spreadsheet binary ──────────────────────────────────────────


def _header_name(value: Any, index: int) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return f"Unnamed: {index}"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip() or f"Unnamed: {index}"


def _dedupe_headers(headers: list[str]) -> list[str]:
    """Suffix repeated headers with ``.1``, ``.2`` ... as ``pd.read_csv`` does."""
    seen: dict[str, int] = {}
    taken = set(headers)
    out: list[str] = []
    for header in headers:
        count = seen.get(header, 0)
        seen[header] = count + 1
        name = header
        while count and name in taken:
            name = f"{header}.{count}"
            count += 1
            seen[header] = count
        taken.add(name)
        out.append(name)
    return out


def _read_first_sheet(data: bytes, engine: ExcelEngine) -> pd.DataFrame | None:
    """Return the first sheet with no header applied, or ``None`` if there is no sheet."""
    with pd.ExcelFile(BytesIO(data), engine=engine) as workbook:
        sheet_names = list(workbook.sheet_names)
        if not sheet_names:
            return None
        logger.debug("Reading sheet %r of %d", sheet_names[0], len(sheet_names))
        return workbook.parse(sheet_names[0], header=None, dtype=object)


def decode_excel(
    data: bytes, synonyms: SynonymTable = COLUMN_SYNONYMS, engine: ExcelEngine = "openpyxl"
) -> IngestResult:
    """Decode a workbook: first sheet only, first non-blank row is the header."""
    try:
        sheet = _read_first_sheet(data, engine)
    except ImportError as exc:
        return IngestResult.failed(
            f"Excel parse failed: reading .xls requires 'xlrd' ({exc})",
            ErrorCode.EXCEL_PARSE_ERROR,
        )
    except Exception as exc:  # workbook readers raise many unrelated types
        logger.debug("Excel parse failed", exc_info=True)
        return IngestResult.failed(f"Excel parse failed: {exc}", ErrorCode.EXCEL_PARSE_ERROR)

    if sheet is None:
        return IngestResult.failed("No worksheet found in workbook", ErrorCode.NO_SHEET)

    sheet = sheet.dropna(how="all")
    if len(sheet) < 2:
        return IngestResult.failed("First worksheet is empty", ErrorCode.EMPTY_SHEET)

    headers = _dedupe_headers(
        [_header_name(value, idx) for idx, value in enumerate(sheet.iloc[0].tolist())]
    )
    logger.debug("Excel headers: %s (%d data rows)", headers, len(sheet) - 1)
    column_map, errors = resolve_columns(headers, synonyms)
    if column_map is None:
        return IngestResult(records=[], errors=errors)

    rows = (dict(zip(headers, values)) for values in sheet.iloc[1:].itertuples(index=False))
    return map_rows(rows, column_map)


# ── Facade ───────────────────────────────────────────────────────


def _decode_xlsx(data: bytes, synonyms: SynonymTable) -> IngestResult:
    return decode_excel(data, synonyms, engine="openpyxl")


def _decode_xls(data: bytes, synonyms: SynonymTable) -> IngestResult:
    return decode_excel(data, synonyms, engine="xlrd")


DECODERS: dict[str, Callable[[bytes, SynonymTable], IngestResult]] = {
    "csv": decode_csv,
    "xlsx": _decode_xlsx,
    "xls": _decode_xls,
}


def ingest(
    file_name: str, data: bytes, synonyms: SynonymTable = COLUMN_SYNONYMS
) -> IngestResult:
    """Decode *data* by the extension of *file_name*.

    Never raises for bad content: every problem is reported in
    ``IngestResult.errors``.
    """
    extension = Path(file_name).suffix.lstrip(".").lower()
    decoder = DECODERS.get(extension)
    if decoder is None:
        logger.debug("Rejected %r: unsupported extension %r", file_name, extension)
        return IngestResult.failed(
            f"Unsupported file format: {extension or file_name!r}. Upload a CSV or Excel file.",
            ErrorCode.UNSUPPORTED_FORMAT,
        )

    logger.debug("Decoding %r as %s (%d bytes)", file_name, extension, len(data))
    result = decoder(data, synonyms)
    logger.debug(
        "Decoded %r: %d records, %d errors", file_name, len(result.records), len(result.errors)
    )
    return result


def ingest_path(path: Path, synonyms: SynonymTable = COLUMN_SYNONYMS) -> IngestResult:
    """Read *path* from disk and ingest it.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    OSError
        If *path* is a directory or cannot be read.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    if path.is_dir():
        raise IsADirectoryError(f"Input path is a directory, not a file: {path}")
    return ingest(path.name, path.read_bytes(), synonyms)


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path
