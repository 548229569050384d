"""Excel export — produces Sales_Report.xlsx from an ingest result."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo
from openpyxl.worksheet.worksheet import Worksheet

from sales_intake import RECORD_FIELDS
from sales_intake.models import IngestReport, IngestResult, SalesRecord

# ── Style constants ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)

TITLE_FONT = Font(name="Calibri", bold=True, size=14, color="2F5496")
SUBTITLE_FONT = Font(name="Calibri", bold=False, size=10, color="808080")
LABEL_FONT = Font(name="Calibri", bold=True, size=11)
VALUE_FONT = Font(name="Calibri", size=11)
WARN_FONT = Font(name="Calibri", italic=True, size=10, color="CC6600")

NOTE_FILL = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")

AMOUNT_FMT = '#,##0.00'
# mom/yoy are percentage points (e.g. 37 means 37%), not fractions.
PCT_FMT = '0.00"%"'

# Canonical headers, in record-field order. Exported files re-ingest cleanly.
EXPORT_HEADERS: dict[str, str] = {
    "month": "月份",
    "actual": "实际值",
    "lastYear": "去年同期值",
    "mom": "环比",
    "yoy": "同比",
}

_COL_FORMATS: dict[str, str] = {
    "实际值": AMOUNT_FMT,
    "去年同期值": AMOUNT_FMT,
    "环比": PCT_FMT,
    "同比": PCT_FMT,
}

_ERROR_COLUMNS = ["row", "field", "code", "message"]
_AUTO_WIDTH_SAMPLE_ROWS = 300
_EXCEL_FORMULA_PREFIXES = ("=", "+", "-", "@")


# ── Frames ───────────────────────────────────────────────────────


def records_frame(records: Iterable[SalesRecord]) -> pd.DataFrame:
    """Tabulate *records* under the canonical Chinese headers."""
    rows = [record.to_dict() for record in records]
    frame = pd.DataFrame(rows, columns=list(RECORD_FIELDS))
    return frame.rename(columns=EXPORT_HEADERS)


def errors_frame(result: IngestResult) -> pd.DataFrame:
    rows = [
        {"row": e.row, "field": e.field, "code": e.code.value, "message": e.message}
        for e in result.errors
    ]
    frame = pd.DataFrame(rows, columns=_ERROR_COLUMNS)
    frame["row"] = frame["row"].astype("Int64")
    return frame


# ── Helpers ──────────────────────────────────────────────────────


def _style_header(ws: Worksheet, ncols: int) -> None:
    for c in range(1, ncols + 1):
        cell = ws.cell(row=1, column=c)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN


def _auto_width(ws: Worksheet) -> None:
    max_row = min(ws.max_row, _AUTO_WIDTH_SAMPLE_ROWS + 1)  # include header row
    for c_idx in range(1, ws.max_column + 1):
        letter = get_column_letter(c_idx)
        width = 0
        for row in ws.iter_rows(min_row=1, max_row=max_row, min_col=c_idx, max_col=c_idx):
            width = max(width, len(str(row[0].value or "")))
        ws.column_dimensions[letter].width = min(width + 4, 60)


def _apply_number_formats(ws: Worksheet, col_names: Sequence[str]) -> None:
    if ws.max_row < 2:
        return
    for c_idx, name in enumerate(col_names, 1):
        fmt = _COL_FORMATS.get(name)
        if fmt:
            for row in ws.iter_rows(min_row=2, max_row=ws.max_row, min_col=c_idx, max_col=c_idx):
                for cell in row:
                    cell.number_format = fmt


def _add_excel_table(ws: Worksheet, name: str, ncols: int, nrows: int) -> None:
    """Turn the data range into a proper Excel Table object."""
    if nrows < 1 or ncols < 1:
        return
    ref = f"A1:{get_column_letter(ncols)}{nrows + 1}"  # +1 for header
    table = Table(displayName=name, ref=ref)
    table.tableStyleInfo = TableStyleInfo(
        name="TableStyleMedium9", showFirstColumn=False,
        showLastColumn=False, showRowStripes=True, showColumnStripes=False,
    )
    ws.add_table(table)


def _excel_value(val: Any) -> Any:
    try:
        if pd.isna(val):
            return None
    except (TypeError, ValueError):
        return val

    if isinstance(val, str):
        if val.startswith("'"):
            return val
        stripped = val.lstrip()
        if stripped and stripped[0] in _EXCEL_FORMULA_PREFIXES:
            return f"'{val}"

    return val


def _df_to_sheet(wb: Workbook, name: str, df: pd.DataFrame) -> None:
    ws = wb.create_sheet(title=name)
    col_names = [str(c) for c in df.columns]

    for c_idx, col_name in enumerate(col_names, 1):
        ws.cell(row=1, column=c_idx, value=col_name)
    for r_idx, row_vals in enumerate(df.itertuples(index=False, name=None), 2):
        for c_idx, val in enumerate(row_vals, 1):
            ws.cell(row=r_idx, column=c_idx, value=_excel_value(val))
    _style_header(ws, len(col_names))
    _apply_number_formats(ws, col_names)
    ws.freeze_panes = "A2"
    _auto_width(ws)
    _add_excel_table(ws, name, len(col_names), len(df))


def _write_summary(wb: Workbook, report: IngestReport, source_name: str) -> None:
    ws = wb.create_sheet(title="Summary")

    ws.cell(row=1, column=1, value="sales-intake — Summary").font = TITLE_FONT
    ws.merge_cells("A1:D1")
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    ws.cell(row=2, column=1, value=f"{source_name}  ·  generated {generated}").font = SUBTITLE_FONT
    ws.merge_cells("A2:D2")

    row = 4
    counts: list[tuple[str, int]] = [
        ("Rows in", report.rows_in),
        ("Rows out", report.rows_out),
        ("Dropped", report.dropped_rows),
        ("Errors", report.error_total),
    ]
    counts.extend((f"  {code}", n) for code, n in report.error_counts.items())
    for label, value in counts:
        ws.cell(row=row, column=1, value=label).font = LABEL_FONT
        ws.cell(row=row, column=2, value=value).font = VALUE_FONT
        row += 1

    row += 1
    ws.cell(row=row, column=1, value="Notes").font = LABEL_FONT
    ws.cell(row=row, column=1).fill = NOTE_FILL
    row += 1
    for note in report.warnings or ["No warnings"]:
        cell = ws.cell(row=row, column=1, value=_excel_value(note))
        cell.font = WARN_FONT if report.warnings else VALUE_FONT
        for c in range(1, 5):
            ws.cell(row=row, column=c).fill = NOTE_FILL
        row += 1

    ws.column_dimensions["A"].width = 28
    ws.column_dimensions["B"].width = 14


# ── Public API ───────────────────────────────────────────────────


def write_report(
    out_dir: Path,
    result: IngestResult,
    report: IngestReport,
    source_name: str = "",
) -> Path:
    """Write ``Sales_Report.xlsx`` (Records, Errors, Summary) and return the path.

    Records is the first sheet so the export can be ingested again.
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    report_path = out_dir / "Sales_Report.xlsx"

    wb = Workbook()
    active_sheet = wb.active
    if active_sheet is not None:
        wb.remove(active_sheet)

    _df_to_sheet(wb, "Records", records_frame(result.records))
    _df_to_sheet(wb, "Errors", errors_frame(result))
    _write_summary(wb, report, source_name)

    tmp_path = out_dir / "Sales_Report.tmp.xlsx"
    wb.save(tmp_path)
    tmp_path.replace(report_path)
    return report_path
