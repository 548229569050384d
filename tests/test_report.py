"""Tests for the Sales_Report.xlsx export."""

from __future__ import annotations

from pathlib import Path

from openpyxl import load_workbook

from sales_intake.io import ingest_path
from sales_intake.models import ErrorCode, FieldError, IngestResult, SalesRecord
from sales_intake.pipeline import summarize
from sales_intake.report import EXPORT_HEADERS, PCT_FMT, errors_frame, records_frame, write_report


def _result() -> IngestResult:
    return IngestResult(
        records=[SalesRecord("1月", 48, 35, 37, 36), SalesRecord("2月", 50.5, 52, 5, -3)],
        errors=[
            FieldError(message="actual is empty", code=ErrorCode.MISSING_FIELD, row=3, field="actual"),
            FieldError(message="=HYPERLINK(\"x\")", code=ErrorCode.PARSE_ERROR, row=4, field="month"),
        ],
    )


def test_records_frame_uses_canonical_headers() -> None:
    frame = records_frame([SalesRecord("1月", 48, 35, 37, 36)])

    assert list(frame.columns) == list(EXPORT_HEADERS.values())
    assert frame.iloc[0].tolist() == ["1月", 48.0, 35.0, 37.0, 36.0]


def test_records_frame_empty_keeps_columns() -> None:
    assert list(records_frame([]).columns) == ["月份", "实际值", "去年同期值", "环比", "同比"]


def test_errors_frame_keeps_missing_rows_as_na() -> None:
    result = IngestResult.failed("No worksheet found in workbook", ErrorCode.NO_SHEET)

    frame = errors_frame(result)

    assert list(frame.columns) == ["row", "field", "code", "message"]
    assert frame["row"].isna().all()


def test_write_report_sheets_and_formats(tmp_path: Path) -> None:
    result = _result()

    path = write_report(tmp_path, result, summarize(result), source_name="upload.csv")

    assert path == tmp_path / "Sales_Report.xlsx"
    assert not (tmp_path / "Sales_Report.tmp.xlsx").exists()
    wb = load_workbook(path)
    assert wb.sheetnames == ["Records", "Errors", "Summary"]

    records_ws = wb["Records"]
    assert [c.value for c in records_ws[1]] == ["月份", "实际值", "去年同期值", "环比", "同比"]
    assert [c.value for c in records_ws[3]] == ["2月", 50.5, 52, 5, -3]
    assert records_ws["D2"].number_format == PCT_FMT

    errors_ws = wb["Errors"]
    assert [c.value for c in errors_ws[2]] == [3, "actual", "MISSING_FIELD", "actual is empty"]
    # Formula-looking text is escaped, never evaluated.
    assert str(errors_ws["D3"].value).startswith("'=")


def test_write_report_summary_counts(tmp_path: Path) -> None:
    result = _result()
    report = summarize(result)

    path = write_report(tmp_path, result, report)

    ws = load_workbook(path)["Summary"]
    labels = {ws.cell(row=r, column=1).value: ws.cell(row=r, column=2).value for r in range(4, 12)}
    assert labels["Rows in"] == 4
    assert labels["Rows out"] == 2
    assert labels["Errors"] == 2


def test_exported_workbook_ingests_to_same_records(tmp_path: Path) -> None:
    result = _result()

    path = write_report(tmp_path, result, summarize(result))

    assert ingest_path(path).records == result.records
