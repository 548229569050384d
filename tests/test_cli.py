"""CLI integration tests for sales-intake."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from openpyxl import load_workbook
from typer.testing import CliRunner

import sales_intake.cli as cli_mod
from sales_intake import __version__
from sales_intake.cli import app

runner = CliRunner()
HEADER = "月份,实际值,去年同期值,环比,同比\n"


def _write_csv(tmp_path: Path, name: str, rows: str, header: str = HEADER) -> Path:
    path = tmp_path / name
    path.write_text(header + rows, encoding="utf-8")
    return path


def _json(path: Path) -> object:
    return json.loads(path.read_text(encoding="utf-8"))


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


# ── validate ─────────────────────────────────────────────────────


def test_validate_pass_writes_artifacts(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "ok.csv", "1月,48,35,37,36\n")
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["validate", "--input", str(csv_path), "--out-dir", str(out_dir), "--quiet"]
    )

    assert result.exit_code == 0
    report = _json(out_dir / "ingest_report.json")
    manifest = _json(out_dir / "run_manifest.json")
    assert report["error_counts"] == {}
    assert manifest["rows_out"] == 1
    assert manifest["status"] == "success"
    assert manifest["command"] == "validate"
    assert len(manifest["sha256"]) == 64
    assert not (out_dir / "records.json").exists()


def test_validate_row_errors_exit_2(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "bad.csv", "1月,48,35,37,36\n2月,,52,5,-3\n")
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["validate", "-i", str(csv_path), "-o", str(out_dir)])

    assert result.exit_code == 2
    report = _json(out_dir / "ingest_report.json")
    assert report["error_counts"] == {"MISSING_FIELD": 1}
    assert report["rows_in"] == 2
    assert _json(out_dir / "run_manifest.json")["status"] == "failed"


def test_validate_missing_columns(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "missing.csv", "1月,48,35,37\n", header="月份,实际值,去年同期值,环比\n")
    out_dir = tmp_path / "out_fail"

    result = runner.invoke(app, ["validate", "-i", str(csv_path), "-o", str(out_dir), "-q"])

    assert result.exit_code == 2
    report = _json(out_dir / "ingest_report.json")
    assert report["missing_columns"] == ["yoy"]
    assert report["rows_in"] == 0


def test_map_accepts_other_header_spellings(tmp_path: Path) -> None:
    csv_path = _write_csv(
        tmp_path, "mapped.csv", "2025-01,48,35,37,36\n", header="Period,Sales,PY Sales,MoM,YoY\n"
    )
    out_dir = tmp_path / "mapped_out"

    result = runner.invoke(
        app,
        [
            "validate", "-i", str(csv_path), "-o", str(out_dir),
            "--map", "month=Period", "--map", "actual=Sales", "--map", "lastYear=PY Sales",
            "--quiet",
        ],
    )

    assert result.exit_code == 0
    assert _json(out_dir / "ingest_report.json")["rows_out"] == 1


def test_profile_supplies_header_spellings(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "p.csv", "3,1,2,3,4\n", header="Mes,Ventas,Anterior,mom,yoy\n")
    profile = tmp_path / "es.profile"
    profile.write_text("# Spanish export\nmonth=Mes\n\nactual=Ventas\nlastYear=Anterior\n", encoding="utf-8")
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["validate", "-i", str(csv_path), "-o", str(out_dir), "--profile", str(profile), "-q"]
    )

    assert result.exit_code == 0


@pytest.mark.parametrize("bad_map", ["actual", "revenue=Sales", "=Sales", "actual="])
def test_invalid_map_writes_failure_artifacts(tmp_path: Path, bad_map: str) -> None:
    csv_path = _write_csv(tmp_path, "ok.csv", "1月,48,35,37,36\n")
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["validate", "-i", str(csv_path), "-o", str(out_dir), "-m", bad_map])

    assert result.exit_code == 2
    manifest = _json(out_dir / "run_manifest.json")
    assert manifest["status"] == "failed"
    assert manifest["error_message"]


def test_missing_profile_fails(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "ok.csv", "1月,48,35,37,36\n")
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["run", "-i", str(csv_path), "-o", str(out_dir), "--profile", str(tmp_path / "nope")]
    )

    assert result.exit_code == 2
    assert "Profile not found" in _json(out_dir / "run_manifest.json")["error_message"]


def test_unsupported_format_is_reported_not_raised(tmp_path: Path) -> None:
    path = tmp_path / "sales.txt"
    path.write_text("whatever", encoding="utf-8")
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["validate", "-i", str(path), "-o", str(out_dir), "-q"])

    assert result.exit_code == 2
    assert _json(out_dir / "ingest_report.json")["error_counts"] == {"UNSUPPORTED_FORMAT": 1}


# ── run ──────────────────────────────────────────────────────────


def test_run_writes_records_workbook_and_manifest(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "sales.csv", "1月,48,35,37,36\n2月,x,52,5,-3\n2025-03,63,55,25,14\n")
    out_dir = tmp_path / "run_out"

    result = runner.invoke(app, ["run", "-i", str(csv_path), "-o", str(out_dir)])

    assert result.exit_code == 0
    records = _json(out_dir / "records.json")
    assert [r["month"] for r in records] == ["1月", "3月"]
    assert records[0] == {"actual": 48.0, "lastYear": 35.0, "mom": 37.0, "month": "1月", "yoy": 36.0}
    errors = _json(out_dir / "errors.json")
    assert errors == [
        {"code": "INVALID_NUMBER", "field": "actual", "message": "actual is not a valid number: x", "row": 2}
    ]
    wb = load_workbook(out_dir / "Sales_Report.xlsx")
    assert wb.sheetnames == ["Records", "Errors", "Summary"]
    manifest = _json(out_dir / "run_manifest.json")
    assert manifest["rows_in"] == 3
    assert manifest["rows_out"] == 2
    assert manifest["status"] == "success"


def test_run_without_records_exits_2_and_skips_workbook(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "bad.csv", "1月,,35,37,36\n")
    out_dir = tmp_path / "run_out"

    result = runner.invoke(app, ["run", "-i", str(csv_path), "-o", str(out_dir), "-q"])

    assert result.exit_code == 2
    assert (out_dir / "ingest_report.json").exists()
    assert _json(out_dir / "run_manifest.json")["status"] == "failed"
    assert not (out_dir / "Sales_Report.xlsx").exists()
    assert not (out_dir / "records.json").exists()


def test_run_unreadable_input_exits_2(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    csv_path = _write_csv(tmp_path, "ok.csv", "1月,48,35,37,36\n")
    out_dir = tmp_path / "out"

    def _boom(*_args: object, **_kwargs: object) -> None:
        raise PermissionError("denied")

    monkeypatch.setattr(cli_mod, "ingest_path", _boom)

    result = runner.invoke(app, ["run", "-i", str(csv_path), "-o", str(out_dir), "-q"])

    assert result.exit_code == 2
    assert "Cannot read input" in _json(out_dir / "run_manifest.json")["error_message"]


def test_run_unexpected_error_exits_1(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    csv_path = _write_csv(tmp_path, "ok.csv", "1月,48,35,37,36\n")
    out_dir = tmp_path / "out"

    def _boom(*_args: object, **_kwargs: object) -> None:
        raise RuntimeError("kaboom")

    monkeypatch.setattr(cli_mod, "write_report", _boom)

    result = runner.invoke(app, ["run", "-i", str(csv_path), "-o", str(out_dir), "-q"])

    assert result.exit_code == 1
    manifest = _json(out_dir / "run_manifest.json")
    assert manifest["error_message"] == "Unexpected internal error: kaboom"


def test_run_verbose_does_not_break(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "ok.csv", "1月,48,35,37,36\n")

    result = runner.invoke(app, ["run", "-i", str(csv_path), "-o", str(tmp_path / "o"), "-v"])

    assert result.exit_code == 0


# ── check / template ─────────────────────────────────────────────


def test_check_accepts_run_output(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "ok.csv", "1月,48,35,37,36\n")
    out_dir = tmp_path / "out"
    runner.invoke(app, ["run", "-i", str(csv_path), "-o", str(out_dir), "-q"])

    result = runner.invoke(app, ["check", "-i", str(out_dir / "records.json")])

    assert result.exit_code == 0
    assert "1 records valid" in result.output


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("{not json", "Invalid JSON"),
        ('[{"month": "1月", "actual": "48", "lastYear": 1, "mom": 1, "yoy": 1}]', "Validation failed"),
    ],
)
def test_check_rejects_bad_payloads(tmp_path: Path, text: str, expected: str) -> None:
    path = tmp_path / "records.json"
    path.write_text(text, encoding="utf-8")

    result = runner.invoke(app, ["check", "-i", str(path)])

    assert result.exit_code == 2
    assert expected in result.output


def test_check_rejects_non_utf8_file(tmp_path: Path) -> None:
    path = tmp_path / "records.json"
    path.write_bytes('[{"month": "1月"}]'.encode("gb18030"))

    result = runner.invoke(app, ["check", "-i", str(path)])

    assert result.exit_code == 2
    assert "Invalid JSON" in result.output


def test_template_writes_ingestible_sample(tmp_path: Path) -> None:
    out_file = tmp_path / "tpl" / "sample.csv"

    result = runner.invoke(app, ["template", "-o", str(out_file)])
    assert result.exit_code == 0

    out_dir = tmp_path / "out"
    result = runner.invoke(app, ["validate", "-i", str(out_file), "-o", str(out_dir), "-q"])

    assert result.exit_code == 0
    assert _json(out_dir / "ingest_report.json")["rows_out"] == 12
