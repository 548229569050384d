"""CLI entry point for sales-intake."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table as RichTable

from sales_intake import RECORD_FIELDS, __version__
from sales_intake.columns import COLUMN_SYNONYMS, SynonymTable, extend_synonyms
from sales_intake.io import ingest_path, write_json
from sales_intake.models import FieldError, IngestReport, IngestResult, RunManifest, validate_records
from sales_intake.pipeline import summarize
from sales_intake.qc import write_ingest_report
from sales_intake.report import records_frame, write_report
from sales_intake.sample import SAMPLE_RECORDS
from sales_intake.utils import sha256_file, utcnow_iso

app = typer.Typer(
    name="sintake",
    help="sales-intake — Normalize monthly sales spreadsheets into validated records.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()
logger = logging.getLogger("sales_intake")

_MAX_ERROR_ROWS = 20


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"sales-intake v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _parse_column_map(raw: list[str] | None) -> dict[str, list[str]]:
    """Parse ``--map field=Header`` pairs into ``{field: [Header, ...]}``."""
    if not raw:
        return {}
    mapping: dict[str, list[str]] = {}
    for item in raw:
        if "=" not in item:
            raise ValueError(f"Invalid --map value: {item!r}  (expected field=Header)")
        field_name, header = (part.strip() for part in item.split("=", 1))
        if not field_name or not header:
            raise ValueError("--map entries must have non-empty field and header (field=Header)")
        if field_name not in RECORD_FIELDS:
            raise ValueError(
                f"Unknown field {field_name!r} in --map. Expected one of: {', '.join(RECORD_FIELDS)}"
            )
        mapping.setdefault(field_name, []).append(header)
    return mapping


def _load_profile_map(profile: Path | None) -> list[str]:
    """Return list of ``field=Header`` strings from a profile file."""
    if not profile:
        return []
    if not profile.exists():
        raise ValueError(f"Profile not found: {profile} (expected lines like actual=Sales)")
    if profile.is_dir():
        raise ValueError(f"Profile is a directory, not a file: {profile}")
    try:
        text = profile.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read profile {profile}: {exc}") from exc

    lines: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append(stripped)
    return lines


def _build_synonyms(profile: Path | None, col_map: list[str] | None) -> SynonymTable:
    mapping = _parse_column_map(_load_profile_map(profile) + (col_map or []))
    if not mapping:
        return COLUMN_SYNONYMS
    return extend_synonyms(mapping)


def _write_manifest(
    out_dir: Path,
    input_file: Path,
    command: str,
    created_at: str,
    report: IngestReport,
    *,
    status: str = "success",
    error_message: str = "",
) -> Path:
    sha256 = ""
    try:
        sha256 = sha256_file(input_file)
    except OSError:
        logger.debug("Could not hash %s", input_file, exc_info=True)

    manifest = RunManifest(
        version=__version__,
        command=command,
        input_path=str(input_file.resolve()),
        output_dir=str(out_dir.resolve()),
        created_at_utc=created_at,
        rows_in=report.rows_in,
        rows_out=report.rows_out,
        sha256=sha256,
        status=status,
        error_message=error_message,
    )
    return write_json(out_dir / "run_manifest.json", manifest.to_dict())


def _fail(
    out_dir: Path,
    input_file: Path,
    command: str,
    created_at: str,
    message: str,
    *,
    exit_code: int = 2,
) -> typer.Exit:
    report = IngestReport(warnings=[message])
    report_path = write_ingest_report(out_dir, report)
    manifest_path = _write_manifest(
        out_dir, input_file, command, created_at, report,
        status="failed", error_message=message,
    )
    _err(message)
    console.print(f"  Report   -> {report_path}")
    console.print(f"  Manifest -> {manifest_path}")
    return typer.Exit(code=exit_code)


def _print_errors(errors: list[FieldError], limit: int = _MAX_ERROR_ROWS) -> None:
    tbl = RichTable(title=f"Errors ({len(errors)})", show_lines=False)
    tbl.add_column("Row", justify="right")
    tbl.add_column("Field")
    tbl.add_column("Code", style="bold")
    tbl.add_column("Message")
    for error in errors[:limit]:
        tbl.add_row(
            "" if error.row is None else str(error.row),
            error.field or "",
            f"[red]{error.code.value}[/red]",
            error.message,
        )
    console.print(tbl)
    if len(errors) > limit:
        console.print(f"  … {len(errors) - limit} more (see ingest output)")


def _print_summary(report: IngestReport, title: str) -> None:
    tbl = RichTable(title=title, show_lines=True)
    tbl.add_column("Check", style="bold")
    tbl.add_column("Result")
    tbl.add_row("Rows in", str(report.rows_in))
    tbl.add_row("Records", str(report.rows_out))
    tbl.add_row("Dropped", str(report.dropped_rows))
    if report.missing_columns:
        tbl.add_row("Missing columns", ", ".join(report.missing_columns))
    else:
        tbl.add_row("Missing columns", "[green]none[/green]")
    for code, count in report.error_counts.items():
        tbl.add_row(code, str(count))
    for w in report.warnings:
        tbl.add_row("Warning", f"[yellow]{w}[/yellow]")
    tbl.add_row("Status", "[green]PASS[/green]" if not report.error_total else "[red]FAIL[/red]")
    console.print(tbl)


def _ingest_or_exit(
    input_file: Path,
    out_dir: Path,
    command: str,
    created_at: str,
    profile: Path | None,
    col_map: list[str] | None,
) -> IngestResult:
    try:
        synonyms = _build_synonyms(profile, col_map)
    except ValueError as exc:
        raise _fail(out_dir, input_file, command, created_at, str(exc))
    try:
        return ingest_path(input_file, synonyms)
    except OSError as exc:
        raise _fail(out_dir, input_file, command, created_at, f"Cannot read input: {exc}")


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """sales-intake CLI."""


# ── run command ──────────────────────────────────────────────────


@app.command()
def run(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to CSV, XLSX or XLS input file.",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for records, report, workbook and manifest.",
    ),
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m",
        help="Extra header spelling: field=Header. E.g. --map actual=Sales",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file containing extra header spellings (field=Header lines).",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log decoder details."),
) -> None:
    """Ingest a spreadsheet and write records.json + Sales_Report.xlsx."""
    _configure_logging(verbose)
    echo = _printer(quiet)
    created_at = utcnow_iso()
    out_dir.mkdir(parents=True, exist_ok=True)

    if not quiet:
        console.print(Panel(
            f"[bold]sales-intake[/bold] v{__version__}\n"
            f"Input:  {input_file}\nOutput: {out_dir}",
            title="Ingest Start", border_style="blue",
        ))

    echo("[blue]>[/blue] Reading input file …")
    result = _ingest_or_exit(input_file, out_dir, "run", created_at, profile, col_map)

    try:
        report = summarize(result)
        report_path = write_ingest_report(out_dir, report)
        echo(f"  Report   -> {report_path}")

        if not result.records:
            message = "No valid records"
            if report.missing_columns:
                message = f"Missing columns: {', '.join(report.missing_columns)}"
            _write_manifest(
                out_dir, input_file, "run", created_at, report,
                status="failed", error_message=message,
            )
            _err(message)
            if result.errors:
                _print_errors(result.errors)
            if report.missing_columns:
                console.print("  Hint: use --map field=Header to accept other header spellings")
            raise typer.Exit(code=2)

        if not quiet:
            for w in report.warnings:
                console.print(f"  [yellow]![/yellow] {w}")
            if result.errors:
                _print_errors(result.errors)

        records_path = write_json(out_dir / "records.json", [r.to_dict() for r in result.records])
        echo(f"  Records  -> {records_path}")
        errors_path = write_json(out_dir / "errors.json", [e.to_dict() for e in result.errors])
        echo(f"  Errors   -> {errors_path}")

        echo("[blue]>[/blue] Writing Sales_Report.xlsx …")
        workbook_path = write_report(out_dir, result, report, source_name=input_file.name)
        echo(f"  Workbook -> {workbook_path}")

        manifest_path = _write_manifest(out_dir, input_file, "run", created_at, report)
        echo(f"  Manifest -> {manifest_path}")

        if not quiet:
            console.print(Panel(
                f"[green]Done[/green] — {report.rows_out} records, "
                f"{report.error_total} errors -> {out_dir}",
                title="Ingest Complete", border_style="green",
            ))
    except typer.Exit:
        raise
    except Exception as exc:
        raise _fail(
            out_dir, input_file, "run", created_at,
            f"Unexpected internal error: {exc}", exit_code=1,
        )


# ── validate command ─────────────────────────────────────────────


@app.command()
def validate(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to CSV, XLSX or XLS input file.",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for the ingest report + manifest.",
    ),
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m",
        help="Extra header spelling: field=Header.",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file containing extra header spellings (field=Header lines).",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes report + manifest.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log decoder details."),
) -> None:
    """Validate a file without writing records.

    Writes ingest_report.json + run_manifest.json only.
    Exit 0 = no errors, exit 2 = at least one error.
    """
    _configure_logging(verbose)
    created_at = utcnow_iso()
    out_dir.mkdir(parents=True, exist_ok=True)

    if not quiet:
        console.print(Panel(
            f"[bold]sales-intake[/bold] v{__version__}  [dim]validate mode[/dim]\n"
            f"Input: {input_file}",
            title="Validate", border_style="cyan",
        ))

    result = _ingest_or_exit(input_file, out_dir, "validate", created_at, profile, col_map)

    try:
        report = summarize(result)
        report_path = write_ingest_report(out_dir, report)
        failed = bool(result.errors)
        manifest_path = _write_manifest(
            out_dir, input_file, "validate", created_at, report,
            status="failed" if failed else "success",
            error_message=f"{report.error_total} errors" if failed else "",
        )

        if not quiet:
            _print_summary(report, "Validation Summary")
            if result.errors:
                _print_errors(result.errors)
        console.print(f"  Report   -> {report_path}")
        console.print(f"  Manifest -> {manifest_path}")

        if failed:
            if report.missing_columns:
                _err(f"Missing columns: {', '.join(report.missing_columns)}")
                console.print("  Hint: use --map field=Header to accept other header spellings")
            raise typer.Exit(code=2)
    except typer.Exit:
        raise
    except Exception as exc:
        raise _fail(
            out_dir, input_file, "validate", created_at,
            f"Unexpected internal error: {exc}", exit_code=1,
        )


# ── check command ────────────────────────────────────────────────


@app.command()
def check(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to a JSON list of records (month, actual, lastYear, mom, yoy).",
        exists=True, readable=True, dir_okay=False,
    ),
) -> None:
    """Re-validate an edited records.json against the record schema."""
    try:
        payload = json.loads(input_file.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        _err(f"Invalid JSON: {exc}")
        raise typer.Exit(code=2)

    try:
        records = validate_records(payload)
    except ValueError as exc:
        _err(f"Validation failed: {exc}")
        raise typer.Exit(code=2)

    console.print(f"[green]ok[/green] {len(records)} records valid")


# ── template command ─────────────────────────────────────────────


@app.command()
def template(
    out_file: Path = typer.Option(
        Path("sales_template.csv"), "--out", "-o",
        help="Where to write the sample CSV.",
    ),
) -> None:
    """Write a twelve-month sample CSV with the canonical headers."""
    out_file.parent.mkdir(parents=True, exist_ok=True)
    records_frame(SAMPLE_RECORDS).to_csv(out_file, index=False, encoding="utf-8-sig")
    console.print(f"  Template -> {out_file}")
