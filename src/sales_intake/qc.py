"""Ingest report persistence."""

from __future__ import annotations

from pathlib import Path

from sales_intake.io import write_json
from sales_intake.models import IngestReport


def write_ingest_report(out_dir: Path, report: IngestReport) -> Path:
    """Write ``ingest_report.json`` into *out_dir* and return the path."""
    return write_json(out_dir / "ingest_report.json", report.to_dict())
