"""Coverage report persistence."""

from __future__ import annotations

from pathlib import Path

from owner_reports.io import write_json
from owner_reports.models import CoverageReport


def write_coverage_report(out_dir: Path, coverage: CoverageReport) -> Path:
    """Write ``coverage_report.json`` into *out_dir* and return the path."""
    return write_json(out_dir / "coverage_report.json", coverage.to_dict())
