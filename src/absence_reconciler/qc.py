"""QC report persistence: extraction + match statistics for one run."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from absence_reconciler.io import write_json
from absence_reconciler.models import Absence, Employee, ExtractionReport, MatchReport


def build_qc_payload(
    employees: ExtractionReport[Employee],
    absences: ExtractionReport[Absence],
    matches: MatchReport | None = None,
) -> dict[str, Any]:
    return {
        "employees": employees.to_dict(),
        "absences": absences.to_dict(),
        "matching": matches.to_dict() if matches is not None else None,
    }


def write_qc_report(
    out_dir: Path,
    employees: ExtractionReport[Employee],
    absences: ExtractionReport[Absence],
    matches: MatchReport | None = None,
) -> Path:
    """Write ``qc_report.json`` into *out_dir* and return the path."""
    return write_json(out_dir / "qc_report.json", build_qc_payload(employees, absences, matches))
