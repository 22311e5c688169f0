"""Result writers: the matched absences as XLSX or CSV."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl import Workbook
from openpyxl.cell import WriteOnlyCell
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from absence_reconciler import OUTPUT_HEADER
from absence_reconciler.models import AbsenceResult

logger = logging.getLogger(__name__)

# ── Style constants ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)

SHEET_TITLE = "Absences"
OUTPUT_FORMATS = ("xlsx", "csv")
# Above this many rows the workbook is streamed (write-only mode).
LARGE_RESULT_THRESHOLD = 10_000
_PROGRESS_EVERY = 5_000

_AUTO_WIDTH_SAMPLE_ROWS = 300
_EXCEL_FORMULA_PREFIXES = ("=", "+", "-", "@")


# ── Helpers ──────────────────────────────────────────────────────


def _is_number(val: str) -> bool:
    try:
        float(val)
    except ValueError:
        return False
    return True


def _safe_text(val: str) -> str:
    """Quote values a spreadsheet app would evaluate as formulas.

    Plain signed numbers such as ``-1042`` are left alone.
    """
    if val.startswith("'"):
        return val
    stripped = val.lstrip()
    if stripped and stripped[0] in _EXCEL_FORMULA_PREFIXES and not _is_number(stripped):
        return f"'{val}"
    return val


def _sheet_rows(results: Sequence[AbsenceResult]) -> list[list[str]]:
    return [[_safe_text(value) for value in result.to_row()] for result in results]


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
            cell = row[0]
            width = max(width, len(str(cell.value or "")))
        width += 4
        ws.column_dimensions[letter].width = min(width, 40)


def _header_cell(ws: Any, name: str) -> WriteOnlyCell:
    cell = WriteOnlyCell(ws, value=name)
    cell.font = HEADER_FONT
    cell.fill = HEADER_FILL
    cell.alignment = HEADER_ALIGN
    return cell


# ── Writers ──────────────────────────────────────────────────────


def _write_standard_workbook(path: Path, results: Sequence[AbsenceResult]) -> None:
    wb = Workbook()
    ws = wb.active
    if ws is None:
        ws = wb.create_sheet()
    ws.title = SHEET_TITLE

    ws.append(list(OUTPUT_HEADER))
    for row in _sheet_rows(results):
        ws.append(row)
    _style_header(ws, len(OUTPUT_HEADER))
    ws.freeze_panes = "A2"
    if results:
        ws.auto_filter.ref = ws.dimensions
    _auto_width(ws)
    wb.save(path)


def _write_streaming_workbook(path: Path, results: Sequence[AbsenceResult]) -> None:
    logger.info("Using streaming workbook for %d results", len(results))
    wb = Workbook(write_only=True)
    ws = wb.create_sheet(title=SHEET_TITLE)
    ws.append([_header_cell(ws, name) for name in OUTPUT_HEADER])

    total = len(results)
    for idx, row in enumerate(_sheet_rows(results), 1):
        ws.append(row)
        if idx % _PROGRESS_EVERY == 0:
            logger.info("Written %d of %d rows", idx, total)
    wb.save(path)


def write_xlsx(path: Path, results: Sequence[AbsenceResult]) -> Path:
    """Write *results* as a single-sheet workbook (atomic) and return the path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.stem}.tmp{path.suffix}")
    if len(results) > LARGE_RESULT_THRESHOLD:
        _write_streaming_workbook(tmp_path, results)
    else:
        _write_standard_workbook(tmp_path, results)
    tmp_path.replace(path)
    return path


def write_csv(path: Path, results: Sequence[AbsenceResult]) -> Path:
    """Write *results* as CSV with the export header (atomic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    rows = [result.to_row() for result in results]
    frame = pd.DataFrame(rows, columns=list(OUTPUT_HEADER), dtype="string")
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    frame.to_csv(tmp_path, index=False, encoding="utf-8", lineterminator="\n")
    tmp_path.replace(path)
    return path


def write_results(path: Path, results: Sequence[AbsenceResult]) -> Path:
    """Write *results* in the format implied by the suffix of *path*."""
    path = Path(path)
    suffix = path.suffix.lower().lstrip(".")
    if suffix == "xlsx":
        return write_xlsx(path, results)
    if suffix == "csv":
        return write_csv(path, results)
    raise ValueError(f"Unsupported output type: {path.suffix!r}. Use .xlsx or .csv")


def default_output_name(fmt: str, now: datetime | None = None) -> str:
    """``ABSENCE_EXPORT_<YYYYmmdd_HHMMSS>.<fmt>``."""
    if fmt not in OUTPUT_FORMATS:
        raise ValueError(f"Unsupported output format: {fmt!r}. Use xlsx or csv")
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return f"ABSENCE_EXPORT_{stamp}.{fmt}"
