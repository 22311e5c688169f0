"""Record extraction: typed cell grids to Employee / Absence records.

Both sheets use a fixed positional layout. Extraction never raises for a
bad row: every row ends up as a record, a :class:`RowError` or a
:class:`RowExclusion`, gathered into an :class:`ExtractionReport`.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from numbers import Real
from pathlib import Path
from typing import Union

from absence_reconciler.dates import DateValidationError, parse_date
from absence_reconciler.io import load_grid
from absence_reconciler.models import (
    Absence,
    Cell,
    CellKind,
    Employee,
    ExtractionReport,
    Grid,
    Row,
    RowError,
    RowExclusion,
)

# ── Layout ───────────────────────────────────────────────────────

EMPLOYEE_FIRST_DATA_ROW = 1
EMPLOYEE_USER_ID_COL = 0
EMPLOYEE_LAST_NAME_COL = 1
EMPLOYEE_FIRST_NAME_COL = 2
EMPLOYEE_EMAIL_COL = 3
EMPLOYEE_HOURS_COL = 4

ABSENCE_FIRST_DATA_ROW = 3
ABSENCE_FIRST_NAME_COL = 3
ABSENCE_LAST_NAME_COL = 5
ABSENCE_TIME_TYPE_COL = 7
ABSENCE_START_COL = 8
ABSENCE_END_COL = 10
ABSENCE_STATUS_COL = 16

ACCEPTED_STATUSES = frozenset({"APPROVED", "PENDING"})
EXCLUDED_TIME_TYPES = frozenset({"working time", "break"})

_ROW_FAILURES = (ArithmeticError, TypeError, ValueError)

EmployeeOutcome = Union[Employee, RowError, RowExclusion]
AbsenceOutcome = Union[tuple[Absence, list[str]], RowError, RowExclusion]


# ── Cell helpers ─────────────────────────────────────────────────


def cell_at(row: Row | None, index: int) -> Cell | None:
    """Return the cell at *index*, or ``None`` when the row is shorter."""
    if row is None or index >= len(row):
        return None
    return row[index]


def cell_to_string(cell: Cell | None) -> str:
    """Render a cell as trimmed text.

    Numbers render as their integer truncation (``40.0`` -> ``"40"``),
    booleans as ``true``/``false``, date cells as ISO dates. NaN, infinities
    and anything else render as the empty string.
    """
    if cell is None:
        return ""
    if cell.kind is CellKind.string:
        return str(cell.value).strip()
    if cell.kind is CellKind.number:
        value = cell.value
        if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
            return ""
        return str(int(value))
    if cell.kind is CellKind.boolean:
        return "true" if cell.value else "false"
    if cell.kind is CellKind.date:
        value = cell.value
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
    return ""


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def cell_to_int(cell: Cell | None) -> int:
    """Read a whole non-negative number; unparseable text reads as 0."""
    if cell is None:
        return 0

    number: float
    if cell.kind is CellKind.number:
        number = float(cell.value)
    elif cell.kind is CellKind.string:
        try:
            number = float(str(cell.value).strip())
        except ValueError:
            return 0
    else:
        return 0

    if not math.isfinite(number):
        return 0
    return max(_round_half_up(number), 0)


def is_blank_row(row: Row | None) -> bool:
    if row is None:
        return True
    return all(cell_to_string(cell) == "" for cell in row)


# ── Employees ────────────────────────────────────────────────────


def read_employee_row(row: Row, row_index: int) -> EmployeeOutcome:
    """Turn one roster row into an :class:`Employee` (or why it was not)."""
    try:
        user_id = cell_to_string(cell_at(row, EMPLOYEE_USER_ID_COL))
        email = cell_to_string(cell_at(row, EMPLOYEE_EMAIL_COL))
        if not user_id or not email:
            missing = "user id" if not user_id else "email"
            return RowExclusion(row_index, "incomplete", missing)
        return Employee(
            user_id=user_id,
            last_name=cell_to_string(cell_at(row, EMPLOYEE_LAST_NAME_COL)),
            first_name=cell_to_string(cell_at(row, EMPLOYEE_FIRST_NAME_COL)),
            email=email,
            weekly_working_hours=cell_to_int(cell_at(row, EMPLOYEE_HOURS_COL)),
        )
    except _ROW_FAILURES as exc:
        return RowError(row_index, f"Error processing employee: {exc}", "employee_row")


def extract_employees(grid: Grid) -> ExtractionReport[Employee]:
    """Extract roster records; row 0 is the header.

    Rows lacking a user id or email are kept out as ``incomplete``
    exclusions. Duplicate names are kept; collapsing them is the
    reconciler's concern.
    """
    report: ExtractionReport[Employee] = ExtractionReport()
    for row_index in range(EMPLOYEE_FIRST_DATA_ROW, len(grid)):
        row = grid[row_index]
        if row is None or is_blank_row(row):
            continue
        report.rows_in += 1

        outcome = read_employee_row(row, row_index)
        if isinstance(outcome, RowError):
            report.errors.append(outcome)
        elif isinstance(outcome, RowExclusion):
            report.exclusions.append(outcome)
        else:
            report.records.append(outcome)
    return report


# ── Absences ─────────────────────────────────────────────────────


def _date_error(row_index: int, label: str, exc: DateValidationError) -> RowError:
    return RowError(row_index, f"Invalid {label} date: {exc}", exc.code.value)


def read_absence_row(row: Row, row_index: int, *, today: date) -> AbsenceOutcome:
    """Turn one absence-sheet row into ``(Absence, warnings)`` (or why it was not).

    Filters run before any parsing: an unapproved status or an excluded
    time type wins over malformed names and dates.
    """
    try:
        status = cell_to_string(cell_at(row, ABSENCE_STATUS_COL))
        if status.upper() not in ACCEPTED_STATUSES:
            return RowExclusion(row_index, "status", status)

        time_type = cell_to_string(cell_at(row, ABSENCE_TIME_TYPE_COL)).lower().strip()
        if time_type in EXCLUDED_TIME_TYPES:
            return RowExclusion(row_index, "category", time_type)

        first_name = cell_to_string(cell_at(row, ABSENCE_FIRST_NAME_COL))
        last_name = cell_to_string(cell_at(row, ABSENCE_LAST_NAME_COL))
        if not first_name or not last_name:
            return RowError(row_index, "Missing employee name", "missing_name")

        try:
            start, start_warnings = parse_date(cell_at(row, ABSENCE_START_COL), today=today)
        except DateValidationError as exc:
            return _date_error(row_index, "start", exc)
        try:
            end, end_warnings = parse_date(cell_at(row, ABSENCE_END_COL), today=today)
        except DateValidationError as exc:
            return _date_error(row_index, "end", exc)

        absence = Absence(first_name, last_name, start, end)
        return absence, [*start_warnings, *end_warnings]
    except _ROW_FAILURES as exc:
        return RowError(row_index, f"Error processing absence: {exc}", "absence_row")


def extract_absences(grid: Grid, *, today: date | None = None) -> ExtractionReport[Absence]:
    """Extract absence records; rows 0-2 are header/metadata.

    *today* anchors the plausibility window and defaults to the local date.
    """
    if today is None:
        today = date.today()

    report: ExtractionReport[Absence] = ExtractionReport()
    for row_index in range(ABSENCE_FIRST_DATA_ROW, len(grid)):
        row = grid[row_index]
        if row is None or is_blank_row(row):
            continue
        report.rows_in += 1

        outcome = read_absence_row(row, row_index, today=today)
        if isinstance(outcome, RowError):
            report.errors.append(outcome)
        elif isinstance(outcome, RowExclusion):
            report.exclusions.append(outcome)
        else:
            absence, warnings = outcome
            report.records.append(absence)
            report.warnings.extend(f"Row {row_index}: {w}" for w in warnings)
    return report


# ── File-level entry points ──────────────────────────────────────


def load_employees(path: Path, *, delimiter: str | None = None) -> ExtractionReport[Employee]:
    """Read the roster file at *path*; source errors propagate."""
    return extract_employees(load_grid(path, delimiter))


def load_absences(
    path: Path, *, today: date | None = None, delimiter: str | None = None
) -> ExtractionReport[Absence]:
    """Read the absence file at *path*; source errors propagate.

    CSV delimiters are sniffed unless *delimiter* is given.
    """
    return extract_absences(load_grid(path, delimiter), today=today)
