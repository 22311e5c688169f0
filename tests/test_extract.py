"""Row-level extraction contracts for roster and absence grids."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from absence_reconciler.extract import (
    ABSENCE_END_COL,
    ABSENCE_FIRST_NAME_COL,
    ABSENCE_LAST_NAME_COL,
    ABSENCE_START_COL,
    ABSENCE_STATUS_COL,
    ABSENCE_TIME_TYPE_COL,
    cell_to_int,
    cell_to_string,
    extract_absences,
    extract_employees,
    is_blank_row,
)
from absence_reconciler.models import Cell, CellKind, Grid, Row

TODAY = date(2025, 6, 15)


def _t(value: str) -> Cell:
    return Cell(CellKind.string, value)


def _n(value: float) -> Cell:
    return Cell(CellKind.number, value)


def _header_rows(count: int) -> Grid:
    return [[_t(f"header {i}")] for i in range(count)]


def _absence_row(
    first: str = "Ion",
    last: str = "Popescu",
    *,
    time_type: str = "Vacation",
    start: Cell | str = "01.06.2025",
    end: Cell | str = "05.06.2025",
    status: str = "APPROVED",
) -> Row:
    row: Row = [Cell.empty() for _ in range(ABSENCE_STATUS_COL + 1)]
    row[ABSENCE_FIRST_NAME_COL] = _t(first)
    row[ABSENCE_LAST_NAME_COL] = _t(last)
    row[ABSENCE_TIME_TYPE_COL] = _t(time_type)
    row[ABSENCE_START_COL] = _t(start) if isinstance(start, str) else start
    row[ABSENCE_END_COL] = _t(end) if isinstance(end, str) else end
    row[ABSENCE_STATUS_COL] = _t(status)
    return row


def _absence_grid(*rows: Row | None) -> Grid:
    return [*_header_rows(3), *rows]


def _employee_row(*cells: Cell) -> Row:
    return list(cells)


# ── Cell rendering ───────────────────────────────────────────────


@pytest.mark.parametrize(
    ("cell", "expected"),
    [
        (None, ""),
        (Cell.empty(), ""),
        (_t("  Ana  "), "Ana"),
        (_n(40.0), "40"),
        (_n(1234.9), "1234"),
        (_n(-2.7), "-2"),
        (_n(float("inf")), ""),
        (_n(float("nan")), ""),
        (Cell(CellKind.boolean, True), "true"),
        (Cell(CellKind.boolean, False), "false"),
        (Cell(CellKind.date, datetime(2025, 1, 2, 8, 30)), "2025-01-02"),
    ],
)
def test_cell_to_string(cell: Cell | None, expected: str) -> None:
    assert cell_to_string(cell) == expected


@pytest.mark.parametrize(
    ("cell", "expected"),
    [
        (None, 0),
        (_n(40.0), 40),
        (_n(37.5), 38),
        (_t("37.4"), 37),
        (_t(" 20 "), 20),
        (_t("forty"), 0),
        (_t("nan"), 0),
        (_n(-5), 0),
        (Cell(CellKind.boolean, True), 0),
    ],
)
def test_cell_to_int(cell: Cell | None, expected: int) -> None:
    assert cell_to_int(cell) == expected


def test_is_blank_row() -> None:
    assert is_blank_row(None)
    assert is_blank_row([])
    assert is_blank_row([Cell.empty(), _t("   ")])
    assert not is_blank_row([Cell.empty(), _n(0)])


# ── Employees ────────────────────────────────────────────────────


def test_extract_employees_reads_fixed_columns_and_skips_header() -> None:
    grid: Grid = [
        _employee_row(_t("USER-ID"), _t("Last"), _t("First"), _t("Email"), _t("Hours")),
        _employee_row(_n(1001.0), _t("Popescu"), _t("Ion"), _t("ion@x.com"), _n(40.0)),
        _employee_row(_t("u2"), _t("Ionescu"), _t("Maria"), _t("maria@x.com"), _t("n/a")),
    ]

    report = extract_employees(grid)

    assert report.processed == 2
    first, second = report.records
    assert first.user_id == "1001"
    assert (first.first_name, first.last_name) == ("Ion", "Popescu")
    assert first.email == "ion@x.com"
    assert first.weekly_working_hours == 40
    assert second.weekly_working_hours == 0


def test_extract_employees_drops_rows_without_id_or_email() -> None:
    grid: Grid = [
        [_t("header")],
        _employee_row(_t(""), _t("A"), _t("B"), _t("a@x.com")),
        _employee_row(_t("u2"), _t("C"), _t("D"), _t("  ")),
        _employee_row(_t("u3"), _t("E"), _t("F")),
        _employee_row(_t("u4"), _t("G"), _t("H"), _t("g@x.com")),
    ]

    report = extract_employees(grid)

    assert [e.user_id for e in report.records] == ["u4"]
    assert [x.reason for x in report.exclusions] == ["incomplete"] * 3
    assert report.errored == 0


def test_extract_employees_skips_blank_rows_and_keeps_duplicates() -> None:
    grid: Grid = [
        [_t("header")],
        None,
        [Cell.empty(), Cell.empty()],
        _employee_row(_t("u1"), _t("Popescu"), _t("Ion"), _t("a@x.com")),
        _employee_row(_t("u2"), _t("Popescu"), _t("Ion"), _t("b@x.com")),
    ]

    report = extract_employees(grid)

    assert report.rows_in == 2
    assert [e.user_id for e in report.records] == ["u1", "u2"]


def test_non_finite_numbers_do_not_escape_extraction() -> None:
    employees: Grid = [
        [_t("header")],
        _employee_row(_n(float("inf")), _t("X"), _t("Y"), _t("x@x.com")),
        _employee_row(_n(float("nan"))),
        _employee_row(_t("u2"), _t("Z"), _t("W"), _t("z@x.com")),
    ]
    absence_row = _absence_row()
    absence_row[ABSENCE_STATUS_COL] = _n(float("-inf"))

    employee_report = extract_employees(employees)
    absence_report = extract_absences(_absence_grid(absence_row), today=TODAY)

    assert [e.user_id for e in employee_report.records] == ["u2"]
    assert [x.reason for x in employee_report.exclusions] == ["incomplete"]
    assert employee_report.rows_in == 2
    assert absence_report.skipped_status == 1


# ── Absences ─────────────────────────────────────────────────────


def test_extract_absences_starts_after_three_header_rows() -> None:
    grid = [
        _absence_row("Header", "Row"),
        _absence_row("Meta", "Row"),
        _absence_row("Meta", "Row"),
        _absence_row(),
    ]

    report = extract_absences(grid, today=TODAY)

    assert report.processed == 1
    absence = report.records[0]
    assert (absence.first_name, absence.last_name) == ("Ion", "Popescu")
    assert absence.start_date == date(2025, 6, 1)
    assert absence.end_date == date(2025, 6, 5)


@pytest.mark.parametrize("status", ["APPROVED", "approved", " Pending "])
def test_approved_and_pending_rows_are_kept(status: str) -> None:
    report = extract_absences(_absence_grid(_absence_row(status=status)), today=TODAY)

    assert report.processed == 1


def test_rejected_rows_count_as_neither_processed_nor_errors() -> None:
    grid = _absence_grid(_absence_row(status="REJECTED", start="garbage"), _absence_row())

    report = extract_absences(grid, today=TODAY)

    assert report.processed == 1
    assert report.errored == 0
    assert report.excluded == 0
    assert report.skipped_status == 1


@pytest.mark.parametrize("time_type", ["Working Time", "working time", "  BREAK "])
def test_excluded_categories_win_over_malformed_dates(time_type: str) -> None:
    row = _absence_row(time_type=time_type, start="not a date", end="")

    report = extract_absences(_absence_grid(row), today=TODAY)

    assert report.processed == 0
    assert report.errored == 0
    assert report.excluded == 1
    assert report.exclusions[0].reason == "category"


def test_missing_name_is_a_row_error() -> None:
    grid = _absence_grid(_absence_row(first="  "), _absence_row(last=""), _absence_row())

    report = extract_absences(grid, today=TODAY)

    assert report.processed == 1
    assert report.errored == 2
    assert {err.code for err in report.errors} == {"missing_name"}
    assert [err.row_index for err in report.errors] == [3, 4]


def test_bad_dates_become_row_errors_and_processing_continues() -> None:
    grid = _absence_grid(
        _absence_row(start="30.02.2024"),
        _absence_row(end="01.01.20333"),
        _absence_row(start="01.01.2019"),
        _absence_row(start=_n(45000.0)),
        _absence_row("Maria", "Ionescu"),
    )

    report = extract_absences(grid, today=TODAY)

    assert [a.first_name for a in report.records] == ["Maria"]
    assert [err.code for err in report.errors] == [
        "invalid_date_format",
        "unsupported_date_format",
        "implausibly_old",
        "unsupported_cell_type",
    ]
    assert "start date" in report.errors[0].message
    assert "end date" in report.errors[1].message


def test_native_date_cells_are_accepted() -> None:
    row = _absence_row(
        start=Cell(CellKind.date, datetime(2025, 2, 3, 0, 0)),
        end=Cell(CellKind.date, datetime(2025, 2, 7, 12, 0)),
    )

    report = extract_absences(_absence_grid(row), today=TODAY)

    assert report.records[0].start_date == date(2025, 2, 3)
    assert report.records[0].end_date == date(2025, 2, 7)


def test_blank_end_date_reports_a_missing_date() -> None:
    row = _absence_row(end=Cell.empty())

    report = extract_absences(_absence_grid(row), today=TODAY)

    assert report.errors[0].code == "missing_date"


def test_end_before_start_is_not_rejected() -> None:
    row = _absence_row(start="10.06.2025", end="01.06.2025")

    report = extract_absences(_absence_grid(row), today=TODAY)

    assert report.processed == 1


def test_stale_dates_are_kept_with_row_warnings() -> None:
    row = _absence_row(start="01.12.2023", end="02.12.2023")

    report = extract_absences(_absence_grid(None, row), today=TODAY)

    assert report.processed == 1
    assert len(report.warnings) == 2
    assert all(w.startswith("Row 4:") for w in report.warnings)


def test_blank_grid_yields_empty_report() -> None:
    report = extract_absences([], today=TODAY)

    assert report.records == []
    assert report.rows_in == 0
