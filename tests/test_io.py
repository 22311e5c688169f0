from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path

import pandas as pd
import pytest
from openpyxl import Workbook

from absence_reconciler.io import classify_value, load_grid, sniff_delimiter, write_json
from absence_reconciler.models import Cell, CellKind


def _kinds(row: list[Cell] | None) -> list[CellKind]:
    assert row is not None
    return [cell.kind for cell in row]


def test_load_grid_xlsx_keeps_cell_types_and_row_positions(tmp_path: Path) -> None:
    path = tmp_path / "typed.xlsx"
    wb = Workbook()
    ws = wb.active
    assert ws is not None
    ws.cell(row=1, column=1, value="USER-ID")
    ws.cell(row=3, column=1, value="u1")
    ws.cell(row=3, column=2, value=40)
    ws.cell(row=3, column=3, value=True)
    ws.cell(row=3, column=4, value=datetime(2025, 3, 4, 9, 30))
    wb.save(path)

    grid = load_grid(path)

    assert len(grid) == 3
    assert all(cell.kind is CellKind.empty for cell in grid[1] or [])
    row = grid[2]
    assert _kinds(row) == [CellKind.string, CellKind.number, CellKind.boolean, CellKind.date]
    assert row is not None
    assert row[1].value == 40
    assert row[3].value == datetime(2025, 3, 4, 9, 30)


def test_load_grid_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match="not found"):
        load_grid(tmp_path / "missing.xlsx")


def test_load_grid_unsupported_suffix_raises(tmp_path: Path) -> None:
    path = tmp_path / "data.json"
    path.write_text("{}", encoding="utf-8")

    with pytest.raises(ValueError, match="Unsupported file type"):
        load_grid(path)


def test_load_grid_corrupt_workbook_raises_value_error(tmp_path: Path) -> None:
    path = tmp_path / "corrupt.xlsx"
    path.write_bytes(b"this is not a zip archive")

    with pytest.raises(ValueError, match="Could not open workbook"):
        load_grid(path)


def test_load_grid_csv_reads_ragged_rows_as_text(tmp_path: Path) -> None:
    path = tmp_path / "roster.csv"
    path.write_text(
        "USER-ID,Last,First\n"
        "\n"
        "u1,Popescu,Ion,ion@x.com,40\n",
        encoding="utf-8",
    )

    grid = load_grid(path, delimiter=",")

    assert len(grid) == 3
    assert all(cell.kind is CellKind.empty for cell in grid[1] or [])
    row = grid[2]
    assert row is not None
    assert [cell.value for cell in row[:5]] == ["u1", "Popescu", "Ion", "ion@x.com", "40"]
    assert all(cell.kind is CellKind.string for cell in row)
    header = grid[0]
    assert header is not None
    assert len(header) == 5
    assert [cell.kind for cell in header[3:]] == [CellKind.empty, CellKind.empty]


def test_load_grid_csv_falls_back_to_latin_1(tmp_path: Path) -> None:
    csv_path = tmp_path / "legacy.csv"
    csv_path.write_bytes("u1,José\n".encode("latin-1"))

    grid = load_grid(csv_path)

    assert grid == [[Cell(CellKind.string, "u1"), Cell(CellKind.string, "José")]]


def test_load_grid_csv_sniffs_delimiter_past_title_rows(tmp_path: Path) -> None:
    data = ["", "", "", "Ion", "", "Popescu", "", "Vacation", "02.06.2025", "", "06.06.2025"]
    data += [""] * 5 + ["APPROVED"]
    path = tmp_path / "absences.csv"
    path.write_text(
        "Absence report\nGenerated on 15 June\nFirst name Last name\n" + ",".join(data) + "\n",
        encoding="utf-8",
    )

    grid = load_grid(path)

    row = grid[3]
    assert row is not None
    assert len(row) == 17
    assert row[3].value == "Ion"
    assert row[16].value == "APPROVED"
    assert grid[0] is not None and grid[0][0].value == "Absence report"


@pytest.mark.parametrize("sep", [";", "\t", "|"])
def test_load_grid_csv_sniffs_other_delimiters(tmp_path: Path, sep: str) -> None:
    path = tmp_path / "roster.csv"
    path.write_text(
        sep.join(["USER-ID", "Last", "First", "Email"]) + "\n"
        + sep.join(["u1", "Popescu", "Ion", "ion@x.com"]) + "\n",
        encoding="utf-8",
    )

    grid = load_grid(path)

    assert grid[1] is not None
    assert [cell.value for cell in grid[1]] == ["u1", "Popescu", "Ion", "ion@x.com"]


def test_load_grid_csv_keeps_every_field_of_wide_rows(tmp_path: Path) -> None:
    path = tmp_path / "wide.csv"
    path.write_text("a,b\n" + ",".join(str(i) for i in range(70)) + "\n", encoding="utf-8")

    grid = load_grid(path, delimiter=",")

    wide = grid[1]
    assert wide is not None
    assert len(wide) == 70
    assert [cell.value for cell in wide[:3]] == ["0", "1", "2"]
    assert wide[69].value == "69"
    assert grid[0] is not None and grid[0][0].value == "a"


def test_sniff_delimiter_defaults_to_comma() -> None:
    assert sniff_delimiter("Absence report\nno separators here\n") == ","


def test_load_grid_xls_missing_xlrd_raises_friendly_error(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    xls_path = tmp_path / "legacy.xls"
    xls_path.write_bytes(b"x")

    def _fake_read_excel(path: Path, **kwargs: object) -> pd.DataFrame:
        del path, kwargs
        raise ImportError("No module named xlrd")

    monkeypatch.setattr(pd, "read_excel", _fake_read_excel)

    with pytest.raises(ValueError, match="pip install xlrd"):
        load_grid(xls_path)


def test_load_grid_xls_classifies_object_columns(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    xls_path = tmp_path / "legacy.xls"
    xls_path.write_bytes(b"x")
    frame = pd.DataFrame(
        [["Ion", 40.0, pd.Timestamp("2025-01-02"), float("nan")]], dtype=object
    )

    def _fake_read_excel(path: Path, **kwargs: object) -> pd.DataFrame:
        assert kwargs["engine"] == "xlrd"
        assert kwargs["header"] is None
        return frame

    monkeypatch.setattr(pd, "read_excel", _fake_read_excel)

    grid = load_grid(xls_path)

    assert _kinds(grid[0]) == [
        CellKind.string,
        CellKind.number,
        CellKind.date,
        CellKind.empty,
    ]


@pytest.mark.parametrize(
    ("value", "kind"),
    [
        (None, CellKind.empty),
        (pd.NA, CellKind.empty),
        (pd.NaT, CellKind.empty),
        ("", CellKind.string),
        (True, CellKind.boolean),
        (3, CellKind.number),
        (date(2025, 1, 1), CellKind.date),
        (object(), CellKind.empty),
    ],
)
def test_classify_value(value: object, kind: CellKind) -> None:
    assert classify_value(value).kind is kind


def test_write_json_is_deterministic_and_serializes_dates(tmp_path: Path) -> None:
    out = write_json(tmp_path / "nested" / "data.json", {"b": date(2025, 1, 2), "a": 1})

    text = out.read_text(encoding="utf-8")
    assert json.loads(text) == {"a": 1, "b": "2025-01-02"}
    assert text.index('"a"') < text.index('"b"')
    assert not (tmp_path / "nested" / "data.json.tmp").exists()
