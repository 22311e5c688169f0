"""I/O helpers: load typed cell grids, write JSON artifacts."""

from __future__ import annotations

import csv
import json
import zipfile
from datetime import date, datetime
from io import StringIO
from numbers import Number
from pathlib import Path
from typing import Any, Callable, cast

import pandas as pd
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from absence_reconciler.models import Cell, CellKind, Grid, Row

XLSX_SUFFIXES = (".xlsx", ".xlsm", ".xltx", ".xltm")
CSV_ENCODINGS = ("utf-8-sig", "utf-8", "latin-1")
CSV_DELIMITERS = ",;\t|"
CSV_SNIFF_LINES = 50

# ── Cell typing ──────────────────────────────────────────────────


def classify_value(value: Any) -> Cell:
    """Wrap a raw reader value into a typed :class:`Cell`."""
    if value is None:
        return Cell.empty()
    if isinstance(value, str):
        return Cell(CellKind.string, value)
    try:
        if pd.isna(cast(Any, value)):
            return Cell.empty()
    except (TypeError, ValueError):
        pass

    if isinstance(value, bool):
        return Cell(CellKind.boolean, value)
    if isinstance(value, pd.Timestamp):
        return Cell(CellKind.date, value.to_pydatetime())
    if isinstance(value, (datetime, date)):
        return Cell(CellKind.date, value)
    if isinstance(value, Number):
        item = getattr(value, "item", None)
        converted = item() if callable(item) else value
        if isinstance(converted, bool):
            return Cell(CellKind.boolean, converted)
        return Cell(CellKind.number, converted)
    # Formula errors and bare times have no typed meaning here.
    return Cell.empty()


def _frame_to_grid(df: pd.DataFrame) -> Grid:
    grid: Grid = []
    for values in df.itertuples(index=False, name=None):
        grid.append([classify_value(v) for v in values])
    return grid


# ── Loading ──────────────────────────────────────────────────────


def _load_xlsx(path: Path) -> Grid:
    try:
        wb = load_workbook(path, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise ValueError(f"Could not open workbook {path} (corrupt or not an Excel file)") from exc

    try:
        ws = wb.worksheets[0] if wb.worksheets else None
        if ws is None:
            return []
        grid: Grid = []
        for cells in ws.iter_rows():
            row: Row = []
            for cell in cells:
                value = getattr(cell, "value", None)
                if value is None:
                    row.append(Cell.empty())
                elif getattr(cell, "is_date", False) and isinstance(value, (datetime, date)):
                    row.append(Cell(CellKind.date, value))
                else:
                    row.append(classify_value(value))
            grid.append(row)
        return grid
    finally:
        wb.close()


def _decode_csv(path: Path) -> str:
    last_exc: Exception | None = None
    for encoding in CSV_ENCODINGS:
        try:
            return path.read_text(encoding=encoding)
        except UnicodeDecodeError as exc:
            last_exc = exc
    raise ValueError(f"Could not read CSV {path} (decode failed)") from last_exc


def sniff_delimiter(text: str) -> str:
    """Guess the delimiter from the first lines, falling back to a comma.

    Absence exports open with title rows, so a single-line guess is not
    enough.
    """
    sample = "\n".join(text.splitlines()[:CSV_SNIFF_LINES])
    try:
        return csv.Sniffer().sniff(sample, delimiters=CSV_DELIMITERS).delimiter
    except csv.Error:
        return ","


def _load_csv(path: Path, delimiter: str | None) -> Grid:
    text = _decode_csv(path)
    sep = delimiter or sniff_delimiter(text)
    try:
        # Ragged lines: the widest row sets the column count.
        rows = csv.reader(StringIO(text), delimiter=sep)
        width = max((len(fields) for fields in rows), default=0)
        if width == 0:
            return []
        df = pd.read_csv(
            StringIO(text),
            header=None,
            names=list(range(width)),
            index_col=False,
            dtype="string",
            sep=sep,
            engine="c",
            keep_default_na=False,
            na_values=[""],
            skip_blank_lines=False,
        )
    except pd.errors.EmptyDataError:
        return []
    except (pd.errors.ParserError, csv.Error) as exc:
        raise ValueError(f"Could not read CSV {path} (parse failed)") from exc
    return _frame_to_grid(df)


def _load_xls(path: Path) -> Grid:
    read_excel = cast(Callable[..., pd.DataFrame], getattr(pd, "read_excel"))
    try:
        df = read_excel(path, engine="xlrd", header=None, dtype=object)
    except ImportError as exc:
        raise ValueError(
            "Unsupported .xls input unless 'xlrd' is installed. "
            "Either convert to .xlsx or add dependency: pip install xlrd"
        ) from exc
    except Exception as exc:
        raise ValueError(f"Could not open workbook {path} (corrupt or not an Excel file)") from exc
    return _frame_to_grid(df)


def load_grid(path: Path, delimiter: str | None = None) -> Grid:
    """Load the first sheet of a CSV or Excel file as a grid of typed cells.

    Row positions are preserved: blank sheet rows come back as rows of
    empty cells so positional layouts (header rows, data offsets) hold.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If the extension is not supported, or the file cannot be decoded.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    if path.is_dir():
        raise ValueError(f"Input path is a directory, not a file: {path}")

    suffix = path.suffix.lower()
    if suffix == ".csv":
        return _load_csv(path, delimiter)
    if suffix in XLSX_SUFFIXES:
        return _load_xlsx(path)
    if suffix == ".xls":
        return _load_xls(path)

    raise ValueError(f"Unsupported file type: {suffix!r}. Use .csv, .xlsx, or .xls")


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path
