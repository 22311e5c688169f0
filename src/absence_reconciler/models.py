"""Data models / typed records used across the package."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from numbers import Integral
from typing import Any, Generic, TypeVar

T = TypeVar("T")

DATE_DISPLAY_FMT = "%d.%m.%Y"


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_required_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    if not value.strip():
        raise ValueError(f"{field_name} must not be empty")
    return value


def _to_date(value: Any, field_name: str) -> date:
    # datetime is a date subclass; keep only the calendar part.
    if isinstance(value, datetime):
        return value.date()
    if not isinstance(value, date):
        raise TypeError(f"{field_name} must be a date")
    return value


# ── Cells ────────────────────────────────────────────────────────


class CellKind(str, Enum):
    empty = "empty"
    string = "string"
    number = "number"
    boolean = "boolean"
    date = "date"


@dataclass(frozen=True)
class Cell:
    """One typed spreadsheet cell.

    ``date`` cells hold a ``datetime``/``date``; ``number`` cells an int or
    float; ``boolean`` cells a bool; ``string`` cells the raw text.
    """

    kind: CellKind = CellKind.empty
    value: Any = None

    @classmethod
    def empty(cls) -> Cell:
        return cls(CellKind.empty, None)

    @classmethod
    def text(cls, value: str) -> Cell:
        return cls(CellKind.string, value)


Row = list[Cell]
Grid = list[Row | None]


# ── Records ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class Employee:
    """One roster row."""

    user_id: str
    last_name: str
    first_name: str
    email: str
    weekly_working_hours: int = 0

    def __post_init__(self) -> None:
        _to_required_str(self.user_id, "user_id")
        _to_required_str(self.email, "email")
        object.__setattr__(
            self,
            "weekly_working_hours",
            _to_non_negative_int(self.weekly_working_hours, "weekly_working_hours"),
        )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class Absence:
    """One approved (or pending) absence-sheet row."""

    first_name: str
    last_name: str
    start_date: date
    end_date: date

    def __post_init__(self) -> None:
        _to_required_str(self.first_name, "first_name")
        _to_required_str(self.last_name, "last_name")
        object.__setattr__(self, "start_date", _to_date(self.start_date, "start_date"))
        object.__setattr__(self, "end_date", _to_date(self.end_date, "end_date"))


@dataclass(frozen=True)
class AbsenceResult:
    """An absence matched to exactly one employee."""

    user_id: str
    email: str
    absent_from: date
    absent_until: date

    def __post_init__(self) -> None:
        object.__setattr__(self, "absent_from", _to_date(self.absent_from, "absent_from"))
        object.__setattr__(self, "absent_until", _to_date(self.absent_until, "absent_until"))

    @property
    def formatted_absent_from(self) -> str:
        return self.absent_from.strftime(DATE_DISPLAY_FMT)

    @property
    def formatted_absent_until(self) -> str:
        return self.absent_until.strftime(DATE_DISPLAY_FMT)

    def to_row(self) -> list[str]:
        return [
            self.user_id,
            self.email,
            self.formatted_absent_from,
            self.formatted_absent_until,
        ]


# ── Batch outcomes ───────────────────────────────────────────────


@dataclass(frozen=True)
class RowError:
    """A failure confined to one input row (zero-based sheet index)."""

    row_index: int
    message: str
    code: str = "row_error"

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row_index, "code": self.code, "message": self.message}


@dataclass(frozen=True)
class RowExclusion:
    """A row filtered on purpose; not an error."""

    row_index: int
    reason: str
    value: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row_index, "reason": self.reason, "value": self.value}


@dataclass
class ExtractionReport(Generic[T]):
    """Outcome of one extraction pass over a grid.

    ``records`` keeps row order. Category exclusions and status skips are
    both kept in ``exclusions`` but counted separately.
    """

    records: list[T] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)
    exclusions: list[RowExclusion] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    rows_in: int = 0

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")

    @property
    def processed(self) -> int:
        return len(self.records)

    @property
    def errored(self) -> int:
        return len(self.errors)

    @property
    def excluded(self) -> int:
        return sum(1 for item in self.exclusions if item.reason == "category")

    @property
    def skipped_status(self) -> int:
        return sum(1 for item in self.exclusions if item.reason == "status")

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_in": self.rows_in,
            "processed": self.processed,
            "excluded": self.excluded,
            "skipped_status": self.skipped_status,
            "errored": self.errored,
            "errors": [err.to_dict() for err in self.errors],
            "exclusions": [item.to_dict() for item in self.exclusions],
            "warnings": list(self.warnings),
        }


@dataclass
class MatchReport:
    """Outcome of reconciling absences against the roster."""

    results: list[AbsenceResult] = field(default_factory=list)
    unmatched: list[Absence] = field(default_factory=list)
    name_conflicts: dict[str, list[str]] = field(default_factory=dict)
    employees_in: int = 0
    absences_in: int = 0

    def __post_init__(self) -> None:
        self.employees_in = _to_non_negative_int(self.employees_in, "employees_in")
        self.absences_in = _to_non_negative_int(self.absences_in, "absences_in")

    @property
    def matched(self) -> int:
        return len(self.results)

    @property
    def unmatched_count(self) -> int:
        return len(self.unmatched)

    def to_dict(self) -> dict[str, Any]:
        return {
            "employees_in": self.employees_in,
            "absences_in": self.absences_in,
            "matched": self.matched,
            "unmatched": self.unmatched_count,
            "unmatched_names": [
                f"{absence.first_name} {absence.last_name}" for absence in self.unmatched
            ],
            "name_conflicts": {key: list(ids) for key, ids in self.name_conflicts.items()},
        }


@dataclass
class RunManifest:
    """Audit-trail manifest for a single reconciliation run."""

    tool: str = "absence-reconciler"
    version: str = ""
    run_id: str = ""
    created_at_utc: str = ""
    employees_path: str = ""
    absences_path: str = ""
    output_path: str = ""
    employees_sha256: str = ""
    absences_sha256: str = ""
    employees_in: int = 0
    absences_in: int = 0
    results_out: int = 0
    status: str = "success"
    error_code: int | None = None
    error_message: str = ""

    def __post_init__(self) -> None:
        self.employees_in = _to_non_negative_int(self.employees_in, "employees_in")
        self.absences_in = _to_non_negative_int(self.absences_in, "absences_in")
        self.results_out = _to_non_negative_int(self.results_out, "results_out")
        if self.status not in {"success", "failed"}:
            raise ValueError("status must be 'success' or 'failed'")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "run_id": self.run_id,
            "created_at_utc": self.created_at_utc,
            "employees_path": self.employees_path,
            "absences_path": self.absences_path,
            "output_path": self.output_path,
            "employees_sha256": self.employees_sha256,
            "absences_sha256": self.absences_sha256,
            "employees_in": self.employees_in,
            "absences_in": self.absences_in,
            "results_out": self.results_out,
            "status": self.status,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }
