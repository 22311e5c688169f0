"""Date extraction + plausibility checks for absence-sheet cells.

Two steps, kept separate:

* :func:`extract_date` turns one cell into a calendar date (structure only).
* :func:`validate_date` rejects dates that are out of range or outside the
  business window around an injected *today*.

Both raise :class:`DateValidationError`; the ``code`` attribute tells the
failure kinds apart.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime
from enum import Enum

from absence_reconciler.models import DATE_DISPLAY_FMT, Cell, CellKind

MIN_YEAR = 1900
MAX_YEAR = 2100
MAX_AGE_MONTHS = 5 * 12
PLANNING_HORIZON_MONTHS = 2 * 12
STALE_AGE_MONTHS = 18

_DOTTED_DATE_RE = re.compile(r"^([0-9]{1,2})\.([0-9]{1,2})\.([0-9]{4})$")
_ISO_DATE_RE = re.compile(r"^([0-9]{4})-([0-9]{2})-([0-9]{2})$")
_SHORT_MONTHS = frozenset({4, 6, 9, 11})


class DateErrorCode(str, Enum):
    missing_date = "missing_date"
    empty_date_string = "empty_date_string"
    invalid_date_format = "invalid_date_format"
    unsupported_date_format = "unsupported_date_format"
    unsupported_cell_type = "unsupported_cell_type"
    too_far_past = "too_far_past"
    too_far_future = "too_far_future"
    implausibly_old = "implausibly_old"
    beyond_planning_horizon = "beyond_planning_horizon"
    invalid_month = "invalid_month"
    invalid_day = "invalid_day"
    invalid_february_day = "invalid_february_day"
    invalid_leap_day = "invalid_leap_day"
    invalid_short_month_day = "invalid_short_month_day"


class DateValidationError(ValueError):
    """A date cell could not be turned into a plausible calendar date."""

    def __init__(self, code: DateErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code


# ── Calendar helpers ─────────────────────────────────────────────


def shift_months(value: date, months: int) -> date:
    """Move *value* by *months*, clamping the day to the target month length."""
    index = value.year * 12 + (value.month - 1) + months
    year, month_zero = divmod(index, 12)
    month = month_zero + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def format_date(value: date) -> str:
    """Render *value* as ``DD.MM.YYYY``."""
    return value.strftime(DATE_DISPLAY_FMT)


# ── Extraction ───────────────────────────────────────────────────


def _build_date(year: int, month: int, day: int, raw: str, code: DateErrorCode) -> date:
    try:
        return date(year, month, day)
    except ValueError as exc:
        raise DateValidationError(code, f"Invalid date {raw!r}: {exc}") from exc


def _parse_date_text(raw: str) -> date:
    text = raw.strip()
    if not text:
        raise DateValidationError(DateErrorCode.empty_date_string, "Date string is empty")

    # ISO timestamps: keep the calendar part only.
    if "T" in text:
        text = text[: text.index("T")]

    dotted = _DOTTED_DATE_RE.match(text)
    if dotted:
        day, month, year = (int(part) for part in dotted.groups())
        return _build_date(year, month, day, text, DateErrorCode.invalid_date_format)

    iso = _ISO_DATE_RE.match(text)
    if iso:
        year, month, day = (int(part) for part in iso.groups())
        return _build_date(year, month, day, text, DateErrorCode.invalid_date_format)

    raise DateValidationError(
        DateErrorCode.unsupported_date_format,
        f"Unsupported date format {text!r} (expected DD.MM.YYYY or YYYY-MM-DD)",
    )


def extract_date(cell: Cell | None) -> date:
    """Convert one cell into a calendar date.

    Date-typed cells keep their date component (time of day is dropped).
    Text cells accept ``D.M.YYYY`` (day first, 1-2 digit day/month) and
    strict ISO ``YYYY-MM-DD``; anything after a ``T`` marker is ignored.
    """
    if cell is None or cell.kind is CellKind.empty:
        raise DateValidationError(
            DateErrorCode.missing_date, "Date cell is missing - absence record incomplete"
        )

    if cell.kind is CellKind.date:
        value = cell.value
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        raise DateValidationError(
            DateErrorCode.unsupported_cell_type,
            f"Date cell holds a non-date value of type {type(value).__name__}",
        )

    if cell.kind is CellKind.string:
        return _parse_date_text(str(cell.value))

    raise DateValidationError(
        DateErrorCode.unsupported_cell_type,
        f"Unsupported cell type for date: {cell.kind.value}",
    )


# ── Plausibility ─────────────────────────────────────────────────


def validate_date(value: date, *, today: date) -> list[str]:
    """Check *value* against the calendar and the business window around *today*.

    Returns soft warnings (dates older than 18 months) and raises
    :class:`DateValidationError` on the first hard failure.
    """
    warnings: list[str] = []

    if value.year < MIN_YEAR:
        raise DateValidationError(
            DateErrorCode.too_far_past,
            f"Date year {value.year} is too far in the past (before {MIN_YEAR})",
        )
    if value.year > MAX_YEAR:
        raise DateValidationError(
            DateErrorCode.too_far_future,
            f"Date year {value.year} is too far in the future (after {MAX_YEAR})",
        )

    if value < shift_months(today, -MAX_AGE_MONTHS):
        raise DateValidationError(
            DateErrorCode.implausibly_old,
            f"Absence date {value.isoformat()} is more than 5 years old - likely data error",
        )
    if value > shift_months(today, PLANNING_HORIZON_MONTHS):
        raise DateValidationError(
            DateErrorCode.beyond_planning_horizon,
            f"Absence date {value.isoformat()} is more than 2 years in future"
            " - exceeds planning horizon",
        )
    if value < shift_months(today, -STALE_AGE_MONTHS):
        warnings.append(
            f"Absence date {value.isoformat()} is more than 18 months old - verify accuracy"
        )

    # Unreachable for a constructed datetime.date.
    assert 1 <= value.month <= 12, f"invalid month {value.month}"
    assert 1 <= value.day <= 31, f"invalid day {value.day}"

    if value.month == 2 and value.day > 29:
        raise DateValidationError(
            DateErrorCode.invalid_february_day,
            f"February cannot have {value.day} days in date {value.isoformat()}",
        )
    if value.month == 2 and value.day == 29 and not calendar.isleap(value.year):
        raise DateValidationError(
            DateErrorCode.invalid_leap_day,
            f"February 29 is not valid in non-leap year {value.year}",
        )
    if value.month in _SHORT_MONTHS and value.day > 30:
        raise DateValidationError(
            DateErrorCode.invalid_short_month_day,
            f"Month {value.month} cannot have {value.day} days",
        )

    return warnings


def parse_date(cell: Cell | None, *, today: date) -> tuple[date, list[str]]:
    """Extract and validate one date cell; returns ``(date, warnings)``."""
    value = extract_date(cell)
    return value, validate_date(value, today=today)
