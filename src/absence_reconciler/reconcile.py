"""Name-based reconciliation of absences against the employee roster."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from absence_reconciler.models import Absence, AbsenceResult, Employee, MatchReport

logger = logging.getLogger(__name__)


def name_key(first_name: str, last_name: str) -> str:
    """Join key shared by roster and absence rows: ``"first last"``, lower-cased."""
    return f"{first_name.strip()} {last_name.strip()}".lower().strip()


def build_employee_index(
    employees: Sequence[Employee],
) -> tuple[dict[str, Employee], dict[str, list[str]]]:
    """Map name keys to employees; a later employee replaces an earlier one.

    Returns ``(index, conflicts)`` where *conflicts* lists, per colliding
    key, the user ids seen in roster order (the last one is the one kept).
    """
    index: dict[str, Employee] = {}
    seen: dict[str, list[str]] = {}
    for employee in employees:
        key = name_key(employee.first_name, employee.last_name)
        seen.setdefault(key, []).append(employee.user_id)
        index[key] = employee

    conflicts = {key: ids for key, ids in seen.items() if len(ids) > 1}
    for key, ids in conflicts.items():
        logger.warning(
            "Name %r is shared by %d employees (%s); using %s",
            key, len(ids), ", ".join(ids), ids[-1],
        )
    logger.debug("Employee index built with %d entries from %d employees",
                 len(index), len(employees))
    return index, conflicts


def reconcile(absences: Sequence[Absence], employees: Sequence[Employee]) -> MatchReport:
    """Match every absence to at most one employee by name key.

    Results keep absence order and are not de-duplicated. Absences without
    a roster entry are logged and listed in ``MatchReport.unmatched``.
    """
    logger.info("Processing %d absences with %d employees", len(absences), len(employees))
    index, conflicts = build_employee_index(employees)
    report = MatchReport(
        name_conflicts=conflicts,
        employees_in=len(employees),
        absences_in=len(absences),
    )

    for absence in absences:
        employee = index.get(name_key(absence.first_name, absence.last_name))
        if employee is None:
            report.unmatched.append(absence)
            logger.error("No match found for: %s %s", absence.first_name, absence.last_name)
            continue

        report.results.append(
            AbsenceResult(
                user_id=employee.user_id,
                email=employee.email,
                absent_from=absence.start_date,
                absent_until=absence.end_date,
            )
        )
        logger.debug(
            "Matched: %s %s -> %s (%s)",
            absence.first_name, absence.last_name, employee.user_id, employee.email,
        )

    logger.info("Matched %d absences, %d unmatched", report.matched, report.unmatched_count)
    return report


def match(absences: Sequence[Absence], employees: Sequence[Employee]) -> list[AbsenceResult]:
    """Return only the matched results of :func:`reconcile`."""
    return reconcile(absences, employees).results
