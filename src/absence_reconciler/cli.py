"""CLI entry point for absence-reconciler."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date
from enum import Enum
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table as RichTable

from absence_reconciler import __version__
from absence_reconciler.extract import load_absences, load_employees
from absence_reconciler.io import write_json
from absence_reconciler.models import (
    Absence,
    Employee,
    ExtractionReport,
    MatchReport,
    RunManifest,
)
from absence_reconciler.qc import write_qc_report
from absence_reconciler.reconcile import reconcile
from absence_reconciler.report import default_output_name, write_results
from absence_reconciler.roster import DEFAULT_DATA_DIR, RosterStore
from absence_reconciler.utils import parse_today, sha256_file, utcnow_iso

app = typer.Typer(
    name="absrec",
    help="absence-reconciler — Match leave/absence sheets against the employee roster.",
    add_completion=False,
    no_args_is_help=True,
)
roster_app = typer.Typer(help="Manage the stored employee roster.", no_args_is_help=True)
app.add_typer(roster_app, name="roster")

console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger("absence_reconciler")

MAX_LISTED_ISSUES = 10


class OutputFormat(str, Enum):
    xlsx = "xlsx"
    csv = "csv"


class SourceFailure(Exception):
    """A run aborted before any row was processed (exit code 2)."""


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"absence-reconciler v{__version__}")
        raise typer.Exit()


def _log_level(*, quiet: bool, verbose: bool) -> int:
    if quiet:
        return logging.ERROR
    return logging.DEBUG if verbose else logging.WARNING


def _configure_logging(level: int) -> None:
    logger.handlers.clear()
    logger.addHandler(
        RichHandler(console=err_console, show_path=False, rich_tracebacks=False)
    )
    logger.setLevel(level)


def _resolve_today(raw: str | None) -> date:
    try:
        return parse_today(raw)
    except ValueError as exc:
        raise SourceFailure(str(exc)) from exc


def _resolve_employees_path(employees: Path | None, data_dir: Path) -> Path:
    if employees is not None:
        return employees
    store = RosterStore(data_dir)
    if not store.exists():
        raise SourceFailure(
            f"No stored roster at {store.path}. "
            "Pass --employees or run 'absrec roster update --input <file>'."
        )
    return store.path


def _safe_sha256(path: Path | None) -> str:
    if path is None:
        return ""
    try:
        return sha256_file(path)
    except OSError:
        return ""


def _write_manifest(
    out_dir: Path,
    *,
    run_id: str,
    created_at: str,
    employees_path: Path | None,
    absences_path: Path,
    output_path: Path | None = None,
    employees_in: int = 0,
    absences_in: int = 0,
    results_out: int = 0,
    status: str = "success",
    error_code: int | None = None,
    error_message: str = "",
) -> Path:
    manifest = RunManifest(
        version=__version__,
        run_id=run_id,
        created_at_utc=created_at,
        employees_path=str(employees_path.resolve()) if employees_path else "",
        absences_path=str(absences_path.resolve()),
        output_path=str(output_path.resolve()) if output_path else "",
        employees_sha256=_safe_sha256(employees_path),
        absences_sha256=_safe_sha256(absences_path),
        employees_in=employees_in,
        absences_in=absences_in,
        results_out=results_out,
        status=status,
        error_code=error_code,
        error_message=error_message,
    )
    return write_json(out_dir / "run_manifest.json", manifest.to_dict())


def _write_failure_artifacts(
    out_dir: Path,
    *,
    run_id: str,
    created_at: str,
    employees_path: Path | None,
    absences_path: Path,
    message: str,
    error_code: int,
) -> tuple[Path, Path]:
    empty_employees: ExtractionReport[Employee] = ExtractionReport()
    empty_absences: ExtractionReport[Absence] = ExtractionReport()
    empty_absences.warnings.append(message)
    qc_path = write_qc_report(out_dir, empty_employees, empty_absences)
    manifest_path = _write_manifest(
        out_dir,
        run_id=run_id,
        created_at=created_at,
        employees_path=employees_path,
        absences_path=absences_path,
        status="failed",
        error_code=error_code,
        error_message=message,
    )
    return qc_path, manifest_path


def _fail(
    out_dir: Path,
    *,
    run_id: str,
    created_at: str,
    employees_path: Path | None,
    absences_path: Path,
    message: str,
    error_code: int,
) -> typer.Exit:
    qc_path, manifest_path = _write_failure_artifacts(
        out_dir,
        run_id=run_id,
        created_at=created_at,
        employees_path=employees_path,
        absences_path=absences_path,
        message=message,
        error_code=error_code,
    )
    _err(message)
    console.print(f"  QC report -> {qc_path}")
    console.print(f"  Manifest  -> {manifest_path}")
    return typer.Exit(code=error_code)


def _summary_table(
    employees: ExtractionReport[Employee],
    absences: ExtractionReport[Absence],
    matches: MatchReport | None,
    *,
    title: str,
) -> RichTable:
    tbl = RichTable(title=title, show_lines=True)
    tbl.add_column("Check", style="bold")
    tbl.add_column("Result")

    tbl.add_row("Employees read", str(employees.processed))
    tbl.add_row("Employees skipped", str(len(employees.exclusions) + employees.errored))
    tbl.add_row("Absences read", str(absences.processed))
    tbl.add_row("Excluded (working time/break)", str(absences.excluded))
    tbl.add_row("Skipped (status)", str(absences.skipped_status))
    errored = absences.errored
    tbl.add_row("Row errors", f"[red]{errored}[/red]" if errored else "[green]0[/green]")
    if matches is not None:
        tbl.add_row("Matched", str(matches.matched))
        unmatched = matches.unmatched_count
        tbl.add_row(
            "Unmatched", f"[yellow]{unmatched}[/yellow]" if unmatched else "[green]0[/green]"
        )
        if matches.name_conflicts:
            tbl.add_row("Name conflicts", f"[yellow]{len(matches.name_conflicts)}[/yellow]")
    return tbl


def _print_issues(
    employees: ExtractionReport[Employee],
    absences: ExtractionReport[Absence],
    matches: MatchReport | None,
) -> None:
    errors = [*employees.errors, *absences.errors]
    for err in errors[:MAX_LISTED_ISSUES]:
        console.print(f"  [red]x[/red] row {err.row_index}: {err.message}")
    if len(errors) > MAX_LISTED_ISSUES:
        console.print(f"  … {len(errors) - MAX_LISTED_ISSUES} more row errors in qc_report.json")

    for warning in absences.warnings[:MAX_LISTED_ISSUES]:
        console.print(f"  [yellow]![/yellow] {warning}")
    if len(absences.warnings) > MAX_LISTED_ISSUES:
        more = len(absences.warnings) - MAX_LISTED_ISSUES
        console.print(f"  … {more} more warnings in qc_report.json")

    if matches is not None:
        for key, ids in sorted(matches.name_conflicts.items()):
            console.print(
                f"  [yellow]![/yellow] Name {key!r} shared by {', '.join(ids)}; used {ids[-1]}"
            )


def _load_inputs(
    employees_path: Path,
    absences_path: Path,
    today: date,
    echo: Callable[..., None],
    delimiter: str | None = None,
) -> tuple[ExtractionReport[Employee], ExtractionReport[Absence]]:
    echo("[blue]>[/blue] Reading employees …")
    try:
        employees = load_employees(employees_path, delimiter=delimiter)
    except (FileNotFoundError, ValueError, OSError) as exc:
        raise SourceFailure(f"Employees file: {exc}") from exc
    echo(f"  {employees.processed} employees")

    echo("[blue]>[/blue] Reading absences …")
    try:
        absences = load_absences(absences_path, today=today, delimiter=delimiter)
    except (FileNotFoundError, ValueError, OSError) as exc:
        raise SourceFailure(f"Absences file: {exc}") from exc
    echo(
        f"  {absences.processed} absences, {absences.excluded} excluded, "
        f"{absences.errored} errors"
    )
    return employees, absences


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """absence-reconciler CLI."""


# ── run command ──────────────────────────────────────────────────


@app.command()
def run(
    absences_file: Path = typer.Option(
        ..., "--absences", "-a",
        help="Absence export (XLSX/CSV); data starts on the fourth row.",
    ),
    employees_file: Path | None = typer.Option(
        None, "--employees", "-e",
        help="Employee roster (XLSX/CSV). Defaults to the stored roster.",
    ),
    data_dir: Path = typer.Option(
        DEFAULT_DATA_DIR, "--data-dir",
        envvar="ABSREC_DATA_DIR",
        help="Directory holding the stored roster.",
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for results + QC + manifest.",
    ),
    fmt: OutputFormat = typer.Option(
        OutputFormat.xlsx, "--format", "-f",
        help="Result file format: xlsx or csv.",
    ),
    today_opt: str | None = typer.Option(
        None, "--today",
        envvar="ABSREC_TODAY",
        help="Reference date (YYYY-MM-DD) for the plausibility window.",
    ),
    delimiter: str | None = typer.Option(
        None, "--delimiter", "-d",
        help="CSV delimiter; sniffed from the first lines when omitted.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log every match decision.",
    ),
) -> None:
    """Reconcile an absence export with the roster and write the result file."""
    _configure_logging(_log_level(quiet=quiet, verbose=verbose))
    echo = _printer(quiet)
    created_at = utcnow_iso()
    run_id = created_at
    out_dir.mkdir(parents=True, exist_ok=True)
    employees_path: Path | None = employees_file

    try:
        today = _resolve_today(today_opt)
        employees_path = _resolve_employees_path(employees_file, data_dir)

        if not quiet:
            console.print(Panel(
                f"[bold]absence-reconciler[/bold] v{__version__}\n"
                f"Employees: {employees_path}\nAbsences:  {absences_file}\n"
                f"Output:    {out_dir}",
                title="Reconcile Start", border_style="blue",
            ))
            console.print(f"  Reference date: {today.isoformat()}")

        employees, absences = _load_inputs(
            employees_path, absences_file, today, echo, delimiter
        )
    except SourceFailure as exc:
        raise _fail(
            out_dir,
            run_id=run_id,
            created_at=created_at,
            employees_path=employees_path,
            absences_path=absences_file,
            message=str(exc),
            error_code=2,
        )

    try:
        # ── Match ────────────────────────────────────────────────
        echo("[blue]>[/blue] Matching absences to employees …")
        matches = reconcile(absences.records, employees.records)

        qc_path = write_qc_report(out_dir, employees, absences, matches)
        echo(f"  QC report -> {qc_path}")

        # ── Write results ────────────────────────────────────────
        output_path = out_dir / default_output_name(fmt.value)
        echo(f"[blue]>[/blue] Writing {output_path.name} …")
        write_results(output_path, matches.results)
        echo(f"  Results  -> {output_path}")

        manifest_path = _write_manifest(
            out_dir,
            run_id=run_id,
            created_at=created_at,
            employees_path=employees_path,
            absences_path=absences_file,
            output_path=output_path,
            employees_in=employees.processed,
            absences_in=absences.processed,
            results_out=matches.matched,
        )
        echo(f"  Manifest -> {manifest_path}")

        if not quiet:
            console.print(_summary_table(employees, absences, matches, title="Run Summary"))
            _print_issues(employees, absences, matches)
            console.print(Panel(
                f"[green]Done[/green] — {matches.matched} absences -> {output_path}",
                title="Reconcile Complete", border_style="green",
            ))
    except typer.Exit:
        raise
    except Exception as exc:
        raise _fail(
            out_dir,
            run_id=run_id,
            created_at=created_at,
            employees_path=employees_path,
            absences_path=absences_file,
            message=f"Unexpected internal error: {exc}",
            error_code=1,
        )


# ── validate command ─────────────────────────────────────────────


@app.command()
def validate(
    absences_file: Path = typer.Option(
        ..., "--absences", "-a",
        help="Absence export (XLSX/CSV); data starts on the fourth row.",
    ),
    employees_file: Path | None = typer.Option(
        None, "--employees", "-e",
        help="Employee roster (XLSX/CSV). Defaults to the stored roster.",
    ),
    data_dir: Path = typer.Option(
        DEFAULT_DATA_DIR, "--data-dir",
        envvar="ABSREC_DATA_DIR",
        help="Directory holding the stored roster.",
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for QC + manifest.",
    ),
    today_opt: str | None = typer.Option(
        None, "--today",
        envvar="ABSREC_TODAY",
        help="Reference date (YYYY-MM-DD) for the plausibility window.",
    ),
    delimiter: str | None = typer.Option(
        None, "--delimiter", "-d",
        help="CSV delimiter; sniffed from the first lines when omitted.",
    ),
    strict: bool = typer.Option(
        False, "--strict",
        help="Exit 3 when any row error or unmatched absence is found.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes QC + manifest.",
    ),
) -> None:
    """Check both files and the matching without writing a result file.

    Writes qc_report.json + run_manifest.json only.
    Exit 0 = OK, exit 2 = unreadable input, exit 3 = issues found (--strict).
    """
    # The summary table reports misses and conflicts itself.
    _configure_logging(logging.CRITICAL)
    echo = _printer(quiet)
    created_at = utcnow_iso()
    run_id = created_at
    out_dir.mkdir(parents=True, exist_ok=True)
    employees_path: Path | None = employees_file

    try:
        today = _resolve_today(today_opt)
        employees_path = _resolve_employees_path(employees_file, data_dir)
        if not quiet:
            console.print(Panel(
                f"[bold]absence-reconciler[/bold] v{__version__}  [dim]validate mode[/dim]\n"
                f"Employees: {employees_path}\nAbsences:  {absences_file}",
                title="Validate", border_style="cyan",
            ))
        employees, absences = _load_inputs(
            employees_path, absences_file, today, echo, delimiter
        )
    except SourceFailure as exc:
        raise _fail(
            out_dir,
            run_id=run_id,
            created_at=created_at,
            employees_path=employees_path,
            absences_path=absences_file,
            message=str(exc),
            error_code=2,
        )

    try:
        matches = reconcile(absences.records, employees.records)
        qc_path = write_qc_report(out_dir, employees, absences, matches)
        manifest_path = _write_manifest(
            out_dir,
            run_id=run_id,
            created_at=created_at,
            employees_path=employees_path,
            absences_path=absences_file,
            employees_in=employees.processed,
            absences_in=absences.processed,
            results_out=matches.matched,
        )

        has_issues = bool(
            employees.errored or absences.errored or matches.unmatched_count
        )
        if not quiet:
            tbl = _summary_table(employees, absences, matches, title="Validation Summary")
            tbl.add_row("Status", "[yellow]ISSUES[/yellow]" if has_issues else "[green]PASS[/green]")
            console.print(tbl)
            _print_issues(employees, absences, matches)
            for absence in matches.unmatched[:MAX_LISTED_ISSUES]:
                console.print(
                    f"  [yellow]![/yellow] No roster entry for "
                    f"{absence.first_name} {absence.last_name}"
                )
        console.print(f"  QC       -> {qc_path}")
        console.print(f"  Manifest -> {manifest_path}")

        if strict and has_issues:
            raise typer.Exit(code=3)
    except typer.Exit:
        raise
    except Exception as exc:
        raise _fail(
            out_dir,
            run_id=run_id,
            created_at=created_at,
            employees_path=employees_path,
            absences_path=absences_file,
            message=f"Unexpected internal error: {exc}",
            error_code=1,
        )


# ── roster commands ──────────────────────────────────────────────


@roster_app.command("update")
def roster_update(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="New roster workbook (.xlsx).",
    ),
    data_dir: Path = typer.Option(
        DEFAULT_DATA_DIR, "--data-dir",
        envvar="ABSREC_DATA_DIR",
        help="Directory holding the stored roster.",
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress informational output."),
) -> None:
    """Replace the stored roster (the previous file is kept as a backup)."""
    _configure_logging(_log_level(quiet=quiet, verbose=False))
    store = RosterStore(data_dir)
    try:
        employees = load_employees(input_file)
    except (FileNotFoundError, ValueError, OSError) as exc:
        _err(str(exc))
        raise typer.Exit(code=2)
    if employees.processed == 0:
        _err(f"No employees found in {input_file}; roster not updated.")
        raise typer.Exit(code=2)

    try:
        path = store.update(input_file)
    except (FileNotFoundError, ValueError, OSError) as exc:
        _err(str(exc))
        raise typer.Exit(code=2)
    _printer(quiet)(f"[green]Roster updated[/green] -> {path} ({employees.processed} employees)")


@roster_app.command("status")
def roster_status(
    data_dir: Path = typer.Option(
        DEFAULT_DATA_DIR, "--data-dir",
        envvar="ABSREC_DATA_DIR",
        help="Directory holding the stored roster.",
    ),
) -> None:
    """Show whether a roster is stored, and its size and age."""
    status = RosterStore(data_dir).status()
    tbl = RichTable(title="Roster", show_lines=True)
    tbl.add_column("Field", style="bold")
    tbl.add_column("Value")
    for key, value in status.items():
        tbl.add_row(key, str(value))
    console.print(tbl)
    if not status["exists"]:
        raise typer.Exit(code=1)
