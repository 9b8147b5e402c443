"""CineCRM CLI - spreadsheet import and data repair commands.

Commands:
- init: Initialize database schema
- import-all: Import every workbook in dependency order
- import-rma: Import rma_cases.xlsx only
- import-dtr: Import dtr_cases.xlsx only
- create-missing-audis: Place projectors the sheets describe and relink cases
- fix-auto-audis: Reconcile AUTO-* placeholder audis with the sheets
- fix-site-typos: Correct known site-name misspellings
- cleanup-orphans: Delete cases with no surviving projector evidence
- remove-duplicate-cases: Delete suffixed import duplicates
- stats: Show entity counts

Behaviour is driven by which workbooks exist in the data directory
(CRM_DATA_DIR, default ``data/``).
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy import func, select

from cinecrm.config import get_config
from cinecrm.core.logging import configure_logging
from cinecrm.db.connection import close_db, get_session, init_db
from cinecrm.db.models import (
    AudiModel,
    DTRCaseModel,
    ProjectorModel,
    ProjectorModelModel,
    RMACaseModel,
    SiteModel,
    UserModel,
)
from cinecrm.ingestion.cases import DTRCaseImporter, RMACaseImporter
from cinecrm.ingestion.crossref import PLACEMENT_FILES, load_cross_reference
from cinecrm.ingestion.runner import run_bulk_import, run_importer
from cinecrm.ingestion.types import ImportStats, ImportStatus
from cinecrm.models import AUTO_AUDI_PREFIX
from cinecrm.reconcile.auto_audis import fix_auto_audis
from cinecrm.reconcile.duplicates import remove_suffixed_duplicates
from cinecrm.reconcile.orphans import cleanup_orphaned_cases
from cinecrm.reconcile.relink import create_missing_audis, relink_orphaned_cases
from cinecrm.reconcile.sites import fix_site_typos

app = typer.Typer(
    name="cinecrm",
    help="CineCRM - spreadsheet import and reconciliation for projector service cases",
    no_args_is_help=True,
)

console = Console()

T = TypeVar("T")


@app.callback()
def main(
    log_level: str | None = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
):
    """Configure logging once for every command."""
    try:
        config = get_config()
    except KeyError as e:
        console.print(f"[red]✗ Fatal error: {e.args[0]}[/red]")
        raise typer.Exit(code=1) from e
    configure_logging(log_level or config.log_level, json_logs=config.log_format == "json")


def _run(work: Callable[[], Awaitable[T]]) -> T:
    """Run an async command body; any unhandled error exits with status 1."""

    async def _wrapped():
        try:
            return await work()
        finally:
            await close_db()

    try:
        return asyncio.run(_wrapped())
    except Exception as e:
        console.print(f"[red]✗ Fatal error: {e}[/red]")
        raise typer.Exit(code=1) from e


def _data_dir(data_dir: Path | None) -> Path:
    return data_dir or get_config().imports.data_dir


def _print_import_summary(results: dict[str, ImportStats]) -> None:
    preview = get_config().imports.error_preview

    table = Table(title="Import Summary")
    table.add_column("Workbook", style="cyan")
    table.add_column("Status", style="bold")
    table.add_column("Total", justify="right")
    table.add_column("Success", justify="right", style="green")
    table.add_column("Skipped", justify="right")
    table.add_column("Failed", justify="right", style="red")

    for name, stats in results.items():
        style = {
            ImportStatus.SUCCESS: "green",
            ImportStatus.PARTIAL_SUCCESS: "yellow",
            ImportStatus.FAILED: "red",
        }.get(stats.status, "dim")
        table.add_row(
            name,
            f"[{style}]{stats.status.value}[/{style}]",
            str(stats.total),
            str(stats.success),
            str(stats.skipped),
            str(stats.failed),
        )

    console.print(table)

    for name, stats in results.items():
        if stats.file_error:
            console.print(f"[red]✗ {name}:[/red] {stats.file_error}")
        if stats.errors:
            console.print(f"\n[yellow]⚠ {name}: {stats.failed} failed rows[/yellow]")
            for err in stats.errors[:preview]:
                console.print(f"  {err}", style="dim")
            if len(stats.errors) > preview:
                console.print(f"  ... and {len(stats.errors) - preview} more", style="dim")

    total = sum(s.total for s in results.values())
    success = sum(s.success for s in results.values())
    console.print(f"\n[bold green]✓[/bold green] {success}/{total} rows imported")


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")
    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")

    _run(lambda: init_db(drop=drop))
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command(name="import-all")
def import_all_cmd(
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Workbook directory"),
):
    """Import sites, models, projectors, audis, RMA and DTR cases."""
    directory = _data_dir(data_dir)
    console.print(f"[bold]Bulk import from[/bold] {directory}")

    async def _import():
        async with get_session() as session:
            return await run_bulk_import(session, directory, get_config().imports)

    _print_import_summary(_run(_import))


def _import_cases(importer_cls, data_dir: Path | None) -> None:
    directory = _data_dir(data_dir)
    config = get_config().imports
    console.print(f"[bold]Importing {importer_cls.filename} from[/bold] {directory}")

    async def _import():
        async with get_session() as session:
            importer = importer_cls(session, default_creator_email=config.default_creator_email)
            return {importer.source_name: await run_importer(importer, directory, config)}

    _print_import_summary(_run(_import))


@app.command(name="import-rma")
def import_rma_cmd(
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Workbook directory"),
):
    """Import RMA cases only."""
    _import_cases(RMACaseImporter, data_dir)


@app.command(name="import-dtr")
def import_dtr_cmd(
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Workbook directory"),
):
    """Import DTR cases only."""
    _import_cases(DTRCaseImporter, data_dir)


@app.command(name="create-missing-audis")
def create_missing_audis_cmd(
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Workbook directory"),
):
    """Create or link audis from the sheets, then relink orphaned cases."""
    directory = _data_dir(data_dir)

    async def _create():
        crossref = load_cross_reference(directory)
        async with get_session() as session:
            created = await create_missing_audis(session, crossref)
            relinked = await relink_orphaned_cases(session)
        return created, relinked

    created, relinked = _run(_create)

    table = Table(title="Missing Audis")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="green")
    table.add_row("Audis created", str(created.created))
    table.add_row("Existing audis linked", str(created.linked))
    table.add_row("Already linked", str(created.already_linked))
    table.add_row("Not placeable", str(created.skipped))
    table.add_row("DTR cases relinked", str(relinked.dtr_fixed))
    table.add_row("RMA cases relinked", str(relinked.rma_fixed))
    table.add_row("Cases without a holding audi", str(relinked.unresolved))
    console.print(table)

    for err in created.errors:
        console.print(f"  [red]✗[/red] {err}")


@app.command(name="fix-auto-audis")
def fix_auto_audis_cmd(
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Workbook directory"),
):
    """Rename, move or merge AUTO-* placeholder audis using the sheets."""
    directory = _data_dir(data_dir)

    async def _fix():
        crossref = load_cross_reference(directory, PLACEMENT_FILES)
        async with get_session() as session:
            return await fix_auto_audis(session, crossref)

    report = _run(_fix)

    table = Table(title=f"{AUTO_AUDI_PREFIX}* Audis")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="green")
    table.add_row("Fixed", str(report.fixed))
    table.add_row("Merged", str(report.merged))
    table.add_row("Skipped", str(report.skipped))
    table.add_row("Errors", str(len(report.errors)))
    table.add_row("Total", str(report.total))
    console.print(table)

    for err in report.errors:
        console.print(f"  [red]✗[/red] {err}")


@app.command(name="fix-site-typos")
def fix_site_typos_cmd():
    """Correct known site-name misspellings, merging into existing sites."""

    async def _fix():
        async with get_session() as session:
            return await fix_site_typos(session)

    report = _run(_fix)

    for change in report.renamed:
        console.print(f"  [green]✏[/green] Renamed {change}")
    for change in report.merged:
        console.print(f"  [green]🔄[/green] Merged {change}")
    for err in report.errors:
        console.print(f"  [red]✗[/red] {err}")

    fixed = len(report.renamed) + len(report.merged)
    console.print(f"\n[bold green]✓[/bold green] Fixed {fixed} site name typo(s)")


@app.command(name="cleanup-orphans")
def cleanup_orphans_cmd(
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Workbook directory"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report without deleting"),
):
    """Delete cases whose serial has no audi, projector or spreadsheet entry."""
    directory = _data_dir(data_dir)
    if dry_run:
        console.print("[yellow]DRY RUN MODE - No changes will be made[/yellow]\n")

    async def _cleanup():
        crossref = load_cross_reference(directory, PLACEMENT_FILES)
        async with get_session() as session:
            return await cleanup_orphaned_cases(session, crossref, dry_run=dry_run)

    report = _run(_cleanup)
    preview = get_config().imports.error_preview

    table = Table(title="Orphan Cleanup")
    table.add_column("Cases", style="cyan")
    table.add_column("Checked", justify="right")
    table.add_column("Valid", justify="right", style="green")
    table.add_column("Orphaned (kept)", justify="right", style="yellow")
    table.add_column("To delete" if dry_run else "Deleted", justify="right", style="red")

    for findings in (report.dtr, report.rma):
        removed = len(findings.to_delete) if dry_run else findings.deleted
        table.add_row(
            findings.case_type.value,
            str(findings.checked),
            str(findings.valid),
            str(len(findings.orphaned_kept)),
            str(removed),
        )
    console.print(table)

    for findings in (report.dtr, report.rma):
        for label in findings.to_delete[:preview]:
            console.print(f"  [red]🗑[/red] {label}", style="dim")
        for label in findings.orphaned_kept[:preview]:
            console.print(f"  [yellow]⚠[/yellow] {label} (kept)", style="dim")


@app.command(name="remove-duplicate-cases")
def remove_duplicate_cases_cmd(
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Workbook directory"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report without deleting"),
):
    """Delete cases stored twice under a suffixed identifier (C-1, C-2...)."""
    directory = _data_dir(data_dir)
    if dry_run:
        console.print("[yellow]DRY RUN MODE - No changes will be made[/yellow]\n")

    async def _remove():
        async with get_session() as session:
            return await remove_suffixed_duplicates(session, directory, dry_run=dry_run)

    report = _run(_remove)
    preview = get_config().imports.error_preview

    for case_type in report.skipped:
        console.print(
            f"[yellow]⚠ {case_type.value}: no workbook rows, cases left untouched[/yellow]"
        )
    console.print(f"[bold]Suffixed duplicates found:[/bold] {len(report.duplicates)}")
    for dup in report.duplicates[:preview]:
        console.print(
            f"  {dup.case_type.value} {dup.identifier} - duplicate of {dup.original}", style="dim"
        )
    if len(report.duplicates) > preview:
        console.print(f"  ... and {len(report.duplicates) - preview} more", style="dim")

    if not dry_run:
        console.print(f"[bold green]✓[/bold green] Deleted {report.deleted} case(s)")
    for case_type, count in report.remaining.items():
        console.print(f"  {case_type.value} cases now: {count}")


@app.command()
def stats():
    """Show entity counts."""

    async def _stats():
        counts = {}
        async with get_session() as session:
            for label, model in (
                ("Sites", SiteModel),
                ("Projector Models", ProjectorModelModel),
                ("Projectors", ProjectorModel),
                ("Audis", AudiModel),
                ("Users", UserModel),
                ("DTR Cases", DTRCaseModel),
                ("RMA Cases", RMACaseModel),
            ):
                result = await session.execute(select(func.count(model.id)))
                counts[label] = result.scalar_one()

            result = await session.execute(
                select(func.count(AudiModel.id)).where(
                    AudiModel.audi_no.startswith(AUTO_AUDI_PREFIX)
                )
            )
            counts["Placeholder Audis"] = result.scalar_one()
        return counts

    counts = _run(_stats)

    table = Table(title="Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="green")
    for label, count in counts.items():
        table.add_row(label, str(count))
    console.print(table)


if __name__ == "__main__":
    app()
