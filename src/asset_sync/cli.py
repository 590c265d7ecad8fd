"""CLI for asset-sync."""

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .cancel import CancelToken, InterruptHandler
from .config import SyncConfig, load_config
from .core import PlanAction, ReconcileReport
from .errors import (
    ConfigError,
    FileNotIndexed,
    ReconciliationCancelled,
    RunLocked,
    ScanError,
    StoreError,
)
from .lock import default_lock_path, run_lock
from .reconciler import Reconciler, reconcile
from .store import SQLiteIndexStore
from .utils import humanize_size, parse_pairs


app = typer.Typer(help="""\
Keep the asset hash index in sync with the files on disk. Scans the asset
tree, compares content digests with the index table, and writes the inserts
and updates needed to bring the index up to date.""")

console = Console()

# Exit codes
EXIT_FATAL = 1
EXIT_PARTIAL = 2

ConfigOption = typer.Option(None, "--config", "-c", help="YAML config file")
RootOption = typer.Option(None, "--root", help="Asset directory to scan")
DatabaseOption = typer.Option(None, "--database", "--db", help="SQLite index database")
TableOption = typer.Option(None, "--table", help="Index table name")
VerboseOption = typer.Option(0, "--verbose", "-v", count=True, help="-v for info, -vv for debug")


def setup_logging(verbose: int) -> None:
    """Route library logging through rich on stderr."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def require_config(
    config: Optional[Path],
    root: Optional[Path] = None,
    database: Optional[Path] = None,
    table: Optional[str] = None,
    **extra,
) -> SyncConfig:
    """Load configuration or exit with a readable error.

    Raises:
        typer.Exit: If the configuration is invalid
    """
    try:
        return load_config(config, root=root, database=database, table=table, **extra)
    except ConfigError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(EXIT_FATAL)


def fail(message: str) -> None:
    """Print a fatal error and exit."""
    console.print(f"[red]✗[/red] {message}")
    raise typer.Exit(EXIT_FATAL)


def display_report(report: ReconcileReport, show_plan: bool = False) -> None:
    """Print a run summary, optionally with every planned write."""
    if show_plan and not report.plan.is_empty:
        table = Table(title="Planned index writes")
        table.add_column("Action")
        table.add_column("Path")
        table.add_column("Id", justify="right")
        table.add_column("Digest")
        for entry in report.plan.entries:
            style = "green" if entry.action == PlanAction.INSERT else "yellow"
            table.add_row(
                f"[{style}]{entry.action.value}[/{style}]",
                entry.path,
                "" if entry.id is None else str(entry.id),
                entry.digest[:12],
            )
        console.print(table)

    for skipped in report.skipped:
        console.print(f"[yellow]⚠[/yellow] Unreadable: {skipped.path} ({skipped.reason})")
    for failure in report.failures:
        console.print(f"[red]✗[/red] Write failed: {failure.path} ({failure.message})")

    console.print(
        f"[dim]Scanned {report.files_scanned} files ({humanize_size(report.bytes_scanned)}) "
        f"against {report.entries_loaded} index entries in {report.duration:.1f}s[/dim]"
    )
    if report.dry_run:
        console.print(f"[cyan]Plan:[/cyan] {report.plan.summary()}")
    elif report.succeeded:
        console.print(f"[green]✓[/green] {report.summary()}")
    else:
        console.print(f"[yellow]⚠[/yellow] {report.summary()}")

    if report.stale:
        console.print(
            f"[dim]{len(report.stale)} index entries have no file on disk "
            f"(run 'asset-sync prune' to remove them)[/dim]"
        )


def _run_pass(cfg: SyncConfig, timeout: Optional[float], dry_run: bool) -> ReconcileReport:
    token = CancelToken(deadline=timeout or cfg.timeout)
    try:
        with InterruptHandler(token):
            return reconcile(cfg, cancel=token, dry_run=dry_run)
    except RunLocked as e:
        fail(str(e))
    except ScanError as e:
        fail(str(e))
    except StoreError as e:
        fail(f"Index store error: {e}")
    except ReconciliationCancelled as e:
        fail(str(e))


@app.command()
def run(
    config: Optional[Path] = ConfigOption,
    root: Optional[Path] = RootOption,
    database: Optional[Path] = DatabaseOption,
    table: Optional[str] = TableOption,
    dry_run: bool = typer.Option(False, "--dry-run", help="Compute the plan without writing"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Abort the pass after N seconds"),
    verbose: int = VerboseOption,
):
    """Run one reconciliation pass.

    Exits 1 on fatal errors and 2 when some index writes failed.
    """
    setup_logging(verbose)
    cfg = require_config(config, root, database, table)
    report = _run_pass(cfg, timeout, dry_run)
    display_report(report, show_plan=dry_run)
    if report.failures:
        raise typer.Exit(EXIT_PARTIAL)


@app.command()
def plan(
    config: Optional[Path] = ConfigOption,
    root: Optional[Path] = RootOption,
    database: Optional[Path] = DatabaseOption,
    table: Optional[str] = TableOption,
    verbose: int = VerboseOption,
):
    """Show the inserts and updates the next pass would make."""
    setup_logging(verbose)
    cfg = require_config(config, root, database, table)
    report = _run_pass(cfg, None, dry_run=True)
    display_report(report, show_plan=True)


@app.command()
def prune(
    config: Optional[Path] = ConfigOption,
    root: Optional[Path] = RootOption,
    database: Optional[Path] = DatabaseOption,
    table: Optional[str] = TableOption,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    verbose: int = VerboseOption,
):
    """Remove index entries whose files are gone from disk."""
    setup_logging(verbose)
    cfg = require_config(config, root, database, table)

    try:
        with run_lock(cfg.lock_path or default_lock_path(cfg.database)):
            with Reconciler(cfg) as reconciler:
                stale = reconciler.stale_entries()
                if not stale:
                    console.print("[green]✓[/green] No stale index entries")
                    return

                console.print(f"{len(stale)} stale index entries:")
                for entry in stale:
                    console.print(f"  [red]-[/red] {entry.path}")
                if not yes:
                    typer.confirm("Remove them from the index?", abort=True)

                # Only the entries listed above
                removed = reconciler.prune(entries=stale)
                console.print(f"[green]✓[/green] Pruned {len(removed)} entries")
    except (RunLocked, ScanError, ReconciliationCancelled) as e:
        fail(str(e))
    except StoreError as e:
        fail(f"Index store error: {e}")


@app.command()
def check(
    pairs: List[str] = typer.Argument(..., help="PATH=DIGEST pairs held by a client"),
    config: Optional[Path] = ConfigOption,
    database: Optional[Path] = DatabaseOption,
    table: Optional[str] = TableOption,
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    verbose: int = VerboseOption,
):
    """Report which client-held digests are out of date."""
    setup_logging(verbose)
    cfg = require_config(config, database=database, table=table)
    try:
        parsed = parse_pairs(pairs)
    except ValueError as e:
        fail(str(e))

    try:
        with Reconciler(cfg) as reconciler:
            expired = reconciler.expired_paths(parsed)
    except FileNotIndexed as e:
        if as_json:
            console.print_json(json.dumps({"error": "file-not-found", "message": str(e)}))
            raise typer.Exit(EXIT_FATAL)
        fail(str(e))
    except StoreError as e:
        fail(f"Index store error: {e}")

    if as_json:
        console.print_json(json.dumps({"result": {"expired_hashes": expired}}))
        return
    if not expired:
        console.print(f"[green]✓[/green] All {len(parsed)} digests are current")
        return
    for path in expired:
        console.print(f"[yellow]↻[/yellow] {path}")
    console.print(f"{len(expired)} of {len(parsed)} digests are out of date")


@app.command("init-db")
def init_db(
    config: Optional[Path] = ConfigOption,
    database: Optional[Path] = DatabaseOption,
    table: Optional[str] = TableOption,
    verbose: int = VerboseOption,
):
    """Create the index table if it does not exist."""
    setup_logging(verbose)
    cfg = require_config(config, database=database, table=table)
    store = SQLiteIndexStore(cfg.database, table=cfg.table, pool_size=1)
    try:
        store.ensure_schema()
        count = store.count()
    except StoreError as e:
        fail(f"Index store error: {e}")
    finally:
        store.close()
    console.print(f"[green]✓[/green] Table {cfg.table} ready in {cfg.database} ({count} entries)")


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
