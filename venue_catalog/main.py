#!/usr/bin/env python3
"""
Venue Catalog - Deduplication Engine Entry Point

Usage:
    python -m venue_catalog.main init-db
    python -m venue_catalog.main status
    python -m venue_catalog.main dedup plan
    python -m venue_catalog.main dedup run --yes
    python -m venue_catalog.main dedup resume 20260101_120000_a1b2c3
    python -m venue_catalog.main dedup show 20260101_120000_a1b2c3
"""

import json
import signal
import sys
import threading
from contextlib import contextmanager
from pathlib import Path

import click
from loguru import logger
from rich.console import Console
from rich.table import Table

from venue_catalog.config import settings
from venue_catalog.database import create_all_tables, drop_all_tables
from venue_catalog.deduplication.executor import RunSummary, collect_progress
from venue_catalog.deduplication.plan import DeduplicationPlan
from venue_catalog.deduplication.runner import resume_run, run_deduplication
from venue_catalog.deduplication.sinks import make_sink
from venue_catalog.errors import PlanArtifactError, StoreError, StoreReadError
from venue_catalog.models import VenueRecord
from venue_catalog.store import SqlVenueStore


console = Console()


@contextmanager
def stop_on_signals():
    """Turn SIGINT/SIGTERM into a stop request checked between plan entries."""
    stop = threading.Event()
    previous = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}

    def _request_stop(signum, frame):
        if stop.is_set():
            raise KeyboardInterrupt
        console.print("\n[yellow]Stop requested; finishing the current entry...[/yellow]")
        stop.set()

    for sig in previous:
        signal.signal(sig, _request_stop)
    try:
        yield stop
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def print_plan_preview(plan: DeduplicationPlan, limit: int = 20) -> None:
    table = Table(title=f"Plan {plan.run_id}")
    table.add_column("Locality")
    table.add_column("Keeper")
    table.add_column("Removes", justify="right")
    table.add_column("Justification")

    for entry in plan.entries[:limit]:
        table.add_row(
            entry.locality or "-",
            entry.keeper_name[:40],
            str(len(entry.remove_ids)),
            entry.justification,
        )

    console.print(table)
    if len(plan.entries) > limit:
        console.print(f"[dim]Showing {limit} of {len(plan.entries)} entries[/dim]")

    console.print(
        f"Records scanned: {plan.records_scanned}  "
        f"Groups considered: {plan.groups_considered}  "
        f"Distinct: {plan.groups_distinct}  "
        f"To merge: {len(plan.entries)}  "
        f"To remove: {plan.removal_count}"
    )
    if plan.distinct_by_rule:
        rules = ", ".join(f"{rule}={count}" for rule, count in sorted(plan.distinct_by_rule.items()))
        console.print(f"[dim]Distinct by rule: {rules}[/dim]")


def print_summary(summary: RunSummary) -> None:
    console.print("\n[bold]Deduplication Summary[/bold]")
    table = Table()
    table.add_column("Metric")
    table.add_column("Value", justify="right")

    table.add_row("Groups considered", str(summary.groups_considered))
    table.add_row("Groups distinct", str(summary.groups_distinct))
    table.add_row("Groups processed", str(summary.groups_processed))
    table.add_row("Records kept", str(summary.records_kept))
    table.add_row("Records updated", str(summary.records_updated))
    table.add_row("Records deleted", str(summary.records_deleted))
    table.add_row("Updates failed", str(summary.updates_failed))
    table.add_row("Deletes failed", str(summary.deletes_failed))
    table.add_row("Removals skipped", str(summary.deletes_skipped))
    if summary.entries_skipped:
        table.add_row("Entries already applied", str(summary.entries_skipped))
    if summary.duration_seconds is not None:
        table.add_row("Duration", f"{summary.duration_seconds:.1f}s")

    console.print(table)

    if summary.cancelled:
        console.print(
            f"[yellow]Run stopped before completion. "
            f"Continue with: dedup resume {summary.run_id}[/yellow]"
        )
    elif summary.operations_failed:
        console.print(f"[red]{summary.operations_failed} operations failed[/red]")
    else:
        console.print("[green]All operations succeeded[/green]")


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def cli(debug):
    """Venue Catalog Deduplication Engine"""
    if debug:
        from venue_catalog.utils.logging import setup_logging
        setup_logging(level="DEBUG")


@cli.command("init-db")
@click.option("--drop", is_flag=True, help="Drop existing tables before creating (USE WITH CAUTION!)")
@click.option("--seed", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="JSON file with a list of venue records to insert")
def init_db(drop: bool, seed: Path | None):
    """Create database tables, optionally loading venues from a JSON file."""
    if drop:
        click.confirm("Are you sure you want to drop all tables?", abort=True)
        drop_all_tables()
        logger.info("Tables dropped.")

    create_all_tables()
    console.print("[green]Tables created[/green]")

    if seed:
        with open(seed, encoding="utf-8") as f:
            data = json.load(f)
        try:
            count = SqlVenueStore().add_all(VenueRecord.from_dict(item) for item in data)
        except StoreError as e:
            console.print(f"[red]Seeding failed: {e}[/red]")
            sys.exit(1)
        console.print(f"[green]Inserted {count} venues from {seed}[/green]")


@cli.command()
def status():
    """Show venue counts and recent deduplication runs."""
    console.print("\n[bold blue]Venue Catalog - Status[/bold blue]\n")

    try:
        venue_count = SqlVenueStore().count()
    except StoreReadError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    stats_table = Table()
    stats_table.add_column("Metric")
    stats_table.add_column("Value")
    stats_table.add_row("Venues", str(venue_count))
    stats_table.add_row("Plan sink", settings.dedup.plan_sink)
    stats_table.add_row("Strategies", ", ".join(settings.dedup.strategies))
    console.print(stats_table)

    try:
        runs = make_sink(settings.dedup).list_runs()
    except PlanArtifactError as e:
        console.print(f"[yellow]Could not list runs: {e}[/yellow]")
        return

    if not runs:
        console.print("[dim]No deduplication runs recorded[/dim]")
        return

    console.print("\n[bold]Recent Runs[/bold]")
    for run_id in runs[:10]:
        console.print(f"  {run_id}")


@cli.group()
def dedup():
    """Venue deduplication operations."""
    pass


def _run(execute: bool) -> None:
    store = SqlVenueStore()
    sink = make_sink(settings.dedup)

    try:
        with stop_on_signals() as stop:
            result = run_deduplication(
                store,
                sink,
                settings.dedup,
                execute=execute,
                should_stop=stop.is_set,
            )
    except StoreReadError as e:
        console.print(f"[red]Could not read venues: {e}[/red]")
        logger.error(f"Store read failed, no plan produced: {e}")
        sys.exit(1)
    except PlanArtifactError as e:
        console.print(f"[red]Could not persist plan, nothing was changed: {e}[/red]")
        sys.exit(1)

    print_plan_preview(result.plan)
    console.print(f"Plan saved: {result.location}")
    if result.summary:
        print_summary(result.summary)


@dedup.command("plan")
def dedup_plan():
    """Build and save a deduplication plan without changing any records."""
    console.print("\n[bold blue]Venue Catalog - Deduplication Plan[/bold blue]\n")
    _run(execute=False)


@dedup.command("run")
@click.confirmation_option(
    "--yes",
    prompt="This merges and deletes duplicate venues. Continue?",
    help="Run without asking for confirmation",
)
def dedup_run():
    """Build a plan, save it and apply it."""
    console.print("\n[bold blue]Venue Catalog - Deduplication[/bold blue]\n")
    _run(execute=True)


@dedup.command("resume")
@click.argument("run_id")
def dedup_resume(run_id: str):
    """Continue applying a saved plan after an interruption."""
    console.print(f"\n[bold blue]Resuming run {run_id}[/bold blue]\n")
    try:
        with stop_on_signals() as stop:
            result = resume_run(run_id, SqlVenueStore(), make_sink(settings.dedup), should_stop=stop.is_set)
    except PlanArtifactError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    print_summary(result.summary)


@dedup.command("show")
@click.argument("run_id")
@click.option("--limit", type=int, default=20, help="Number of entries to show")
def dedup_show(run_id: str, limit: int):
    """Show a saved plan and how far its execution got."""
    try:
        plan, outcomes = make_sink(settings.dedup).load(run_id)
    except PlanArtifactError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    print_plan_preview(plan, limit=limit)

    progress = collect_progress(outcomes)
    applied = sum(1 for e in plan.entries if e.entry_id in progress and progress[e.entry_id].is_complete(e))
    partial = sum(1 for e in plan.entries if e.entry_id in progress and not progress[e.entry_id].is_complete(e))
    pending = len(plan.entries) - applied - partial
    console.print(f"Applied: {applied}  Partial: {partial}  Pending: {pending}")


if __name__ == "__main__":
    cli()
