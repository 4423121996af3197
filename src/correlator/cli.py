#!/usr/bin/env python3
"""Correlator CLI for database maintenance."""

import argparse

import questionary
from rich.console import Console
from rich.table import Table

from correlator.config import config
from correlator.correlation import Correlation, CorrelationRepository
from correlator.dataset import Dataset
from correlator.db import Database
from correlator.evolution import EvolutionRecord
from correlator.logs import configure_logging
from correlator.repository import Repository
from correlator.signature import DatasetSignature
from correlator.training import TrainingEpisode
from correlator.validation import Validation

console = Console()

ENTITIES = [Dataset, DatasetSignature, Correlation, Validation, TrainingEpisode, EvolutionRecord]


def init_db(db: Database):
    """Apply the SQL migrations to the configured database."""
    summary = f"Will apply migrations from [bold]{config.migrations_path}[/]."
    console.print(f"[yellow]{summary}[/]")

    if not questionary.confirm("Proceed with these changes?").ask():
        console.print("[dim]Cancelled.[/]")
        return

    applied = db.apply_migrations(config.migrations_path)
    console.print(f"[green]Applied {len(applied)} migration(s).[/]")
    for name in applied:
        console.print(f"  {name}")


def show_stats(db: Database):
    """Print row totals per table."""
    table = Table(title="Correlator tables")
    table.add_column("Table")
    for column in ("Total", "Last 24h", "Last 7d", "Last 30d"):
        table.add_column(column, justify="right")

    for model in ENTITIES:
        stats = Repository(model, db).stats()
        table.add_row(
            model.table_name,
            str(stats.get("total", 0)),
            str(stats.get("last_24h", 0)),
            str(stats.get("last_7d", 0)),
            str(stats.get("last_30d", 0)),
        )

    console.print(table)


def select_correlation(repo: CorrelationRepository) -> Correlation | None:
    """Prompt the user to select a correlation that is not yet archived."""
    correlations = repo.find_all(where={"status": ["proposed", "validated", "invalidated"]})
    if not correlations:
        console.print("[red]No correlations found.[/]")
        return None
    return questionary.select(
        "Select a correlation:",
        choices=[
            questionary.Choice(
                title=(
                    f"{c.type} {c.source_dataset_id} -> {c.target_dataset_id} "
                    f"({c.status}, confidence {c.confidence:.2f})"
                ),
                value=c,
            )
            for c in correlations
        ],
    ).ask()


def archive_correlation(db: Database):
    """Archive a selected correlation, keeping its row."""
    repo = CorrelationRepository(db)
    correlation = select_correlation(repo)
    if not correlation:
        return

    console.print(f"[yellow]Will archive correlation [bold]{correlation.id}[/].[/]")
    if not questionary.confirm("Proceed with these changes?").ask():
        console.print("[dim]Cancelled.[/]")
        return

    archived = repo.archive(correlation.id)
    console.print(f"[green]Archived correlation {archived.id}.[/]")


def main():
    parser = argparse.ArgumentParser(description="Correlator CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Apply SQL migrations")
    subparsers.add_parser("stats", help="Show row counts per table")
    subparsers.add_parser("archive-correlation", help="Archive a correlation")

    args = parser.parse_args()
    configure_logging(config.log_level)

    db = Database.from_config(config)
    try:
        if args.command == "init-db":
            init_db(db)
        elif args.command == "stats":
            show_stats(db)
        elif args.command == "archive-correlation":
            archive_correlation(db)
    finally:
        db.close()


if __name__ == "__main__":
    main()
