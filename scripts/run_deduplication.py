#!/usr/bin/env python3
"""CLI script to detect (and optionally merge) duplicate business records."""

from __future__ import annotations

from pathlib import Path

import pandas as pd
import structlog
import typer

from supplierlens.config import get_settings
from supplierlens.db import get_connection
from supplierlens.entity_resolution import (
    DedupeConfidenceAdjuster,
    DeduplicationConfig,
    compute_resolution_metrics,
    find_duplicates,
    generate_validation_report,
    merge_candidates,
    save_records,
)
from supplierlens.events import LoggingSink
from supplierlens.ingest import read_records_file
from supplierlens.store import InMemoryStore, PostgresStore

logger = structlog.get_logger(__name__)
app = typer.Typer()


@app.command()
def main(
    input_path: Path = typer.Argument(..., help="CSV or JSON export of business records"),
    auto_merge: bool = typer.Option(
        False, "--auto-merge", help="Merge every pair classified as 'merge'"
    ),
    use_postgres: bool = typer.Option(
        False, "--postgres", help="Persist records and merges in the kv_store table"
    ),
    workers: int = typer.Option(1, help="Threads used to score records"),
    dedupe_settings: Path | None = typer.Option(
        None, help="Path to a trained dedupe model used for pair confidence"
    ),
    labels: Path | None = typer.Option(
        None, help="CSV of labelled pairs (business1, business2, same_entity) to validate against"
    ),
) -> None:
    """Load a batch, detect duplicates, and print a summary."""
    settings = get_settings()
    config = DeduplicationConfig.from_settings(settings)

    loaded = read_records_file(input_path)
    for record_id, reason in loaded.rejected:
        logger.warning("input_record_rejected", record_id=record_id, reason=reason)

    adjuster = None
    settings_path = dedupe_settings or (
        Path(settings.dedupe_settings_path) if settings.dedupe_settings_path else None
    )
    if settings_path is not None and settings_path.exists():
        adjuster = DedupeConfidenceAdjuster.from_settings_file(settings_path)

    conn = get_connection(settings) if use_postgres else None
    try:
        if conn is not None:
            store = PostgresStore(conn)
            store.ensure_schema()
            logger.info("expired_keys_purged", count=store.purge_expired())
        else:
            store = InMemoryStore()

        save_records(store, loaded.records)
        result = find_duplicates(
            loaded.records,
            config,
            store=store,
            sink=LoggingSink(),
            adjuster=adjuster,
            workers=workers,
            settings=settings,
        )
        logger.info("detection_summary", **result.report.summary())

        for candidate in result.candidates:
            typer.echo(
                f"{candidate.business1}\t{candidate.business2}\t"
                f"{candidate.similarity_score:.3f}\t{candidate.confidence:.3f}\t"
                f"{candidate.suggested_action.value}"
            )

        if auto_merge:
            merge_report = merge_candidates(store, result.candidates, settings=settings)
            logger.info("merge_summary", **merge_report.summary())

        if conn is not None:
            conn.commit()

        if labels is not None:
            truth = pd.read_csv(labels, dtype={"business1": str, "business2": str})
            truth["same_entity"] = truth["same_entity"].astype(str).str.lower().isin(
                ["1", "true", "yes"]
            )
            metrics = compute_resolution_metrics(
                result.candidates, truth.to_dict(orient="records")
            )
            typer.echo(generate_validation_report(metrics))
    finally:
        if conn is not None:
            conn.close()


if __name__ == "__main__":
    app()
