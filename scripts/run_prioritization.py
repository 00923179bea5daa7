#!/usr/bin/env python3
"""CLI script to score and rank a batch of business records."""

from __future__ import annotations

from pathlib import Path

import structlog
import typer

from supplierlens.config import get_settings
from supplierlens.db import get_connection
from supplierlens.events import LoggingSink
from supplierlens.ingest import read_records_file
from supplierlens.prioritization import (
    EmptyScoringContext,
    HttpRecommendationRefiner,
    PrioritizationCriteria,
    StoreScoringContext,
    calculate_batch_priority_scores,
    get_scoring_statistics,
)
from supplierlens.store import InMemoryStore, PostgresStore

logger = structlog.get_logger(__name__)
app = typer.Typer()


@app.command()
def main(
    input_path: Path = typer.Argument(..., help="CSV or JSON export of business records"),
    top: int = typer.Option(25, help="Number of ranked records to print"),
    refine: bool = typer.Option(
        False, "--refine", help="Ask the configured recommendation endpoint for extra actions"
    ),
    use_postgres: bool = typer.Option(
        False,
        "--postgres",
        help="Read relationships and nearby counts from, and cache scores in, the kv_store table",
    ),
) -> None:
    """Score every record and print a tiered ranking."""
    settings = get_settings()
    criteria = PrioritizationCriteria.from_settings(settings)

    loaded = read_records_file(input_path)
    refiner = HttpRecommendationRefiner.from_settings(settings) if refine else None

    conn = get_connection(settings) if use_postgres else None
    try:
        if conn is not None:
            store = PostgresStore(conn)
            store.ensure_schema()
            context = StoreScoringContext(store)
        else:
            # A fresh in-memory store holds no relationship data.
            store = InMemoryStore()
            context = EmptyScoringContext()

        result = calculate_batch_priority_scores(
            loaded.records,
            criteria,
            context=context,
            refiner=refiner,
            store=store,
            settings=settings,
            sink=LoggingSink(),
        )
        if conn is not None:
            conn.commit()

        names = {r.id: r.name for r in loaded.records}
        for score in result.scores[:top]:
            typer.echo(
                f"{score.overall_score:>3}  {score.tier.value:<8}  "
                f"{score.business_id}  {names.get(score.business_id, '')}"
            )

        logger.info("scoring_statistics", **get_scoring_statistics(store))
    finally:
        if refiner is not None:
            refiner.close()
        if conn is not None:
            conn.close()


if __name__ == "__main__":
    app()
