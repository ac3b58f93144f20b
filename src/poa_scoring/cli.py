"""CLI for the POA scoring engine."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated

import structlog
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from poa_scoring import __version__
from poa_scoring.core.config import ScoringConfig, load_config
from poa_scoring.core.errors import (
    ComputationError,
    ConfigurationError,
    InvalidVoteShape,
    NotFoundError,
    RetryableVoteError,
)
from poa_scoring.services.scoring import (
    AwaitingData,
    DirtyRecomputeWorker,
    ScoringService,
)
from poa_scoring.services.storage import ScoringStore
from poa_scoring.services.voting import StatisticsRebuilder, VoteEvent, VoteProcessor

# Configure structlog
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

app = typer.Typer(
    name="poa-scoring",
    help="POA Scoring Engine - Bayesian Elo, normalized sliders and gated NFT score publishing",
    add_completion=False,
)
console = Console()

ConfigOption = Annotated[
    Path | None, typer.Option("--config", "-c", help="Path to config YAML file")
]
DatabaseOption = Annotated[
    str | None, typer.Option("--database", "-d", help="Database URL (overrides config)")
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-V", help="Verbose output")]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"poa-scoring v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
) -> None:
    """POA Scoring Engine CLI."""


def _configure_logging(verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load(config_path: Path | None, database: str | None) -> ScoringConfig:
    config = load_config(config_path) if config_path else ScoringConfig()
    if database:
        config = config.model_copy(update={"database_url": database})
    return config


def _fail(message: str, error: Exception) -> typer.Exit:
    console.print(f"[red]{message}[/red] {escape(str(error))}")
    return typer.Exit(1)


def _read_events(path: Path) -> list[tuple[int, dict]]:
    events = []
    with path.open(encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            events.append((line_no, json.loads(line)))
    return events


@app.command()
def validate(
    config_path: Annotated[Path, typer.Argument(help="Path to config YAML file")],
) -> None:
    """Validate a configuration file.

    Args:
        config_path: Path to YAML configuration file.
    """
    try:
        config = load_config(config_path)
        console.print("[green]Configuration is valid![/green]")
        console.print(
            f"  Weights: elo={config.weights.elo} slider={config.weights.slider} "
            f"fire={config.weights.fire}"
        )
        console.print(
            f"  Elo: mean={config.elo.initial_mean} uncertainty={config.elo.initial_uncertainty} "
            f"k={config.elo.k_factor}"
        )
        publish = config.publish
        console.print(
            f"  Publish minimums: h2h={publish.min_h2h_matchups} "
            f"opponents={publish.min_unique_opponents} sliders={publish.min_slider_ratings} "
            f"raters={publish.min_unique_slider_users}"
        )
        console.print(f"  Grace period: {publish.grace_period_seconds}s")
        console.print(f"  Database: {config.database_url}")

    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    except ConfigurationError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1) from e
    except Exception as e:
        console.print(f"[red]Validation error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e


@app.command()
def register(
    nft_ids: Annotated[list[str], typer.Argument(help="NFT identifiers to register")],
    config_path: ConfigOption = None,
    database: DatabaseOption = None,
    deactivate: Annotated[
        bool, typer.Option("--deactivate", help="Deactivate instead of registering")
    ] = False,
    collection: Annotated[
        str | None, typer.Option("--collection", help="Collection the NFTs belong to")
    ] = None,
) -> None:
    """Register NFTs at the baseline rating, or deactivate them."""
    try:
        config = _load(config_path, database)
    except (FileNotFoundError, ConfigurationError, ValueError) as e:
        raise _fail("Error:", e) from e

    async def _run() -> None:
        store = ScoringStore(config)
        try:
            for nft_id in nft_ids:
                if deactivate:
                    await store.stats.deactivate_nft(nft_id)
                    console.print(f"Deactivated [bold]{nft_id}[/bold]")
                else:
                    await store.stats.register_nft(nft_id, collection)
                    suffix = f" in {escape(collection)}" if collection else ""
                    console.print(f"Registered [bold]{nft_id}[/bold]{suffix}")
        finally:
            await store.close()

    try:
        asyncio.run(_run())
    except NotFoundError as e:
        raise _fail("Error:", e) from e


@app.command()
def ingest(
    events_path: Annotated[Path, typer.Argument(help="JSONL file with one vote event per line")],
    config_path: ConfigOption = None,
    database: DatabaseOption = None,
    register_nfts: Annotated[
        bool,
        typer.Option("--register-nfts/--no-register-nfts", help="Register unknown NFTs first"),
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """Process vote events from a JSONL file in order.

    Args:
        events_path: JSONL file of vote events.
        config_path: Optional YAML configuration.
        database: Database URL override.
        register_nfts: Register every referenced NFT before processing.
        verbose: Enable verbose logging.
    """
    _configure_logging(verbose)
    try:
        config = _load(config_path, database)
        raw_events = _read_events(events_path)
    except (FileNotFoundError, ConfigurationError, ValueError) as e:
        raise _fail("Error:", e) from e

    async def _run() -> dict[str, int]:
        counts = {"processed": 0, "duplicate": 0, "rejected": 0, "retryable": 0}
        store = ScoringStore(config)
        try:
            processor = VoteProcessor(config, store)
            parsed: list[tuple[int, VoteEvent]] = []
            for line_no, data in raw_events:
                try:
                    parsed.append((line_no, VoteEvent.parse(data)))
                except InvalidVoteShape as e:
                    console.print(f"[yellow]line {line_no}:[/yellow] {e}")
                    counts["rejected"] += 1

            if register_nfts:
                for nft_id in sorted({i for _, event in parsed for i in event.nft_ids}):
                    await store.stats.register_nft(nft_id)

            for line_no, event in parsed:
                try:
                    outcome = await processor.process(event)
                except (InvalidVoteShape, NotFoundError) as e:
                    console.print(f"[yellow]line {line_no}:[/yellow] {e}")
                    counts["rejected"] += 1
                    continue
                except RetryableVoteError as e:
                    console.print(f"[red]line {line_no}:[/red] {e}")
                    counts["retryable"] += 1
                    continue
                counts["duplicate" if outcome.duplicate else "processed"] += 1
            await processor.scoring.signals.drain()
        finally:
            await store.close()
        return counts

    counts = asyncio.run(_run())
    console.print(
        f"[green]Processed {counts['processed']}[/green], duplicates {counts['duplicate']}, "
        f"rejected {counts['rejected']}, retryable {counts['retryable']}"
    )
    if counts["retryable"]:
        raise typer.Exit(1)


@app.command()
def recompute(
    nft_id: Annotated[str | None, typer.Argument(help="Recompute one NFT only")] = None,
    config_path: ConfigOption = None,
    database: DatabaseOption = None,
    batch_size: Annotated[int | None, typer.Option("--batch-size", help="Worker batch")] = None,
    verbose: VerboseOption = False,
) -> None:
    """Recompute one NFT, or drain the dirty queue."""
    _configure_logging(verbose)
    try:
        config = _load(config_path, database)
    except (FileNotFoundError, ConfigurationError, ValueError) as e:
        raise _fail("Error:", e) from e

    async def _run() -> str:
        store = ScoringStore(config)
        try:
            service = ScoringService(config, store)
            if nft_id is not None:
                result = await service.recompute(nft_id)
                if result.error:
                    return f"[red]{result.error}[/red]"
                if result.decision is None:
                    return f"{nft_id}: inactive, skipped"
                return (
                    f"{nft_id}: poa={result.candidate.poa_value} "
                    f"state={result.decision.state.value} reason={result.decision.reason.value}"
                )
            worker = DirtyRecomputeWorker(service)
            total = await worker.run_until_empty(batch_size)
            pending = await store.dirty.pending_count()
            return f"Recomputed {total} NFTs, {pending} still pending"
        finally:
            await store.close()

    try:
        console.print(asyncio.run(_run()))
    except NotFoundError as e:
        raise _fail("Error:", e) from e


@app.command()
def rebuild(
    config_path: ConfigOption = None,
    database: DatabaseOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Rebuild all statistics from the vote event log and rescore every NFT."""
    _configure_logging(verbose)
    try:
        config = _load(config_path, database)
    except (FileNotFoundError, ConfigurationError, ValueError) as e:
        raise _fail("Error:", e) from e

    async def _run() -> str:
        store = ScoringStore(config)
        try:
            result = await StatisticsRebuilder(config, store).rebuild()
            total = await DirtyRecomputeWorker(ScoringService(config, store)).run_until_empty()
            return (
                f"Replayed {result.applied} events ({result.skipped} skipped) "
                f"into {len(result.nfts)} NFTs; rescored {total}"
            )
        finally:
            await store.close()

    console.print(f"[green]{asyncio.run(_run())}[/green]")


@app.command()
def score(
    nft_id: Annotated[str, typer.Argument(help="NFT identifier")],
    config_path: ConfigOption = None,
    database: DatabaseOption = None,
) -> None:
    """Show the published score for an NFT, or what it still needs."""
    try:
        config = _load(config_path, database)
    except (FileNotFoundError, ConfigurationError, ValueError) as e:
        raise _fail("Error:", e) from e

    async def _run():
        store = ScoringStore(config)
        try:
            return await ScoringService(config, store).get_score(nft_id)
        finally:
            await store.close()

    try:
        view = asyncio.run(_run())
    except NotFoundError as e:
        raise _fail("Error:", e) from e

    if isinstance(view, AwaitingData):
        console.print(f"[yellow]{nft_id}: awaiting data[/yellow]")
        for requirement, missing in view.remaining.items():
            if missing:
                console.print(f"  {requirement}: {missing} more needed")
        return

    record = view.record
    console.print(f"[bold]{nft_id}[/bold]: POA {record.poa_value:.2f}")
    console.print(f"  Confidence: {record.confidence:.2f}")
    console.print(f"  Provisional: {record.provisional}")
    console.print(
        f"  Components: elo={record.elo_component:.2f} slider={record.slider_component:.2f} "
        f"fire={record.fire_component:.2f} reliability={record.reliability_factor:.3f}"
    )
    console.print(f"  Updated: {record.updated_at.isoformat()}")


@app.command()
def leaderboard(
    config_path: ConfigOption = None,
    database: DatabaseOption = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Rows to show")] = 20,
    include_provisional: Annotated[
        bool, typer.Option("--provisional/--no-provisional", help="Include provisional scores")
    ] = True,
) -> None:
    """Show published scores, highest first."""
    try:
        config = _load(config_path, database)
    except (FileNotFoundError, ConfigurationError, ValueError) as e:
        raise _fail("Error:", e) from e

    async def _run():
        store = ScoringStore(config)
        try:
            return await store.scores.leaderboard(limit, include_provisional=include_provisional)
        finally:
            await store.close()

    records = asyncio.run(_run())
    table = Table(title="POA Leaderboard")
    table.add_column("Rank", justify="right")
    table.add_column("NFT")
    table.add_column("POA", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Provisional")
    for rank, record in enumerate(records, start=1):
        table.add_row(
            str(rank),
            record.nft_id,
            f"{record.poa_value:.2f}",
            f"{record.confidence:.1f}",
            "yes" if record.provisional else "",
        )
    console.print(table)


@app.command()
def collection(
    name: Annotated[
        str | None, typer.Argument(help="Collection name; omit to list collections")
    ] = None,
    config_path: ConfigOption = None,
    database: DatabaseOption = None,
) -> None:
    """Show the Collection Aesthetic Index for a collection."""
    try:
        config = _load(config_path, database)
    except (FileNotFoundError, ConfigurationError, ValueError) as e:
        raise _fail("Error:", e) from e

    async def _run():
        store = ScoringStore(config)
        try:
            if name is None:
                return await store.stats.list_collections()
            return await ScoringService(config, store).collection_index(name)
        finally:
            await store.close()

    try:
        result = asyncio.run(_run())
    except (NotFoundError, ComputationError) as e:
        raise _fail("Error:", e) from e

    if name is None:
        if not result:
            console.print("[yellow]No collections registered[/yellow]")
        for collection_name in result:
            console.print(escape(collection_name))
        return

    index = result
    console.print(
        f"[bold]{escape(name)}[/bold]: CAI {index.cai_score:.2f} ({index.label.replace('_', ' ')})"
    )
    console.print(f"  Confidence: {index.confidence}")
    console.print(f"  Provisional: {index.provisional}")
    console.print(
        f"  Trimmed mean: {index.stats.trimmed_mean:.2f}  "
        f"cohesion penalty: {index.cohesion_penalty:.1%}  "
        f"coverage: {index.coverage.coverage_score:.2f}"
    )
    console.print(f"  Scored: {index.scored_count}/{index.nft_count} NFTs")
    console.print(f"  {escape(index.explanation)}")


@app.command()
def info() -> None:
    """Show tool information and example commands."""
    console.print("[bold]POA Scoring Engine[/bold]")
    console.print(f"Version: {__version__}\n")

    console.print("[bold]Example Commands:[/bold]")
    console.print("  # Register NFTs")
    console.print("  poa-scoring register nft-1 nft-2 nft-3\n")

    console.print("  # Ingest votes from a JSONL file")
    console.print("  poa-scoring ingest votes.jsonl --register-nfts\n")

    console.print("  # Drain the dirty queue")
    console.print("  poa-scoring recompute\n")

    console.print("  # Rebuild statistics from the vote log")
    console.print("  poa-scoring rebuild\n")

    console.print("  # Show scores")
    console.print("  poa-scoring score nft-1")
    console.print("  poa-scoring leaderboard --limit 10\n")

    console.print("  # Collection Aesthetic Index")
    console.print("  poa-scoring register nft-1 nft-2 --collection genesis")
    console.print("  poa-scoring collection genesis\n")

    console.print("  # Validate config")
    console.print("  poa-scoring validate config.yaml")


if __name__ == "__main__":
    app()
