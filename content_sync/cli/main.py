"""Command line interface for the content sync pipeline using Typer and Rich."""

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table

from content_sync.config.logging import configure_logging, get_logger
from content_sync.config.settings import Settings, get_settings
from content_sync.data_management import ChangeLog, EntityStore, StatusStore
from content_sync.data_management.schemas import EntityRef, RunState, SyncSummary
from content_sync.errors import ContentSyncError
from content_sync.llm.oracle_client import OracleClient
from content_sync.orchestration.photo_fetcher import WikimediaPhotoFetcher
from content_sync.orchestration.photo_jobs import PhotoJob, PhotoJobNotifier, PhotoJobQueue
from content_sync.pipeline import BatchOrchestrator, ScheduledSync
from content_sync.utils.logging import configure_structured_logging

app = typer.Typer(
    help="Content sync - verify directory entities against a fact-checking oracle",
    add_completion=False,
)

console = Console()

logger = get_logger("cli")


class _Stores:
    def __init__(self, settings: Settings) -> None:
        Path(settings.data_dir).mkdir(parents=True, exist_ok=True)
        self.entities = EntityStore(str(settings.store_path("entities")))
        self.status = StatusStore(str(settings.store_path("status")))
        self.change_log = ChangeLog(
            entity_store=self.entities,
            persistence_path=str(settings.store_path("change_log")),
        )
        self.photo_jobs = PhotoJobQueue(persistence_path=str(settings.store_path("photo_jobs")))


def _setup() -> Settings:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    configure_structured_logging(settings.log_level, settings.log_format)
    return settings


def _build_oracle(settings: Settings) -> OracleClient:
    return OracleClient.from_settings(settings)


def _build_photo_fetcher(settings: Settings) -> WikimediaPhotoFetcher:
    return WikimediaPhotoFetcher(timeout=settings.oracle_timeout)


def _load_entities(path: Path, entity_type: Optional[str]) -> list[EntityRef]:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise typer.BadParameter(f"cannot read {path}: {e}") from e
    if not isinstance(raw, list):
        raise typer.BadParameter(f"{path} must contain a JSON list of entities")

    refs = []
    for item in raw:
        if not isinstance(item, dict):
            raise typer.BadParameter(f"entity entries must be objects, got {item!r}")
        if entity_type:
            item = {"type": entity_type, **item}
            if item["type"] != entity_type:
                continue
        try:
            refs.append(EntityRef.model_validate(item))
        except ValidationError as e:
            raise typer.BadParameter(f"invalid entity {item!r}: {e}") from e
    return refs


def _oracle_or_exit(settings: Settings) -> OracleClient:
    try:
        return _build_oracle(settings)
    except ValueError as e:
        console.print(f"[red]✗[/red] {e}")
        logger.error(f"Oracle client unavailable: {e}")
        raise typer.Exit(1)


async def _run_sync(
    settings: Settings,
    stores: _Stores,
    oracle: OracleClient,
    refs: Optional[list[EntityRef]],
    chunk_size: Optional[int] = None,
    limit: int = 50,
) -> tuple[Optional[SyncSummary], dict[str, int]]:
    try:
        if refs is not None:
            await stores.entities.load_entities(refs)
        orchestrator = BatchOrchestrator(
            oracle=oracle,
            status_store=stores.status,
            change_log=stores.change_log,
            entity_store=stores.entities,
            config=settings.pipeline_config(),
            photo_notifier=PhotoJobNotifier(stores.photo_jobs),
        )
        if refs is None:
            summary = await ScheduledSync(orchestrator).run(limit=limit)
        else:
            with Progress(
                TextColumn("[cyan]Verifying"),
                BarColumn(),
                MofNCompleteColumn(),
                console=console,
                transient=True,
            ) as progress:
                task = progress.add_task("sync", total=len(refs))
                summary = await orchestrator.run(
                    refs,
                    chunk_size=chunk_size,
                    progress_callback=lambda current, total: progress.update(task, completed=current),
                )
    finally:
        await oracle.aclose()
    return summary, stores.photo_jobs.stats()


def _print_summary(summary: SyncSummary, photo_stats: dict[str, int]) -> None:
    table = Table(title=f"Sync run {summary.run_id}", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")

    for key, value in summary.to_report().items():
        table.add_row(key, str(value))
    table.add_row("photo_jobs_queued", str(photo_stats.get("queued", 0)))

    console.print(table)

    if summary.state == RunState.COMPLETED:
        console.print(f"[green]✓[/green] Run completed: {summary.processed}/{summary.total} processed")
    else:
        reason = "cancelled" if summary.cancelled else summary.error
        console.print(f"[yellow]⚠[/yellow] Run partially failed: {reason}")


@app.command()
def sync(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON list of {type, id, data}"),
    entity_type: Optional[str] = typer.Option(None, "--type", "-t", help="Only sync this entity type"),
    chunk_size: Optional[int] = typer.Option(None, "--chunk-size", "-c", min=1, help="Entities per chunk"),
) -> None:
    """Load entities from FILE into the content store and verify them."""
    settings = _setup()
    refs = _load_entities(file, entity_type)
    if not refs:
        console.print("[yellow]No entities to sync[/yellow]")
        return

    stores = _Stores(settings)
    oracle = _oracle_or_exit(settings)
    logger.info(f"Sync requested for {len(refs)} entities from {file}")

    try:
        summary, photo_stats = asyncio.run(_run_sync(settings, stores, oracle, refs, chunk_size))
    except ContentSyncError as e:
        console.print(f"[red]✗[/red] Storage error: {e}")
        raise typer.Exit(1)

    _print_summary(summary, photo_stats)
    if summary.state != RunState.COMPLETED:
        raise typer.Exit(1)


@app.command()
def rescan(
    limit: int = typer.Option(50, "--limit", "-l", min=1, help="Maximum entities to re-verify"),
) -> None:
    """Re-verify the stalest entities in the status store."""
    settings = _setup()
    stores = _Stores(settings)
    oracle = _oracle_or_exit(settings)

    try:
        summary, photo_stats = asyncio.run(_run_sync(settings, stores, oracle, None, limit=limit))
    except ContentSyncError as e:
        console.print(f"[red]✗[/red] Storage error: {e}")
        raise typer.Exit(1)

    if summary is None:
        console.print("[dim]Nothing due for re-verification[/dim]")
        return
    _print_summary(summary, photo_stats)
    if summary.state != RunState.COMPLETED:
        raise typer.Exit(1)


@app.command()
def status(
    entity_type: Optional[str] = typer.Option(None, "--type", "-t", help="Limit to one entity type"),
) -> None:
    """Show verification counts per entity type."""
    settings = _setup()
    stores = _Stores(settings)

    if entity_type:
        counts = {entity_type: asyncio.run(stores.status.query_by_type(entity_type))}
    else:
        counts = asyncio.run(stores.status.query_all())

    table = Table(title="Sync Status", show_header=True, header_style="bold magenta")
    table.add_column("Type", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("Verified", style="green", justify="right")
    table.add_column("Needs review", style="yellow", justify="right")

    for name, row in counts.items():
        table.add_row(name, str(row.total), str(row.verified), str(row.needs_review))

    console.print(table)


@app.command()
def review(
    entity_type: Optional[str] = typer.Option(None, "--type", "-t", help="Limit to one entity type"),
) -> None:
    """List entities waiting for human review, newest first."""
    settings = _setup()
    stores = _Stores(settings)
    rows = asyncio.run(stores.status.needs_review(entity_type))

    if not rows:
        console.print("[green]Review queue is empty[/green]")
        return

    table = Table(title="Review Queue", show_header=True, header_style="bold magenta")
    table.add_column("Type", style="cyan")
    table.add_column("ID")
    table.add_column("Confidence", justify="right")
    table.add_column("Corrections", justify="right")
    table.add_column("Error", style="red")

    for row in rows:
        table.add_row(
            row.entity_type,
            row.entity_id,
            f"{row.confidence:.2f}",
            str(len(row.corrections)),
            row.error or "",
        )

    console.print(table)


@app.command()
def history(
    entity_type: str = typer.Argument(..., help="Entity type"),
    entity_id: str = typer.Argument(..., help="Entity ID"),
) -> None:
    """Show the change history of one entity, most recent first."""
    settings = _setup()
    stores = _Stores(settings)
    entries = asyncio.run(stores.change_log.history(entity_type, entity_id))

    if not entries:
        console.print(f"[dim]No changes recorded for {entity_type}/{entity_id}[/dim]")
        return

    table = Table(title=f"History {entity_type}/{entity_id}", show_header=True, header_style="bold magenta")
    table.add_column("Entry", style="cyan")
    table.add_column("When")
    table.add_column("Actor")
    table.add_column("Action")
    table.add_column("Reversed", style="yellow")

    for entry in entries:
        reversed_note = f"by {entry.reversed_by}" if entry.is_reversed else ""
        table.add_row(
            entry.id,
            entry.created_at.isoformat(timespec="seconds"),
            entry.actor,
            entry.action.value,
            reversed_note,
        )

    console.print(table)


@app.command()
def reverse(
    entry_id: str = typer.Argument(..., help="Change log entry to reverse"),
    by: str = typer.Option(..., "--by", help="Actor performing the reversal"),
) -> None:
    """Undo a recorded change by applying its inverse."""
    settings = _setup()
    stores = _Stores(settings)

    try:
        asyncio.run(stores.change_log.reverse(entry_id, by))
    except ContentSyncError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)

    logger.info(f"Change {entry_id} reversed by {by}")
    console.print(f"[green]✓[/green] Reversed {entry_id}")


async def _record_photo(stores: _Stores, job: PhotoJob) -> None:
    """Copy a found photo onto the entity's status row unless it already has one."""
    row = await stores.status.get(job.entity_type, job.entity_id)
    if row is None or row.photo_url:
        return
    await stores.status.upsert(
        row.entity_type,
        row.entity_id,
        row.status,
        row.last_synced_at,
        confidence=row.confidence,
        corrections=row.corrections,
        photo_url=job.result["url"],
        photo_source=job.result.get("source"),
        error=row.error,
    )


async def _drain_photos(
    stores: _Stores, fetch: WikimediaPhotoFetcher, limit: Optional[int]
) -> list[PhotoJob]:
    processed: list[PhotoJob] = []
    try:
        while limit is None or len(processed) < limit:
            job = await stores.photo_jobs.process_next(fetch)
            if job is None:
                break
            processed.append(job)
            if job.status == "complete" and (job.result or {}).get("url"):
                await _record_photo(stores, job)
    finally:
        await fetch.aclose()
    return processed


@app.command()
def photos(
    limit: Optional[int] = typer.Option(None, "--limit", "-l", min=1, help="Maximum jobs to process"),
    reset_failed: bool = typer.Option(False, "--reset-failed", help="Re-queue failed jobs first"),
) -> None:
    """Look up photos for entities queued by earlier sync runs."""
    settings = _setup()
    stores = _Stores(settings)

    try:
        if reset_failed:
            count = stores.photo_jobs.reset_failed()
            console.print(f"[cyan]Re-queued {count} failed photo jobs[/cyan]")

        if not stores.photo_jobs.stats()["queued"]:
            console.print("[dim]No photo jobs queued[/dim]")
            return

        fetch = _build_photo_fetcher(settings)
        processed = asyncio.run(_drain_photos(stores, fetch, limit))
    except ContentSyncError as e:
        console.print(f"[red]✗[/red] Storage error: {e}")
        raise typer.Exit(1)

    found = sum(1 for job in processed if job.status == "complete" and job.result.get("url"))
    logger.info(f"Processed {len(processed)} photo jobs, {found} photos found")

    table = Table(title="Photo Jobs", show_header=True, header_style="bold magenta")
    table.add_column("Status", style="cyan")
    table.add_column("Count", style="green", justify="right")
    for key, value in stores.photo_jobs.stats().items():
        table.add_row(key, str(value))
    console.print(table)
    console.print(f"[green]✓[/green] Processed {len(processed)} jobs, {found} photos found")


@app.command()
def config() -> None:
    """Display the effective configuration."""
    settings = get_settings()

    table = Table(title="Content Sync Configuration", show_header=True, header_style="bold magenta")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="yellow")

    values: dict[str, Any] = settings.model_dump()
    values["xai_api_key"] = "✓ Configured" if settings.xai_api_key else "⚠ Not Configured"
    for key, value in values.items():
        table.add_row(key, str(value))

    console.print(table)


@app.command()
def version() -> None:
    """Display version information."""
    console.print("[bold]Content Sync[/bold]")
    console.print("Version: 0.1.0")


if __name__ == "__main__":
    app()
