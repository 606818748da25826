"""
casport CLI Application - Built with Click.

Storage locations are given as URIs:
    memory://              In-process only (useful for trying things out)
    file://./blobs         Local directory
    sqlite://./blobs.db    SQLite database file

${VAR} and ${VAR:-default} references in URIs are expanded from the
environment (and .env).
"""

import asyncio
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from casport.content.store import ContentStore
from casport.content.types import ContentHash
from casport.core.config import CasportConfig, configure
from casport.core.env import get_env
from casport.migration.engine import MigrationEngine
from casport.migration.types import MigrationOptions, MigrationProgress, MigrationStatus
from casport.storage.core.errors import StorageError
from casport.storage.core.health import HealthCheckResult, check_health_with_timeout
from casport.storage.factory import get_available_backends, provider_from_uri

console = Console()


# ============================================================================
# CLI Group
# ============================================================================


class OrderedGroup(click.Group):
    """Click Group that lists commands in the order they were added."""

    def list_commands(self, ctx):
        return list(self.commands.keys())


@click.group(cls=OrderedGroup)
@click.version_option(version="0.1.0", prog_name="casport")
@click.option("--verbose", "-v", is_flag=True, help="Log to stderr (level from CASPORT_LOG_LEVEL)")
@click.pass_context
def cli(ctx, verbose: bool):
    """
    casport - Content-addressed storage and migration.

    \b
    Content:
        put              Store a file, print its hash
        get              Write stored content to a file or stdout
        ls               List stored content
    \b
    Migration:
        estimate         Count and size a source without transferring
        migrate          Move all content from one store to another
    \b
    Info:
        health           Check that stores answer
        backends         Show available storage backends
    """
    config = CasportConfig.from_env()
    configure(config)
    if verbose:
        config.configure_logging()
    ctx.obj = config


def _open(uri: str):
    """Provider for ``uri`` after expanding ``${VAR}`` references."""
    try:
        return provider_from_uri(get_env().substitute(uri))
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


def _parse_hash(value: str) -> ContentHash:
    try:
        return ContentHash.parse(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


def _human_size(size: float) -> str:
    for unit in ("B", "KiB", "MiB", "GiB"):
        if size < 1024 or unit == "GiB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GiB"


# ============================================================================
# Content commands
# ============================================================================


@cli.command("put")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--store", "-s", "store_uri", required=True, help="Storage URI")
@click.option("--content-type", "-c", help="Content type recorded with the blob")
@click.pass_obj
def put_cmd(config: CasportConfig, file: Path, store_uri: str, content_type: str | None):
    """Store FILE and print its content hash."""

    async def _put() -> ContentHash:
        async with _open(store_uri) as provider:
            store = ContentStore(provider, algorithm=config.hash_algorithm)
            return await store.store(file.read_bytes(), content_type=content_type)

    content_hash = asyncio.run(_put())
    click.echo(str(content_hash))


@cli.command("get")
@click.argument("content_hash")
@click.option("--store", "-s", "store_uri", required=True, help="Storage URI")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Output file")
def get_cmd(content_hash: str, store_uri: str, output: Path | None):
    """Write the content stored under CONTENT_HASH."""
    parsed = _parse_hash(content_hash)

    async def _get() -> bytes:
        async with _open(store_uri) as provider:
            item = await ContentStore(provider).retrieve(parsed)
            return item.data

    try:
        data = asyncio.run(_get())
    except StorageError as e:
        raise click.ClickException(str(e)) from e

    if output:
        output.write_bytes(data)
        click.echo(f"Wrote {len(data)} bytes to {output}", err=True)
    else:
        click.get_binary_stream("stdout").write(data)


@cli.command("ls")
@click.option("--store", "-s", "store_uri", required=True, help="Storage URI")
@click.option("--search", "term", help="Only show hashes or content types containing TERM")
def ls_cmd(store_uri: str, term: str | None):
    """List stored content."""

    async def _list():
        async with _open(store_uri) as provider:
            store = ContentStore(provider)
            return await (store.search(term) if term else store.list_content())

    items = asyncio.run(_list())

    table = Table(title=f"Content in {store_uri}")
    table.add_column("Hash", style="cyan")
    table.add_column("Size", justify="right")
    for metadata in items:
        table.add_row(str(metadata.hash), _human_size(metadata.size))
    console.print(table)
    console.print(f"{len(items)} item(s), {_human_size(sum(m.size for m in items))}")


# ============================================================================
# Migration commands
# ============================================================================


@cli.command("estimate")
@click.option("--source", "source_uri", required=True, help="Source storage URI")
@click.pass_obj
def estimate_cmd(config: CasportConfig, source_uri: str):
    """Count and size the source without transferring anything."""

    async def _estimate():
        async with _open(source_uri) as source:
            return await MigrationEngine(source, config=config).estimate()

    estimate = asyncio.run(_estimate())

    table = Table(title=f"Estimate for {source_uri}")
    table.add_column("Items", justify="right")
    table.add_column("Total size", justify="right")
    table.add_column("Estimated time", justify="right")
    table.add_row(
        str(estimate.item_count),
        _human_size(estimate.total_size) + ("" if estimate.is_exact else " (sampled)"),
        f"{estimate.estimated_time:.1f}s",
    )
    console.print(table)


@cli.command("migrate")
@click.option("--source", "source_uri", required=True, help="Source storage URI")
@click.option("--target", "target_uri", required=True, help="Target storage URI")
@click.option("--batch-size", "-b", type=click.IntRange(min=1), help="Concurrent transfers")
@click.option("--delete-after", is_flag=True, help="Delete each item from the source once migrated")
@click.option(
    "--skip-existing/--no-skip-existing",
    default=True,
    show_default=True,
    help="Skip items the target already holds",
)
@click.option("--queue-db", type=click.Path(dir_okay=False), help="Persist the upload queue in SQLite")
@click.pass_obj
def migrate_cmd(
    config: CasportConfig,
    source_uri: str,
    target_uri: str,
    batch_size: int | None,
    delete_after: bool,
    skip_existing: bool,
    queue_db: str | None,
):
    """
    Migrate all content from SOURCE to TARGET.

    \b
    Exit codes:
        0  every item migrated
        1  some items failed, or the run was cancelled or failed
    """
    options = MigrationOptions(
        batch_size=batch_size or config.batch_size,
        delete_after_migration=delete_after,
        skip_existing=skip_existing,
    )

    console.print(
        Panel(
            f"Source: {source_uri}\n"
            f"Target: {target_uri}\n"
            f"Batch size: {options.batch_size}\n"
            f"Skip existing: {options.skip_existing}\n"
            f"Delete after migration: {options.delete_after_migration}",
            title="Migration",
            border_style="blue",
        )
    )

    progress = asyncio.run(_run_migration(config, source_uri, target_uri, options, queue_db))
    _display_summary(progress)

    if progress.status != MigrationStatus.COMPLETED or progress.failed_items:
        sys.exit(1)


async def _run_migration(
    config: CasportConfig,
    source_uri: str,
    target_uri: str,
    options: MigrationOptions,
    queue_db: str | None,
) -> MigrationProgress:
    queue_storage = None
    if queue_db:
        from casport.queue.storage.sqlite import SQLiteQueueStorage

        queue_storage = SQLiteQueueStorage(queue_db)

    async with _open(source_uri) as source, _open(target_uri) as target:
        engine = MigrationEngine(source, config=config, queue_storage=queue_storage)

        with Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
        ) as bar:
            task_id = bar.add_task("Preparing", total=None)
            updates = engine.subscribe()
            run = asyncio.create_task(engine.start(target, options))
            run.add_done_callback(lambda _: updates.close())
            try:
                async for snapshot in updates:
                    bar.update(
                        task_id,
                        description=snapshot.status.value.capitalize(),
                        total=snapshot.total_items if snapshot.status != MigrationStatus.PREPARING else None,
                        completed=snapshot.processed_items,
                    )
            finally:
                updates.close()
                result = await run

        if queue_storage is not None:
            await queue_storage.close()
        return result


def _display_summary(progress: MigrationProgress) -> None:
    style = "green" if progress.status == MigrationStatus.COMPLETED and not progress.failed_items else "red"

    table = Table(title="Migration Summary")
    table.add_column("Status", style=style)
    table.add_column("Total", justify="right")
    table.add_column("Succeeded", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_row(
        progress.status.value,
        str(progress.total_items),
        str(progress.successful_items),
        str(progress.failed_items),
    )
    console.print(table)

    if progress.errors:
        errors = Table(title="Errors")
        errors.add_column("Path", style="cyan")
        errors.add_column("Error", style="red")
        for record in progress.errors:
            errors.add_row(record.path, record.error)
        console.print(errors)


# ============================================================================
# Info
# ============================================================================


@cli.command("health")
@click.option("--store", "-s", "store_uris", multiple=True, required=True, help="Storage URI (repeatable)")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=5.0,
    show_default=True,
    help="Seconds to wait for each store",
)
def health_cmd(store_uris: tuple[str, ...], timeout: float):
    """Check that each store answers; exit 1 if any is unhealthy."""

    async def _check() -> list[tuple[str, HealthCheckResult]]:
        results = []
        for uri in store_uris:
            async with _open(uri) as provider:
                results.append((uri, await check_health_with_timeout(provider, timeout)))
        return results

    results = asyncio.run(_check())

    table = Table(title="Storage Health")
    table.add_column("Store", style="cyan")
    table.add_column("Status")
    table.add_column("Latency", justify="right")
    table.add_column("Message")
    for uri, result in results:
        color = "green" if result.is_healthy else "red"
        table.add_row(
            uri,
            f"[{color}]{result.status.value}[/{color}]",
            f"{result.latency_ms:.1f} ms",
            result.message,
        )
    console.print(table)

    if not all(result.is_healthy for _, result in results):
        sys.exit(1)


@cli.command("backends")
def backends_cmd():
    """Show available storage backends."""
    table = Table(title="Storage Backends")
    table.add_column("Backend", style="cyan")
    table.add_column("Available")
    table.add_column("URI")
    table.add_column("Description")

    for name, info in get_available_backends().items():
        available = "[green]yes[/green]" if info["available"] else f"[red]no[/red] ({info['install']})"
        table.add_row(name, available, info["uri"], info["description"])
    console.print(table)
