"""herd-sync CLI main entry point."""

from __future__ import annotations

import logging
import sys
from typing import Annotated, Any, NoReturn, Optional

import typer

from herd_sync.cli._helpers import (
    build_coordinator,
    get_config,
    open_cache,
    output_result,
    require_remote,
    run_async,
)
from herd_sync.cli.commands.queue import queue_app
from herd_sync.core.push_operation import PushOperationType
from herd_sync.sync.cursor import SQLiteCursorStore
from herd_sync.sync.entities import SYNC_ORDER, get_entity_config
from herd_sync.sync.errors import SyncError
from herd_sync.sync.push_queue import PushQueue

# Main app
app = typer.Typer(
    name="herdsync",
    help="herd-sync - offline sync between the farm database and a local cache",
    no_args_is_help=True,
)

app.add_typer(queue_app, name="queue")


@app.callback()
def _configure(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Log debug output to stderr")
    ] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _fail(message: str, json_output: bool = False) -> NoReturn:
    output_result({"error": message}, json_output)
    raise typer.Exit(1)


# =============================================================================
# Pull Commands
# =============================================================================


@app.command()
def sync(
    table: Annotated[str, typer.Argument(help="Entity type or table name to sync")],
    full: Annotated[
        bool, typer.Option("--full", "-f", help="Ignore the cursor and sweep the whole table")
    ] = False,
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Sync one table from the remote store into the local cache.

    Examples:
        herdsync sync cattle
        herdsync sync health_records --full
    """
    config = get_config()
    try:
        get_entity_config(table)
    except SyncError as e:
        _fail(str(e), json_output)
    require_remote(config)

    async def _sync() -> dict[str, Any]:
        coordinator = await build_coordinator(config)
        try:
            summary = await coordinator.sync(table, full=full)
        except SyncError as e:
            return {"error": str(e)}
        return summary.to_dict()

    result = run_async(_sync())

    if "error" in result:
        _fail(result["error"], json_output)
    if json_output:
        output_result(result, True)
        return

    typer.secho(
        f"[{result['mode'].upper()}] {result['table_name']}: "
        f"{result['created']} created, {result['updated']} updated, "
        f"{result['soft_deleted']} soft-deleted, {result['hard_deleted']} removed",
        fg=typer.colors.GREEN,
    )
    if result["skipped"]:
        typer.secho(f"  Skipped {result['skipped']} malformed rows", fg=typer.colors.YELLOW)
    if result["duplicates_removed"]:
        typer.echo(f"  Healed {result['duplicates_removed']} duplicate rows")


@app.command("sync-all")
def sync_all(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Sync every table in dependency order.

    A failing table is reported and the remaining tables still sync.

    Examples:
        herdsync sync-all
        herdsync sync-all --json
    """
    config = get_config()
    require_remote(config)

    async def _sync_all() -> dict[str, Any]:
        coordinator = await build_coordinator(config)
        try:
            report = await coordinator.sync_all()
        except SyncError as e:
            return {"error": str(e)}
        return report.to_dict()

    result = run_async(_sync_all())

    if "error" in result:
        _fail(result["error"], json_output)
    if json_output:
        output_result(result, True)
    else:
        for summary in result["summaries"]:
            typer.echo(
                f"  {summary['table_name']:<22} {summary['mode']:<11} "
                f"+{summary['created']} ~{summary['updated']} "
                f"-{summary['soft_deleted'] + summary['hard_deleted']}"
            )
        for failure in result["failures"]:
            typer.secho(
                f"  {failure['entity_type']:<22} FAILED: {failure['error']}", fg=typer.colors.RED
            )

    if not result["success"]:
        raise typer.Exit(1)


@app.command()
def status(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Show the sync cursor and cached row count of every table.

    Examples:
        herdsync status
        herdsync status --json
    """
    config = get_config()

    async def _status() -> dict[str, Any]:
        cache = await open_cache(config)
        cursors = await SQLiteCursorStore(cache).all()
        tables = []
        for entity_config in SYNC_ORDER:
            cursor = cursors.get(entity_config.table_name)
            tables.append(
                {
                    "table_name": entity_config.table_name,
                    "last_sync": cursor.isoformat() if cursor else None,
                    "active": await cache.count(entity_config.entity_type),
                    "total": await cache.count(entity_config.entity_type, include_deleted=True),
                }
            )
        queue = PushQueue(cache, config.push_queue.to_policy())
        return {
            "cache": str(config.cache_db_path),
            "remote_configured": config.remote.is_configured,
            "tables": tables,
            "push_queue": await queue.counts(),
        }

    result = run_async(_status())

    if json_output:
        output_result(result, True)
        return

    typer.echo(f"Cache: {result['cache']}")
    if not result["remote_configured"]:
        typer.secho("Remote: not configured", fg=typer.colors.YELLOW)
    typer.echo("")
    for row in result["tables"]:
        last_sync = row["last_sync"] or "never"
        typer.echo(f"  {row['table_name']:<22} {row['active']:>6} active  last sync: {last_sync}")
    queue = result["push_queue"]
    typer.echo(f"\nPush queue: {queue['pending']} pending, {queue['failed']} failed")


@app.command("reset-cursor")
def reset_cursor(
    table: Annotated[
        Optional[str], typer.Argument(help="Table whose next sync should be a full sync")
    ] = None,
    all_tables: Annotated[bool, typer.Option("--all", help="Reset every table")] = False,
) -> None:
    """Forget sync cursors so the next sync is a full sync.

    Examples:
        herdsync reset-cursor cattle
        herdsync reset-cursor --all
    """
    if not table and not all_tables:
        _fail("Give a table name or --all")

    config = get_config()
    table_name: str | None = None
    if table:
        try:
            table_name = get_entity_config(table).table_name
        except SyncError as e:
            _fail(str(e))

    async def _reset() -> None:
        cursors = SQLiteCursorStore(await open_cache(config))
        if table_name is None:
            await cursors.clear_all()
        else:
            await cursors.clear(table_name)

    run_async(_reset())
    target = "all tables" if table_name is None else table_name
    output_result({"message": f"Cleared sync cursor for {target}"})


# =============================================================================
# Push Commands
# =============================================================================


@app.command()
def push(
    table: Annotated[str, typer.Argument(help="Entity type or table name")],
    entity_id: Annotated[str, typer.Argument(help="Id of the cached entity")],
    queue: Annotated[
        bool, typer.Option("--queue", "-q", help="Queue the push instead of sending it now")
    ] = False,
) -> None:
    """Push one cached entity to the remote store.

    Examples:
        herdsync push cattle 6f1c0e8a-0000-4000-8000-000000000001
        herdsync push cattle 6f1c0e8a-0000-4000-8000-000000000001 --queue
    """
    config = get_config()
    try:
        entity_type = get_entity_config(table).entity_type
    except SyncError as e:
        _fail(str(e))

    if queue:

        async def _enqueue() -> str:
            cache = await open_cache(config)
            op = await PushQueue(cache, config.push_queue.to_policy()).enqueue(
                entity_type, entity_id, PushOperationType.UPDATE
            )
            return op.id

        op_id = run_async(_enqueue())
        output_result({"message": f"Queued push of {entity_type} {entity_id} ({op_id})"})
        return

    require_remote(config)

    async def _push() -> dict[str, Any]:
        coordinator = await build_coordinator(config)
        try:
            outcome = await coordinator.push(entity_type, entity_id)
        except SyncError as e:
            return {"error": str(e)}
        return {"message": f"{entity_type} {entity_id}: {outcome.value}"}

    result = run_async(_push())
    output_result(result)
    if "error" in result:
        raise typer.Exit(1)


# =============================================================================
# Utility Commands
# =============================================================================


@app.command()
def tables(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """List synced tables in dependency order."""
    rows = [
        {
            "entity_type": c.entity_type,
            "table_name": c.table_name,
            "farm_scoped": c.farm_scoped,
            "supports_deletes": c.supports_deletes,
            "references": [f"{r.relation}->{r.target}" for r in c.references],
        }
        for c in SYNC_ORDER
    ]
    if json_output:
        output_result({"tables": rows}, True)
        return

    for row in rows:
        flags = []
        if not row["farm_scoped"]:
            flags.append("global")
        if not row["supports_deletes"]:
            flags.append("no-deletes")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        refs = f"  -> {', '.join(row['references'])}" if row["references"] else ""
        typer.echo(f"  {row['table_name']}{suffix}{refs}")


@app.command()
def config(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Show the active configuration (API key masked)."""
    data = get_config().to_dict()
    if json_output:
        output_result(data, True)
        return
    typer.echo(f"Config file: {data['data_dir']}/config.toml")
    for section in ("remote", "session", "sync", "push_queue"):
        typer.echo(f"[{section}]")
        for key, value in data[section].items():
            typer.echo(f"  {key} = {value}")


@app.command()
def version() -> None:
    """Show version information."""
    from herd_sync import __version__

    typer.echo(f"herd-sync v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
