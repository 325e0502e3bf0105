"""Push queue commands."""

from __future__ import annotations

from typing import Annotated, Any

import typer

from herd_sync.cli._helpers import (
    build_coordinator,
    get_config,
    open_cache,
    output_result,
    require_remote,
    run_async,
)
from herd_sync.sync.errors import SyncError
from herd_sync.sync.push_queue import PushQueue, PushQueueProcessor

queue_app = typer.Typer(help="Offline push queue commands")


@queue_app.command("list")
def queue_list(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """List queued local changes.

    Examples:
        herdsync queue list
        herdsync queue list --json
    """
    config = get_config()

    async def _list() -> dict[str, Any]:
        cache = await open_cache(config)
        queue = PushQueue(cache, config.push_queue.to_policy())
        ops = await queue.all()
        return {
            "operations": [op.to_dict() for op in ops],
            "counts": await queue.counts(),
        }

    result = run_async(_list())

    if json_output:
        output_result(result, True)
        return

    if not result["operations"]:
        typer.echo("Push queue is empty.")
        return

    for op in result["operations"]:
        line = f"  {op['operation']:<6} {op['entity_type']} {op['entity_id']}"
        if op["retry_count"]:
            line += f"  (retries: {op['retry_count']}, last error: {op['error']})"
        typer.echo(line)
    counts = result["counts"]
    typer.echo(f"\n{counts['total']} queued, {counts['pending']} pending, {counts['failed']} failed")


@queue_app.command("process")
def queue_process(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Push every due queued change to the remote store.

    Examples:
        herdsync queue process
    """
    config = get_config()
    require_remote(config)

    async def _process() -> dict[str, Any]:
        coordinator = await build_coordinator(config)
        queue = coordinator.push_queue
        assert queue is not None
        try:
            report = await PushQueueProcessor(queue, coordinator).process()
        except SyncError as e:
            return {"error": str(e)}
        return report.to_dict()

    result = run_async(_process())

    if json_output:
        output_result(result, True)
    elif "error" in result:
        output_result(result)
    else:
        typer.secho(
            f"Processed {result['processed']}: {result['succeeded']} pushed, "
            f"{result['failed']} failed, {result['deferred']} waiting for retry",
            fg=typer.colors.GREEN if not result["failed"] else typer.colors.YELLOW,
        )
        for error in result["errors"]:
            typer.echo(f"  {error}")

    if "error" in result:
        raise typer.Exit(1)


@queue_app.command("clear-failed")
def queue_clear_failed() -> None:
    """Drop queued changes that exhausted their retries.

    Examples:
        herdsync queue clear-failed
    """
    config = get_config()

    async def _clear() -> int:
        cache = await open_cache(config)
        return await PushQueue(cache, config.push_queue.to_policy()).clear_failed()

    removed = run_async(_clear())
    output_result({"message": f"Removed {removed} failed operations"})
