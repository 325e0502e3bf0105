"""Shared CLI helpers for configuration, wiring, and output formatting."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

import typer

from herd_sync.remote.postgrest import PostgrestClient
from herd_sync.storage.sqlite_store import SQLiteCache
from herd_sync.sync.coordinator import SyncCoordinator
from herd_sync.sync.cursor import SQLiteCursorStore
from herd_sync.sync.push_queue import PushQueue
from herd_sync.sync.session import SessionContext, StaticAuth
from herd_sync.unified_config import HerdSyncConfig
from herd_sync.unified_config import get_config as _load_config

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Caches and remote clients opened during a CLI command; closed before the
# event loop shuts down so aiosqlite's worker thread never outlives it.
_active_resources: list[Any] = []


def get_config() -> HerdSyncConfig:
    """Get configuration, reloaded from disk for each command."""
    return _load_config(reload=True)


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async CLI command, closing opened resources afterwards."""

    async def _with_cleanup() -> T:
        try:
            return await coro
        finally:
            for resource in reversed(_active_resources):
                try:
                    await resource.close()
                except Exception:
                    logger.debug("Failed to close resource during cleanup", exc_info=True)
            _active_resources.clear()
            # Drain pending aiosqlite callbacks before asyncio.run() closes the loop.
            await asyncio.sleep(0)

    return asyncio.run(_with_cleanup())


async def open_cache(config: HerdSyncConfig) -> SQLiteCache:
    cache = SQLiteCache(config.cache_db_path)
    await cache.initialize()
    _active_resources.append(cache)
    return cache


def require_remote(config: HerdSyncConfig) -> None:
    if not config.remote.is_configured:
        typer.secho(
            "Remote is not configured. Set [remote] url and api_key in "
            f"{config.config_path} or HERDSYNC_REMOTE_URL / HERDSYNC_API_KEY.",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(1)


async def build_coordinator(config: HerdSyncConfig) -> SyncCoordinator:
    """Wire cache, remote client, session and push queue from configuration."""
    cache = await open_cache(config)
    remote = PostgrestClient(
        config.remote.url,
        config.remote.api_key,
        timeout=config.remote.timeout,
        page_size=config.sync.page_size,
    )
    await remote.connect()
    _active_resources.append(remote)

    session = SessionContext(
        StaticAuth(config.session.user_id or None),
        farm_users_table=config.remote.farm_users_table,
    )
    coordinator = SyncCoordinator(
        remote,
        cache,
        SQLiteCursorStore(cache),
        session,
        max_invalid_rows=config.sync.max_invalid_rows,
    )
    coordinator.attach_push_queue(PushQueue(cache, config.push_queue.to_policy()))
    return coordinator


def output_result(data: dict[str, Any], as_json: bool = False) -> None:
    """Output result in appropriate format."""
    if as_json:
        typer.echo(json.dumps(data, indent=2, default=str))
        return

    if "error" in data:
        typer.secho(f"Error: {data['error']}", fg=typer.colors.RED, err=True)
    elif "message" in data:
        typer.secho(data["message"], fg=typer.colors.GREEN)
    else:
        for key, value in data.items():
            typer.echo(f"{key}: {value}")
