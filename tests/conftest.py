"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from factories import FARM_ID, USER_ID, uid
from herd_sync.remote.memory_remote import InMemoryRemote
from herd_sync.storage.memory_store import InMemoryCache
from herd_sync.storage.sqlite_store import SQLiteCache
from herd_sync.sync.coordinator import SyncCoordinator
from herd_sync.sync.cursor import InMemoryCursorStore
from herd_sync.sync.push_queue import PushQueue
from herd_sync.sync.session import SessionContext, StaticAuth


@pytest.fixture
def remote() -> InMemoryRemote:
    """Remote store with the test user's farm membership."""
    store = InMemoryRemote()
    store.seed(
        "farm_users",
        {"id": uid(1, "e"), "user_id": USER_ID, "farm_id": FARM_ID, "role": "owner"},
    )
    return store


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def cursors() -> InMemoryCursorStore:
    return InMemoryCursorStore()


@pytest.fixture
def auth() -> StaticAuth:
    return StaticAuth(USER_ID)


@pytest.fixture
def session(auth: StaticAuth) -> SessionContext:
    return SessionContext(auth)


@pytest.fixture
def push_queue(cache: InMemoryCache) -> PushQueue:
    return PushQueue(cache)


@pytest.fixture
def coordinator(
    remote: InMemoryRemote,
    cache: InMemoryCache,
    cursors: InMemoryCursorStore,
    session: SessionContext,
    push_queue: PushQueue,
) -> SyncCoordinator:
    return SyncCoordinator(remote, cache, cursors, session, push_queue=push_queue)


@pytest_asyncio.fixture
async def sqlite_cache(tmp_path: Path) -> AsyncGenerator[SQLiteCache, None]:
    """Initialized SQLite cache in a temporary directory."""
    store = SQLiteCache(tmp_path / "cache.db")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def herdsync_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point configuration at a temporary data directory."""
    data_dir = tmp_path / "herdsync"
    monkeypatch.setenv("HERDSYNC_DIR", str(data_dir))
    for name in ("HERDSYNC_REMOTE_URL", "HERDSYNC_API_KEY", "HERDSYNC_USER_ID"):
        monkeypatch.delenv(name, raising=False)
    return data_dir
