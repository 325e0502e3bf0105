"""
herd-sync - offline bidirectional sync for farm records.

Mirrors remote farm tables (cattle, health, breeding, sales) into a local
cache, reconciling incremental windows, soft and hard deletions and
cross-table references, and pushes local edits back.
"""

from herd_sync.core.entity import CachedEntity
from herd_sync.core.push_operation import PushOperation, PushOperationType, RetryPolicy
from herd_sync.remote.base import RemoteTableClient, TableQuery
from herd_sync.storage.base import LocalCache
from herd_sync.sync.coordinator import SyncCoordinator
from herd_sync.sync.cursor import InMemoryCursorStore, SQLiteCursorStore, SyncCursorStore
from herd_sync.sync.errors import SyncError
from herd_sync.sync.protocol import FullSyncReport, SyncMode, SyncSummary
from herd_sync.sync.session import SessionContext, StaticAuth

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "CachedEntity",
    "PushOperation",
    "PushOperationType",
    "RetryPolicy",
    "RemoteTableClient",
    "TableQuery",
    "LocalCache",
    "SyncCoordinator",
    "SyncCursorStore",
    "InMemoryCursorStore",
    "SQLiteCursorStore",
    "SyncError",
    "FullSyncReport",
    "SyncMode",
    "SyncSummary",
    "SessionContext",
    "StaticAuth",
]
