"""Bidirectional sync between the remote farm tables and the local cache."""

from herd_sync.sync.entities import SYNC_ORDER, get_entity_config, list_entity_types
from herd_sync.sync.entity_config import EntityConfig, FieldKind, FieldSpec, ReferenceSpec
from herd_sync.sync.errors import (
    CommitError,
    EntityNotFoundError,
    InvalidDataError,
    NoFarmAssociationError,
    NotAuthenticatedError,
    RemoteRequestError,
    RemoteUnavailableError,
    SyncError,
    UnknownEntityTypeError,
)
from herd_sync.sync.protocol import (
    DeletedRecordMarker,
    FullSyncReport,
    MappedRecord,
    PushOutcome,
    QueueReport,
    SyncMode,
    SyncSummary,
)

__all__ = [
    "SYNC_ORDER",
    "get_entity_config",
    "list_entity_types",
    "EntityConfig",
    "FieldKind",
    "FieldSpec",
    "ReferenceSpec",
    "SyncError",
    "NotAuthenticatedError",
    "NoFarmAssociationError",
    "RemoteUnavailableError",
    "RemoteRequestError",
    "InvalidDataError",
    "CommitError",
    "EntityNotFoundError",
    "UnknownEntityTypeError",
    "DeletedRecordMarker",
    "FullSyncReport",
    "MappedRecord",
    "PushOutcome",
    "QueueReport",
    "SyncMode",
    "SyncSummary",
]
