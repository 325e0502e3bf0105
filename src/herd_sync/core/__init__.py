"""Core data models for herd-sync."""

from herd_sync.core.entity import CachedEntity
from herd_sync.core.push_operation import (
    DEFAULT_RETRY_POLICY,
    PushOperation,
    PushOperationType,
    RetryPolicy,
)

__all__ = [
    "CachedEntity",
    "PushOperation",
    "PushOperationType",
    "RetryPolicy",
    "DEFAULT_RETRY_POLICY",
]
