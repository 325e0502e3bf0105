"""Queued local writes waiting to be pushed to the remote store."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any
from uuid import uuid4

from herd_sync.utils.timeutils import parse_timestamp, utcnow


class PushOperationType(StrEnum):
    """Kind of remote write a queued operation performs."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff for failed push operations."""

    max_retries: int = 5
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0


DEFAULT_RETRY_POLICY = RetryPolicy()


@dataclass(frozen=True)
class PushOperation:
    """
    One pending remote write.

    Attributes:
        id: Queue entry id
        entity_type: Registry name of the table
        entity_id: Remote id of the cached entity to push
        operation: create, update or delete
        created_at: When the local change was recorded
        retry_count: Failed attempts so far
        last_attempt: When the last attempt ran
        error: Message of the last failure
    """

    id: str
    entity_type: str
    entity_id: str
    operation: PushOperationType
    created_at: datetime = field(default_factory=utcnow)
    retry_count: int = 0
    last_attempt: datetime | None = None
    error: str | None = None

    @classmethod
    def create(
        cls,
        entity_type: str,
        entity_id: str,
        operation: PushOperationType | str,
    ) -> PushOperation:
        return cls(
            id=str(uuid4()),
            entity_type=entity_type,
            entity_id=entity_id,
            operation=PushOperationType(operation),
            created_at=utcnow(),
        )

    @property
    def dedup_key(self) -> tuple[str, str, str]:
        return (self.entity_type, self.entity_id, self.operation.value)

    def should_retry(self, policy: RetryPolicy = DEFAULT_RETRY_POLICY) -> bool:
        return self.retry_count < policy.max_retries

    def next_retry_delay(self, policy: RetryPolicy = DEFAULT_RETRY_POLICY) -> float:
        """Seconds to wait after the last attempt: base * 2^retries, capped."""
        delay = policy.base_delay_seconds * (2**self.retry_count)
        return min(delay, policy.max_delay_seconds)

    def can_retry_now(
        self,
        now: datetime | None = None,
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> bool:
        if not self.should_retry(policy):
            return False
        if self.last_attempt is None:
            return True
        now = now or utcnow()
        return now >= self.last_attempt + timedelta(seconds=self.next_retry_delay(policy))

    def with_failure(self, error: str, when: datetime | None = None) -> PushOperation:
        return replace(
            self,
            retry_count=self.retry_count + 1,
            last_attempt=when or utcnow(),
            error=error,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "operation": self.operation.value,
            "created_at": self.created_at.isoformat(),
            "retry_count": self.retry_count,
            "last_attempt": self.last_attempt.isoformat() if self.last_attempt else None,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PushOperation:
        return cls(
            id=data["id"],
            entity_type=data["entity_type"],
            entity_id=data["entity_id"],
            operation=PushOperationType(data["operation"]),
            created_at=parse_timestamp(data.get("created_at")) or utcnow(),
            retry_count=int(data.get("retry_count") or 0),
            last_attempt=parse_timestamp(data.get("last_attempt")),
            error=data.get("error"),
        )
