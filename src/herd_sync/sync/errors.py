"""Error taxonomy for sync and push operations."""

from __future__ import annotations


class SyncError(Exception):
    """Base class for every failure surfaced by the sync engine.

    ``retryable`` tells schedulers whether running the same operation again
    later can succeed without outside intervention.
    """

    retryable: bool = False

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__doc__ or "sync error")
        self.message = message


class NotAuthenticatedError(SyncError):
    """No active session."""


class NoFarmAssociationError(SyncError):
    """The authenticated user is not a member of any farm."""


class RemoteUnavailableError(SyncError):
    """The remote store could not be reached or answered with a server error."""

    retryable = True

    def __init__(self, message: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteRequestError(SyncError):
    """The remote store rejected a request (4xx other than rate limiting)."""

    def __init__(self, message: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_not_found(self) -> bool:
        return self.status_code in (404, 406)


class InvalidDataError(SyncError):
    """A remote row could not be mapped into a local entity."""

    def __init__(self, message: str = "", row_id: str | None = None) -> None:
        super().__init__(message)
        self.row_id = row_id


class CommitError(SyncError):
    """The local cache refused to commit a staged batch."""

    retryable = True


class EntityNotFoundError(SyncError):
    """A local entity referenced by a push or queue operation does not exist."""

    def __init__(self, entity_type: str, entity_id: str) -> None:
        super().__init__(f"{entity_type} {entity_id} not found in local cache")
        self.entity_type = entity_type
        self.entity_id = entity_id


class UnknownEntityTypeError(SyncError):
    """No entity configuration is registered under the requested name."""

    def __init__(self, entity_type: str) -> None:
        super().__init__(f"Unknown entity type: {entity_type}")
        self.entity_type = entity_type
