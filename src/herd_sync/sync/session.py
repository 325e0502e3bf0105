"""Session context: authentication state and the memoized tenant scope."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from herd_sync.sync.errors import NoFarmAssociationError, NotAuthenticatedError

if TYPE_CHECKING:
    from herd_sync.remote.base import RemoteTableClient

logger = logging.getLogger(__name__)


@runtime_checkable
class AuthProvider(Protocol):
    """What the sync engine needs to know about the signed-in user."""

    @property
    def is_authenticated(self) -> bool: ...

    @property
    def current_user_id(self) -> str | None: ...


class StaticAuth:
    """Auth provider with a fixed user id (CLI and tests)."""

    def __init__(self, user_id: str | None = None) -> None:
        self._user_id = user_id

    @property
    def is_authenticated(self) -> bool:
        return bool(self._user_id)

    @property
    def current_user_id(self) -> str | None:
        return self._user_id

    def sign_in(self, user_id: str) -> None:
        self._user_id = user_id

    def sign_out(self) -> None:
        self._user_id = None


class SessionContext:
    """
    Explicit per-session state passed to the coordinator.

    The farm id is looked up with one remote query on first use and
    memoized for the signed-in user until ``invalidate()`` (logout).
    """

    def __init__(self, auth: AuthProvider, *, farm_users_table: str = "farm_users") -> None:
        self._auth = auth
        self._farm_users_table = farm_users_table
        self._farm_id: str | None = None
        self._farm_user_id: str | None = None
        self._lock = asyncio.Lock()

    @property
    def auth(self) -> AuthProvider:
        return self._auth

    @property
    def cached_farm_id(self) -> str | None:
        if self._farm_user_id != self._auth.current_user_id:
            return None
        return self._farm_id

    def require_authenticated(self) -> str:
        """Return the current user id or raise NotAuthenticatedError."""
        user_id = self._auth.current_user_id
        if not self._auth.is_authenticated or not user_id:
            raise NotAuthenticatedError("No active session")
        return user_id

    async def farm_id(self, remote: RemoteTableClient) -> str:
        """Tenant scope of the signed-in user."""
        user_id = self.require_authenticated()
        cached = self.cached_farm_id
        if cached is not None:
            return cached

        async with self._lock:
            if self._farm_id is not None and self._farm_user_id == user_id:
                return self._farm_id

            rows = await remote.execute(
                remote.query(self._farm_users_table)
                .select("farm_id")
                .eq("user_id", user_id)
                .limit(1)
            )
            farm_id = rows[0].get("farm_id") if rows else None
            if not farm_id:
                raise NoFarmAssociationError(f"User {user_id} is not a member of any farm")

            self._farm_id = str(farm_id)
            self._farm_user_id = user_id
            logger.debug("Resolved farm %s for user %s", self._farm_id, user_id)
            return self._farm_id

    def invalidate(self) -> None:
        """Forget the memoized farm id (call on logout)."""
        self._farm_id = None
        self._farm_user_id = None
