"""Configuration for herd-sync.

Configuration is stored in ~/.herdsync/config.toml (or $HERDSYNC_DIR).
The local cache database lives next to it as cache.db.

Environment overrides, applied on load:
- HERDSYNC_REMOTE_URL
- HERDSYNC_API_KEY
- HERDSYNC_USER_ID
"""

from __future__ import annotations

import json
import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from herd_sync.core.push_operation import RetryPolicy

logger = logging.getLogger(__name__)


def get_herdsync_dir() -> Path:
    """Get herd-sync data directory.

    Priority:
    1. HERDSYNC_DIR environment variable
    2. ~/.herdsync/
    """
    env_dir = os.environ.get("HERDSYNC_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".herdsync"


def _toml_str(value: str) -> str:
    # JSON string escapes are valid TOML basic-string escapes.
    return json.dumps(value)


def _int_at_least(value: Any, default: int, minimum: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return max(parsed, minimum)


def _float_at_least(value: Any, default: float, minimum: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return max(parsed, minimum)


@dataclass
class RemoteSettings:
    """Connection to the Supabase/PostgREST project."""

    url: str = ""
    api_key: str = ""
    timeout: float = 30.0
    farm_users_table: str = "farm_users"

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.api_key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "api_key": self.api_key,
            "timeout": self.timeout,
            "farm_users_table": self.farm_users_table,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteSettings:
        return cls(
            url=str(data.get("url", "")),
            api_key=str(data.get("api_key", "")),
            timeout=_float_at_least(data.get("timeout", 30.0), 30.0, 1.0),
            farm_users_table=str(data.get("farm_users_table") or "farm_users"),
        )


@dataclass
class SessionSettings:
    """Identity used by the CLI when no interactive sign-in exists."""

    user_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"user_id": self.user_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionSettings:
        return cls(user_id=str(data.get("user_id", "")))


@dataclass
class SyncSettings:
    """Pull-side behavior."""

    max_invalid_rows: int = 5
    background_interval_seconds: float = 300.0
    page_size: int = 1000

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_invalid_rows": self.max_invalid_rows,
            "background_interval_seconds": self.background_interval_seconds,
            "page_size": self.page_size,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncSettings:
        return cls(
            max_invalid_rows=_int_at_least(data.get("max_invalid_rows", 5), 5, 0),
            background_interval_seconds=_float_at_least(
                data.get("background_interval_seconds", 300.0), 300.0, 10.0
            ),
            page_size=_int_at_least(data.get("page_size", 1000), 1000, 1),
        )


@dataclass
class PushQueueSettings:
    """Retry policy for queued offline writes."""

    max_retries: int = 5
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay_seconds=self.base_delay_seconds,
            max_delay_seconds=self.max_delay_seconds,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_retries": self.max_retries,
            "base_delay_seconds": self.base_delay_seconds,
            "max_delay_seconds": self.max_delay_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PushQueueSettings:
        base = _float_at_least(data.get("base_delay_seconds", 1.0), 1.0, 0.0)
        return cls(
            max_retries=_int_at_least(data.get("max_retries", 5), 5, 0),
            base_delay_seconds=base,
            max_delay_seconds=_float_at_least(data.get("max_delay_seconds", 60.0), 60.0, base),
        )


@dataclass
class HerdSyncConfig:
    """herd-sync configuration.

    Storage location: ~/.herdsync/config.toml
    Cache location: ~/.herdsync/cache.db
    """

    data_dir: Path = field(default_factory=get_herdsync_dir)
    remote: RemoteSettings = field(default_factory=RemoteSettings)
    session: SessionSettings = field(default_factory=SessionSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    push_queue: PushQueueSettings = field(default_factory=PushQueueSettings)
    version: str = "1.0"

    @classmethod
    def load(cls, config_path: Path | None = None) -> HerdSyncConfig:
        """Load configuration from file, or create default if doesn't exist."""
        if config_path is None:
            data_dir = get_herdsync_dir()
            config_path = data_dir / "config.toml"
        else:
            data_dir = config_path.parent

        if not config_path.exists():
            config = cls(data_dir=data_dir)
            config.save()
            logger.info("Created default configuration at %s", config_path)
        else:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
            config = cls(
                data_dir=data_dir,
                remote=RemoteSettings.from_dict(data.get("remote", {})),
                session=SessionSettings.from_dict(data.get("session", {})),
                sync=SyncSettings.from_dict(data.get("sync", {})),
                push_queue=PushQueueSettings.from_dict(data.get("push_queue", {})),
                version=str(data.get("version", "1.0")),
            )

        config.apply_env_overrides()
        return config

    def apply_env_overrides(self) -> None:
        url = os.environ.get("HERDSYNC_REMOTE_URL")
        if url:
            self.remote.url = url
        api_key = os.environ.get("HERDSYNC_API_KEY")
        if api_key:
            self.remote.api_key = api_key
        user_id = os.environ.get("HERDSYNC_USER_ID")
        if user_id:
            self.session.user_id = user_id

    def save(self) -> None:
        """Save configuration to TOML file (atomic write via temp+rename)."""
        import tempfile

        self.data_dir.mkdir(parents=True, exist_ok=True)
        config_path = self.config_path

        # Build TOML content manually (no toml write dependency)
        lines = [
            "# herd-sync configuration",
            "",
            f"version = {_toml_str(self.version)}",
            "",
            "# Remote Supabase/PostgREST project",
            "[remote]",
            f"url = {_toml_str(self.remote.url)}",
            f"api_key = {_toml_str(self.remote.api_key)}",
            f"timeout = {float(self.remote.timeout)}",
            f"farm_users_table = {_toml_str(self.remote.farm_users_table)}",
            "",
            "[session]",
            f"user_id = {_toml_str(self.session.user_id)}",
            "",
            "# Pull-side sync behavior",
            "[sync]",
            f"max_invalid_rows = {int(self.sync.max_invalid_rows)}",
            f"background_interval_seconds = {float(self.sync.background_interval_seconds)}",
            f"page_size = {int(self.sync.page_size)}",
            "",
            "# Offline push queue retries",
            "[push_queue]",
            f"max_retries = {int(self.push_queue.max_retries)}",
            f"base_delay_seconds = {float(self.push_queue.base_delay_seconds)}",
            f"max_delay_seconds = {float(self.push_queue.max_delay_seconds)}",
        ]

        # Atomic write: write to temp file, then rename
        content = "\n".join(lines) + "\n"
        fd, tmp_path = tempfile.mkstemp(dir=str(self.data_dir), suffix=".toml.tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            Path(tmp_path).replace(config_path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    @property
    def config_path(self) -> Path:
        """Get path to config file."""
        return self.data_dir / "config.toml"

    @property
    def cache_db_path(self) -> Path:
        """Get path to the local cache database."""
        return self.data_dir / "cache.db"

    def to_dict(self) -> dict[str, Any]:
        remote = self.remote.to_dict()
        if remote["api_key"]:
            remote["api_key"] = "***"
        return {
            "version": self.version,
            "data_dir": str(self.data_dir),
            "remote": remote,
            "session": self.session.to_dict(),
            "sync": self.sync.to_dict(),
            "push_queue": self.push_queue.to_dict(),
        }


# Singleton instance for easy access
_config: HerdSyncConfig | None = None


def get_config(reload: bool = False) -> HerdSyncConfig:
    """Get the configuration (singleton).

    Args:
        reload: Force reload from disk

    Returns:
        HerdSyncConfig instance
    """
    global _config
    if _config is None or reload:
        _config = HerdSyncConfig.load()
    return _config
