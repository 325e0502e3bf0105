"""Tests for the TOML configuration layer."""

from __future__ import annotations

from pathlib import Path

import pytest

from herd_sync.unified_config import HerdSyncConfig, get_config, get_herdsync_dir


class TestHerdSyncConfig:
    def test_defaults_written_on_first_load(self, herdsync_dir: Path) -> None:
        config = HerdSyncConfig.load()

        assert get_herdsync_dir() == herdsync_dir
        assert config.config_path.exists()
        assert config.cache_db_path == herdsync_dir / "cache.db"
        assert not config.remote.is_configured
        assert config.sync.max_invalid_rows == 5

    def test_save_and_reload(self, herdsync_dir: Path) -> None:
        config = HerdSyncConfig.load()
        config.remote.url = "https://farm.example.co"
        config.remote.api_key = 'key "quoted"'
        config.session.user_id = "user-1"
        config.sync.page_size = 250
        config.push_queue.max_retries = 3
        config.save()

        loaded = HerdSyncConfig.load()

        assert loaded.remote.url == "https://farm.example.co"
        assert loaded.remote.api_key == 'key "quoted"'
        assert loaded.session.user_id == "user-1"
        assert loaded.sync.page_size == 250
        assert loaded.push_queue.to_policy().max_retries == 3

    def test_env_overrides(self, herdsync_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HERDSYNC_REMOTE_URL", "https://env.example.co")
        monkeypatch.setenv("HERDSYNC_API_KEY", "env-key")
        monkeypatch.setenv("HERDSYNC_USER_ID", "env-user")

        config = HerdSyncConfig.load()

        assert config.remote.is_configured
        assert config.session.user_id == "env-user"

    def test_out_of_range_values_are_clamped(self, herdsync_dir: Path) -> None:
        herdsync_dir.mkdir(parents=True)
        (herdsync_dir / "config.toml").write_text(
            "[remote]\n"
            "timeout = 0\n"
            "[sync]\n"
            "background_interval_seconds = 1\n"
            'page_size = "lots"\n'
            "[push_queue]\n"
            "base_delay_seconds = 10.0\n"
            "max_delay_seconds = 2.0\n",
            encoding="utf-8",
        )

        config = HerdSyncConfig.load()

        assert config.remote.timeout == 1.0
        assert config.sync.background_interval_seconds == 10.0
        assert config.sync.page_size == 1000
        assert config.push_queue.max_delay_seconds == 10.0

    def test_to_dict_masks_api_key(self, herdsync_dir: Path) -> None:
        config = HerdSyncConfig.load()
        config.remote.api_key = "secret"

        data = config.to_dict()

        assert data["remote"]["api_key"] == "***"
        assert data["data_dir"] == str(herdsync_dir)

    def test_get_config_reload(self, herdsync_dir: Path) -> None:
        first = get_config(reload=True)

        assert get_config() is first
        assert get_config(reload=True) is not first
