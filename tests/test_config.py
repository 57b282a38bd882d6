"""
Tests for configuration loading and the backup store.
"""

from pathlib import Path

import pytest

from openhlx.config import HlxConfig, load_config
from openhlx.core import SystemNotInitializedError
from openhlx.core.backup import BackupStore

# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
async def store(tmp_path: Path):
    backup = BackupStore(tmp_path / "backup.db")
    await backup.open()
    yield backup
    await backup.close()


# -----------------------------------------------------------------------------
# Config
# -----------------------------------------------------------------------------


class TestLoadConfig:
    def test_shipped_defaults(self) -> None:
        config = load_config()
        assert isinstance(config, HlxConfig)
        assert config.server.port == 23
        assert config.server.scheme == "telnet"
        assert config.client.request_timeout == 10.0
        assert config.backup.path == "hlx-backup.db"
        assert config.proxy.upstream_port == 23
        assert config.proxy.reconnect_interval == 5.0

    def test_partial_file(self, tmp_path: Path) -> None:
        path = tmp_path / "hlx.toml"
        path.write_text('[server]\nport = 2323\n\n[backup]\nautosave_interval = 0\n')

        config = load_config(path)

        assert config.server.port == 2323
        assert config.server.host == "0.0.0.0"
        assert config.backup.autosave_interval == 0
        assert config.client.port == 23
        assert config.proxy.upstream_host == "127.0.0.1"

    def test_unknown_keys_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "hlx.toml"
        path.write_text('[server]\nport = 2424\ncolour = "blue"\n\n[extra]\nx = 1\n')

        config = load_config(path)

        assert config.server.port == 2424
        assert not hasattr(config.server, "colour")


# -----------------------------------------------------------------------------
# Backup store
# -----------------------------------------------------------------------------


class TestBackupStore:
    async def test_empty_store(self, store: BackupStore) -> None:
        assert store.is_open
        assert await store.load() is None

    async def test_save_and_load(self, store: BackupStore) -> None:
        await store.save({"zones": [{"name": "Kitchen"}]})
        assert await store.load() == {"zones": [{"name": "Kitchen"}]}

    async def test_save_replaces(self, store: BackupStore) -> None:
        await store.save({"version": 1})
        await store.save({"version": 2})
        assert await store.load() == {"version": 2}

    async def test_survives_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "persist.db"
        first = BackupStore(path)
        await first.open()
        await first.save({"front_panel": {"brightness": 1}})
        await first.close()

        second = BackupStore(path)
        await second.open()
        try:
            assert await second.load() == {"front_panel": {"brightness": 1}}
        finally:
            await second.close()

    async def test_requires_open(self, tmp_path: Path) -> None:
        backup = BackupStore(tmp_path / "closed.db")
        assert not backup.is_open
        with pytest.raises(SystemNotInitializedError):
            await backup.load()
