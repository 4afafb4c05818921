"""Tests for package-level configuration."""

from pathlib import Path

import pytest
import pytest_asyncio

import watchlater
from watchlater.common.config import Config, DatabaseConfig, LoggingConfig


@pytest_asyncio.fixture
async def reset_package():
    yield
    if watchlater._repository is not None:
        await watchlater._repository.close()
    watchlater._repository = None
    watchlater._config = None


@pytest.mark.asyncio
class TestConfigure:
    """Test watchlater.configure() and the global accessors."""

    async def test_configure_with_config(self, tmp_path: Path, reset_package):
        config = Config(
            config_dir=tmp_path,
            logging=LoggingConfig(level="DEBUG", format="text"),
            database=DatabaseConfig(enable_wal_mode=False),
        )
        await watchlater.configure(config=config)

        assert watchlater.get_config() is config
        repo = await watchlater.get_repository()
        assert repo.db_path == tmp_path / "watchlater.db"
        assert repo.db_path.exists()

    async def test_configure_from_yaml(self, tmp_path: Path, reset_package):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            f"config_dir: {tmp_path}\n"
            "database:\n"
            "  enable_wal_mode: false\n"
            "library:\n"
            "  shorts_max_duration: 120\n"
        )
        await watchlater.configure(config_path=config_file)

        repo = await watchlater.get_repository()
        assert repo.shorts_max_duration == 120

    async def test_reconfigure_replaces_repository(self, tmp_path: Path, reset_package):
        first_dir = tmp_path / "first"
        second_dir = tmp_path / "second"
        await watchlater.configure(config=Config(config_dir=first_dir, database=DatabaseConfig(enable_wal_mode=False)))
        first = await watchlater.get_repository()

        await watchlater.configure(config=Config(config_dir=second_dir, database=DatabaseConfig(enable_wal_mode=False)))
        second = await watchlater.get_repository()

        assert first is not second
        assert second.db_path == second_dir / "watchlater.db"

    async def test_get_repository_initializes_from_env(self, tmp_path: Path, monkeypatch, reset_package):
        monkeypatch.setenv("WATCHLATER_CONFIG_DIR", str(tmp_path))
        watchlater._config = None
        watchlater._repository = None

        repo = await watchlater.get_repository()
        assert repo.db_path == tmp_path / "watchlater.db"
