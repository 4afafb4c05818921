"""Tests for schema migrations and connection handling."""

from pathlib import Path

import aiosqlite
import pytest

from watchlater.core.db import MediaRepository, MigrationError
from watchlater.core.db.migrator import Migrator

EXPECTED_TABLES = {
    "videos",
    "video_states",
    "tags",
    "comments",
    "channels",
    "channel_lists",
    "channel_list_items",
    "tv_shows",
    "tv_show_states",
    "episodes",
    "movies",
    "movie_states",
    "movie_playlists",
    "movie_playlist_items",
    "settings",
    "schema_migrations",
}


async def _tables(db_path: Path) -> set:
    async with aiosqlite.connect(str(db_path)) as db:
        cursor = await db.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        return {row[0] for row in await cursor.fetchall()}


@pytest.mark.asyncio
class TestMigrator:
    """Test migration discovery and application."""

    async def test_fresh_database(self, tmp_path: Path):
        db_path = tmp_path / "fresh.db"
        applied = await Migrator(db_path, enable_wal=False).run_migrations()

        assert applied == [1]
        assert EXPECTED_TABLES <= await _tables(db_path)

    async def test_second_run_applies_nothing(self, tmp_path: Path):
        db_path = tmp_path / "fresh.db"
        migrator = Migrator(db_path, enable_wal=False)
        await migrator.run_migrations()
        assert await migrator.run_migrations() == []

        async with aiosqlite.connect(str(db_path)) as db:
            cursor = await db.execute("SELECT version, filename FROM schema_migrations")
            assert await cursor.fetchall() == [(1, "001_initial_schema.sql")]

    async def test_custom_migrations_in_version_order(self, tmp_path: Path):
        migrations = tmp_path / "migrations"
        migrations.mkdir()
        (migrations / "002_add_index.sql").write_text("CREATE INDEX idx_things_name ON things(name);")
        (migrations / "001_things.sql").write_text("CREATE TABLE things (id INTEGER PRIMARY KEY, name TEXT);")
        (migrations / "notes.sql").write_text("this file is not a migration")

        applied = await Migrator(tmp_path / "custom.db", migrations, enable_wal=False).run_migrations()
        assert applied == [1, 2]

    async def test_failed_migration_is_rolled_back(self, tmp_path: Path):
        migrations = tmp_path / "migrations"
        migrations.mkdir()
        (migrations / "001_broken.sql").write_text(
            "CREATE TABLE half_done (id INTEGER PRIMARY KEY);\nCREATE TABLE oops (;"
        )
        db_path = tmp_path / "broken.db"

        with pytest.raises(MigrationError) as exc_info:
            await Migrator(db_path, migrations, enable_wal=False).run_migrations()

        assert exc_info.value.version == 1
        tables = await _tables(db_path)
        assert "half_done" not in tables

        async with aiosqlite.connect(str(db_path)) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM schema_migrations")
            assert (await cursor.fetchone())[0] == 0

    async def test_missing_migrations_dir(self, tmp_path: Path):
        applied = await Migrator(tmp_path / "x.db", tmp_path / "nope", enable_wal=False).run_migrations()
        assert applied == []


@pytest.mark.asyncio
class TestRepositoryLifecycle:
    """Test repository construction from configuration."""

    async def test_relative_path_resolves_against_config_dir(self, tmp_path: Path, database_config):
        database_config.database_path = "nested.db"
        repo = await MediaRepository.from_config(database_config, config_dir=tmp_path)
        try:
            assert repo.db_path == tmp_path / "nested.db"
            assert repo.db_path.exists()
            assert repo.placeholder_title == "Untitled Video"
        finally:
            await repo.close()

    async def test_library_settings_applied(self, tmp_path: Path, database_config, library_config):
        library_config.shorts_max_duration = 90
        library_config.placeholder_title = "Pending"
        repo = await MediaRepository.from_config(database_config, library=library_config)
        try:
            assert repo.shorts_max_duration == 90
            video_id = await repo.create_video("aaaaaaaaaaa")
            assert (await repo.get_video_by_id(video_id))["title"] == "Pending"
        finally:
            await repo.close()

    async def test_reopen_keeps_data(self, database_config):
        repo = await MediaRepository.from_config(database_config)
        await repo.create_video("aaaaaaaaaaa")
        await repo.set_setting("theme", "dark")
        await repo.close()

        repo = await MediaRepository.from_config(database_config)
        try:
            assert (await repo.list_videos()).total == 1
            assert await repo.get_setting("theme") == "dark"
            assert await repo.get_all_settings() == {"theme": "dark"}
        finally:
            await repo.close()

    async def test_context_manager(self, database_config):
        async with MediaRepository(Path(database_config.database_path), enable_wal=False) as repo:
            await Migrator(repo.db_path, enable_wal=False).run_migrations()
            assert await repo.get_setting("missing") is None
