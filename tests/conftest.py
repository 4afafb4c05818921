"""Shared pytest fixtures for all tests."""

from pathlib import Path

import pytest
import pytest_asyncio

from watchlater.common.config import Config, DatabaseConfig, LibraryConfig, LoggingConfig
from watchlater.core.db import MediaRepository


@pytest.fixture
def sample_config(tmp_path: Path) -> Config:
    """Provide a sample configuration for tests."""
    return Config(
        config_dir=tmp_path,
        logging=LoggingConfig(level="DEBUG", format="text"),
    )


@pytest.fixture
def database_config(tmp_path: Path) -> DatabaseConfig:
    """Provide a test database configuration."""
    return DatabaseConfig(
        database_path=str(tmp_path / "test_watchlater.db"),
        enable_wal_mode=False,  # Disable WAL mode in tests to avoid lock issues
        connection_timeout=30,
    )


@pytest.fixture
def library_config() -> LibraryConfig:
    return LibraryConfig(shorts_max_duration=60, placeholder_title="Untitled Video")


@pytest_asyncio.fixture
async def test_db(database_config: DatabaseConfig, library_config: LibraryConfig) -> MediaRepository:
    """Provide a test database with migrations applied."""
    repo = await MediaRepository.from_config(database_config, library=library_config)
    yield repo
    await repo.close()


@pytest_asyncio.fixture
async def test_repository(test_db: MediaRepository) -> MediaRepository:
    """Provide a ready-to-use test repository."""
    return test_db


@pytest.fixture
def sample_video_metadata() -> dict:
    """Provide sample video metadata for testing."""
    return {
        "youtube_id": "dQw4w9WgXcQ",
        "title": "Never Gonna Give You Up",
        "description": "The official video",
        "duration": 213,
        "published_at": "2009-10-25T06:57:33+00:00",
        "added_to_playlist_at": "2024-01-15T20:00:00+00:00",
        "fetch_status": "completed",
        "channel_title": "Rick Astley",
        "youtube_channel_id": "UCuAXFkgsw1L7xaCfnd5JJOw",
    }


@pytest.fixture
def sample_movie_metadata() -> dict:
    return {
        "tmdb_id": 603,
        "title": "The Matrix",
        "imdb_id": "tt0133093",
        "overview": "A hacker learns the nature of reality.",
        "release_date": "1999-03-31",
        "runtime": 136,
    }
