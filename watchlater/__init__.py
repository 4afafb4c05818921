"""WatchLater package initialization."""

from pathlib import Path
from typing import Optional

import structlog

from .common.config import Config, DatabaseConfig, LibraryConfig, LoggingConfig
from .common.logging_config import setup_logging
from .core.db import (
    DatabaseConnectionError,
    DatabaseError,
    ListResult,
    MediaRepository,
    MigrationError,
    QueryError,
    TransactionError,
)
from .parsers import ChannelMetadata, TakeoutParser, VideoMetadata
from .workflows import (
    EnrichmentResult,
    ImportResult,
    MetadataEnricher,
    VideoMetadataProvider,
    WatchHistoryImporter,
)

__version__ = "0.1.0"
__all__ = [
    "Config",
    "DatabaseConfig",
    "LibraryConfig",
    "LoggingConfig",
    "MediaRepository",
    "ListResult",
    "DatabaseError",
    "DatabaseConnectionError",
    "MigrationError",
    "QueryError",
    "TransactionError",
    "ChannelMetadata",
    "VideoMetadata",
    "TakeoutParser",
    "EnrichmentResult",
    "ImportResult",
    "MetadataEnricher",
    "VideoMetadataProvider",
    "WatchHistoryImporter",
    "configure",
    "get_config",
    "get_repository",
]

# Module-level logger (not configured yet)
logger = structlog.get_logger(__name__)

# Global config and repository state
_config: Optional[Config] = None
_repository: Optional[MediaRepository] = None


async def configure(config_path: Optional[Path] = None, config: Optional[Config] = None) -> None:
    """
    Configure the watchlater package (async).

    Call once at application startup to load configuration, set up logging
    and open the migrated database.

    Args:
        config_path: Path to YAML configuration file
        config: Pre-loaded Config object (takes precedence over config_path)

    Example:
        >>> import watchlater
        >>> await watchlater.configure(config_path=Path("config.yaml"))
    """
    global _config, _repository

    if config is not None:
        _config = config
    elif config_path is not None:
        _config = Config.from_yaml(config_path)
    else:
        _config = Config()

    _config.resolve_paths()
    setup_logging(_config.logging, _config.config_dir)

    if _repository is not None:
        await _repository.close()
    _repository = await MediaRepository.from_config(_config.database, _config.config_dir, _config.library)

    logger.info(
        "watchlater_configured",
        version=__version__,
        database_path=str(_config.get_database_path()),
    )


def get_config() -> Config:
    """
    Get current configuration, initializing with defaults if needed.

    Example:
        >>> import watchlater
        >>> watchlater.get_config().library.shorts_max_duration
        60
    """
    global _config
    if _config is None:
        # Does not open the repository; call configure() for that
        _config = Config()
        setup_logging(_config.logging)
    return _config


async def get_repository() -> MediaRepository:
    """
    Get the media repository, initializing it from the current config if needed.

    Example:
        >>> import watchlater
        >>> await watchlater.configure()
        >>> repo = await watchlater.get_repository()
        >>> page = await repo.list_videos()
    """
    global _repository

    if _repository is None:
        config = get_config().resolve_paths()
        _repository = await MediaRepository.from_config(config.database, config.config_dir, config.library)
        logger.info(
            "repository_auto_initialized",
            database_path=str(config.get_database_path()),
        )

    return _repository
