"""Configuration models for WatchLater, loaded from YAML."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml
from pydantic import BaseModel, Field, field_validator
from ruamel.yaml import YAML

logger = structlog.get_logger(__name__)


class FileLoggingConfig(BaseModel):
    """Configuration for file-based logging.

    Log files are stored as watchlater.log in config_dir, rotated daily
    with format watchlater.log.YYYY-MM-DD and kept for 7 days.
    """

    enabled: bool = Field(
        default=False,
        description="Enable file logging (logs to watchlater.log in config_dir)",
    )


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(
        default="INFO",
        description="Log level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    format: str = Field(
        default="json",
        description="Log format: json or text",
    )
    file: FileLoggingConfig = Field(
        default_factory=FileLoggingConfig,
        description="File logging configuration",
    )
    third_party: Dict[str, str] = Field(
        default_factory=dict,
        description="Log levels for third-party libraries (advanced)",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["json", "text"]
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid format: {v}. Must be one of {valid_formats}")
        return v_lower


class DatabaseConfig(BaseModel):
    """Configuration for the SQLite database."""

    database_path: str = Field(
        default="watchlater.db",
        description="Database file, relative paths resolve against config_dir",
    )
    enable_wal_mode: bool = Field(
        default=True,
        description="Use Write-Ahead Logging journal mode",
    )
    connection_timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Seconds to wait on a locked database",
    )


class LibraryConfig(BaseModel):
    """Behavior of the media library itself."""

    enrichment_batch_size: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Videos enriched per metadata batch",
    )
    placeholder_title: str = Field(
        default="Untitled Video",
        description="Title stored for videos whose metadata has not been fetched",
    )
    shorts_max_duration: int = Field(
        default=60,
        ge=1,
        description="Longest duration in seconds that counts as a short",
    )

    @field_validator("placeholder_title")
    @classmethod
    def validate_placeholder(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("placeholder_title must not be blank")
        return v


def _get_default_config_dir() -> Path:
    """
    Get default config directory based on environment.

    Priority:
    1. WATCHLATER_CONFIG_DIR environment variable
    2. /config if WATCHLATER_DOCKER=1
    3. $HOME/WatchLater/config otherwise

    Returns:
        Path to config directory
    """
    env_config_dir = os.environ.get("WATCHLATER_CONFIG_DIR")
    if env_config_dir:
        return Path(env_config_dir)

    if os.environ.get("WATCHLATER_DOCKER") == "1":
        return Path("/config")

    return Path.home() / "WatchLater" / "config"


class Config(BaseModel):
    """Main configuration class for WatchLater.

    Environment Variables:
    - WATCHLATER_CONFIG_DIR: Override config_dir
    - WATCHLATER_DOCKER=1: Use /config as config_dir

    Relative paths (database_path) are resolved against config_dir at runtime.
    """

    config_dir: Optional[Path] = Field(
        default=None,
        description="Configuration directory (database, logs). Resolved from WATCHLATER_CONFIG_DIR or defaults.",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig,
        description="Database configuration",
    )
    library: LibraryConfig = Field(
        default_factory=LibraryConfig,
        description="Library behavior configuration",
    )

    def resolve_paths(self, create_dirs: bool = True) -> "Config":
        """
        Resolve config_dir from environment or defaults.

        Args:
            create_dirs: If True, create config_dir if it doesn't exist

        Returns:
            Self with resolved paths (for chaining)

        Example:
            >>> config = Config.from_yaml(Path("config.yaml")).resolve_paths()
        """
        if self.config_dir is None:
            object.__setattr__(self, "config_dir", _get_default_config_dir())

        if create_dirs:
            self.config_dir.mkdir(parents=True, exist_ok=True)

        logger.debug("paths_resolved", config_dir=str(self.config_dir))
        return self

    def get_database_path(self) -> Path:
        """Absolute database path, resolved against config_dir."""
        db_path = Path(self.database.database_path)
        if db_path.is_absolute():
            return db_path
        config_dir = self.config_dir or _get_default_config_dir()
        return config_dir / db_path

    def get_log_file_path(self) -> Path:
        """Absolute log file path (watchlater.log in config_dir)."""
        config_dir = self.config_dir or _get_default_config_dir()
        return config_dir / "watchlater.log"

    @staticmethod
    def _convert_paths_to_strings(data: Any) -> Any:
        """Recursively convert Path objects to strings for YAML serialization."""
        if isinstance(data, Path):
            return str(data)
        elif isinstance(data, dict):
            return {key: Config._convert_paths_to_strings(value) for key, value in data.items()}
        elif isinstance(data, list):
            return [Config._convert_paths_to_strings(item) for item in data]
        else:
            return data

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """
        Load configuration from YAML file using ruamel.yaml.

        Args:
            path: Path to YAML configuration file

        Returns:
            Config object with validated configuration

        Raises:
            FileNotFoundError: If config file doesn't exist
            pydantic.ValidationError: If configuration is invalid
        """
        yaml_loader = YAML()
        yaml_loader.preserve_quotes = True

        with open(path, "r", encoding="utf-8") as f:
            data = yaml_loader.load(f)
        return cls.model_validate(data or {})

    @classmethod
    def from_yaml_string(cls, yaml_string: str) -> "Config":
        """
        Load configuration from YAML string.

        Example:
            >>> config = Config.from_yaml_string("library:\\n  shorts_max_duration: 90")
        """
        data = yaml.safe_load(yaml_string)
        return cls.model_validate(data or {})

    def to_yaml(self, path: Path, exclude_defaults: bool = True) -> None:
        """
        Save configuration to YAML with an atomic temp-file rename.

        Raises:
            OSError: If file cannot be written
        """
        data = self.model_dump(mode="python", exclude_none=True, exclude_defaults=exclude_defaults)
        data = self._convert_paths_to_strings(data)

        yaml_dumper = YAML()
        yaml_dumper.default_flow_style = False

        temp_path = path.with_suffix(".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                yaml_dumper.dump(data, f)
                f.flush()
                os.fsync(f.fileno())
            temp_path.replace(path)
            logger.info("config_saved", path=str(path))
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            logger.error("config_save_failed", path=str(path), error=str(e))
            raise
