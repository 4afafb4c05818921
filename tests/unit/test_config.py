"""Unit tests for configuration loading and validation."""

import pytest
from pathlib import Path
from pydantic import ValidationError

from watchlater.common.config import (
    Config,
    DatabaseConfig,
    FileLoggingConfig,
    LibraryConfig,
    LoggingConfig,
)


class TestLoggingConfig:
    """Tests for LoggingConfig model."""

    def test_default_values(self):
        """Test default logging configuration values."""
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.format == "json"
        assert config.file.enabled is False
        assert config.third_party == {}

    def test_level_validation(self):
        """Test log level validation."""
        config = LoggingConfig(level="debug")  # Should be normalized to uppercase
        assert config.level == "DEBUG"

        with pytest.raises(ValidationError):
            LoggingConfig(level="INVALID")

    def test_format_validation(self):
        """Test log format validation."""
        config = LoggingConfig(format="TEXT")  # Should be normalized to lowercase
        assert config.format == "text"

        with pytest.raises(ValidationError):
            LoggingConfig(format="xml")  # Invalid format


class TestDatabaseConfig:
    """Tests for DatabaseConfig model."""

    def test_default_values(self):
        config = DatabaseConfig()
        assert config.database_path == "watchlater.db"
        assert config.enable_wal_mode is True
        assert config.connection_timeout == 30

    def test_timeout_bounds(self):
        with pytest.raises(ValidationError):
            DatabaseConfig(connection_timeout=0)

        with pytest.raises(ValidationError):
            DatabaseConfig(connection_timeout=301)


class TestLibraryConfig:
    """Tests for LibraryConfig model."""

    def test_default_values(self):
        config = LibraryConfig()
        assert config.shorts_max_duration == 60
        assert config.placeholder_title == "Untitled Video"
        assert config.enrichment_batch_size == 50

    def test_validation_constraints(self):
        """Test field validation constraints."""
        with pytest.raises(ValidationError):
            LibraryConfig(shorts_max_duration=0)  # Must be >= 1

        with pytest.raises(ValidationError):
            LibraryConfig(enrichment_batch_size=1000)  # Must be <= 500

        with pytest.raises(ValidationError):
            LibraryConfig(placeholder_title="   ")


class TestConfig:
    """Tests for main Config model."""

    def test_default_config(self):
        """Test default configuration."""
        config = Config()
        assert config.database.database_path == "watchlater.db"
        assert config.logging.level == "INFO"
        assert config.library.shorts_max_duration == 60

    def test_from_yaml_string(self):
        """Test loading configuration from YAML string."""
        yaml_str = """
logging:
  level: DEBUG
  format: text
database:
  enable_wal_mode: false
library:
  shorts_max_duration: 90
"""
        config = Config.from_yaml_string(yaml_str)
        assert config.logging.level == "DEBUG"
        assert config.logging.format == "text"
        assert config.database.enable_wal_mode is False
        assert config.library.shorts_max_duration == 90
        assert config.library.placeholder_title == "Untitled Video"  # Default value

    def test_empty_yaml_uses_defaults(self):
        assert Config.from_yaml_string("") == Config()

    def test_from_yaml_file(self, tmp_path: Path):
        """Test loading configuration from YAML file."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("""
logging:
  level: ERROR
  file:
    enabled: true
database:
  database_path: data/library.db
  connection_timeout: 60
""")

        config = Config.from_yaml(config_file)
        assert config.logging.level == "ERROR"
        assert config.logging.file.enabled is True
        assert config.database.database_path == "data/library.db"
        assert config.database.connection_timeout == 60

    def test_yaml_round_trip(self, tmp_path: Path):
        """Saved configuration loads back equal, and defaults are not written."""
        config = Config(
            config_dir=tmp_path,
            library=LibraryConfig(shorts_max_duration=75),
            logging=LoggingConfig(file=FileLoggingConfig(enabled=True)),
        )
        path = tmp_path / "config.yaml"
        config.to_yaml(path)

        content = path.read_text()
        assert "shorts_max_duration: 75" in content
        assert "placeholder_title" not in content
        assert not path.with_suffix(".tmp").exists()

        loaded = Config.from_yaml(path)
        assert loaded.library.shorts_max_duration == 75
        assert loaded.logging.file.enabled is True
        assert loaded.config_dir == tmp_path

    def test_invalid_yaml_values(self):
        with pytest.raises(ValidationError):
            Config.from_yaml_string("library:\n  shorts_max_duration: -5\n")


class TestPathResolution:
    """Tests for config_dir and database path resolution."""

    def test_env_config_dir(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("WATCHLATER_CONFIG_DIR", str(tmp_path / "cfg"))
        config = Config().resolve_paths()
        assert config.config_dir == tmp_path / "cfg"
        assert config.config_dir.is_dir()

    def test_docker_config_dir(self, monkeypatch):
        monkeypatch.delenv("WATCHLATER_CONFIG_DIR", raising=False)
        monkeypatch.setenv("WATCHLATER_DOCKER", "1")
        config = Config().resolve_paths(create_dirs=False)
        assert config.config_dir == Path("/config")

    def test_explicit_config_dir_wins(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("WATCHLATER_CONFIG_DIR", "/elsewhere")
        config = Config(config_dir=tmp_path).resolve_paths()
        assert config.config_dir == tmp_path

    def test_database_path(self, tmp_path: Path):
        relative = Config(config_dir=tmp_path)
        assert relative.get_database_path() == tmp_path / "watchlater.db"
        assert relative.get_log_file_path() == tmp_path / "watchlater.log"

        absolute = Config(config_dir=tmp_path, database=DatabaseConfig(database_path="/data/wl.db"))
        assert absolute.get_database_path() == Path("/data/wl.db")
