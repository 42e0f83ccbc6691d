"""Tests for ConfigManager, DatabaseConfig and WriteConfig."""

import json

import pytest
from pydantic import ValidationError

from edm_registry.domain.services import ValidationMode
from edm_registry.infrastructure.config_manager import ConfigManager, DatabaseConfig, WriteConfig

ENV_VARS = (
    "EDM_DB_TYPE", "EDM_DB_PATH", "EDM_DB_LOCK_TIMEOUT", "EDM_VALIDATION_MODE", "EDM_ENFORCE_ENROLLMENT",
    "EDM_RETRY_MAX_ATTEMPTS", "EDM_RETRY_MIN_WAIT", "EDM_RETRY_MAX_WAIT",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No EDM_* variables and no .env file in the working directory.

    Variables a loaded .env file adds are removed again on teardown.
    """
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


class TestDatabaseConfig:
    """Test suite for DatabaseConfig validation."""

    def test_defaults(self):
        """Test DatabaseConfig defaults."""
        config = DatabaseConfig()
        assert config.db_type == "duckdb"
        assert config.get_connection_string() == ":memory:"

    def test_db_type_is_case_insensitive(self):
        """Test that db_type is normalised to lowercase."""
        assert DatabaseConfig(db_type="MEMORY").db_type == "memory"

    def test_unsupported_db_type(self):
        """Test that an unsupported db_type is rejected."""
        with pytest.raises(ValidationError, match="Unsupported database type"):
            DatabaseConfig(db_type="postgresql")

    def test_missing_directory(self, tmp_path):
        """Test that db_path must be in an existing directory."""
        with pytest.raises(ValidationError, match="does not exist"):
            DatabaseConfig(db_path=str(tmp_path / "nope" / "edm.duckdb"))

    def test_connection_string(self, tmp_path):
        """Test get_connection_string() for a file database."""
        path = str(tmp_path / "edm.duckdb")
        assert DatabaseConfig(db_path=path).get_connection_string() == path

    def test_lock_timeout_must_be_positive(self):
        """Test that lock_timeout must be positive."""
        with pytest.raises(ValidationError):
            DatabaseConfig(lock_timeout=0)


class TestWriteConfig:
    """Test suite for WriteConfig validation."""

    def test_defaults(self):
        """Test WriteConfig defaults."""
        config = WriteConfig()
        assert config.validation_mode == ValidationMode.STRICT
        assert config.enforce_enrollment is False
        assert config.max_attempts == 3

    def test_attempt_bounds(self):
        """Test that max_attempts must be at least one."""
        with pytest.raises(ValidationError):
            WriteConfig(max_attempts=0)


class TestFromEnvironment:
    """Test suite for environment loading."""

    def test_defaults(self, clean_env):
        """Test configuration with no EDM_* variables set."""
        manager = ConfigManager.from_environment()

        assert manager.get_database_config().db_type == "duckdb"
        assert manager.get_database_config().db_path is None
        assert manager.get_write_config() == WriteConfig()

    def test_variables(self, clean_env, tmp_path):
        """Test that every EDM_* variable is read."""
        clean_env.setenv("EDM_DB_TYPE", "duckdb")
        clean_env.setenv("EDM_DB_PATH", str(tmp_path / "edm.duckdb"))
        clean_env.setenv("EDM_DB_LOCK_TIMEOUT", "9.5")
        clean_env.setenv("EDM_VALIDATION_MODE", "ADVISORY")
        clean_env.setenv("EDM_ENFORCE_ENROLLMENT", "yes")
        clean_env.setenv("EDM_RETRY_MAX_ATTEMPTS", "5")

        manager = ConfigManager.from_environment()
        db_config = manager.get_database_config()
        write_config = manager.get_write_config()

        assert db_config.db_path == str(tmp_path / "edm.duckdb")
        assert db_config.lock_timeout == 9.5
        assert write_config.validation_mode == ValidationMode.ADVISORY
        assert write_config.enforce_enrollment is True
        assert write_config.max_attempts == 5

    def test_dotenv_file(self, clean_env, tmp_path):
        """Test loading variables from an explicit .env file."""
        env_file = tmp_path / "edm.env"
        env_file.write_text("EDM_DB_TYPE=memory\n")

        manager = ConfigManager.from_environment(env_file=str(env_file))

        assert manager.get_database_config().db_type == "memory"

    def test_environment_wins_over_dotenv(self, clean_env, tmp_path):
        """Test that set variables take precedence over .env values."""
        (tmp_path / ".env").write_text("EDM_DB_TYPE=memory\n")
        clean_env.setenv("EDM_DB_TYPE", "duckdb")

        assert ConfigManager.from_environment().get_database_config().db_type == "duckdb"

    def test_invalid_value_fails_fast(self, clean_env):
        """Test that an invalid value raises ValidationError."""
        clean_env.setenv("EDM_VALIDATION_MODE", "lenient")

        with pytest.raises(ValidationError):
            ConfigManager.from_environment().get_write_config()


class TestFromFile:
    """Test suite for JSON file loading."""

    def test_sections(self, tmp_path):
        """Test loading database and write sections from JSON."""
        path = tmp_path / "edm.json"
        path.write_text(json.dumps({"database": {"db_type": "memory"}, "write": {"max_attempts": 7}}))

        manager = ConfigManager.from_file(str(path))

        assert manager.get_database_config().db_type == "memory"
        assert manager.get_write_config().max_attempts == 7
        assert manager.get("write.max_attempts") == 7
        assert manager.get("write.min_wait", 0.2) == 0.2
        assert manager.get("database.db_type.extra", "x") == "x"

    def test_missing_file(self, tmp_path):
        """Test that a missing config file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            ConfigManager.from_file(str(tmp_path / "missing.json"))

    def test_invalid_json(self, tmp_path):
        """Test that malformed JSON raises ValueError."""
        path = tmp_path / "edm.json"
        path.write_text("{")

        with pytest.raises(ValueError, match="Invalid JSON"):
            ConfigManager.from_file(str(path))

    def test_not_an_object(self, tmp_path):
        """Test that a non-object JSON document raises ValueError."""
        path = tmp_path / "edm.json"
        path.write_text("[]")

        with pytest.raises(ValueError, match="JSON object"):
            ConfigManager.from_file(str(path))
