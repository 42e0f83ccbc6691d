"""Tests for application settings."""

import pytest

from edm_registry.infrastructure.settings import APP_NAME, DEFAULT_BATCH_SIZE, Settings


@pytest.fixture
def env(monkeypatch, tmp_path):
    for name in ("EDM_APP_NAME", "EDM_BATCH_SIZE", "EDM_LOG_LEVEL", "EDM_LOG_JSON", "EDM_DB_TYPE", "EDM_DB_PATH"):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


class TestSettings:
    """Test suite for Settings."""

    def test_defaults(self, env):
        """Test default settings with no environment configured."""
        settings = Settings()

        assert settings.app_name == APP_NAME
        assert settings.batch_size == DEFAULT_BATCH_SIZE
        assert settings.log_level == "INFO"
        assert settings.log_json is False
        assert settings.get_db_path() == ":memory:"

    def test_environment_overrides(self, env):
        """Test that EDM_* variables override the defaults."""
        env.setenv("EDM_BATCH_SIZE", "50")
        env.setenv("EDM_LOG_JSON", "TRUE")
        env.setenv("EDM_LOG_LEVEL", "DEBUG")

        settings = Settings()

        assert settings.batch_size == 50
        assert settings.log_json is True
        assert settings.log_level == "DEBUG"

    def test_db_path_only_for_duckdb(self, env):
        """Test that get_db_path() rejects a store without a file."""
        env.setenv("EDM_DB_TYPE", "memory")

        with pytest.raises(ValueError, match="does not use db_path"):
            Settings().get_db_path()

    def test_configuration_is_cached_until_reload(self, env, tmp_path):
        """Test that configuration is read once and refreshed by reload()."""
        settings = Settings()
        assert settings.db_config.db_type == "duckdb"

        env.setenv("EDM_DB_TYPE", "memory")
        assert settings.db_config.db_type == "duckdb"

        settings.reload()
        assert settings.db_config.db_type == "memory"
        assert settings.write_config.max_attempts == 3
