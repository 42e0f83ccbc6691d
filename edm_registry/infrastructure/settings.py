"""Application Settings and Configuration.

Combines the configuration manager with application defaults.
"""

import os
from typing import Optional

from edm_registry.infrastructure.config_manager import ConfigManager, DatabaseConfig, WriteConfig

# Application metadata
APP_NAME = "EDM Registry"
APP_VERSION = "0.1.0"

# Documents per transaction when bulk loading
DEFAULT_BATCH_SIZE = 500


class Settings:
    """Application settings loaded from the configuration manager and environment.

    Database and write-path configuration are loaded lazily on first access.
    """

    def __init__(self):
        self._config_manager: Optional[ConfigManager] = None

        self.app_name = os.getenv("EDM_APP_NAME", APP_NAME)
        self.batch_size = int(os.getenv("EDM_BATCH_SIZE", str(DEFAULT_BATCH_SIZE)))
        self.log_level = os.getenv("EDM_LOG_LEVEL", "INFO")
        self.log_json = os.getenv("EDM_LOG_JSON", "false").lower() == "true"

    @property
    def config_manager(self) -> ConfigManager:
        if self._config_manager is None:
            self._config_manager = ConfigManager.from_environment()
        return self._config_manager

    @property
    def db_config(self) -> DatabaseConfig:
        return self.config_manager.get_database_config()

    @property
    def write_config(self) -> WriteConfig:
        return self.config_manager.get_write_config()

    def get_db_path(self) -> str:
        """Database path for DuckDB, ':memory:' when unset."""
        if self.db_config.db_type == "duckdb":
            return self.db_config.db_path or ":memory:"
        raise ValueError(f"Database type '{self.db_config.db_type}' does not use db_path")

    def reload(self) -> None:
        """Forget cached configuration so the next access re-reads the environment."""
        self._config_manager = None


# Global settings instance
settings = Settings()
