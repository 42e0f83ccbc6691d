"""Configuration Manager.

Loads store and write-path configuration from environment variables (with
``.env`` support through python-dotenv) or from a JSON file, and validates
it with Pydantic before anything is opened.

Architecture:
    - Infrastructure layer; the domain never reads configuration directly
    - Type-safe configuration using Pydantic models
    - Fail-fast validation prevents runtime errors
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from edm_registry.domain.services.relationship_validator import ValidationMode

logger = logging.getLogger(__name__)

SUPPORTED_DB_TYPES = ("duckdb", "memory")


class DatabaseConfig(BaseModel):
    """Store configuration.

    Parameters:
        db_type: ``duckdb`` or ``memory``
        db_path: Path to the DuckDB file (``:memory:`` for an in-process database)
        lock_timeout: Seconds a writer waits for the transaction lock
    """

    db_type: str = Field("duckdb", description="Store type (duckdb, memory)")
    db_path: Optional[str] = Field(None, description="Path to database file (for DuckDB)")
    lock_timeout: float = Field(5.0, gt=0, description="Writer lock timeout in seconds")

    @field_validator("db_type")
    @classmethod
    def validate_db_type(cls, v: str) -> str:
        if v.lower() not in SUPPORTED_DB_TYPES:
            raise ValueError(f"Unsupported database type: {v}. Supported: {list(SUPPORTED_DB_TYPES)}")
        return v.lower()

    @field_validator("db_path")
    @classmethod
    def validate_db_path(cls, v: Optional[str]) -> Optional[str]:
        """Validate the parent directory exists (the file may not exist yet)."""
        if v is None or v == ":memory:":
            return v
        db_path_obj = Path(v)
        if not db_path_obj.parent.exists():
            raise ValueError(f"Database directory does not exist: {db_path_obj.parent}")
        return str(db_path_obj)

    def get_connection_string(self) -> str:
        if self.db_type == "duckdb":
            return self.db_path or ":memory:"
        return ":memory:"


class WriteConfig(BaseModel):
    """Write-path configuration.

    Parameters:
        validation_mode: STRICT rejects dangling references, ADVISORY reports them
        enforce_enrollment: Reject ELIGIBLE_ENROLLED eligibility without an enrolled member
        max_attempts: Attempts per write before a conflict reaches the caller
        min_wait: Lower bound of the retry backoff in seconds
        max_wait: Upper bound of the retry backoff in seconds
    """

    validation_mode: ValidationMode = ValidationMode.STRICT
    enforce_enrollment: bool = False
    max_attempts: int = Field(3, ge=1, le=20)
    min_wait: float = Field(0.05, ge=0)
    max_wait: float = Field(1.0, ge=0)


def _env_bool(name: str) -> Optional[bool]:
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


def _drop_unset(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


class ConfigManager:
    """Unified access to configuration from the environment or a file.

    Example Usage:
        ```python
        config = ConfigManager.from_environment()
        db_config = config.get_database_config()

        config = ConfigManager.from_file("edm.json")
        write_config = config.get_write_config()
        ```
    """

    def __init__(self, config_data: Dict[str, Any]):
        self._config_data = config_data
        self._database_config: Optional[DatabaseConfig] = None
        self._write_config: Optional[WriteConfig] = None

    @classmethod
    def from_environment(cls, env_file: Optional[str] = None) -> 'ConfigManager':
        """Load configuration from environment variables.

        Environment Variables:
            - EDM_DB_TYPE: Store type (duckdb, memory)
            - EDM_DB_PATH: Path to the DuckDB file
            - EDM_DB_LOCK_TIMEOUT: Writer lock timeout in seconds
            - EDM_VALIDATION_MODE: strict or advisory
            - EDM_ENFORCE_ENROLLMENT: Reject unenrolled ELIGIBLE_ENROLLED eligibility
            - EDM_RETRY_MAX_ATTEMPTS, EDM_RETRY_MIN_WAIT, EDM_RETRY_MAX_WAIT

        A ``.env`` file in the working directory (or ``env_file``) is loaded
        first; variables already set in the environment win.
        """
        env_path = Path(env_file) if env_file else Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            logger.debug(f"Loaded environment variables from {env_path}")

        lock_timeout = os.getenv("EDM_DB_LOCK_TIMEOUT")
        max_attempts = os.getenv("EDM_RETRY_MAX_ATTEMPTS")
        min_wait = os.getenv("EDM_RETRY_MIN_WAIT")
        max_wait = os.getenv("EDM_RETRY_MAX_WAIT")
        config_data = {
            "database": _drop_unset({
                "db_type": os.getenv("EDM_DB_TYPE", "duckdb"),
                "db_path": os.getenv("EDM_DB_PATH"),
                "lock_timeout": float(lock_timeout) if lock_timeout else None,
            }),
            "write": _drop_unset({
                "validation_mode": os.getenv("EDM_VALIDATION_MODE", "").lower() or None,
                "enforce_enrollment": _env_bool("EDM_ENFORCE_ENROLLMENT"),
                "max_attempts": int(max_attempts) if max_attempts else None,
                "min_wait": float(min_wait) if min_wait else None,
                "max_wait": float(max_wait) if max_wait else None,
            }),
        }
        return cls(config_data)

    @classmethod
    def from_file(cls, config_path: str) -> 'ConfigManager':
        """Load configuration from a JSON file with ``database`` and ``write`` sections.

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file, 'r') as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {str(e)}")

        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a JSON object")
        return cls(config_data)

    def get_database_config(self) -> DatabaseConfig:
        if self._database_config is None:
            self._database_config = DatabaseConfig(**self._config_data.get("database", {}))
        return self._database_config

    def get_write_config(self) -> WriteConfig:
        if self._write_config is None:
            self._write_config = WriteConfig(**self._config_data.get("write", {}))
        return self._write_config

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key, e.g. ``database.db_path``."""
        value = self._config_data
        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
        return value if value is not None else default


# ============================================================================
# Convenience Functions
# ============================================================================

def get_database_config() -> DatabaseConfig:
    """Database configuration from the environment (DuckDB in-memory by default)."""
    return ConfigManager.from_environment().get_database_config()
