"""
Pydantic Settings for Cafe DB Operations

This module provides strongly-typed configuration settings using Pydantic,
with support for environment variables and YAML configuration files.
"""

from typing import Optional, Union
from pathlib import Path
import os

from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_yaml import to_yaml_str

from cafe_db_exceptions import ConfigurationError
from utils.uri import redact_uri


class DatabaseSettings(BaseSettings):
    """
    Connection settings for the document database backing the cafe application.

    These settings control how the driver reaches the MongoDB deployment:
    - Connection string (required, read from MONGO_URI)
    - Bounded timeouts for connecting, server selection and socket reads
    - Connection pool sizing
    """
    uri: str = Field(..., validation_alias=AliasChoices("MONGO_URI", "uri"),
                     description="MongoDB connection string (mongodb:// or mongodb+srv://)")
    database_name: Optional[str] = Field(None,
                                         description="Database to use when the URI does not name one")
    app_name: str = Field("cafe-db-ops",
                          description="Application name reported to the server")
    connect_timeout_ms: int = Field(10000, ge=0,
                                    description="Timeout for establishing a socket connection")
    server_selection_timeout_ms: int = Field(5000, ge=0,
                                             description="Timeout for finding a suitable server")
    socket_timeout_ms: int = Field(45000, ge=0,
                                   description="Timeout for a single socket read or write")
    max_pool_size: int = Field(10, ge=1,
                               description="Maximum number of pooled connections per server")

    model_config = SettingsConfigDict(env_prefix="CAFE_DB_", case_sensitive=False, populate_by_name=True)

    @field_validator("uri")
    @classmethod
    def _check_scheme(cls, value: str) -> str:
        value = value.strip()
        if not value.lower().startswith(("mongodb://", "mongodb+srv://")):
            raise ValueError("MONGO_URI must start with mongodb:// or mongodb+srv://")
        return value


class RetrySettings(BaseSettings):
    """
    Retry behaviour for database operations.

    The default schedule is plain exponential backoff with a ceiling:
    delay(n) = min(base_delay_ms * 2^(n-1), max_delay_ms). Jitter and an
    overall deadline are opt-in and disabled by default.
    """
    max_attempts: int = Field(5, ge=1,
                              description="Attempts per operation, including the first one")
    base_delay_ms: int = Field(1000, ge=0,
                               description="Delay after the first failed attempt")
    max_delay_ms: int = Field(10000, ge=0,
                              description="Ceiling for the backoff delay")
    jitter_ms: int = Field(0, ge=0,
                           description="Maximum random jitter added to each delay (0 = disabled)")
    deadline_ms: Optional[int] = Field(None, ge=0,
                                       description="Stop retrying once this much time has passed (None = no deadline)")

    model_config = SettingsConfigDict(env_prefix="CAFE_DB_RETRY_", case_sensitive=False)


class MonitoringSettings(BaseSettings):
    """Logging settings."""
    log_level: str = Field("INFO",
                           description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")

    model_config = SettingsConfigDict(env_prefix="CAFE_DB_", case_sensitive=False)

    @field_validator("log_level")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return value


class CafeDbSettings(BaseSettings):
    """
    Main settings class that consolidates all configuration categories.

    Usage:
        # Load from environment variables and defaults
        settings = CafeDbSettings()

        # Load from YAML file
        settings = CafeDbSettings.from_yaml('config.yaml')

        # Access nested settings
        uri = settings.database.uri
        attempts = settings.retry.max_attempts
    """
    database: DatabaseSettings = Field(default_factory=DatabaseSettings,
                                       description="Database connection settings")
    retry: RetrySettings = Field(default_factory=RetrySettings,
                                 description="Retry and backoff settings")
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings,
                                           description="Logging settings")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False, env_nested_delimiter="__")

    @classmethod
    def from_yaml(cls, yaml_file: Union[str, Path]) -> "CafeDbSettings":
        """Load settings from YAML file, falling back to MONGO_URI for the connection string"""
        import yaml
        with open(yaml_file, 'r') as f:
            data = yaml.safe_load(f) or {}
        database = data.get("database")
        if isinstance(database, dict) and "uri" not in database and "MONGO_URI" not in database:
            if os.environ.get("MONGO_URI"):
                database["uri"] = os.environ["MONGO_URI"]
        return cls(**data)

    def to_yaml(self) -> str:
        """Render the settings as YAML with the connection string credentials redacted"""
        redacted = self.model_copy(update={
            "database": self.database.model_copy(update={"uri": redact_uri(self.database.uri)})
        })
        return to_yaml_str(redacted)


def load_settings(config_path: Optional[str] = None) -> CafeDbSettings:
    """
    Load settings from file and/or environment variables.

    - If config_path is provided and exists, loads settings from the YAML file
    - Otherwise, creates a new settings instance from environment variables
      and default values

    A missing MONGO_URI is a startup error, never a retriable one.

    Args:
        config_path: Path to YAML configuration file.

    Returns:
        CafeDbSettings object with loaded configuration

    Raises:
        ConfigurationError: If a required value is missing or a value is invalid
    """
    try:
        if config_path and os.path.exists(config_path):
            return CafeDbSettings.from_yaml(config_path)
        return CafeDbSettings()
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid cafe_db_ops configuration (is MONGO_URI set?): {e}"
        ) from e
