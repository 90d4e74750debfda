"""
Configuration system for catalog-schema using Pydantic.
"""

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Any, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class DatabaseConnection(BaseModel):
    """Database connection configuration."""

    host: str = Field(..., description="Database host")
    port: int = Field(5432, description="Database port")
    database: str = Field(..., description="Database name")
    user: str = Field(..., description="Database user")
    password: str = Field("", description="Database password")
    ssl_mode: str = Field("prefer", description="SSL mode")
    connect_timeout: int = Field(30, description="Connection timeout in seconds")
    command_timeout: int = Field(60, description="Command timeout in seconds")

    def to_dsn(self) -> str:
        """Convert to PostgreSQL DSN string."""
        return (
            f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/"
            f"{self.database}?sslmode={self.ssl_mode}"
        )


class ResetSettings(BaseModel):
    """Behaviour of the reset operation."""

    model_config = ConfigDict(extra="forbid")

    target_schema: str = Field("public", description="Schema holding the products table")
    verify: bool = Field(True, description="Verify the table after creating it")
    transactional_ddl: Literal["auto", "always", "never"] = Field(
        "auto", description="Run drop and create in one transaction"
    )
    statement_timeout: Optional[float] = Field(
        None, description="Per-statement timeout in seconds"
    )
    dry_run: bool = Field(False, description="Log the statements without executing them")

    @field_validator("target_schema")
    @classmethod
    def validate_target_schema(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("target_schema must not be empty")
        return v.strip()

    @field_validator("statement_timeout")
    @classmethod
    def validate_statement_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("statement_timeout must be positive")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", description="Log level"
    )
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: Optional[str] = Field(None, description="Log file path")
    max_size: int = Field(10485760, description="Max log file size in bytes")  # 10MB
    backup_count: int = Field(5, description="Number of backup log files")


class CatalogSchemaConfig(BaseSettings):
    """Main catalog-schema configuration."""

    database_url: Optional[str] = Field(
        None, description="PostgreSQL URL, takes precedence over 'database'"
    )
    database: Optional[DatabaseConnection] = Field(
        None, description="Structured connection details"
    )
    reset: ResetSettings = Field(
        default_factory=ResetSettings, description="Reset operation settings"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CATALOG_SCHEMA_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "CatalogSchemaConfig":
        """Load configuration from a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            # Expand environment variables in the data
            data = cls._expand_env_vars(data)

            return cls(**data)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @classmethod
    def _expand_env_vars(cls, data: Any) -> Any:
        """Recursively expand environment variables in configuration data."""
        if isinstance(data, dict):
            return {k: cls._expand_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [cls._expand_env_vars(item) for item in data]
        elif isinstance(data, str):
            return os.path.expandvars(data)
        else:
            return data

    def get_connection_config(self):
        """Resolve the connection settings into a ConnectionConfig."""
        # Local import keeps config importable without asyncpg at hand
        from .database.connection import ConnectionConfig

        if self.database_url:
            return ConnectionConfig.from_url(self.database_url)
        if self.database is not None:
            return ConnectionConfig(
                host=self.database.host,
                port=self.database.port,
                database=self.database.database,
                user=self.database.user,
                password=self.database.password,
                ssl_mode=self.database.ssl_mode,
                connect_timeout=float(self.database.connect_timeout),
                command_timeout=float(self.database.command_timeout),
            )
        raise ConfigurationError(
            "No database configured: set database_url, a 'database' section, "
            "or CATALOG_SCHEMA_DATABASE_URL"
        )

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(exclude_none=True),
                f,
                default_flow_style=False,
                indent=2,
                sort_keys=False,
            )


def configure_logging(config: LoggingConfig, debug: bool = False) -> None:
    """Install handlers on the root logger according to ``config``."""
    level = logging.DEBUG if debug else getattr(logging, config.level)
    formatter = logging.Formatter(config.format)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        if getattr(handler, "_catalog_schema", False):
            root.removeHandler(handler)
            handler.close()

    handlers = [logging.StreamHandler()]
    if config.file:
        handlers.append(
            logging.handlers.RotatingFileHandler(
                config.file,
                maxBytes=config.max_size,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        )

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
        handler._catalog_schema = True
        root.addHandler(handler)
