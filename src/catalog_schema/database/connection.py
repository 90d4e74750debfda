"""
Database connection management for catalog-schema.

Opens a single asyncpg connection for the duration of one operation.
The reset never shares or pools connections; the caller owns the
connection it hands to the executor.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import parse_qs, unquote, urlparse

import asyncpg
from pydantic import BaseModel, Field, field_validator

from ..exceptions import DatabaseConfigurationError, DatabaseConnectionError


logger = logging.getLogger(__name__)

CONNECTION_ERRORS = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    asyncpg.InvalidAuthorizationSpecificationError,
    asyncpg.InvalidPasswordError,
    asyncpg.InvalidCatalogNameError,
    OSError,
    asyncio.TimeoutError,
)


class ConnectionConfig(BaseModel):
    """Database connection configuration."""

    host: str = Field(..., description="Database host")
    port: int = Field(5432, description="Database port")
    database: str = Field(..., description="Database name")
    user: str = Field(..., description="Database user")
    password: str = Field("", description="Database password")

    connect_timeout: float = Field(30.0, description="Connect timeout in seconds")
    command_timeout: float = Field(60.0, description="Command timeout in seconds")
    server_settings: Dict[str, str] = Field(
        default_factory=lambda: {"application_name": "catalog-schema"},
        description="PostgreSQL server settings",
    )

    ssl_mode: Optional[str] = Field(None, description="SSL mode")

    @field_validator("database")
    @classmethod
    def validate_database(cls, v):
        if not v or not v.strip():
            raise ValueError("Database name is required")
        return v

    @classmethod
    def from_url(cls, url: str) -> "ConnectionConfig":
        """Create configuration from database URL."""
        parsed = urlparse(url)

        if parsed.scheme not in ("postgresql", "postgres"):
            raise DatabaseConfigurationError(f"Invalid database URL scheme: {parsed.scheme}")

        if not parsed.path or parsed.path == "/":
            raise DatabaseConfigurationError("Database name is required")

        query_params = parse_qs(parsed.query) if parsed.query else {}

        config_data = {
            "host": parsed.hostname or "localhost",
            "port": parsed.port or 5432,
            "database": unquote(parsed.path.lstrip("/")),
            "user": unquote(parsed.username or ""),
            "password": unquote(parsed.password or ""),
            "ssl_mode": query_params.get("sslmode", ["prefer"])[0],
        }

        if "connect_timeout" in query_params:
            config_data["connect_timeout"] = float(query_params["connect_timeout"][0])

        return cls(**config_data)

    @property
    def safe_dsn(self) -> str:
        """DSN with the password masked, for logs and console output."""
        return f"postgresql://{self.user}:***@{self.host}:{self.port}/{self.database}"

    def to_connection_kwargs(self) -> Dict[str, Any]:
        """Convert to asyncpg connection kwargs."""
        kwargs = {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.user,
            "password": self.password,
            "timeout": self.connect_timeout,
            "command_timeout": self.command_timeout,
            "server_settings": self.server_settings,
        }

        if self.ssl_mode:
            kwargs["ssl"] = self.ssl_mode

        return kwargs


async def connect(config: ConnectionConfig) -> asyncpg.Connection:
    """Open a single connection, mapping driver failures to DatabaseConnectionError."""
    logger.info(f"Connecting to {config.safe_dsn}")
    try:
        connection = await asyncpg.connect(**config.to_connection_kwargs())
    except CONNECTION_ERRORS as e:
        logger.error(f"Failed to connect to {config.safe_dsn}: {e}")
        raise DatabaseConnectionError(
            f"Failed to connect to {config.safe_dsn}: {e}",
            cause=e,
        ) from e

    logger.debug("Connection established")
    return connection


@asynccontextmanager
async def open_connection(config: ConnectionConfig) -> AsyncIterator[asyncpg.Connection]:
    """Connect, yield the connection, and always close it afterwards."""
    connection = await connect(config)
    try:
        yield connection
    finally:
        if not connection.is_closed():
            await connection.close()
            logger.debug("Connection closed")


@asynccontextmanager
async def advisory_lock(connection: asyncpg.Connection, name: str) -> AsyncIterator[None]:
    """Hold a session-level advisory lock keyed on ``name`` while the block runs.

    Blocks until the lock is granted. Used by callers to serialize resets of
    the same table across processes.
    """
    logger.info(f"Waiting for advisory lock '{name}'")
    await connection.execute("SELECT pg_advisory_lock(hashtext($1))", name)
    logger.debug(f"Acquired advisory lock '{name}'")
    try:
        yield
    finally:
        if not connection.is_closed():
            await connection.execute("SELECT pg_advisory_unlock(hashtext($1))", name)
            logger.debug(f"Released advisory lock '{name}'")
