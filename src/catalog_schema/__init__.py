"""
catalog-schema: drop-and-recreate bootstrap for the products catalog table.

Resets the ``products`` table of a PostgreSQL database to an empty table
with a fixed layout, as one atomic unit where the server allows it.
"""

__version__ = "0.1.0"

from .config import CatalogSchemaConfig
from .exceptions import (
    CatalogSchemaError,
    ConfigurationError,
    DatabaseConnectionError,
    PartialApplicationError,
    SchemaConflictError,
    SchemaError,
    SchemaMismatchError,
    SchemaPermissionError,
    StoreState,
)
from .schema import PRODUCTS_TABLE, ResetResult, SchemaResetExecutor, reset_schema

__all__ = [
    "__version__",
    "CatalogSchemaConfig",
    "CatalogSchemaError",
    "ConfigurationError",
    "DatabaseConnectionError",
    "PartialApplicationError",
    "SchemaConflictError",
    "SchemaError",
    "SchemaMismatchError",
    "SchemaPermissionError",
    "StoreState",
    "PRODUCTS_TABLE",
    "ResetResult",
    "SchemaResetExecutor",
    "reset_schema",
]
