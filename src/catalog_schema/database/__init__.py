"""
Database integration package for catalog-schema.

This package provides:
- Single asyncpg connections built from URLs or structured settings
- Catalog introspection (columns, primary keys, dependent objects)
- Pre-flight connectivity and privilege checks
"""

from .connection import ConnectionConfig, advisory_lock, connect, open_connection
from .introspection import SchemaIntrospector, ColumnInfo, TableInfo, DependentObject
from .health import DatabaseHealthChecker

__all__ = [
    "ConnectionConfig",
    "advisory_lock",
    "connect",
    "open_connection",
    "SchemaIntrospector",
    "ColumnInfo",
    "TableInfo",
    "DependentObject",
    "DatabaseHealthChecker",
]
