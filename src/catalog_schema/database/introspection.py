"""
Database schema introspection for catalog-schema.

Provides utilities for examining a PostgreSQL catalog: column information,
primary keys, objects that depend on a table, and what the server supports.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import asyncpg

from ..exceptions import DatabaseError, SchemaError


logger = logging.getLogger(__name__)


@dataclass
class ColumnInfo:
    """Information about a database column."""

    name: str
    data_type: str
    is_nullable: bool
    default_value: Optional[str] = None
    max_length: Optional[int] = None
    ordinal_position: int = 0
    udt_name: Optional[str] = None
    is_identity: bool = False

    @property
    def is_sequence_backed(self) -> bool:
        """True for serial/identity columns whose value the store generates."""
        if self.is_identity:
            return True
        return bool(self.default_value and self.default_value.startswith("nextval("))

    def __str__(self) -> str:
        result = f"{self.name} {self.data_type}"
        if self.max_length:
            result += f"({self.max_length})"
        if not self.is_nullable:
            result += " NOT NULL"
        if self.default_value:
            result += f" DEFAULT {self.default_value}"
        return result


@dataclass
class DependentObject:
    """An object that references a table and blocks a plain DROP."""

    kind: str  # "view", "materialized view" or "foreign key"
    schema: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind} {self.schema}.{self.name}"


@dataclass
class TableInfo:
    """Information about a database table."""

    schema: str
    name: str
    columns: Dict[str, ColumnInfo]
    primary_key: List[str] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        """Get the fully qualified table name."""
        return f"{self.schema}.{self.name}"

    def has_column(self, column_name: str) -> bool:
        """Check if table has a specific column."""
        return column_name in self.columns

    def get_column(self, column_name: str) -> Optional[ColumnInfo]:
        """Get column information by name."""
        return self.columns.get(column_name)


class SchemaIntrospector:
    """Catalog queries against a single asyncpg connection."""

    def __init__(self, connection: asyncpg.Connection):
        self.connection = connection

    async def get_table_info(self, schema: str, table: str) -> Optional[TableInfo]:
        """Get columns and primary key of a table, or None if it doesn't exist."""
        if not await self.table_exists(schema, table):
            return None

        try:
            columns = await self.get_columns(schema, table)
            primary_key = await self.get_primary_key(schema, table)
        except SchemaError:
            raise
        except Exception as e:
            logger.error(f"Error getting table info for {schema}.{table}: {e}")
            raise SchemaError(f"Failed to get table info: {e}", cause=e) from e

        return TableInfo(
            schema=schema,
            name=table,
            columns=columns,
            primary_key=primary_key,
        )

    async def table_exists(self, schema: str, table: str) -> bool:
        """Check if a table exists."""
        query = """
            SELECT EXISTS (
                SELECT 1 FROM information_schema.tables
                WHERE table_schema = $1 AND table_name = $2
            )
        """

        try:
            result = await self.connection.fetchval(query, schema, table)
            return bool(result)
        except Exception as e:
            logger.error(f"Error checking table existence for {schema}.{table}: {e}")
            raise DatabaseError(f"Failed to check table existence: {e}", cause=e) from e

    async def get_columns(self, schema: str, table: str) -> Dict[str, ColumnInfo]:
        """Get all columns for a table."""
        query = """
            SELECT
                c.column_name,
                c.data_type,
                c.is_nullable,
                c.column_default,
                c.character_maximum_length,
                c.ordinal_position,
                c.udt_name,
                c.is_identity
            FROM information_schema.columns c
            WHERE c.table_schema = $1 AND c.table_name = $2
            ORDER BY c.ordinal_position
        """

        try:
            rows = await self.connection.fetch(query, schema, table)
        except Exception as e:
            logger.error(f"Error getting columns for {schema}.{table}: {e}")
            raise SchemaError(f"Failed to get columns: {e}", cause=e) from e

        columns = {}
        for row in rows:
            col_info = ColumnInfo(
                name=row["column_name"],
                data_type=row["data_type"],
                is_nullable=row["is_nullable"] == "YES",
                default_value=row["column_default"],
                max_length=row["character_maximum_length"],
                ordinal_position=row["ordinal_position"],
                udt_name=row["udt_name"],
                is_identity=row["is_identity"] == "YES",
            )
            columns[col_info.name] = col_info

        return columns

    async def get_primary_key(self, schema: str, table: str) -> List[str]:
        """Get primary key column names in key order."""
        query = """
            SELECT a.attname
            FROM pg_index ix
            JOIN pg_class c ON c.oid = ix.indrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            JOIN pg_attribute a ON a.attrelid = c.oid AND a.attnum = ANY(ix.indkey)
            WHERE n.nspname = $1 AND c.relname = $2 AND ix.indisprimary
            ORDER BY array_position(ix.indkey, a.attnum)
        """

        try:
            rows = await self.connection.fetch(query, schema, table)
        except Exception as e:
            logger.error(f"Error getting primary key for {schema}.{table}: {e}")
            raise SchemaError(f"Failed to get primary key: {e}", cause=e) from e

        return [row["attname"] for row in rows]

    async def count_rows(self, qualified_name: str) -> int:
        """Exact row count of an existing table."""
        return await self.connection.fetchval(f"SELECT count(*) FROM {qualified_name}")

    async def find_dependents(self, schema: str, table: str) -> List[DependentObject]:
        """List views and foreign keys in other tables that reference a table."""
        views_query = """
            SELECT DISTINCT vn.nspname AS schema_name, v.relname AS name, v.relkind
            FROM pg_depend d
            JOIN pg_rewrite r ON r.oid = d.objid
            JOIN pg_class v ON v.oid = r.ev_class
            JOIN pg_namespace vn ON vn.oid = v.relnamespace
            JOIN pg_class t ON t.oid = d.refobjid
            JOIN pg_namespace tn ON tn.oid = t.relnamespace
            WHERE d.classid = 'pg_rewrite'::regclass
            AND tn.nspname = $1 AND t.relname = $2
            AND v.oid <> t.oid
            ORDER BY 1, 2
        """
        fk_query = """
            SELECT n.nspname AS schema_name, con.conname AS name, src.relname AS source_table
            FROM pg_constraint con
            JOIN pg_class t ON t.oid = con.confrelid
            JOIN pg_namespace tn ON tn.oid = t.relnamespace
            JOIN pg_class src ON src.oid = con.conrelid
            JOIN pg_namespace n ON n.oid = src.relnamespace
            WHERE con.contype = 'f'
            AND tn.nspname = $1 AND t.relname = $2
            AND con.conrelid <> con.confrelid
            ORDER BY 1, 2
        """

        try:
            view_rows = await self.connection.fetch(views_query, schema, table)
            fk_rows = await self.connection.fetch(fk_query, schema, table)
        except Exception as e:
            logger.error(f"Error finding dependents of {schema}.{table}: {e}")
            raise SchemaError(f"Failed to find dependent objects: {e}", cause=e) from e

        dependents = [
            DependentObject(
                kind="materialized view" if row["relkind"] == "m" else "view",
                schema=row["schema_name"],
                name=row["name"],
            )
            for row in view_rows
        ]
        dependents.extend(
            DependentObject(
                kind="foreign key",
                schema=row["schema_name"],
                name=f"{row['source_table']}.{row['name']}",
            )
            for row in fk_rows
        )
        return dependents

    async def server_version(self) -> str:
        """Full server version string as reported by ``version()``."""
        return await self.connection.fetchval("SELECT version()")

    async def supports_transactional_ddl(self) -> bool:
        """Whether DROP and CREATE TABLE can share one atomic transaction.

        PostgreSQL runs DDL transactionally. CockroachDB speaks the same wire
        protocol but commits schema changes asynchronously, so a rolled back
        transaction is not guaranteed to restore a dropped table.
        """
        version = await self.server_version()
        if "cockroachdb" in (version or "").lower():
            logger.info("CockroachDB detected; DDL will run non-transactionally")
            return False
        return True

    async def has_create_privilege(self, schema: str) -> bool:
        """Whether the current role may create tables in ``schema``."""
        return bool(
            await self.connection.fetchval(
                "SELECT has_schema_privilege(current_user, $1, 'CREATE')", schema
            )
        )

    async def can_drop_table(self, schema: str, table: str) -> bool:
        """Whether the current role owns (or is a member of the owner of) a table."""
        query = """
            SELECT pg_has_role(current_user, c.relowner, 'USAGE')
            FROM pg_class c
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE n.nspname = $1 AND c.relname = $2
        """
        result = await self.connection.fetchval(query, schema, table)
        # A missing table never blocks DROP TABLE IF EXISTS
        return True if result is None else bool(result)
