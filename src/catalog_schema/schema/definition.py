"""
Compiled-in description of the products table.

The table layout is fixed; only the PostgreSQL schema (namespace) it lives
in can be chosen at runtime.
"""

from dataclasses import dataclass, replace
from typing import List, Optional, Tuple


PRODUCTS_TABLE_NAME = "products"


def quote_identifier(name: str) -> str:
    """Quote a PostgreSQL identifier."""
    return '"' + name.replace('"', '""') + '"'


@dataclass(frozen=True)
class ColumnDefinition:
    """A single column of a table definition."""

    name: str
    sql_type: str
    # information_schema.columns.data_type values accepted for this column
    accepted_types: Tuple[str, ...]
    nullable: bool = True
    default: Optional[str] = None
    primary_key: bool = False
    auto_increment: bool = False

    def to_sql(self) -> str:
        parts = [self.name, self.sql_type]
        if self.primary_key:
            parts.append("PRIMARY KEY")
        elif not self.nullable:
            parts.append("NOT NULL")
        if self.default is not None:
            parts.append(f"DEFAULT {self.default}")
        return " ".join(parts)


@dataclass(frozen=True)
class TableDefinition:
    """A table with a fixed column layout."""

    name: str
    columns: Tuple[ColumnDefinition, ...]
    schema: str = "public"

    @property
    def full_name(self) -> str:
        return f"{self.schema}.{self.name}"

    @property
    def qualified_name(self) -> str:
        """Quoted ``schema.table`` for use in SQL."""
        return f"{quote_identifier(self.schema)}.{quote_identifier(self.name)}"

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    @property
    def primary_key(self) -> List[str]:
        return [column.name for column in self.columns if column.primary_key]

    def get_column(self, name: str) -> Optional[ColumnDefinition]:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def in_schema(self, schema: str) -> "TableDefinition":
        """Return the same table placed in another schema."""
        return replace(self, schema=schema)

    def drop_sql(self) -> str:
        # No CASCADE: dependent objects must surface as a conflict
        return f"DROP TABLE IF EXISTS {self.qualified_name};"

    def create_sql(self) -> str:
        body = ",\n".join(f"    {column.to_sql()}" for column in self.columns)
        return f"CREATE TABLE {self.qualified_name} (\n{body}\n);"

    def reset_statements(self) -> List[str]:
        """Statements of a reset, in execution order."""
        return [self.drop_sql(), self.create_sql()]

    def to_migration(self) -> str:
        """Render the reset as a standalone ``<table>.up.sql`` migration."""
        return "\n\n".join(self.reset_statements()) + "\n"


PRODUCTS_TABLE = TableDefinition(
    name=PRODUCTS_TABLE_NAME,
    columns=(
        ColumnDefinition(
            name="id",
            sql_type="BIGSERIAL",
            accepted_types=("bigint",),
            nullable=False,
            primary_key=True,
            auto_increment=True,
        ),
        ColumnDefinition(
            name="name",
            sql_type="VARCHAR",
            accepted_types=("character varying", "text"),
            nullable=False,
        ),
        ColumnDefinition(
            name="avg_price",
            sql_type="DOUBLE PRECISION",
            accepted_types=("double precision",),
            nullable=False,
            default="5.0",
        ),
    ),
)
