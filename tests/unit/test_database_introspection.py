"""
Tests for catalog_schema.database.introspection module.

Tests the catalog introspection utilities including the ColumnInfo,
TableInfo and DependentObject dataclasses and the SchemaIntrospector class.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

import asyncpg

from catalog_schema.database.introspection import (
    ColumnInfo, DependentObject, TableInfo, SchemaIntrospector
)
from catalog_schema.exceptions import DatabaseError, SchemaError


class TestColumnInfo:
    """Test ColumnInfo dataclass."""

    def test_column_info_basic(self):
        col = ColumnInfo(name="name", data_type="character varying", is_nullable=False)

        assert col.default_value is None
        assert col.max_length is None
        assert col.is_identity is False

    def test_is_sequence_backed(self):
        serial = ColumnInfo(
            name="id", data_type="bigint", is_nullable=False,
            default_value="nextval('products_id_seq'::regclass)",
        )
        identity = ColumnInfo(name="id", data_type="bigint", is_nullable=False, is_identity=True)
        plain = ColumnInfo(name="id", data_type="bigint", is_nullable=False, default_value="0")

        assert serial.is_sequence_backed is True
        assert identity.is_sequence_backed is True
        assert plain.is_sequence_backed is False

    def test_column_info_str(self):
        col = ColumnInfo(name="name", data_type="character varying", is_nullable=True)
        assert str(col) == "name character varying"

        col_def = ColumnInfo(
            name="avg_price",
            data_type="double precision",
            is_nullable=False,
            default_value="5.0",
        )
        assert str(col_def) == "avg_price double precision NOT NULL DEFAULT 5.0"

        col_len = ColumnInfo(name="name", data_type="varchar", is_nullable=False, max_length=255)
        assert str(col_len) == "name varchar(255) NOT NULL"


class TestTableInfo:
    """Test TableInfo dataclass."""

    def test_table_info(self):
        col = ColumnInfo(name="id", data_type="bigint", is_nullable=False)
        table = TableInfo(schema="public", name="products", columns={"id": col})

        assert table.full_name == "public.products"
        assert table.primary_key == []
        assert table.has_column("id")
        assert not table.has_column("name")
        assert table.get_column("id") is col
        assert table.get_column("name") is None


class TestDependentObject:
    """Test DependentObject dataclass."""

    def test_str(self):
        dep = DependentObject(kind="view", schema="public", name="products_summary")
        assert str(dep) == "view public.products_summary"


class TestSchemaIntrospector:
    """Test SchemaIntrospector class."""

    @pytest.fixture
    def mock_connection(self):
        conn = MagicMock()
        conn.fetchval = AsyncMock()
        conn.fetch = AsyncMock()
        conn.fetchrow = AsyncMock()
        return conn

    @pytest.fixture
    def introspector(self, mock_connection):
        return SchemaIntrospector(mock_connection)

    @pytest.mark.asyncio
    async def test_table_exists(self, introspector, mock_connection):
        mock_connection.fetchval.return_value = True

        assert await introspector.table_exists("public", "products") is True
        args = mock_connection.fetchval.await_args.args
        assert "information_schema.tables" in args[0]
        assert args[1:] == ("public", "products")

    @pytest.mark.asyncio
    async def test_table_exists_error(self, introspector, mock_connection):
        mock_connection.fetchval.side_effect = asyncpg.InterfaceError("connection is closed")

        with pytest.raises(DatabaseError, match="Failed to check table existence") as exc_info:
            await introspector.table_exists("public", "products")

        assert isinstance(exc_info.value.cause, asyncpg.InterfaceError)

    @pytest.mark.asyncio
    async def test_get_columns(self, introspector, mock_connection):
        mock_connection.fetch.return_value = [
            {
                "column_name": "id",
                "data_type": "bigint",
                "is_nullable": "NO",
                "column_default": "nextval('products_id_seq'::regclass)",
                "character_maximum_length": None,
                "ordinal_position": 1,
                "udt_name": "int8",
                "is_identity": "NO",
            },
            {
                "column_name": "name",
                "data_type": "character varying",
                "is_nullable": "YES",
                "column_default": None,
                "character_maximum_length": 64,
                "ordinal_position": 2,
                "udt_name": "varchar",
                "is_identity": "NO",
            },
        ]

        columns = await introspector.get_columns("public", "products")

        assert list(columns) == ["id", "name"]
        assert columns["id"].is_nullable is False
        assert columns["id"].is_sequence_backed is True
        assert columns["name"].is_nullable is True
        assert columns["name"].max_length == 64

    @pytest.mark.asyncio
    async def test_get_columns_error(self, introspector, mock_connection):
        mock_connection.fetch.side_effect = Exception("boom")

        with pytest.raises(SchemaError, match="Failed to get columns"):
            await introspector.get_columns("public", "products")

    @pytest.mark.asyncio
    async def test_get_primary_key(self, introspector, mock_connection):
        mock_connection.fetch.return_value = [{"attname": "id"}]

        assert await introspector.get_primary_key("public", "products") == ["id"]

    @pytest.mark.asyncio
    async def test_get_table_info_missing(self, introspector, mock_connection):
        mock_connection.fetchval.return_value = False

        assert await introspector.get_table_info("public", "products") is None
        mock_connection.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_table_info(self, introspector, mock_connection):
        mock_connection.fetchval.return_value = True
        mock_connection.fetch.side_effect = [
            [
                {
                    "column_name": "id",
                    "data_type": "bigint",
                    "is_nullable": "NO",
                    "column_default": None,
                    "character_maximum_length": None,
                    "ordinal_position": 1,
                    "udt_name": "int8",
                    "is_identity": "YES",
                }
            ],
            [{"attname": "id"}],
        ]

        info = await introspector.get_table_info("public", "products")

        assert info.full_name == "public.products"
        assert info.primary_key == ["id"]
        assert info.get_column("id").is_identity is True

    @pytest.mark.asyncio
    async def test_count_rows(self, introspector, mock_connection):
        mock_connection.fetchval.return_value = 7

        assert await introspector.count_rows('"public"."products"') == 7
        mock_connection.fetchval.assert_awaited_once_with(
            'SELECT count(*) FROM "public"."products"'
        )

    @pytest.mark.asyncio
    async def test_find_dependents(self, introspector, mock_connection):
        mock_connection.fetch.side_effect = [
            [
                {"schema_name": "public", "name": "products_summary", "relkind": "v"},
                {"schema_name": "reporting", "name": "price_stats", "relkind": "m"},
            ],
            [
                {"schema_name": "public", "name": "order_items_product_id_fkey", "source_table": "order_items"},
            ],
        ]

        dependents = await introspector.find_dependents("public", "products")

        assert [str(d) for d in dependents] == [
            "view public.products_summary",
            "materialized view reporting.price_stats",
            "foreign key public.order_items.order_items_product_id_fkey",
        ]

    @pytest.mark.asyncio
    async def test_find_dependents_none(self, introspector, mock_connection):
        mock_connection.fetch.side_effect = [[], []]

        assert await introspector.find_dependents("public", "products") == []

    @pytest.mark.asyncio
    async def test_find_dependents_error(self, introspector, mock_connection):
        mock_connection.fetch.side_effect = Exception("catalog unavailable")

        with pytest.raises(SchemaError, match="Failed to find dependent objects"):
            await introspector.find_dependents("public", "products")

    @pytest.mark.asyncio
    async def test_supports_transactional_ddl_postgres(self, introspector, mock_connection):
        mock_connection.fetchval.return_value = "PostgreSQL 16.2 on x86_64-pc-linux-gnu"

        assert await introspector.supports_transactional_ddl() is True

    @pytest.mark.asyncio
    async def test_supports_transactional_ddl_cockroach(self, introspector, mock_connection):
        mock_connection.fetchval.return_value = "CockroachDB CCL v23.2.0"

        assert await introspector.supports_transactional_ddl() is False

    @pytest.mark.asyncio
    async def test_has_create_privilege(self, introspector, mock_connection):
        mock_connection.fetchval.return_value = False

        assert await introspector.has_create_privilege("public") is False
        assert mock_connection.fetchval.await_args.args[1] == "public"

    @pytest.mark.asyncio
    async def test_can_drop_missing_table(self, introspector, mock_connection):
        mock_connection.fetchval.return_value = None

        assert await introspector.can_drop_table("public", "products") is True

    @pytest.mark.asyncio
    async def test_can_drop_table_not_owner(self, introspector, mock_connection):
        mock_connection.fetchval.return_value = False

        assert await introspector.can_drop_table("public", "products") is False
