"""
Test suite for catalog-schema.

- Unit tests run against an in-memory fake connection
- Integration tests need a PostgreSQL server (CATALOG_SCHEMA_TEST_DATABASE_URL)
"""
