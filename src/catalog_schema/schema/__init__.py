"""
Schema management for catalog-schema.

Holds the compiled-in products table, the reset executor that drops and
recreates it, and the verification that checks the result.
"""

from .definition import PRODUCTS_TABLE, ColumnDefinition, TableDefinition
from .verification import SchemaVerifier, VerificationReport
from .reset import (
    OperationMode,
    ResetResult,
    SchemaResetExecutor,
    TransactionPolicy,
    reset_schema,
)

__all__ = [
    "PRODUCTS_TABLE",
    "ColumnDefinition",
    "TableDefinition",
    "SchemaVerifier",
    "VerificationReport",
    "OperationMode",
    "ResetResult",
    "SchemaResetExecutor",
    "TransactionPolicy",
    "reset_schema",
]
