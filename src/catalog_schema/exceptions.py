"""
Exception classes for catalog-schema.
"""

from enum import Enum
from typing import Any, Dict, Optional


class StoreState(str, Enum):
    """State the target store is left in after a reset attempt."""

    NOT_APPLIED = "not-applied"
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    MISSING_TABLE = "missing-table"


class CatalogSchemaError(Exception):
    """Base exception for all catalog-schema errors."""

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        result = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            result += f" [{details_str}]"
        if self.cause:
            result += f" (caused by: {self.cause})"
        return result


class ConfigurationError(CatalogSchemaError):
    """Raised when there's an error in configuration."""

    pass


class DatabaseError(CatalogSchemaError):
    """Raised when there's an error with database operations."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Raised when the store is unreachable or the session is unusable."""

    exit_code = 2


class DatabaseConfigurationError(DatabaseError):
    """Raised when there's an error in database configuration."""

    pass


class SchemaError(DatabaseError):
    """Raised when a schema operation fails.

    ``statement`` is the SQL that failed (if any) and ``store_state`` records
    whether the store was left unchanged or without the table.
    """

    def __init__(
        self,
        message: str,
        statement: Optional[str] = None,
        store_state: StoreState = StoreState.UNCHANGED,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        details = dict(details or {})
        details.setdefault("store_state", store_state.value)
        super().__init__(message, details, cause)
        self.statement = statement
        self.store_state = store_state


class SchemaPermissionError(SchemaError):
    """Raised when the role lacks privilege to drop or create the table."""

    exit_code = 3


class SchemaConflictError(SchemaError):
    """Raised when a dependent object or a concurrent change blocks the reset."""

    exit_code = 4


class SchemaMismatchError(SchemaError):
    """Raised when the created table does not match its definition."""

    exit_code = 5

    def __init__(
        self,
        table_name: str,
        mismatches: list,
        store_state: StoreState = StoreState.APPLIED,
    ) -> None:
        super().__init__(
            f"Table '{table_name}' does not match its definition: "
            + "; ".join(mismatches),
            store_state=store_state,
        )
        self.table_name = table_name
        self.mismatches = list(mismatches)


class PartialApplicationError(SchemaError):
    """Raised when the drop took effect but the create did not."""

    exit_code = 6

    def __init__(
        self,
        message: str,
        statement: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            message,
            statement=statement,
            store_state=StoreState.MISSING_TABLE,
            cause=cause,
        )
