"""
Schema reset for catalog-schema.

Drops the products table if it exists and creates it again, empty, as one
unit. On stores with transactional DDL both statements share a transaction
and a failure leaves the store unchanged. Elsewhere the statements run one
after the other and a failure after the drop is reported as a
PartialApplicationError because the table is then missing.

Concurrent resets against the same store are not serialized here. Callers
that may run more than one reset at a time must hold a lock around the call
(see ``catalog_schema.database.connection.advisory_lock``).
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import asyncpg

from ..config import CatalogSchemaConfig, ResetSettings
from ..database.connection import CONNECTION_ERRORS, open_connection
from ..database.introspection import SchemaIntrospector
from ..exceptions import (
    DatabaseConnectionError,
    DatabaseError,
    PartialApplicationError,
    SchemaConflictError,
    SchemaError,
    SchemaPermissionError,
    StoreState,
)
from .definition import PRODUCTS_TABLE, TableDefinition
from .verification import SchemaVerifier, VerificationReport


logger = logging.getLogger(__name__)

CONFLICT_ERRORS = (
    asyncpg.DependentObjectsStillExistError,
    asyncpg.DuplicateTableError,
    asyncpg.LockNotAvailableError,
    asyncpg.ObjectInUseError,
    asyncpg.WrongObjectTypeError,
)


class OperationMode(str, Enum):
    """Reset operation modes."""

    APPLY = "apply"
    DRY_RUN = "dry_run"  # Render and log SQL but don't execute


class TransactionPolicy(str, Enum):
    """Whether drop and create share a transaction."""

    AUTO = "auto"      # Ask the store
    ALWAYS = "always"
    NEVER = "never"


@dataclass
class ResetResult:
    """Outcome of a successful (or dry-run) reset."""

    table: str
    state: StoreState
    transactional: bool
    statements: List[str] = field(default_factory=list)
    dropped_existing: bool = False
    rows_discarded: int = 0
    verification: Optional[VerificationReport] = None
    execution_time_ms: Optional[float] = None

    @property
    def applied(self) -> bool:
        return self.state == StoreState.APPLIED

    @property
    def verified(self) -> bool:
        return self.verification is not None and self.verification.matches


def classify_error(
    error: BaseException,
    statement: Optional[str],
    store_state: StoreState,
) -> DatabaseError:
    """Map a driver exception raised while running DDL to the error taxonomy."""
    message = str(error) or error.__class__.__name__
    details = {}
    sqlstate = getattr(error, "sqlstate", None)
    if sqlstate:
        details["sqlstate"] = sqlstate
    detail = getattr(error, "detail", None)
    if detail:
        details["detail"] = detail

    if isinstance(error, asyncpg.InsufficientPrivilegeError):
        return SchemaPermissionError(
            f"Permission denied: {message}",
            statement=statement,
            store_state=store_state,
            details=details,
            cause=error,
        )
    if isinstance(error, CONFLICT_ERRORS):
        return SchemaConflictError(
            f"Conflict: {message}",
            statement=statement,
            store_state=store_state,
            details=details,
            cause=error,
        )
    if isinstance(error, asyncio.TimeoutError):
        return SchemaError(
            "Statement timed out",
            statement=statement,
            store_state=store_state,
            details=details,
            cause=error,
        )
    if isinstance(error, CONNECTION_ERRORS):
        details["store_state"] = store_state.value
        return DatabaseConnectionError(
            f"Connection lost: {message}",
            details=details,
            cause=error,
        )
    return SchemaError(
        message,
        statement=statement,
        store_state=store_state,
        details=details,
        cause=error,
    )


class SchemaResetExecutor:
    """Drop-then-create of a fixed table definition."""

    def __init__(
        self,
        table: TableDefinition = PRODUCTS_TABLE,
        operation_mode: OperationMode = OperationMode.APPLY,
        transaction_policy: TransactionPolicy = TransactionPolicy.AUTO,
        verify: bool = True,
        statement_timeout: Optional[float] = None,
    ):
        self.table = table
        self.operation_mode = operation_mode
        self.transaction_policy = transaction_policy
        self.verify = verify
        self.statement_timeout = statement_timeout

    @classmethod
    def from_settings(cls, settings: ResetSettings) -> "SchemaResetExecutor":
        return cls(
            table=PRODUCTS_TABLE.in_schema(settings.target_schema),
            operation_mode=OperationMode.DRY_RUN if settings.dry_run else OperationMode.APPLY,
            transaction_policy=TransactionPolicy(settings.transactional_ddl),
            verify=settings.verify,
            statement_timeout=settings.statement_timeout,
        )

    async def reset(self, connection: asyncpg.Connection) -> ResetResult:
        """
        Drop and recreate the table.

        Args:
            connection: Open connection, borrowed for the duration of the call

        Returns:
            ResetResult describing what was done

        Raises:
            DatabaseConnectionError: Store unreachable; no DDL was attempted
            SchemaPermissionError: Role lacks privilege to drop or create
            SchemaConflictError: A dependent object or concurrent change blocked the reset
            SchemaMismatchError: The created table differs from its definition
            PartialApplicationError: The table was dropped but not recreated
        """
        await self._ensure_connected(connection)

        introspector = SchemaIntrospector(connection)
        statements = self.table.reset_statements()

        try:
            transactional = await self._resolve_transactional(introspector)

            if self.operation_mode == OperationMode.DRY_RUN:
                logger.info(f"DRY RUN: would reset {self.table.full_name}")
                for sql in statements:
                    logger.info(f"SQL: {sql}")
                return ResetResult(
                    table=self.table.full_name,
                    state=StoreState.NOT_APPLIED,
                    transactional=transactional,
                    statements=statements,
                )

            existed = await introspector.table_exists(self.table.schema, self.table.name)
            rows = await introspector.count_rows(self.table.qualified_name) if existed else 0
        except DatabaseError as e:
            if isinstance(e.cause, CONNECTION_ERRORS):
                raise classify_error(e.cause, None, StoreState.UNCHANGED) from e
            raise
        except (asyncpg.PostgresError, *CONNECTION_ERRORS) as e:
            raise classify_error(e, None, StoreState.UNCHANGED) from e

        if existed:
            logger.warning(f"Dropping {self.table.full_name} discards {rows} row(s)")

        start_time = time.time()
        if transactional:
            await self._apply_transactional(connection, statements)
        else:
            await self._apply_sequential(connection, statements, existed)
        execution_time_ms = (time.time() - start_time) * 1000

        logger.info(
            f"Reset {self.table.full_name} in {execution_time_ms:.1f}ms "
            f"({'transactional' if transactional else 'non-transactional'})"
        )

        result = ResetResult(
            table=self.table.full_name,
            state=StoreState.APPLIED,
            transactional=transactional,
            statements=statements,
            dropped_existing=existed,
            rows_discarded=rows,
            execution_time_ms=execution_time_ms,
        )

        if self.verify:
            result.verification = await SchemaVerifier(introspector).verify(self.table)
            result.verification.raise_for_mismatch()

        return result

    async def _ensure_connected(self, connection: asyncpg.Connection) -> None:
        if connection is None or connection.is_closed():
            raise DatabaseConnectionError("Connection is closed; no DDL was attempted")
        try:
            await connection.fetchval("SELECT 1", timeout=self.statement_timeout)
        except CONNECTION_ERRORS as e:
            logger.error(f"Store unreachable before reset: {e}")
            raise DatabaseConnectionError(
                f"Store unreachable; no DDL was attempted: {e}",
                cause=e,
            ) from e
        except asyncpg.PostgresError as e:
            # e.g. a session left inside an aborted transaction
            logger.error(f"Session unusable before reset: {e}")
            raise DatabaseConnectionError(
                f"Session unusable; no DDL was attempted: {e}",
                details={"sqlstate": e.sqlstate},
                cause=e,
            ) from e

    async def _resolve_transactional(self, introspector: SchemaIntrospector) -> bool:
        if self.transaction_policy == TransactionPolicy.ALWAYS:
            return True
        if self.transaction_policy == TransactionPolicy.NEVER:
            return False
        return await introspector.supports_transactional_ddl()

    async def _apply_transactional(
        self, connection: asyncpg.Connection, statements: List[str]
    ) -> None:
        current = None
        try:
            async with connection.transaction():
                for statement in statements:
                    current = statement
                    logger.info(f"Executing: {statement}")
                    await connection.execute(statement, timeout=self.statement_timeout)
        except asyncio.CancelledError:
            logger.warning(
                f"Reset of {self.table.full_name} cancelled; transaction rolled back"
            )
            raise
        except Exception as e:
            logger.error(f"Reset of {self.table.full_name} rolled back: {e}")
            raise classify_error(e, current, StoreState.UNCHANGED) from e

    async def _apply_sequential(
        self, connection: asyncpg.Connection, statements: List[str], existed: bool
    ) -> None:
        drop_sql, create_sql = statements

        logger.info(f"Executing: {drop_sql}")
        try:
            await connection.execute(drop_sql, timeout=self.statement_timeout)
        except asyncio.CancelledError as e:
            # The drop may have committed before the cancellation arrived
            if existed and not await self._table_survived(connection):
                logger.critical(
                    f"Reset of {self.table.full_name} cancelled during the drop; "
                    "table is missing"
                )
                raise PartialApplicationError(
                    f"Cancelled while dropping {self.table.full_name}; the table is missing",
                    statement=drop_sql,
                    cause=e,
                ) from e
            logger.warning(
                f"Reset of {self.table.full_name} cancelled during the drop; "
                "store unchanged"
            )
            raise
        except Exception as e:
            logger.error(f"Drop of {self.table.full_name} failed: {e}")
            raise classify_error(e, drop_sql, StoreState.UNCHANGED) from e

        logger.info(f"Executing: {create_sql}")
        try:
            await connection.execute(create_sql, timeout=self.statement_timeout)
        except asyncio.CancelledError as e:
            if not existed:
                logger.warning(
                    f"Reset of {self.table.full_name} cancelled before the create; "
                    "nothing was dropped"
                )
                raise
            logger.critical(
                f"Reset of {self.table.full_name} cancelled after the drop; table is missing"
            )
            raise PartialApplicationError(
                f"Cancelled after dropping {self.table.full_name}; the table is missing",
                statement=create_sql,
                cause=e,
            ) from e
        except Exception as e:
            if not existed:
                logger.error(f"Create of {self.table.full_name} failed: {e}")
                raise classify_error(e, create_sql, StoreState.UNCHANGED) from e
            logger.critical(
                f"Create of {self.table.full_name} failed after the drop; table is missing: {e}"
            )
            raise PartialApplicationError(
                f"Dropped {self.table.full_name} but could not recreate it: {e}",
                statement=create_sql,
                cause=e,
            ) from e

    async def _table_survived(self, connection: asyncpg.Connection) -> bool:
        """Re-check the table after an interrupted drop; False when unknown."""
        introspector = SchemaIntrospector(connection)
        try:
            return await asyncio.shield(
                introspector.table_exists(self.table.schema, self.table.name)
            )
        except (asyncio.CancelledError, DatabaseError) as e:
            logger.error(f"Could not check {self.table.full_name} after cancellation: {e!r}")
            return False


async def reset_schema(config: CatalogSchemaConfig) -> ResetResult:
    """Open a connection from ``config``, reset the products table, close it."""
    executor = SchemaResetExecutor.from_settings(config.reset)
    async with open_connection(config.get_connection_config()) as connection:
        return await executor.reset(connection)
