"""
Pre-flight checks for catalog-schema.

Reports whether a store is reachable and whether the current role can reset
the products table there, without changing anything.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List
from enum import Enum

import asyncpg

from .introspection import SchemaIntrospector
from ..schema.definition import PRODUCTS_TABLE, TableDefinition


logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Health check status levels."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


@dataclass
class HealthCheckResult:
    """Result of a health check."""

    name: str
    status: HealthStatus
    message: str
    details: Dict[str, Any]
    duration_ms: float
    timestamp: float

    @property
    def is_healthy(self) -> bool:
        """Check if the result indicates healthy status."""
        return self.status == HealthStatus.HEALTHY

    @property
    def is_critical(self) -> bool:
        """Check if the result indicates critical status."""
        return self.status == HealthStatus.CRITICAL


class DatabaseHealthChecker:
    """Read-only checks run before a reset."""

    def __init__(
        self,
        connection: asyncpg.Connection,
        table: TableDefinition = PRODUCTS_TABLE,
    ):
        self.connection = connection
        self.table = table
        self.introspector = SchemaIntrospector(connection)

    async def check_all(self) -> List[HealthCheckResult]:
        """Run all checks in order; a connection runs one query at a time."""
        results = [await self.check_connectivity()]
        if results[0].is_critical:
            return results

        results.append(await self.check_transactional_ddl())
        results.append(await self.check_privileges())
        results.append(await self.check_dependents())
        return results

    def _result(
        self,
        name: str,
        status: HealthStatus,
        message: str,
        details: Dict[str, Any],
        start_time: float,
    ) -> HealthCheckResult:
        return HealthCheckResult(
            name=name,
            status=status,
            message=message,
            details=details,
            duration_ms=(time.time() - start_time) * 1000,
            timestamp=time.time(),
        )

    async def check_connectivity(self) -> HealthCheckResult:
        """Check basic database connectivity."""
        start_time = time.time()

        try:
            result = await self.connection.fetchrow(
                "SELECT version(), current_database(), current_user"
            )
        except Exception as e:
            logger.error(f"Database connectivity check failed: {e}")
            return self._result(
                "connectivity",
                HealthStatus.CRITICAL,
                f"Database connection failed: {e}",
                {"error": str(e)},
                start_time,
            )

        return self._result(
            "connectivity",
            HealthStatus.HEALTHY,
            "Database connection successful",
            {
                "database": result["current_database"],
                "user": result["current_user"],
                "version": result["version"],
            },
            start_time,
        )

    async def check_transactional_ddl(self) -> HealthCheckResult:
        """Report whether the reset can run as one transaction."""
        start_time = time.time()

        try:
            transactional = await self.introspector.supports_transactional_ddl()
        except Exception as e:
            logger.error(f"Transactional DDL check failed: {e}")
            return self._result(
                "transactional_ddl",
                HealthStatus.UNKNOWN,
                f"Could not determine DDL behaviour: {e}",
                {"error": str(e)},
                start_time,
            )

        if transactional:
            return self._result(
                "transactional_ddl",
                HealthStatus.HEALTHY,
                "DROP and CREATE run in one transaction; a failed reset leaves the store unchanged",
                {"transactional": True},
                start_time,
            )
        return self._result(
            "transactional_ddl",
            HealthStatus.WARNING,
            "DDL is not transactional; a failed reset can leave the table missing",
            {"transactional": False},
            start_time,
        )

    async def check_privileges(self) -> HealthCheckResult:
        """Check CREATE on the target schema and ownership of an existing table."""
        start_time = time.time()
        schema, name = self.table.schema, self.table.name

        try:
            can_create = await self.introspector.has_create_privilege(schema)
            can_drop = await self.introspector.can_drop_table(schema, name)
        except Exception as e:
            logger.error(f"Privilege check failed: {e}")
            return self._result(
                "privileges",
                HealthStatus.CRITICAL,
                f"Privilege check failed: {e}",
                {"error": str(e)},
                start_time,
            )

        details = {"create": can_create, "drop": can_drop}
        if can_create and can_drop:
            return self._result(
                "privileges",
                HealthStatus.HEALTHY,
                f"Current role can drop and create {self.table.full_name}",
                details,
                start_time,
            )

        missing = []
        if not can_create:
            missing.append(f"CREATE on schema {schema}")
        if not can_drop:
            missing.append(f"ownership of {self.table.full_name}")
        return self._result(
            "privileges",
            HealthStatus.CRITICAL,
            "Missing privileges: " + ", ".join(missing),
            details,
            start_time,
        )

    async def check_dependents(self) -> HealthCheckResult:
        """Check for objects that would block a plain DROP."""
        start_time = time.time()

        try:
            dependents = await self.introspector.find_dependents(
                self.table.schema, self.table.name
            )
        except Exception as e:
            logger.error(f"Dependent object check failed: {e}")
            return self._result(
                "dependents",
                HealthStatus.UNKNOWN,
                f"Could not list dependent objects: {e}",
                {"error": str(e)},
                start_time,
            )

        if dependents:
            return self._result(
                "dependents",
                HealthStatus.CRITICAL,
                f"{len(dependents)} object(s) depend on {self.table.full_name}; "
                "the reset will fail with a conflict",
                {"dependents": [str(d) for d in dependents]},
                start_time,
            )
        return self._result(
            "dependents",
            HealthStatus.HEALTHY,
            f"No objects depend on {self.table.full_name}",
            {"dependents": []},
            start_time,
        )
