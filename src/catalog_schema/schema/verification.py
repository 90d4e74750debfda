"""
Post-create verification of a table against its definition.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..database.introspection import ColumnInfo, SchemaIntrospector, TableInfo
from ..exceptions import SchemaMismatchError, StoreState
from .definition import ColumnDefinition, TableDefinition


logger = logging.getLogger(__name__)


@dataclass
class VerificationReport:
    """Outcome of comparing a live table with its definition."""

    table: str
    mismatches: List[str] = field(default_factory=list)

    @property
    def matches(self) -> bool:
        return not self.mismatches

    def raise_for_mismatch(self, store_state: StoreState = StoreState.APPLIED) -> None:
        if self.mismatches:
            raise SchemaMismatchError(self.table, self.mismatches, store_state=store_state)


def _strip_cast(expression: str) -> str:
    """Drop trailing ``::type`` casts and wrapping parentheses from a default."""
    value = expression.strip()
    while value.startswith("(") and value.endswith(")"):
        value = value[1:-1].strip()
    if "::" in value:
        value = value.split("::", 1)[0].strip()
    while value.startswith("(") and value.endswith(")"):
        value = value[1:-1].strip()
    return value.strip("'")


def defaults_equal(expected: str, actual: Optional[str]) -> bool:
    """Compare a literal default with the expression the catalog reports."""
    if actual is None:
        return False
    actual_value = _strip_cast(actual)
    try:
        return float(actual_value) == float(expected)
    except ValueError:
        return actual_value == expected


class SchemaVerifier:
    """Compares the catalog view of a table with a TableDefinition."""

    def __init__(self, introspector: SchemaIntrospector):
        self.introspector = introspector

    async def verify(self, table: TableDefinition) -> VerificationReport:
        info = await self.introspector.get_table_info(table.schema, table.name)
        report = compare(table, info)
        if report.matches:
            logger.info(f"Verified {table.full_name} matches its definition")
        else:
            logger.error(
                f"{table.full_name} differs from its definition: "
                + "; ".join(report.mismatches)
            )
        return report


def compare(table: TableDefinition, info: Optional[TableInfo]) -> VerificationReport:
    """Pure comparison of a definition with introspected table information."""
    report = VerificationReport(table=table.full_name)

    if info is None:
        report.mismatches.append(f"table {table.full_name} does not exist")
        return report

    for name in table.column_names:
        if not info.has_column(name):
            report.mismatches.append(f"column '{name}' is missing")
    for name in info.columns:
        if table.get_column(name) is None:
            report.mismatches.append(f"unexpected column '{name}'")

    for column in table.columns:
        actual = info.get_column(column.name)
        if actual is not None:
            report.mismatches.extend(_compare_column(column, actual))

    if info.primary_key != table.primary_key:
        report.mismatches.append(
            f"primary key is ({', '.join(info.primary_key)}), "
            f"expected ({', '.join(table.primary_key)})"
        )

    return report


def _compare_column(expected: ColumnDefinition, actual: ColumnInfo) -> List[str]:
    mismatches = []

    if actual.data_type.lower() not in expected.accepted_types:
        mismatches.append(
            f"column '{expected.name}' has type {actual.data_type}, "
            f"expected {' or '.join(expected.accepted_types)}"
        )

    if actual.is_nullable != expected.nullable:
        mismatches.append(
            f"column '{expected.name}' is "
            f"{'nullable' if actual.is_nullable else 'NOT NULL'}, "
            f"expected {'nullable' if expected.nullable else 'NOT NULL'}"
        )

    if expected.auto_increment:
        if not actual.is_sequence_backed:
            mismatches.append(
                f"column '{expected.name}' is not generated by a sequence "
                f"(default: {actual.default_value})"
            )
    elif expected.default is not None:
        if not defaults_equal(expected.default, actual.default_value):
            mismatches.append(
                f"column '{expected.name}' has default {actual.default_value}, "
                f"expected {expected.default}"
            )
    elif actual.default_value is not None:
        mismatches.append(
            f"column '{expected.name}' has unexpected default {actual.default_value}"
        )

    return mismatches
