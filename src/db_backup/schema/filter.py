"""Table filtering: include/exclude wildcard rules and system-table detection.

Rules are evaluated per table, first match wins:

1. include patterns given and none matches -> excluded
2. system table (when ``exclude_system_tables``) -> excluded
3. an exclude pattern matches -> excluded
4. otherwise included

Usage:
    from db_backup.schema.filter import filter_tables

    result = filter_tables(
        ["users", "temp_users", "test1"],
        Dialect.POSTGRESQL,
        exclude_patterns=["temp_*", "test?"],
    )
    result.included  # ["users"]
"""

import logging
from collections.abc import Iterable, Sequence

from db_backup.dialects.base import Dialect
from db_backup.identifiers import matches_pattern
from db_backup.schema.models import FilterResult

logger = logging.getLogger(__name__)

MYSQL_SYSTEM_TABLE_PATTERNS = (
    "information_schema.*",
    "performance_schema.*",
    "mysql.*",
    "sys.*",
)

POSTGRESQL_SYSTEM_TABLE_PATTERNS = (
    "information_schema.*",
    "pg_*",
)

SPATIAL_SYSTEM_TABLE_PATTERNS = (
    "geometry_columns",
    "spatial_ref_sys",
    "geography_columns",
    "raster_*",
)

COMMON_SYSTEM_TABLE_PATTERNS = (
    "flyway_*",
    "liquibase*",
    "__*",
)

_DIALECT_SYSTEM_PATTERNS = {
    Dialect.MYSQL: MYSQL_SYSTEM_TABLE_PATTERNS,
    Dialect.POSTGRESQL: POSTGRESQL_SYSTEM_TABLE_PATTERNS,
}


def system_table_patterns(dialect: Dialect) -> tuple[str, ...]:
    """All system-table patterns that apply to *dialect*."""
    return (
        _DIALECT_SYSTEM_PATTERNS.get(dialect, ())
        + SPATIAL_SYSTEM_TABLE_PATTERNS
        + COMMON_SYSTEM_TABLE_PATTERNS
    )


def is_system_table(table: str | None, dialect: Dialect) -> bool:
    """True if *table* is a catalog, extension or migration-tool table.

    Examples:
        >>> is_system_table("pg_stat_statements", Dialect.POSTGRESQL)
        True
        >>> is_system_table("flyway_schema_history", Dialect.MYSQL)
        True
        >>> is_system_table("users", Dialect.POSTGRESQL)
        False
    """
    if table is None or not table.strip():
        return False
    return any(matches_pattern(table, p) for p in system_table_patterns(dialect))


def _matches_any(table: str, patterns: Sequence[str]) -> bool:
    return any(matches_pattern(table, p) for p in patterns)


def filter_tables(
    tables: Iterable[str],
    dialect: Dialect,
    exclude_system_tables: bool = True,
    exclude_patterns: Sequence[str] | None = None,
    include_patterns: Sequence[str] | None = None,
) -> FilterResult:
    """Split *tables* into included and excluded lists.

    Args:
        tables: Table names in catalog order.
        dialect: Determines which system-table patterns apply.
        exclude_system_tables: Drop system tables.
        exclude_patterns: Wildcard patterns (``*``, ``?``) to drop.
        include_patterns: If non-empty, only tables matching one of these
            are considered at all.

    Returns:
        FilterResult with both lists in the original relative order.
    """
    tables = list(tables)
    exclude_patterns = [p for p in exclude_patterns or [] if p]
    include_patterns = [p for p in include_patterns or [] if p]

    included: list[str] = []
    excluded: list[str] = []

    for table in tables:
        if include_patterns and not _matches_any(table, include_patterns):
            logger.debug("Excluding %s: no include pattern matches", table)
            excluded.append(table)
        elif exclude_system_tables and is_system_table(table, dialect):
            logger.debug("Excluding %s: system table", table)
            excluded.append(table)
        elif _matches_any(table, exclude_patterns):
            logger.debug("Excluding %s: matches exclude pattern", table)
            excluded.append(table)
        else:
            included.append(table)

    result = FilterResult(
        original_count=len(tables), included=included, excluded=excluded
    )
    logger.info(
        "Table filter: %d of %d included, %d excluded",
        result.included_count,
        result.original_count,
        result.excluded_count,
    )
    return result


def select_tables(
    tables: Iterable[str],
    dialect: Dialect,
    exclude_system_tables: bool = True,
    exclude_patterns: Sequence[str] | None = None,
    include_patterns: Sequence[str] | None = None,
) -> list[str]:
    """Like ``filter_tables`` but return only the included tables."""
    return filter_tables(
        tables,
        dialect,
        exclude_system_tables=exclude_system_tables,
        exclude_patterns=exclude_patterns,
        include_patterns=include_patterns,
    ).included
