"""Effective-schema resolution for a live connection.

Determines which schema (PostgreSQL) or database (MySQL) table discovery
and dependency queries run against, and whether it actually exists.

Usage:
    from db_backup.schema.resolver import resolve_schema

    resolution = resolve_schema(catalog, "public", Dialect.POSTGRESQL)
    if not resolution.exists:
        ...  # warn and continue
"""

import logging

from db_backup.dialects.base import CatalogAdapter, Dialect
from db_backup.errors import SchemaResolutionError
from db_backup.schema.models import ResolutionMethod, SchemaResolution

logger = logging.getLogger(__name__)

DEFAULT_POSTGRES_SCHEMA = "public"


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _resolve_mysql(
    catalog: CatalogAdapter, configured_schema: str | None
) -> tuple[str, ResolutionMethod]:
    current = _clean(catalog.current_schema())
    if current:
        return current, ResolutionMethod.CURRENT_SCHEMA

    configured = _clean(configured_schema)
    if configured:
        return configured, ResolutionMethod.CONFIGURED

    raise SchemaResolutionError(
        "No database selected on the connection and no schema configured"
    )


def _resolve_postgres(
    catalog: CatalogAdapter, configured_schema: str | None
) -> tuple[str, ResolutionMethod]:
    # 1. current_schema()
    current = _clean(catalog.current_schema())
    if current:
        return current, ResolutionMethod.CURRENT_SCHEMA

    # 2. First real entry of the search path ("$user" is skipped)
    for entry in catalog.search_path():
        entry = entry.strip()
        if entry and not entry.startswith("$"):
            return entry, ResolutionMethod.SEARCH_PATH

    # 3. Configured hint
    configured = _clean(configured_schema)
    if configured:
        return configured, ResolutionMethod.CONFIGURED

    # 4. Default
    return DEFAULT_POSTGRES_SCHEMA, ResolutionMethod.DEFAULT


def resolve_schema(
    catalog: CatalogAdapter,
    configured_schema: str | None,
    dialect: Dialect,
) -> SchemaResolution:
    """Resolve the effective schema and check that it exists.

    MySQL: the current database wins, else the configured hint.
    PostgreSQL: ``current_schema()``, then the first non-``$`` search-path
    entry, then the configured hint, then ``"public"``.

    A resolved schema that does not exist is reported with
    ``exists=False``; deciding what to do about it is the caller's job.

    Args:
        catalog: Catalog adapter for the live connection.
        configured_schema: Schema hint from configuration (may be ``None``).
        dialect: Dialect of the connection.

    Returns:
        ``SchemaResolution`` describing the chosen schema and method.

    Raises:
        SchemaResolutionError: MySQL connection without a current database
            and without a configured schema.
        CatalogError: If a probe query fails.
    """
    if dialect is Dialect.MYSQL:
        resolved, method = _resolve_mysql(catalog, configured_schema)
    elif dialect is Dialect.POSTGRESQL:
        resolved, method = _resolve_postgres(catalog, configured_schema)
    else:
        raise ValueError(f"Unsupported database type: {dialect}")

    exists = catalog.schema_exists(resolved)
    resolution = SchemaResolution(
        resolved_schema=resolved,
        configured_schema=configured_schema,
        exists=exists,
        method=method,
    )

    logger.info(
        "Resolved schema %r via %s (exists=%s)", resolved, method.value, exists
    )
    if configured_schema and configured_schema != resolved:
        logger.debug(
            "Configured schema %r differs from resolved schema %r",
            configured_schema,
            resolved,
        )
    return resolution
