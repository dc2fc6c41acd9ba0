"""Dialect package.

Provides the ``Dialect`` enum, the pipeline seams (``CatalogAdapter``,
``DDLRenderer``, ``RowReader``) and their PostgreSQL / MySQL
implementations over a SQLAlchemy connection.

Usage:
    from db_backup.dialects import Dialect, adapters_for

    with engine.connect() as conn:
        adapters = adapters_for(Dialect.POSTGRESQL, conn)
        tables = adapters.catalog.list_tables("public")
"""

from dataclasses import dataclass

from sqlalchemy.engine import Connection

from db_backup.dialects.base import (
    CatalogAdapter,
    DDLRenderer,
    Dialect,
    RowReader,
    RowStream,
    ScriptSink,
)
from db_backup.dialects.common import SqlAlchemyRowReader
from db_backup.dialects.mysql import MySQLCatalog, MySQLRenderer
from db_backup.dialects.postgres import PostgresCatalog, PostgresRenderer


@dataclass
class DialectAdapters:
    """The three per-connection collaborators of a backup run."""

    catalog: CatalogAdapter
    renderer: DDLRenderer
    reader: RowReader


def adapters_for(dialect: Dialect, connection: Connection) -> DialectAdapters:
    """Build catalog adapter, renderer and row reader for *connection*."""
    if dialect is Dialect.POSTGRESQL:
        catalog = PostgresCatalog(connection)
        renderer = PostgresRenderer(catalog)
    elif dialect is Dialect.MYSQL:
        catalog = MySQLCatalog(connection)
        renderer = MySQLRenderer(catalog)
    else:
        raise ValueError(f"Unsupported database type: {dialect}")

    reader = SqlAlchemyRowReader(connection, renderer.quote_identifier)
    return DialectAdapters(catalog=catalog, renderer=renderer, reader=reader)


__all__ = [
    "CatalogAdapter",
    "DDLRenderer",
    "Dialect",
    "DialectAdapters",
    "MySQLCatalog",
    "MySQLRenderer",
    "PostgresCatalog",
    "PostgresRenderer",
    "RowReader",
    "RowStream",
    "ScriptSink",
    "SqlAlchemyRowReader",
    "adapters_for",
]
