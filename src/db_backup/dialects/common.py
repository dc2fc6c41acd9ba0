"""Helpers shared by the PostgreSQL and MySQL dialect implementations.

- ``SqlCatalogBase``: runs catalog queries on a SQLAlchemy ``Connection``
  and turns driver errors into ``CatalogError`` / ``DependencyQueryError``.
- ``SqlAlchemyRowReader``: streams table rows through a server-side cursor.
- ``build_add_constraint``: ALTER TABLE ... ADD CONSTRAINT for one FK.
- ``render_common_literal``: literal rendering for non-string values.
"""

import json
import logging
import math
from collections.abc import Callable, Iterator, Sequence
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from db_backup.dialects.base import RowStream
from db_backup.errors import CatalogError, UnsafeIdentifierError
from db_backup.schema.models import ForeignKeyEdge

logger = logging.getLogger(__name__)

# Rows fetched per round trip when streaming table data
STREAM_BATCH_SIZE = 500


class SqlCatalogBase:
    """Base for catalog adapters backed by a SQLAlchemy connection.

    Args:
        connection: A live SQLAlchemy ``Connection``.  Owned by the caller;
            never closed here.
    """

    def __init__(self, connection: Connection) -> None:
        self._conn = connection

    def _fetch_all(
        self,
        sql: Any,
        params: dict[str, Any] | None = None,
        error_cls: type[Exception] = CatalogError,
    ) -> list[Sequence[Any]]:
        """Run a catalog query and return all rows.

        Raises:
            error_cls: Wrapping any ``SQLAlchemyError`` from the driver.
        """
        statement = text(sql) if isinstance(sql, str) else sql
        try:
            result = self._conn.execute(statement, params or {})
            return [tuple(row) for row in result.fetchall()]
        except SQLAlchemyError as e:
            raise error_cls(f"Catalog query failed: {e}") from e

    def _fetch_scalar(self, sql: str, params: dict[str, Any] | None = None) -> Any:
        rows = self._fetch_all(sql, params)
        if not rows:
            return None
        return rows[0][0]


class SqlAlchemyRowReader:
    """``RowReader`` over a SQLAlchemy connection.

    Each call to ``read`` opens a fresh streaming query, so a table can be
    read again (e.g. for a retry by the caller).  Rows are fetched in
    batches of ``batch_size`` but handed out one at a time.

    Args:
        connection: Live SQLAlchemy ``Connection``.
        quote: Identifier quoting function of the dialect renderer; it also
            performs the safe-identifier check.
        batch_size: Rows per fetch from the server-side cursor.
    """

    def __init__(
        self,
        connection: Connection,
        quote: Callable[[str], str],
        batch_size: int = STREAM_BATCH_SIZE,
    ) -> None:
        self._conn = connection
        self._quote = quote
        self._batch_size = batch_size

    def read(self, schema: str, table: str) -> RowStream:
        """Open a streaming SELECT over *table*.

        Raises:
            CatalogError: If the query fails.
            UnsafeIdentifierError: If a column name fails the safe-identifier
                check.  The cursor is closed before raising.
        """
        qualified = f"{self._quote(schema)}.{self._quote(table)}"
        try:
            result = self._conn.execute(
                text(f"SELECT * FROM {qualified}"),
                execution_options={
                    "stream_results": True,
                    "yield_per": self._batch_size,
                },
            )
        except SQLAlchemyError as e:
            raise CatalogError(f"Failed to read table {table}: {e}") from e

        columns = list(result.keys())
        try:
            for column in columns:
                self._quote(column)
        except UnsafeIdentifierError:
            result.close()
            raise
        logger.debug("Streaming %s (%d columns)", table, len(columns))
        return RowStream(table=table, columns=columns, rows=self._iter_rows(result))

    @staticmethod
    def _iter_rows(result: Any) -> Iterator[tuple]:
        try:
            for row in result:
                yield tuple(row)
        except SQLAlchemyError as e:
            raise CatalogError(f"Row streaming failed: {e}") from e
        finally:
            result.close()


def build_add_constraint(
    edges: Sequence[ForeignKeyEdge], quote: Callable[[str], str]
) -> str:
    """Render ALTER TABLE ... ADD CONSTRAINT for the edges of one constraint.

    Both dialects accept the same statement; only identifier quoting
    differs.

    Raises:
        ValueError: If *edges* is empty or mixes constraints.
    """
    if not edges:
        raise ValueError("No edges given for constraint")
    first = edges[0]
    for edge in edges[1:]:
        if (edge.child_table, edge.constraint_name, edge.parent_table) != (
            first.child_table, first.constraint_name, first.parent_table
        ):
            raise ValueError(f"Edges belong to different constraints: {first}, {edge}")

    child_cols = ", ".join(quote(e.child_column) for e in edges)
    parent_cols = ", ".join(quote(e.parent_column) for e in edges)
    sql = (
        f"ALTER TABLE {quote(first.child_table)} "
        f"ADD CONSTRAINT {quote(first.constraint_name)} "
        f"FOREIGN KEY ({child_cols}) "
        f"REFERENCES {quote(first.parent_table)} ({parent_cols})"
    )
    if first.on_delete:
        sql += f" ON DELETE {first.on_delete}"
    if first.on_update:
        sql += f" ON UPDATE {first.on_update}"
    return sql + ";"


def render_common_literal(value: Any, quote_string: Callable[[str], str]) -> str | None:
    """Render values whose SQL form is the same in both dialects.

    Returns ``None`` for types the caller must handle itself: ``str``,
    ``bytes`` and ``timedelta`` (MySQL TIME and PostgreSQL interval differ).

    Examples:
        >>> render_common_literal(None, repr)
        'NULL'
        >>> render_common_literal(True, repr)
        'TRUE'
        >>> render_common_literal(Decimal("1.50"), repr)
        '1.50'
    """
    if value is None:
        return "NULL"
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value):
            return repr(value)
        return quote_string(str(value))
    if isinstance(value, Decimal):
        if value.is_finite():
            return str(value)
        return quote_string(str(value))
    # datetime before date: datetime is a date subclass
    if isinstance(value, datetime):
        return quote_string(value.isoformat(sep=" "))
    if isinstance(value, (date, time)):
        return quote_string(value.isoformat())
    if isinstance(value, UUID):
        return quote_string(str(value))
    if isinstance(value, (dict, list)):
        return quote_string(json.dumps(value, default=str))
    if isinstance(value, (str, bytes, bytearray, memoryview, timedelta)):
        return None
    return quote_string(str(value))
