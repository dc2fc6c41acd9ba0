"""MySQL catalog adapter and DDL renderer.

In MySQL the database *is* the schema: ``current_schema()`` is answered by
``SELECT DATABASE()`` and catalog lookups filter on ``TABLE_SCHEMA``.
CREATE TABLE comes from ``SHOW CREATE TABLE``; for phased scripts the
``CONSTRAINT ... FOREIGN KEY`` lines are stripped and re-added later.

Usage:
    from db_backup.dialects.mysql import MySQLCatalog, MySQLRenderer

    with engine.connect() as conn:
        catalog = MySQLCatalog(conn)
        renderer = MySQLRenderer(catalog)
        print(renderer.render_create_table("shop", "orders"))
"""

import re
from collections.abc import Sequence
from datetime import timedelta
from typing import Any

from sqlalchemy import bindparam, text

from db_backup.dialects.base import Dialect
from db_backup.dialects.common import (
    SqlCatalogBase,
    build_add_constraint,
    render_common_literal,
)
from db_backup.errors import CatalogError, DependencyQueryError
from db_backup.identifiers import require_safe_identifier
from db_backup.schema.models import ForeignKeyEdge

_FK_LINE = re.compile(r"^\s*(CONSTRAINT\s+`[^`]*`\s+)?FOREIGN\s+KEY\b", re.IGNORECASE)

# Rules MySQL applies when none is declared; not rendered
_DEFAULT_FK_RULES = {"NO ACTION", None}

_STRING_ESCAPES = {
    "\\": "\\\\",
    "'": "''",
    '"': '\\"',
    "\r": "\\r",
    "\n": "\\n",
    "\t": "\\t",
    "\x00": "\\0",
    "\x1a": "\\Z",
}


class MySQLCatalog(SqlCatalogBase):
    """Catalog queries for MySQL / MariaDB."""

    def list_tables(self, schema: str) -> list[str]:
        query = """
            SELECT TABLE_NAME
            FROM information_schema.TABLES
            WHERE TABLE_SCHEMA = :schema
              AND TABLE_TYPE = 'BASE TABLE'
            ORDER BY TABLE_NAME
        """
        return [row[0] for row in self._fetch_all(query, {"schema": schema})]

    def list_foreign_keys(
        self, schema: str, tables: Sequence[str]
    ) -> list[ForeignKeyEdge]:
        if not tables:
            return []

        query = text("""
            SELECT
                kcu.TABLE_NAME AS child_table,
                kcu.REFERENCED_TABLE_NAME AS parent_table,
                kcu.CONSTRAINT_NAME AS constraint_name,
                kcu.COLUMN_NAME AS child_column,
                kcu.REFERENCED_COLUMN_NAME AS parent_column,
                rc.DELETE_RULE AS delete_rule,
                rc.UPDATE_RULE AS update_rule
            FROM information_schema.KEY_COLUMN_USAGE kcu
            LEFT JOIN information_schema.REFERENTIAL_CONSTRAINTS rc
                ON rc.CONSTRAINT_SCHEMA = kcu.CONSTRAINT_SCHEMA
                AND rc.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME
                AND rc.TABLE_NAME = kcu.TABLE_NAME
            WHERE kcu.TABLE_SCHEMA = :schema
              AND kcu.REFERENCED_TABLE_SCHEMA = :schema
              AND kcu.REFERENCED_TABLE_NAME IS NOT NULL
              AND kcu.TABLE_NAME IN :tables
              AND kcu.REFERENCED_TABLE_NAME IN :tables
            ORDER BY kcu.TABLE_NAME, kcu.CONSTRAINT_NAME, kcu.ORDINAL_POSITION
        """).bindparams(bindparam("tables", expanding=True))

        rows = self._fetch_all(
            query,
            {"schema": schema, "tables": list(tables)},
            error_cls=DependencyQueryError,
        )

        return [
            ForeignKeyEdge(
                child_table=child,
                parent_table=parent,
                constraint_name=name,
                child_column=child_col,
                parent_column=parent_col,
                on_delete=None if delete_rule in _DEFAULT_FK_RULES else delete_rule,
                on_update=None if update_rule in _DEFAULT_FK_RULES else update_rule,
            )
            for child, parent, name, child_col, parent_col, delete_rule, update_rule in rows
        ]

    def current_schema(self) -> str | None:
        return self._fetch_scalar("SELECT DATABASE()")

    def search_path(self) -> list[str]:
        # MySQL has no search path
        return []

    def schema_exists(self, name: str) -> bool:
        if not name or not name.strip():
            return False
        query = """
            SELECT SCHEMA_NAME
            FROM information_schema.SCHEMATA
            WHERE SCHEMA_NAME = :name
        """
        return bool(self._fetch_all(query, {"name": name}))

    def show_create_table(self, schema: str, table: str) -> str:
        """Raw ``SHOW CREATE TABLE`` output (no trailing semicolon)."""
        qualified = f"{quote_identifier(schema)}.{quote_identifier(table)}"
        rows = self._fetch_all(f"SHOW CREATE TABLE {qualified}")
        if not rows:
            raise CatalogError(f"Table not found: {schema}.{table}")
        return rows[0][1]

    def generated_columns(self, schema: str, table: str) -> list[str]:
        """Virtual and stored generated columns of *table*."""
        query = """
            SELECT COLUMN_NAME
            FROM information_schema.COLUMNS
            WHERE TABLE_SCHEMA = :schema
              AND TABLE_NAME = :table
              AND EXTRA IN ('VIRTUAL GENERATED', 'STORED GENERATED')
            ORDER BY ORDINAL_POSITION
        """
        params = {"schema": schema, "table": table}
        return [row[0] for row in self._fetch_all(query, params)]


# ------------------------------------------------------------------
# Rendering
# ------------------------------------------------------------------


def quote_identifier(name: str) -> str:
    """Backtick-quote a safe identifier."""
    return f"`{require_safe_identifier(name)}`"


def quote_string(value: str) -> str:
    """Render *value* as a MySQL string literal with backslash escapes.

    Examples:
        >>> quote_string("it's")
        "'it''s'"
        >>> quote_string("C:\\\\temp")
        "'C:\\\\\\\\temp'"
    """
    return "'" + "".join(_STRING_ESCAPES.get(ch, ch) for ch in value) + "'"


def format_time(value: timedelta) -> str:
    """Render *value* as a MySQL TIME string ``[-]HH:MM:SS[.ffffff]``.

    PyMySQL returns TIME columns as ``timedelta``; hours are not wrapped
    at 24 and negative durations keep a single leading sign.

    Examples:
        >>> format_time(timedelta(hours=-1))
        '-01:00:00'
        >>> format_time(timedelta(days=1, hours=6))
        '30:00:00'
    """
    micros = (value.days * 86400 + value.seconds) * 1_000_000 + value.microseconds
    sign = "-" if micros < 0 else ""
    seconds, fraction = divmod(abs(micros), 1_000_000)
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    rendered = f"{sign}{hours:02d}:{minutes:02d}:{seconds:02d}"
    if fraction:
        rendered += f".{fraction:06d}"
    return rendered


def strip_foreign_keys(create_sql: str) -> str:
    """Remove inline FOREIGN KEY clauses from ``SHOW CREATE TABLE`` output.

    The comma left dangling before the closing parenthesis is removed too.
    Indexes MySQL created for the foreign-key columns (``KEY ...``) stay.
    """
    kept = [line for line in create_sql.splitlines() if not _FK_LINE.match(line)]
    for i, line in enumerate(kept):
        if i > 0 and line.lstrip().startswith(")"):
            kept[i - 1] = kept[i - 1].rstrip().rstrip(",")
    return "\n".join(kept)


class MySQLRenderer:
    """``DDLRenderer`` for MySQL.

    Args:
        catalog: Source of ``SHOW CREATE TABLE`` output.
    """

    dialect = Dialect.MYSQL

    def __init__(self, catalog: MySQLCatalog) -> None:
        self._catalog = catalog

    def quote_identifier(self, name: str) -> str:
        return quote_identifier(name)

    def render_drop_table(self, table: str) -> str:
        return f"DROP TABLE IF EXISTS {quote_identifier(table)};"

    def render_create_table(
        self, schema: str, table: str, include_foreign_keys: bool = False
    ) -> str:
        require_safe_identifier(table)
        create_sql = self._catalog.show_create_table(schema, table).rstrip().rstrip(";")
        if not include_foreign_keys:
            create_sql = strip_foreign_keys(create_sql)
        return create_sql + ";"

    def render_add_constraint(self, edges: Sequence[ForeignKeyEdge]) -> str:
        return build_add_constraint(edges, quote_identifier)

    def render_literal(self, value: Any, data_type: str | None = None) -> str:
        common = render_common_literal(value, quote_string)
        if common is not None:
            return common
        if isinstance(value, (bytes, bytearray, memoryview)):
            return f"X'{bytes(value).hex()}'"
        if isinstance(value, timedelta):
            return quote_string(format_time(value))
        return quote_string(value)

    def column_types(self, schema: str, table: str) -> dict[str, str]:
        return {}

    def generated_columns(self, schema: str, table: str) -> set[str]:
        return set(self._catalog.generated_columns(schema, table))

    def render_after_data(self, schema: str, table: str) -> list[str]:
        # Inserted ids advance AUTO_INCREMENT on their own
        return []

    def session_preamble(self, fallback: bool) -> list[str]:
        # DROP TABLE of a referenced parent fails while checks are on
        return [
            "SET NAMES utf8mb4;",
            "SET FOREIGN_KEY_CHECKS=0;",
            "SET SQL_MODE='NO_AUTO_VALUE_ON_ZERO';",
        ]

    def session_postamble(self, fallback: bool) -> list[str]:
        return ["SET FOREIGN_KEY_CHECKS=1;"]
