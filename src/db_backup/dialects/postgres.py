"""PostgreSQL catalog adapter and DDL renderer.

Catalog queries go through ``information_schema`` and ``pg_catalog`` on a
SQLAlchemy connection (``postgresql+psycopg://``).  CREATE TABLE
statements are rebuilt from ``pg_attribute`` / ``format_type`` /
``pg_get_constraintdef`` because PostgreSQL has no ``SHOW CREATE TABLE``.

Usage:
    from db_backup.dialects.postgres import PostgresCatalog, PostgresRenderer

    with engine.connect() as conn:
        catalog = PostgresCatalog(conn)
        renderer = PostgresRenderer(catalog)
        tables = catalog.list_tables("public")
        print(renderer.render_create_table("public", tables[0]))
"""

import json
import re
from collections.abc import Sequence
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any

from db_backup.dialects.base import Dialect
from db_backup.dialects.common import (
    SqlCatalogBase,
    build_add_constraint,
    render_common_literal,
)
from db_backup.errors import CatalogError, DependencyQueryError
from db_backup.identifiers import require_safe_identifier
from db_backup.schema.models import (
    ColumnDefinition,
    ConstraintDefinition,
    ForeignKeyEdge,
    IndexDefinition,
    TableDefinition,
)

# pg_constraint.contype -> constraint type name
_CONSTRAINT_TYPES = {
    "p": "PRIMARY KEY",
    "u": "UNIQUE",
    "c": "CHECK",
    "x": "EXCLUDE",
    "f": "FOREIGN KEY",
}

# pg_constraint.confdeltype / confupdtype -> referential action
# ('a' = NO ACTION is the default and is not rendered)
_FK_ACTIONS = {
    "r": "RESTRICT",
    "c": "CASCADE",
    "n": "SET NULL",
    "d": "SET DEFAULT",
}

_NEXTVAL_PATTERN = re.compile(r"nextval\('([^']+)'(?:::regclass)?\)")


class PostgresCatalog(SqlCatalogBase):
    """Catalog queries for PostgreSQL."""

    def list_tables(self, schema: str) -> list[str]:
        query = """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = :schema
              AND table_type = 'BASE TABLE'
            ORDER BY table_name
        """
        return [row[0] for row in self._fetch_all(query, {"schema": schema})]

    def list_foreign_keys(
        self, schema: str, tables: Sequence[str]
    ) -> list[ForeignKeyEdge]:
        """Foreign keys among *tables*, one edge per column pair.

        Composite keys are unnested pairwise with ``WITH ORDINALITY`` so
        column pairs stay aligned.
        """
        if not tables:
            return []

        query = """
            SELECT
                child.relname AS child_table,
                parent.relname AS parent_table,
                con.conname AS constraint_name,
                ca.attname AS child_column,
                pa.attname AS parent_column,
                con.confdeltype AS delete_rule,
                con.confupdtype AS update_rule
            FROM pg_constraint con
            JOIN pg_class child ON child.oid = con.conrelid
            JOIN pg_namespace cn ON cn.oid = child.relnamespace
            JOIN pg_class parent ON parent.oid = con.confrelid
            JOIN pg_namespace pn ON pn.oid = parent.relnamespace
            JOIN LATERAL unnest(con.conkey, con.confkey)
                WITH ORDINALITY AS k(child_attnum, parent_attnum, ordinality) ON TRUE
            JOIN pg_attribute ca
                ON ca.attrelid = con.conrelid AND ca.attnum = k.child_attnum
            JOIN pg_attribute pa
                ON pa.attrelid = con.confrelid AND pa.attnum = k.parent_attnum
            WHERE con.contype = 'f'
              AND cn.nspname = :schema
              AND pn.nspname = :schema
              AND child.relname = ANY(:tables)
              AND parent.relname = ANY(:tables)
            ORDER BY child.relname, con.conname, k.ordinality
        """
        rows = self._fetch_all(
            query,
            {"schema": schema, "tables": list(tables)},
            error_cls=DependencyQueryError,
        )

        edges: list[ForeignKeyEdge] = []
        for row in rows:
            child, parent, name, child_col, parent_col, delete_rule, update_rule = row
            edges.append(
                ForeignKeyEdge(
                    child_table=child,
                    parent_table=parent,
                    constraint_name=name,
                    child_column=child_col,
                    parent_column=parent_col,
                    on_delete=_FK_ACTIONS.get(delete_rule),
                    on_update=_FK_ACTIONS.get(update_rule),
                )
            )
        return edges

    def current_schema(self) -> str | None:
        return self._fetch_scalar("SELECT current_schema()")

    def search_path(self) -> list[str]:
        raw = self._fetch_scalar("SHOW search_path")
        if not raw:
            return []
        entries = []
        for entry in raw.split(","):
            entry = entry.strip()
            # Quoted entries like "Sales" keep their case but lose the quotes
            if len(entry) >= 2 and entry[0] == entry[-1] == '"':
                entry = entry[1:-1]
            if entry:
                entries.append(entry)
        return entries

    def schema_exists(self, name: str) -> bool:
        if not name or not name.strip():
            return False
        query = """
            SELECT schema_name
            FROM information_schema.schemata
            WHERE schema_name = :name
        """
        return bool(self._fetch_all(query, {"name": name}))

    def describe_table(self, schema: str, table: str) -> TableDefinition:
        """Columns, constraints and secondary indexes of *table*.

        Indexes that back a primary key, unique or exclusion constraint
        are left out; the constraint recreates them.

        Raises:
            CatalogError: If the table does not exist or the query fails.
        """
        column_query = """
            SELECT
                a.attname,
                format_type(a.atttypid, a.atttypmod),
                NOT a.attnotnull,
                pg_get_expr(d.adbin, d.adrelid),
                a.attidentity,
                a.attgenerated
            FROM pg_attribute a
            JOIN pg_class c ON c.oid = a.attrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            LEFT JOIN pg_attrdef d
                ON d.adrelid = a.attrelid AND d.adnum = a.attnum
            WHERE n.nspname = :schema
              AND c.relname = :table
              AND a.attnum > 0
              AND NOT a.attisdropped
            ORDER BY a.attnum
        """
        params = {"schema": schema, "table": table}
        rows = self._fetch_all(column_query, params)
        columns = [
            ColumnDefinition(
                name=name,
                data_type=data_type,
                is_nullable=bool(nullable),
                default=default,
                is_identity=identity in ("a", "d"),
                is_generated=generated == "s",
            )
            for name, data_type, nullable, default, identity, generated in rows
        ]
        if not columns:
            raise CatalogError(f"Table not found: {schema}.{table}")

        constraint_query = """
            SELECT con.conname, con.contype, pg_get_constraintdef(con.oid)
            FROM pg_constraint con
            JOIN pg_class c ON c.oid = con.conrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE n.nspname = :schema
              AND c.relname = :table
              AND con.contype IN ('p', 'u', 'c', 'x', 'f')
            ORDER BY
                CASE con.contype
                    WHEN 'p' THEN 0 WHEN 'u' THEN 1 WHEN 'c' THEN 2
                    WHEN 'x' THEN 3 ELSE 4
                END,
                con.conname
        """
        constraints = [
            ConstraintDefinition(
                name=name,
                constraint_type=_CONSTRAINT_TYPES[contype],
                definition=definition,
            )
            for name, contype, definition in self._fetch_all(constraint_query, params)
        ]

        index_query = """
            SELECT ic.relname, pg_get_indexdef(i.indexrelid)
            FROM pg_index i
            JOIN pg_class c ON c.oid = i.indrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            JOIN pg_class ic ON ic.oid = i.indexrelid
            WHERE n.nspname = :schema
              AND c.relname = :table
              AND NOT EXISTS (
                  SELECT 1
                  FROM pg_constraint con
                  WHERE con.conindid = i.indexrelid
                    AND con.conrelid = i.indrelid
                    AND con.contype IN ('p', 'u', 'x')
              )
            ORDER BY ic.relname
        """
        indexes = [
            IndexDefinition(name=name, definition=definition)
            for name, definition in self._fetch_all(index_query, params)
        ]

        return TableDefinition(
            name=table, columns=columns, constraints=constraints, indexes=indexes
        )


# ------------------------------------------------------------------
# Rendering
# ------------------------------------------------------------------


def quote_identifier(name: str) -> str:
    """Double-quote a safe identifier."""
    return f'"{require_safe_identifier(name)}"'


def quote_string(value: str) -> str:
    """Render *value* as a PostgreSQL string literal.

    Plain values use standard quote doubling.  Values holding a backslash
    or a control character become ``E'...'`` escape strings.  NUL cannot
    be stored in PostgreSQL text and is dropped.

    Examples:
        >>> quote_string("O'Brien")
        "'O''Brien'"
        >>> quote_string("line1\\nline2")
        "E'line1\\\\nline2'"
    """
    value = value.replace("\x00", "")
    if not any(ch == "\\" or ord(ch) < 32 or ord(ch) == 127 for ch in value):
        return "'" + value.replace("'", "''") + "'"

    escapes = {
        "\\": "\\\\",
        "'": "''",
        "\n": "\\n",
        "\r": "\\r",
        "\t": "\\t",
        "\b": "\\b",
        "\f": "\\f",
    }
    parts: list[str] = []
    for ch in value:
        if ch in escapes:
            parts.append(escapes[ch])
        elif ord(ch) < 32 or ord(ch) == 127:
            parts.append(f"\\x{ord(ch):02x}")
        else:
            parts.append(ch)
    return "E'" + "".join(parts) + "'"


def _quote_qualified(name: str) -> str:
    """Quote a possibly schema-qualified name such as ``public.orders_id_seq``."""
    parts = [p.strip('"') for p in name.split(".")]
    return ".".join(quote_identifier(p) for p in parts)


def format_interval(value: timedelta) -> str:
    """Render *value* as PostgreSQL interval input.

    Examples:
        >>> format_interval(timedelta(hours=-1))
        '-1 days 23:00:00'
        >>> format_interval(timedelta(days=2, seconds=5, microseconds=10))
        '2 days 00:00:05.000010'
    """
    minutes, seconds = divmod(value.seconds, 60)
    hours, minutes = divmod(minutes, 60)
    rendered = f"{value.days} days {hours:02d}:{minutes:02d}:{seconds:02d}"
    if value.microseconds:
        rendered += f".{value.microseconds:06d}"
    return rendered


def format_array(values: list) -> str:
    """Render a Python list as the text of a PostgreSQL array literal.

    Elements other than numbers, booleans and NULL are double-quoted with
    backslash escapes.  Nested lists become nested braces.

    Examples:
        >>> format_array([1, None, 3])
        '{1,NULL,3}'
        >>> format_array(["a b", 'say "hi"'])
        '{"a b","say \\\\"hi\\\\""}'
    """
    return "{" + ",".join(_array_element(v) for v in values) + "}"


def _array_element(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, list):
        return format_array(value)
    if isinstance(value, bool):
        return "t" if value else "f"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        element = value.isoformat(sep=" ")
    elif isinstance(value, (date, time)):
        element = value.isoformat()
    elif isinstance(value, timedelta):
        element = format_interval(value)
    elif isinstance(value, dict):
        element = json.dumps(value, default=str)
    elif isinstance(value, (bytes, bytearray, memoryview)):
        element = "\\x" + bytes(value).hex()
    else:
        element = str(value)
    return '"' + element.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _is_array_type(data_type: str | None) -> bool:
    # Unknown types are treated as arrays; json/jsonb lists stay JSON
    return data_type is None or data_type.endswith("]")


def build_create_table(definition: TableDefinition, include_foreign_keys: bool = False) -> str:
    """Render CREATE TABLE plus the sequences and indexes that go with it.

    Args:
        definition: Columns, constraints and indexes from ``describe_table``.
        include_foreign_keys: Keep FOREIGN KEY constraints inline.  Off for
            phased scripts, which add them after the data.

    Returns:
        One or more ``;``-terminated statements: CREATE SEQUENCE for each
        sequence a default draws from, CREATE TABLE, then CREATE INDEX for
        each secondary index.
    """
    statements: list[str] = []

    # Sequences behind serial-style defaults must exist before the table
    sequences: list[str] = []
    for column in definition.columns:
        if column.default and not column.is_generated:
            for match in _NEXTVAL_PATTERN.finditer(column.default):
                seq = _quote_qualified(match.group(1))
                if seq not in sequences:
                    sequences.append(seq)
    for seq in sequences:
        statements.append(f"CREATE SEQUENCE IF NOT EXISTS {seq};")

    lines: list[str] = []
    for column in definition.columns:
        parts = [quote_identifier(column.name), column.data_type]
        if column.is_identity:
            parts.append("GENERATED BY DEFAULT AS IDENTITY")
        elif column.is_generated:
            parts.append(f"GENERATED ALWAYS AS ({column.default}) STORED")
        elif column.default is not None:
            parts.append(f"DEFAULT {column.default}")
        if not column.is_nullable:
            parts.append("NOT NULL")
        lines.append("    " + " ".join(parts))

    for constraint in definition.constraints:
        if constraint.is_foreign_key and not include_foreign_keys:
            continue
        lines.append(
            f"    CONSTRAINT {quote_identifier(constraint.name)} {constraint.definition}"
        )

    body = ",\n".join(lines)
    statements.append(f"CREATE TABLE {quote_identifier(definition.name)} (\n{body}\n);")
    for index in definition.indexes:
        statements.append(index.definition.rstrip().rstrip(";") + ";")
    return "\n".join(statements)


def build_sequence_resets(definition: TableDefinition) -> list[str]:
    """``setval`` statements that move each column sequence past the loaded ids.

    Covers identity columns and ``nextval(...)`` defaults.  An empty table
    leaves the sequence so that the next value is 1.
    """
    table = quote_identifier(definition.name)
    statements: list[str] = []
    for column in definition.columns:
        if column.is_generated:
            continue
        if column.is_identity:
            sequences = [
                f"pg_get_serial_sequence({quote_string(table)}, "
                f"{quote_string(column.name)})"
            ]
        elif column.default:
            sequences = [
                quote_string(_quote_qualified(match.group(1)))
                for match in _NEXTVAL_PATTERN.finditer(column.default)
            ]
        else:
            continue
        col = quote_identifier(column.name)
        for seq in sequences:
            statements.append(
                f"SELECT setval({seq}, COALESCE(MAX({col}), 1), "
                f"MAX({col}) IS NOT NULL) FROM {table};"
            )
    return statements


class PostgresRenderer:
    """``DDLRenderer`` for PostgreSQL.

    Table definitions are read once per table and reused for the CREATE
    TABLE, the INSERT column list and the sequence resets.

    Args:
        catalog: Source of table definitions for CREATE TABLE.
    """

    dialect = Dialect.POSTGRESQL

    def __init__(self, catalog: PostgresCatalog) -> None:
        self._catalog = catalog
        self._definitions: dict[tuple[str, str], TableDefinition] = {}

    def _describe(self, schema: str, table: str) -> TableDefinition:
        key = (schema, table)
        if key not in self._definitions:
            self._definitions[key] = self._catalog.describe_table(schema, table)
        return self._definitions[key]

    def quote_identifier(self, name: str) -> str:
        return quote_identifier(name)

    def render_drop_table(self, table: str) -> str:
        return f"DROP TABLE IF EXISTS {quote_identifier(table)} CASCADE;"

    def render_create_table(
        self, schema: str, table: str, include_foreign_keys: bool = False
    ) -> str:
        return build_create_table(self._describe(schema, table), include_foreign_keys)

    def render_add_constraint(self, edges: Sequence[ForeignKeyEdge]) -> str:
        return build_add_constraint(edges, quote_identifier)

    def render_literal(self, value: Any, data_type: str | None = None) -> str:
        if isinstance(value, list) and _is_array_type(data_type):
            return quote_string(format_array(value))
        common = render_common_literal(value, quote_string)
        if common is not None:
            return common
        if isinstance(value, (bytes, bytearray, memoryview)):
            return f"'\\x{bytes(value).hex()}'::bytea"
        if isinstance(value, timedelta):
            return quote_string(format_interval(value))
        return quote_string(value)

    def column_types(self, schema: str, table: str) -> dict[str, str]:
        return {c.name: c.data_type for c in self._describe(schema, table).columns}

    def generated_columns(self, schema: str, table: str) -> set[str]:
        return {c.name for c in self._describe(schema, table).columns if c.is_generated}

    def render_after_data(self, schema: str, table: str) -> list[str]:
        return build_sequence_resets(self._describe(schema, table))

    def session_preamble(self, fallback: bool) -> list[str]:
        return [
            "SET client_encoding = 'UTF8';",
            "SET standard_conforming_strings = on;",
        ]

    def session_postamble(self, fallback: bool) -> list[str]:
        return []
