"""Dialect enum and the seams the backup pipeline is written against.

Defines the ``CatalogAdapter``, ``DDLRenderer`` and ``RowReader``
Protocols.  The pipeline only talks to these; concrete implementations
for PostgreSQL and MySQL live in sibling modules, and tests substitute
in-memory fakes.

Usage:
    from db_backup.dialects.base import CatalogAdapter, Dialect

    def list_user_tables(catalog: CatalogAdapter, schema: str) -> list[str]:
        return catalog.list_tables(schema)

    Dialect.from_url("postgresql://localhost/app")  # Dialect.POSTGRESQL
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from db_backup.schema.models import ForeignKeyEdge


class Dialect(str, Enum):
    """Supported SQL engines."""

    POSTGRESQL = "postgresql"
    MYSQL = "mysql"

    @classmethod
    def from_string(cls, value: str | None) -> "Dialect":
        """Parse a dialect name (case-insensitive, common aliases accepted).

        Raises:
            ValueError: If *value* is empty or not a supported type.
        """
        if value is None or not value.strip():
            raise ValueError("Database type cannot be empty")

        normalized = value.strip().lower()
        aliases = {
            "postgresql": cls.POSTGRESQL,
            "postgres": cls.POSTGRESQL,
            "pg": cls.POSTGRESQL,
            "mysql": cls.MYSQL,
            "mariadb": cls.MYSQL,
        }
        if normalized not in aliases:
            supported = ", ".join(d.value for d in cls)
            raise ValueError(
                f"Unsupported database type: {value}. Supported types: {supported}"
            )
        return aliases[normalized]

    @classmethod
    def from_url(cls, url: str) -> "Dialect":
        """Infer the dialect from a connection URL scheme.

        Accepts ``postgres://``, ``postgresql://``, ``postgresql+driver://``,
        ``mysql://``, ``mysql+driver://`` and ``mariadb://`` URLs.

        Raises:
            ValueError: If the scheme is missing or unsupported.
        """
        if not url or "://" not in url:
            raise ValueError(f"Not a database URL: {url!r}")

        scheme = url.split("://", 1)[0]
        backend = scheme.split("+", 1)[0]
        try:
            return cls.from_string(backend)
        except ValueError:
            raise ValueError(
                f"Unsupported database URL: {url}. "
                f"Supported schemes: postgresql://, mysql://"
            ) from None


# ------------------------------------------------------------------
# Row streaming
# ------------------------------------------------------------------


@dataclass
class RowStream:
    """Column names plus a lazy, single-pass sequence of rows for one table."""

    table: str
    columns: list[str]
    rows: Iterable[Sequence[Any]]


# ------------------------------------------------------------------
# Protocols
# ------------------------------------------------------------------


class CatalogAdapter(Protocol):
    """Read-only catalog queries for one live connection.

    Every method raises ``CatalogError`` on failure, except
    ``list_foreign_keys`` which raises ``DependencyQueryError``.
    """

    def list_tables(self, schema: str) -> list[str]:
        """Base tables of *schema* in catalog order."""
        ...

    def list_foreign_keys(
        self, schema: str, tables: Sequence[str]
    ) -> list["ForeignKeyEdge"]:
        """Foreign-key edges whose child and parent are both in *tables*."""
        ...

    def current_schema(self) -> str | None:
        """Current schema (PostgreSQL) or current database (MySQL)."""
        ...

    def search_path(self) -> list[str]:
        """Entries of the active search path; empty where not applicable."""
        ...

    def schema_exists(self, name: str) -> bool:
        """True if a schema (database, for MySQL) named *name* exists."""
        ...


class DDLRenderer(Protocol):
    """Renders DDL, constraints and literals for one dialect."""

    dialect: Dialect

    def quote_identifier(self, name: str) -> str:
        """Quote a safe identifier; raise ``UnsafeIdentifierError`` otherwise."""
        ...

    def render_drop_table(self, table: str) -> str:
        ...

    def render_create_table(
        self, schema: str, table: str, include_foreign_keys: bool = False
    ) -> str:
        """CREATE TABLE for *table*; foreign keys only when requested."""
        ...

    def render_add_constraint(self, edges: Sequence["ForeignKeyEdge"]) -> str:
        """ALTER TABLE ... ADD CONSTRAINT for the edges of one constraint."""
        ...

    def render_literal(self, value: Any, data_type: str | None = None) -> str:
        """SQL literal for *value*; *data_type* is the column type when known."""
        ...

    def column_types(self, schema: str, table: str) -> dict[str, str]:
        """Column name to declared type; empty when the renderer has no use for it."""
        ...

    def generated_columns(self, schema: str, table: str) -> set[str]:
        """Columns the engine computes itself; left out of INSERTs."""
        ...

    def render_after_data(self, schema: str, table: str) -> list[str]:
        """Statements emitted after a table's rows (e.g. sequence resets)."""
        ...

    def session_preamble(self, fallback: bool) -> list[str]:
        """Statements emitted after the header."""
        ...

    def session_postamble(self, fallback: bool) -> list[str]:
        """Statements emitted at the end of the script."""
        ...


class RowReader(Protocol):
    """Streams rows of one table at a time."""

    def read(self, schema: str, table: str) -> RowStream:
        ...


class ScriptSink(Protocol):
    """Append-only text destination (any text file object qualifies)."""

    def write(self, text: str) -> Any:
        ...
