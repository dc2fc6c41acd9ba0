"""Phased SQL backup script generation.

A phased script restores cleanly regardless of foreign keys:

1. Schema: DROP + CREATE for every table, without foreign keys
2. Data: one INSERT per row, parents before children, each table followed
   by its sequence resets
3. Constraints: ALTER TABLE ... ADD CONSTRAINT for every foreign key

When dependency discovery failed, ``write_fallback`` emits one
self-contained block per table (drop, create with inline foreign keys,
data) in catalog order instead.

Output goes to any object with ``write(str)``; rows are streamed one at
a time and the script is never held in memory.

Usage:
    from db_backup.backup.generator import ScriptGenerator

    generator = ScriptGenerator(renderer, reader, "public")
    with open("backup.sql", "w", encoding="utf-8") as f:
        stats = generator.write_phased(plan, f)
"""

import io
import logging
from collections.abc import Callable, Sequence
from datetime import datetime

from db_backup.backup.models import ScriptStats
from db_backup.dialects.base import DDLRenderer, RowReader, RowStream, ScriptSink
from db_backup.schema.models import BackupPlan, ForeignKeyEdge

logger = logging.getLogger(__name__)

TOOL_NAME = "db-backup"


def group_constraints(
    edges: Sequence[ForeignKeyEdge], table_order: Sequence[str]
) -> list[list[ForeignKeyEdge]]:
    """Group edges by (child_table, constraint_name).

    Groups are ordered by the child table's position in *table_order*,
    then by constraint name; column pairs keep their original order.
    """
    position = {table: i for i, table in enumerate(table_order)}
    groups: dict[tuple[str, str], list[ForeignKeyEdge]] = {}
    for edge in edges:
        groups.setdefault((edge.child_table, edge.constraint_name), []).append(edge)

    def key(item: tuple[tuple[str, str], list[ForeignKeyEdge]]) -> tuple[int, str, str]:
        (child, name), _ = item
        return (position.get(child, len(position)), name.casefold(), name)

    return [group for _, group in sorted(groups.items(), key=key)]


class ScriptGenerator:
    """Writes backup scripts for one schema.

    Args:
        renderer: Dialect DDL / literal renderer.
        reader: Row source for table data.
        schema: Resolved schema the tables live in.
        clock: Returns the timestamp written into the header.
    """

    def __init__(
        self,
        renderer: DDLRenderer,
        reader: RowReader,
        schema: str,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._renderer = renderer
        self._reader = reader
        self._schema = schema
        self._clock = clock or datetime.now

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def write_phased(self, plan: BackupPlan, sink: ScriptSink) -> ScriptStats:
        """Write the three-phase script for *plan* to *sink*.

        An empty plan produces a header-only script.

        Raises:
            UnsafeIdentifierError: If any table, column or constraint name
                fails the safe-identifier check.  Table and constraint
                names are checked before anything is written.
        """
        stats = ScriptStats()
        constraint_groups = group_constraints(plan.edges, plan.tables)
        self_groups = group_constraints(plan.self_references, plan.tables)
        self._check_identifiers(plan.tables, plan.edges + plan.self_references)

        self._write_header(sink, len(plan.tables))
        if plan.has_circular_references:
            self._line(
                sink,
                "-- WARNING: circular foreign-key references among: "
                + ", ".join(plan.circular_tables),
            )
            self._line(
                sink,
                "-- These tables are emitted last; their constraints are added after all data.",
            )
        if not plan.tables:
            return stats

        self._write_statements(sink, self._renderer.session_preamble(False))

        self._section(sink, "Phase 1: schema (tables without foreign keys)")
        for table in plan.tables:
            self._write_table_ddl(sink, table, include_foreign_keys=False)
            stats.tables += 1

        self._section(sink, "Phase 2: data")
        for table in plan.tables:
            stats.rows += self._write_table_data(sink, table)

        self._section(sink, "Phase 3: foreign-key constraints")
        for group in constraint_groups + self_groups:
            self._line(sink, self._renderer.render_add_constraint(group))
            stats.constraints += 1

        self._write_statements(sink, self._renderer.session_postamble(False), blank=True)
        self._line(sink, "")
        self._line(sink, "-- Backup complete")

        logger.info(
            "Wrote phased script: %d tables, %d rows, %d constraints",
            stats.tables,
            stats.rows,
            stats.constraints,
        )
        return stats

    def write_fallback(
        self, tables: Sequence[str], sink: ScriptSink, reason: str | None = None
    ) -> ScriptStats:
        """Write an unordered script: one self-contained block per table.

        Tables keep the given (catalog) order and their CREATE TABLE
        statements carry native foreign keys, so the restore may fail on
        constraint checks unless they are relaxed.
        """
        stats = ScriptStats()
        tables = list(tables)
        self._check_identifiers(tables, [])

        self._write_header(sink, len(tables))
        self._line(sink, "-- WARNING: dependency ordering was not applied.")
        if reason:
            self._line(sink, "-- Reason: " + " ".join(reason.split()))
        self._line(sink, "-- Tables are emitted in catalog order with inline foreign keys.")
        self._line(
            sink,
            "-- Restoring may violate foreign-key constraints unless constraint "
            "checks are relaxed.",
        )
        if not tables:
            return stats

        self._write_statements(sink, self._renderer.session_preamble(True))

        for table in tables:
            self._write_table_ddl(sink, table, include_foreign_keys=True)
            stats.rows += self._write_table_data(sink, table)
            stats.tables += 1

        self._write_statements(sink, self._renderer.session_postamble(True), blank=True)
        self._line(sink, "")
        self._line(sink, "-- Backup complete")

        logger.warning(
            "Wrote fallback script without dependency ordering: %d tables, %d rows",
            stats.tables,
            stats.rows,
        )
        return stats

    def render(self, plan: BackupPlan) -> str:
        """Phased script as a string.  Only for small schemas and tests."""
        buffer = io.StringIO()
        self.write_phased(plan, buffer)
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _line(sink: ScriptSink, text: str) -> None:
        sink.write(text + "\n")

    def _section(self, sink: ScriptSink, title: str) -> None:
        self._line(sink, "")
        self._line(sink, "-- " + "=" * 60)
        self._line(sink, f"-- {title}")
        self._line(sink, "-- " + "=" * 60)

    def _write_statements(
        self, sink: ScriptSink, statements: list[str], blank: bool = False
    ) -> None:
        if statements and blank:
            self._line(sink, "")
        for statement in statements:
            self._line(sink, statement)

    def _check_identifiers(
        self, tables: Sequence[str], edges: Sequence[ForeignKeyEdge]
    ) -> None:
        quote = self._renderer.quote_identifier
        quote(self._schema)
        for table in tables:
            quote(table)
        for edge in edges:
            quote(edge.constraint_name)
            quote(edge.child_column)
            quote(edge.parent_column)

    def _write_header(self, sink: ScriptSink, table_count: int) -> None:
        generated_at = self._clock().isoformat(sep=" ", timespec="seconds")
        self._line(sink, f"-- Database backup generated by {TOOL_NAME}")
        self._line(sink, f"-- Dialect: {self._renderer.dialect.value}")
        self._line(sink, f"-- Schema: {self._schema}")
        self._line(sink, f"-- Generated at: {generated_at}")
        self._line(sink, f"-- Tables: {table_count}")

    def _write_table_ddl(
        self, sink: ScriptSink, table: str, include_foreign_keys: bool
    ) -> None:
        self._line(sink, "")
        self._line(sink, f"-- Table: {table}")
        self._line(sink, self._renderer.render_drop_table(table))
        self._line(
            sink,
            self._renderer.render_create_table(
                self._schema, table, include_foreign_keys=include_foreign_keys
            ),
        )

    def _write_table_data(self, sink: ScriptSink, table: str) -> int:
        """Stream INSERT statements for *table*; return the row count.

        Generated columns are left out of the INSERTs.  Statements from
        ``render_after_data`` (sequence resets) follow the rows.
        """
        stream = self._reader.read(self._schema, table)
        try:
            count = self._write_rows(sink, table, stream)
        finally:
            # Releases the server-side cursor when writing stops early
            close = getattr(stream.rows, "close", None)
            if close is not None:
                close()
        self._write_statements(
            sink, self._renderer.render_after_data(self._schema, table)
        )
        logger.debug("Wrote %d rows for %s", count, table)
        return count

    def _write_rows(self, sink: ScriptSink, table: str, stream: RowStream) -> int:
        renderer = self._renderer
        target = renderer.quote_identifier(table)
        generated = renderer.generated_columns(self._schema, table)
        types = renderer.column_types(self._schema, table)
        positions = [i for i, c in enumerate(stream.columns) if c not in generated]
        names = [stream.columns[i] for i in positions]
        column_list = ", ".join(renderer.quote_identifier(c) for c in names)
        column_types = [types.get(c) for c in names]

        self._line(sink, "")
        self._line(sink, f"-- Data for {table}")
        if not positions:
            return 0

        count = 0
        for row in stream.rows:
            values = ", ".join(
                renderer.render_literal(row[i], data_type)
                for i, data_type in zip(positions, column_types)
            )
            self._line(sink, f"INSERT INTO {target} ({column_list}) VALUES ({values});")
            count += 1
        return count
