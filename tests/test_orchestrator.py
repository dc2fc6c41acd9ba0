"""Tests for backup orchestration: issues, fallback, status."""

import io
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from db_backup.backup.models import BackupStatus, IssueSeverity
from db_backup.backup.orchestrator import BackupOrchestrator, run_backup
from db_backup.config.models import BackupOptions
from db_backup.dialects.base import Dialect, RowStream
from db_backup.dialects.postgres import PostgresRenderer
from db_backup.errors import (
    CatalogError,
    DependencyQueryError,
    SchemaResolutionError,
    UnsafeIdentifierError,
)
from db_backup.schema.models import ColumnDefinition, ForeignKeyEdge, TableDefinition


class FakeCatalog:
    """In-memory CatalogAdapter."""

    def __init__(
        self,
        tables: list[str],
        edges: list[ForeignKeyEdge] | None = None,
        current: str | None = "public",
        schemas: set[str] | None = None,
        fk_error: Exception | None = None,
        list_error: Exception | None = None,
    ) -> None:
        self.tables = tables
        self.edges = edges or []
        self.current = current
        self.schemas = {"public"} if schemas is None else schemas
        self.fk_error = fk_error
        self.list_error = list_error

    def list_tables(self, schema: str) -> list[str]:
        if self.list_error:
            raise self.list_error
        return list(self.tables)

    def list_foreign_keys(self, schema, tables):
        if self.fk_error:
            raise self.fk_error
        return [e for e in self.edges if e.child_table in tables and e.parent_table in tables]

    def current_schema(self) -> str | None:
        return self.current

    def search_path(self) -> list[str]:
        return []

    def schema_exists(self, name: str) -> bool:
        return name in self.schemas

    def describe_table(self, schema: str, table: str) -> TableDefinition:
        return TableDefinition(
            name=table,
            columns=[ColumnDefinition(name="id", data_type="integer", is_nullable=False)],
        )


class FakeReader:
    """RowReader returning one row per table."""

    def read(self, schema: str, table: str) -> RowStream:
        return RowStream(table=table, columns=["id"], rows=iter([(1,)]))


class StepClock:
    """Clock advancing one second per call."""

    def __init__(self) -> None:
        self.now = datetime(2024, 1, 15, 12, 0, 0)

    def __call__(self) -> datetime:
        value = self.now
        self.now += timedelta(seconds=1)
        return value


def _edge(child: str, parent: str) -> ForeignKeyEdge:
    return ForeignKeyEdge(
        child_table=child,
        parent_table=parent,
        constraint_name=f"fk_{child}_{parent}",
        child_column=f"{parent}_id",
        parent_column="id",
    )


SHOP_TABLES = ["users", "orders", "products", "order_items", "pg_stat_cache", "temp_import"]
SHOP_EDGES = [
    _edge("orders", "users"),
    _edge("order_items", "orders"),
    _edge("order_items", "products"),
]


def _orchestrator(catalog: FakeCatalog, options: BackupOptions | None = None) -> BackupOrchestrator:
    return BackupOrchestrator(
        catalog, PostgresRenderer(catalog), FakeReader(), options, clock=StepClock()
    )


class TestSuccessfulRun:
    """Verify the normal path."""

    def test_phased_script_and_report(self) -> None:
        """A clean run writes a phased script and reports SUCCESS."""
        catalog = FakeCatalog(SHOP_TABLES, SHOP_EDGES)
        options = BackupOptions(exclude_patterns=["temp_*"])
        sink = io.StringIO()

        report = _orchestrator(catalog, options).run(sink)

        assert report.status is BackupStatus.SUCCESS
        assert report.dialect is Dialect.POSTGRESQL
        assert report.resolved_schema == "public"
        assert report.filter_result.excluded == ["pg_stat_cache", "temp_import"]
        assert report.plan.tables == ["products", "users", "orders", "order_items"]
        assert not report.used_fallback
        assert not report.has_issues
        assert (report.stats.tables, report.stats.rows, report.stats.constraints) == (4, 4, 3)
        assert "Phase 3" in sink.getvalue()

    def test_timestamps(self) -> None:
        """started_at precedes finished_at."""
        report = _orchestrator(FakeCatalog(["users"])).run(io.StringIO())
        assert report.duration > timedelta(0)

    def test_options_schema_hint_used(self) -> None:
        """The configured schema is used when the connection has none."""
        catalog = FakeCatalog(["users"], current=None, schemas={"reporting"})
        report = _orchestrator(catalog, BackupOptions(schema_name="reporting")).run(
            io.StringIO()
        )
        assert report.resolved_schema == "reporting"
        assert report.status is BackupStatus.SUCCESS

    def test_empty_selection_is_header_only(self) -> None:
        """No selected tables is not an error."""
        catalog = FakeCatalog(["temp_a", "temp_b"])
        sink = io.StringIO()
        report = _orchestrator(catalog, BackupOptions(exclude_patterns=["temp_*"])).run(sink)
        assert report.status is BackupStatus.SUCCESS
        assert report.stats.tables == 0
        assert "CREATE TABLE" not in sink.getvalue()
        assert "-- Tables: 0" in sink.getvalue()


class TestNonFatalIssues:
    """Verify issues are recorded and the run continues."""

    def test_unconfirmed_schema_is_warning(self) -> None:
        """A schema that cannot be confirmed is a warning issue."""
        catalog = FakeCatalog(["users"], current="ghost", schemas=set())
        report = _orchestrator(catalog).run(io.StringIO())

        assert report.status is BackupStatus.PARTIAL_SUCCESS
        issues = report.issues_for("schema")
        assert len(issues) == 1
        assert issues[0].severity is IssueSeverity.WARNING
        assert "ghost" in issues[0].message
        assert "SchemaResolutionWarning" in issues[0].cause

    def test_dependency_failure_uses_fallback(self) -> None:
        """A failed FK query produces the fallback script."""
        catalog = FakeCatalog(
            SHOP_TABLES, fk_error=DependencyQueryError("permission denied")
        )
        sink = io.StringIO()
        report = _orchestrator(catalog).run(sink)

        assert report.status is BackupStatus.PARTIAL_SUCCESS
        assert report.used_fallback
        assert report.plan is None
        issues = report.issues_for("dependencies")
        assert len(issues) == 1
        assert issues[0].severity is IssueSeverity.ERROR
        assert "permission denied" in issues[0].cause

        text = sink.getvalue()
        assert "dependency ordering was not applied" in text
        assert "ADD CONSTRAINT" not in text
        # catalog order, not dependency order
        assert text.index('"users"') < text.index('"orders"') < text.index('"products"')

    def test_circular_references_are_warning(self) -> None:
        """Cycles are reported as a warning on the dependencies phase."""
        edges = [_edge("a", "b"), _edge("b", "a")]
        report = _orchestrator(FakeCatalog(["a", "b", "c"], edges)).run(io.StringIO())

        assert report.status is BackupStatus.PARTIAL_SUCCESS
        issues = report.issues_for("dependencies")
        assert len(issues) == 1
        assert issues[0].severity is IssueSeverity.WARNING
        assert "a, b" in issues[0].message
        assert report.plan.tables == ["c", "a", "b"]


class TestFatalErrors:
    """Verify fatal conditions propagate or become FAILED reports."""

    def test_list_tables_failure_propagates(self) -> None:
        """A failed table listing aborts the run."""
        catalog = FakeCatalog([], list_error=CatalogError("connection lost"))
        with pytest.raises(CatalogError):
            _orchestrator(catalog).run(io.StringIO())

    def test_mysql_without_schema_propagates(self) -> None:
        """No resolvable schema on MySQL is fatal."""
        catalog = FakeCatalog(["users"], current=None)
        renderer = MagicMock()
        renderer.dialect = Dialect.MYSQL
        orchestrator = BackupOrchestrator(catalog, renderer, FakeReader())
        with pytest.raises(SchemaResolutionError):
            orchestrator.run(io.StringIO())

    def test_unsafe_identifier_propagates(self) -> None:
        """Unsafe table names abort the run."""
        catalog = FakeCatalog(["users", "bad-name"])
        with pytest.raises(UnsafeIdentifierError):
            _orchestrator(catalog).run(io.StringIO())

    def test_failed_report_when_not_raising(self) -> None:
        """raise_on_error=False turns a fatal error into a FAILED report."""
        catalog = FakeCatalog([], list_error=CatalogError("connection lost"))
        report = _orchestrator(catalog).run(io.StringIO(), raise_on_error=False)

        assert report.status is BackupStatus.FAILED
        assert report.schema_resolution is not None
        assert report.filter_result is None
        assert report.issues_for("backup")[0].severity is IssueSeverity.ERROR
        assert "connection lost" in report.issues_for("backup")[0].cause


class TestRunBackup:
    """Verify wiring from a connection."""

    def test_run_backup_uses_dialect_adapters(self) -> None:
        """run_backup builds adapters for the connection and runs them."""
        catalog = FakeCatalog(["users"])
        adapters = MagicMock()
        adapters.catalog = catalog
        adapters.renderer = PostgresRenderer(catalog)
        adapters.reader = FakeReader()
        conn = MagicMock()

        with patch(
            "db_backup.backup.orchestrator.adapters_for", return_value=adapters
        ) as mock_adapters_for:
            report = run_backup(conn, Dialect.POSTGRESQL, io.StringIO(), BackupOptions())

        mock_adapters_for.assert_called_once_with(Dialect.POSTGRESQL, conn)
        assert report.status is BackupStatus.SUCCESS
        assert report.plan.tables == ["users"]
