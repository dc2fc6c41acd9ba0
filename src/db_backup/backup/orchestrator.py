"""Backup orchestration: one run from schema resolution to finished script.

Sequence:
    resolve schema -> list tables -> filter -> analyze dependencies
    -> phased script (or fallback script when analysis failed)

Non-fatal problems (unconfirmed schema, circular references, failed
foreign-key discovery) are recorded as ``BackupIssue``s on the report and
the run continues.  Catalog failures and unsafe identifiers are fatal and
propagate to the caller.

Usage:
    from db_backup.backup.orchestrator import run_backup

    with engine.connect() as conn, open("shop.sql", "w") as f:
        report = run_backup(conn, Dialect.POSTGRESQL, f, options)
    print(report.status)
"""

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.engine import Connection

from db_backup.backup.generator import ScriptGenerator
from db_backup.backup.models import (
    BackupIssue,
    BackupReport,
    BackupStatus,
    IssueSeverity,
    ScriptStats,
)
from db_backup.config.models import BackupOptions
from db_backup.dialects import adapters_for
from db_backup.dialects.base import (
    CatalogAdapter,
    DDLRenderer,
    Dialect,
    RowReader,
    ScriptSink,
)
from db_backup.errors import BackupError, SchemaResolutionWarning
from db_backup.schema.dependencies import analyze_dependencies
from db_backup.schema.filter import filter_tables
from db_backup.schema.models import BackupPlan, FilterResult, SchemaResolution
from db_backup.schema.resolver import resolve_schema

logger = logging.getLogger(__name__)

# BackupIssue.destination values
SCHEMA_DESTINATION = "schema"
DEPENDENCIES_DESTINATION = "dependencies"
BACKUP_DESTINATION = "backup"


class BackupOrchestrator:
    """Runs the backup pipeline against one connection's collaborators.

    Args:
        catalog: Catalog adapter for the live connection.
        renderer: DDL / literal renderer of the same dialect.
        reader: Row source for table data.
        options: Table selection settings and schema hint.
        clock: Timestamp source for the report and the script header.
    """

    def __init__(
        self,
        catalog: CatalogAdapter,
        renderer: DDLRenderer,
        reader: RowReader,
        options: BackupOptions | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._catalog = catalog
        self._renderer = renderer
        self._reader = reader
        self._options = options or BackupOptions()
        self._clock = clock or datetime.now

    @property
    def dialect(self) -> Dialect:
        return self._renderer.dialect

    def run(self, sink: ScriptSink, raise_on_error: bool = True) -> BackupReport:
        """Write a backup script for the selected tables to *sink*.

        Args:
            sink: Destination with ``write(str)``.
            raise_on_error: When False, a fatal ``BackupError`` is turned
                into a ``FAILED`` report instead of propagating.

        Returns:
            BackupReport.  ``PARTIAL_SUCCESS`` whenever an issue was
            recorded.

        Raises:
            CatalogError: Schema resolution or table listing failed.
            UnsafeIdentifierError: A name cannot be embedded safely.
        """
        started_at = self._clock()
        issues: list[BackupIssue] = []
        state: dict = {}

        try:
            stats = self._run(sink, issues, state)
        except BackupError as e:
            if raise_on_error:
                raise
            logger.error("Backup failed: %s", e)
            issues.append(
                BackupIssue.from_exception(BACKUP_DESTINATION, "Backup failed", e)
            )
            return self._report(
                BackupStatus.FAILED, state, ScriptStats(), issues, started_at
            )

        status = BackupStatus.PARTIAL_SUCCESS if issues else BackupStatus.SUCCESS
        report = self._report(status, state, stats, issues, started_at)
        logger.info(
            "Backup %s: %d tables, %d rows in %.2fs",
            report.status.value,
            report.stats.tables,
            report.stats.rows,
            report.duration.total_seconds(),
        )
        return report

    def _run(self, sink: ScriptSink, issues: list[BackupIssue], state: dict) -> ScriptStats:
        # 1. Effective schema
        resolution = resolve_schema(
            self._catalog, self._options.schema_name, self.dialect
        )
        state["schema_resolution"] = resolution
        schema = resolution.resolved_schema

        if not resolution.exists:
            warning = SchemaResolutionWarning(
                f"Schema '{schema}' could not be confirmed; continuing"
            )
            logger.warning(str(warning))
            issues.append(
                BackupIssue.from_exception(
                    SCHEMA_DESTINATION, str(warning), warning, IssueSeverity.WARNING
                )
            )

        # 2. Tables
        tables = self._catalog.list_tables(schema)
        logger.info("Found %d tables in %s", len(tables), schema)

        # 3. Filter
        filter_result = filter_tables(
            tables,
            self.dialect,
            exclude_system_tables=self._options.exclude_system_tables,
            exclude_patterns=self._options.exclude_patterns,
            include_patterns=self._options.include_patterns,
        )
        state["filter_result"] = filter_result

        generator = ScriptGenerator(self._renderer, self._reader, schema, self._clock)

        if not filter_result.included:
            logger.info("No tables selected; writing header-only script")
            plan = BackupPlan()
            state["plan"] = plan
            return generator.write_phased(plan, sink)

        # 4. Dependencies
        outcome = analyze_dependencies(self._catalog, filter_result.included, schema)

        if not outcome.ok:
            logger.warning("Falling back to unordered backup: %s", outcome.error)
            issues.append(
                BackupIssue.from_exception(
                    DEPENDENCIES_DESTINATION,
                    "Foreign-key discovery failed; tables written without dependency ordering",
                    outcome.error,
                )
            )
            state["used_fallback"] = True
            return generator.write_fallback(
                filter_result.included, sink, reason=str(outcome.error)
            )

        plan = outcome.plan
        state["plan"] = plan
        if plan.has_circular_references:
            issues.append(
                BackupIssue(
                    destination=DEPENDENCIES_DESTINATION,
                    message=(
                        "Circular foreign-key references among: "
                        + ", ".join(plan.circular_tables)
                    ),
                    severity=IssueSeverity.WARNING,
                )
            )

        # 5. Script
        return generator.write_phased(plan, sink)

    def _report(
        self,
        status: BackupStatus,
        state: dict,
        stats: ScriptStats,
        issues: list[BackupIssue],
        started_at: datetime,
    ) -> BackupReport:
        resolution: SchemaResolution | None = state.get("schema_resolution")
        filter_result: FilterResult | None = state.get("filter_result")
        return BackupReport(
            status=status,
            dialect=self.dialect,
            schema_resolution=resolution,
            filter_result=filter_result,
            plan=state.get("plan"),
            used_fallback=state.get("used_fallback", False),
            stats=stats,
            issues=issues,
            started_at=started_at,
            finished_at=self._clock(),
        )


def run_backup(
    connection: Connection,
    dialect: Dialect,
    sink: ScriptSink,
    options: BackupOptions | None = None,
    raise_on_error: bool = True,
) -> BackupReport:
    """Run one backup over a live SQLAlchemy connection.

    The connection stays open; closing it is the caller's job.
    """
    adapters = adapters_for(dialect, connection)
    orchestrator = BackupOrchestrator(
        adapters.catalog, adapters.renderer, adapters.reader, options
    )
    return orchestrator.run(sink, raise_on_error=raise_on_error)
