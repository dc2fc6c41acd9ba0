"""Schema resolution, table selection, and dependency ordering.

Provides effective-schema resolution (``resolve_schema``), system-table
and wildcard filtering (``filter_tables``), and foreign-key dependency
analysis (``analyze_dependencies``, ``build_plan``).

Usage:
    from db_backup.schema import resolve_schema, filter_tables
    from db_backup.schema import analyze_dependencies, BackupPlan
"""

from db_backup.schema.models import (
    BackupPlan,
    ColumnDefinition,
    ConstraintDefinition,
    FilterResult,
    ForeignKeyEdge,
    IndexDefinition,
    ResolutionMethod,
    SchemaResolution,
    TableDefinition,
)
from db_backup.schema.dependencies import (
    AnalysisOutcome,
    analyze_dependencies,
    build_plan,
)
from db_backup.schema.filter import filter_tables, is_system_table, select_tables
from db_backup.schema.resolver import resolve_schema

__all__ = [
    "resolve_schema",
    "SchemaResolution",
    "ResolutionMethod",
    "filter_tables",
    "select_tables",
    "is_system_table",
    "FilterResult",
    "analyze_dependencies",
    "build_plan",
    "AnalysisOutcome",
    "BackupPlan",
    "ForeignKeyEdge",
    "ColumnDefinition",
    "ConstraintDefinition",
    "IndexDefinition",
    "TableDefinition",
]
