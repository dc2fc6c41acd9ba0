"""db-backup: dependency-ordered SQL backup scripts for PostgreSQL and MySQL.

Resolves the effective schema of a live connection, selects tables with
system-table and wildcard rules, orders them by foreign-key dependencies,
and writes a three-phase restore script (schema, data, constraints).

Usage:
    from db_backup import run_backup, Dialect, BackupOptions
    from db_backup import load_config, get_profile, create_engine_for_profile
    from db_backup import filter_tables, analyze_dependencies, BackupPlan
"""

__version__ = "0.1.0"

# Schema
from db_backup.schema.dependencies import AnalysisOutcome, analyze_dependencies, build_plan
from db_backup.schema.filter import filter_tables, is_system_table
from db_backup.schema.models import BackupPlan, FilterResult, ForeignKeyEdge, SchemaResolution
from db_backup.schema.resolver import resolve_schema

# Dialects
from db_backup.dialects.base import Dialect

# Backup
from db_backup.backup.generator import ScriptGenerator
from db_backup.backup.models import BackupIssue, BackupReport, BackupStatus
from db_backup.backup.orchestrator import BackupOrchestrator, run_backup

# Config
from db_backup.config.loader import load_config
from db_backup.config.models import BackupConfig, BackupOptions, DatabaseProfile

# Factory
from db_backup.factory import (
    ProfileNotFoundError,
    create_engine_for_profile,
    get_profile,
    resolve_url,
)

# Errors
from db_backup.errors import (
    BackupError,
    CatalogError,
    DependencyQueryError,
    SchemaResolutionError,
    SchemaResolutionWarning,
    UnsafeIdentifierError,
)

__all__ = [
    # Schema
    "resolve_schema",
    "SchemaResolution",
    "filter_tables",
    "is_system_table",
    "FilterResult",
    "analyze_dependencies",
    "build_plan",
    "AnalysisOutcome",
    "BackupPlan",
    "ForeignKeyEdge",
    # Dialects
    "Dialect",
    # Backup
    "ScriptGenerator",
    "BackupOrchestrator",
    "run_backup",
    "BackupReport",
    "BackupStatus",
    "BackupIssue",
    # Config
    "load_config",
    "BackupConfig",
    "BackupOptions",
    "DatabaseProfile",
    # Factory
    "create_engine_for_profile",
    "get_profile",
    "resolve_url",
    "ProfileNotFoundError",
    # Errors
    "BackupError",
    "CatalogError",
    "SchemaResolutionError",
    "DependencyQueryError",
    "UnsafeIdentifierError",
    "SchemaResolutionWarning",
]
