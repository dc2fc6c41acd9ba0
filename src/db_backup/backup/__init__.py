"""Backup script generation and orchestration.

Provides the phased script generator (``ScriptGenerator``), the run
orchestrator (``BackupOrchestrator``, ``run_backup``), the run report
models, and backup file naming.

Usage:
    from db_backup.backup import run_backup, BackupReport, BackupStatus
    from db_backup.backup import ScriptGenerator, generate_file_name
"""

from db_backup.backup.generator import ScriptGenerator
from db_backup.backup.models import (
    BackupIssue,
    BackupReport,
    BackupStatus,
    IssueSeverity,
    ScriptStats,
)
from db_backup.backup.naming import generate_file_name, sanitize_database_name
from db_backup.backup.orchestrator import BackupOrchestrator, run_backup

__all__ = [
    "ScriptGenerator",
    "BackupOrchestrator",
    "run_backup",
    "BackupReport",
    "BackupStatus",
    "BackupIssue",
    "IssueSeverity",
    "ScriptStats",
    "generate_file_name",
    "sanitize_database_name",
]
