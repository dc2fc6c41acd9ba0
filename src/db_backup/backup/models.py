"""Run-level models for backup script generation.

Usage:
    from db_backup.backup.models import BackupReport, BackupStatus

    report = orchestrator.run(sink)
    if report.status is BackupStatus.PARTIAL_SUCCESS:
        for issue in report.issues:
            print(issue.destination, issue.message)
"""

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from db_backup.dialects.base import Dialect
from db_backup.schema.models import BackupPlan, FilterResult, SchemaResolution


class BackupStatus(str, Enum):
    """Overall outcome of one backup run."""

    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"   # script written, issues recorded
    FAILED = "failed"


class IssueSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


class BackupIssue(BaseModel):
    """A non-fatal problem recorded during a run.

    ``destination`` names the pipeline phase the issue came from, e.g.
    ``"schema"`` or ``"dependencies"``.
    """

    model_config = ConfigDict(frozen=True)

    destination: str
    message: str
    cause: str | None = None
    severity: IssueSeverity = IssueSeverity.WARNING
    occurred_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def from_exception(
        cls,
        destination: str,
        message: str,
        exc: BaseException,
        severity: IssueSeverity = IssueSeverity.ERROR,
    ) -> "BackupIssue":
        return cls(
            destination=destination,
            message=message,
            cause=f"{type(exc).__name__}: {exc}",
            severity=severity,
        )

    def __str__(self) -> str:
        text = f"[{self.severity.value}] {self.destination}: {self.message}"
        if self.cause:
            text += f" ({self.cause})"
        return text


class ScriptStats(BaseModel):
    """Counts of what a generated script contains."""

    tables: int = 0
    rows: int = 0
    constraints: int = 0


class BackupReport(BaseModel):
    """Result of one backup run.

    ``plan`` is ``None`` when the fallback script was written or when the
    run stopped before dependency analysis.
    """

    status: BackupStatus
    dialect: Dialect
    schema_resolution: SchemaResolution | None = None
    filter_result: FilterResult | None = None
    plan: BackupPlan | None = None
    used_fallback: bool = False
    stats: ScriptStats = Field(default_factory=ScriptStats)
    issues: list[BackupIssue] = Field(default_factory=list)
    started_at: datetime
    finished_at: datetime

    @property
    def duration(self) -> timedelta:
        return self.finished_at - self.started_at

    @property
    def has_issues(self) -> bool:
        return bool(self.issues)

    @property
    def resolved_schema(self) -> str | None:
        if self.schema_resolution is None:
            return None
        return self.schema_resolution.resolved_schema

    def issues_for(self, destination: str) -> list[BackupIssue]:
        return [i for i in self.issues if i.destination == destination]

    def __str__(self) -> str:
        return (
            f"BackupReport(status={self.status.value}, tables={self.stats.tables}, "
            f"rows={self.stats.rows}, issues={len(self.issues)}, "
            f"fallback={self.used_fallback})"
        )
