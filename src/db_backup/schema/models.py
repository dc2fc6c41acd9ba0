"""Pydantic models for catalog discovery and dependency planning.

This module contains schema-domain models:
- Catalog models: ForeignKeyEdge, ColumnDefinition, ConstraintDefinition,
  IndexDefinition, TableDefinition
- Resolution and filtering results: SchemaResolution, FilterResult
- Planning: BackupPlan

All value records are frozen; they are built once per backup run from
live catalog queries and discarded when the run ends.

Run-level models (BackupReport, BackupIssue) live in
db_backup.backup.models.
"""

from collections.abc import Iterable
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ============================================================================
# Catalog Models
# ============================================================================


class ForeignKeyEdge(BaseModel):
    """One column pair of a foreign key: ``child_table`` references ``parent_table``.

    The parent table must be loaded before the child table.  A composite
    foreign key is represented by several edges sharing ``child_table``
    and ``constraint_name``.

    Example:
        >>> edge = ForeignKeyEdge(
        ...     child_table="orders", parent_table="users",
        ...     constraint_name="fk_orders_user", child_column="user_id",
        ...     parent_column="id",
        ... )
        >>> str(edge)
        'orders.user_id -> users.id (fk_orders_user)'
    """

    model_config = ConfigDict(frozen=True)

    child_table: str
    parent_table: str
    constraint_name: str
    child_column: str
    parent_column: str
    on_delete: str | None = None  # e.g. CASCADE; None = engine default
    on_update: str | None = None

    @property
    def is_self_reference(self) -> bool:
        return self.child_table == self.parent_table

    def __str__(self) -> str:
        return (
            f"{self.child_table}.{self.child_column} -> "
            f"{self.parent_table}.{self.parent_column} ({self.constraint_name})"
        )


class ColumnDefinition(BaseModel):
    """Schema for a table column as rendered in CREATE TABLE."""

    model_config = ConfigDict(frozen=True)

    name: str
    data_type: str
    is_nullable: bool = True
    default: str | None = None
    is_identity: bool = False
    is_generated: bool = False  # stored generated column; default holds the expression


class ConstraintDefinition(BaseModel):
    """Schema for a table constraint.

    ``definition`` is the engine's own rendering of the constraint body,
    e.g. ``PRIMARY KEY (id)`` or ``FOREIGN KEY (user_id) REFERENCES users(id)``.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    constraint_type: str  # PRIMARY KEY, UNIQUE, CHECK, EXCLUDE, FOREIGN KEY
    definition: str

    @property
    def is_foreign_key(self) -> bool:
        return self.constraint_type == "FOREIGN KEY"


class IndexDefinition(BaseModel):
    """A secondary index not backing any constraint.

    ``definition`` is the complete CREATE INDEX statement as the engine
    renders it, without the trailing semicolon.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    definition: str


class TableDefinition(BaseModel):
    """Columns, constraints and secondary indexes of one table."""

    model_config = ConfigDict(frozen=True)

    name: str
    columns: list[ColumnDefinition] = Field(default_factory=list)
    constraints: list[ConstraintDefinition] = Field(default_factory=list)
    indexes: list[IndexDefinition] = Field(default_factory=list)


# ============================================================================
# Resolution and Filtering Results
# ============================================================================


class ResolutionMethod(str, Enum):
    """How the effective schema was determined."""

    CURRENT_SCHEMA = "current_schema"   # connection default (current schema / database)
    SEARCH_PATH = "search_path"         # first real entry of the search path
    CONFIGURED = "configured"           # configured schema hint
    DEFAULT = "default"                 # literal "public"


class SchemaResolution(BaseModel):
    """Report of how the effective schema was determined.

    Example:
        >>> res = SchemaResolution(
        ...     resolved_schema="public", configured_schema=None,
        ...     exists=True, method=ResolutionMethod.CURRENT_SCHEMA,
        ... )
        >>> res.matches_configured
        False
    """

    model_config = ConfigDict(frozen=True)

    resolved_schema: str
    configured_schema: str | None = None
    exists: bool
    method: ResolutionMethod

    @property
    def matches_configured(self) -> bool:
        return self.configured_schema is not None and (
            self.resolved_schema == self.configured_schema
        )


class FilterResult(BaseModel):
    """Outcome of table filtering, preserving the original relative order.

    Example:
        >>> result = FilterResult(original_count=3, included=["users"],
        ...                       excluded=["pg_class", "temp_x"])
        >>> result.excluded_count
        2
    """

    model_config = ConfigDict(frozen=True)

    original_count: int
    included: list[str] = Field(default_factory=list)
    excluded: list[str] = Field(default_factory=list)

    @property
    def included_count(self) -> int:
        return len(self.included)

    @property
    def excluded_count(self) -> int:
        return len(self.excluded)

    @property
    def has_excluded(self) -> bool:
        return bool(self.excluded)

    def __str__(self) -> str:
        return (
            f"FilterResult(original={self.original_count}, "
            f"included={self.included_count}, excluded={self.excluded_count})"
        )


# ============================================================================
# Planning
# ============================================================================


class BackupPlan(BaseModel):
    """Ordered tables plus the foreign keys among them.

    The sole input to the phased script generator.

    Attributes:
        tables: Tables in emission order (parents before children, circular
            tables last).
        edges: Cross-table foreign-key edges; both endpoints are in ``tables``.
        circular_tables: Tables whose in-degree never reached zero, sorted
            case-insensitively.
        self_references: Self-referencing edges.  They take no part in
            ordering and are emitted with the other constraints.
    """

    model_config = ConfigDict(frozen=True)

    tables: list[str] = Field(default_factory=list)
    edges: list[ForeignKeyEdge] = Field(default_factory=list)
    circular_tables: list[str] = Field(default_factory=list)
    self_references: list[ForeignKeyEdge] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_closure(self) -> "BackupPlan":
        members = set(self.tables)
        if len(members) != len(self.tables):
            raise ValueError("BackupPlan tables must be unique")
        for edge in self.edges:
            if edge.is_self_reference:
                raise ValueError(f"Self-reference in ordering edges: {edge}")
            if edge.child_table not in members or edge.parent_table not in members:
                raise ValueError(f"Edge references a table outside the plan: {edge}")
        for edge in self.self_references:
            if edge.child_table not in members:
                raise ValueError(f"Self-reference outside the plan: {edge}")
        for table in self.circular_tables:
            if table not in members:
                raise ValueError(f"Circular table outside the plan: {table}")
        return self

    @property
    def has_circular_references(self) -> bool:
        return bool(self.circular_tables)

    def edges_for(self, tables: Iterable[str]) -> list[ForeignKeyEdge]:
        """Edges whose two endpoints are both in *tables*."""
        subset = set(tables)
        return [
            e for e in self.edges
            if e.child_table in subset and e.parent_table in subset
        ]

    def ordered_subset(self, tables: Iterable[str]) -> list[str]:
        """The plan order restricted to *tables*."""
        subset = set(tables)
        return [t for t in self.tables if t in subset]

    def __str__(self) -> str:
        return (
            f"BackupPlan(tables={len(self.tables)}, edges={len(self.edges)}, "
            f"circular={self.has_circular_references})"
        )
