"""Foreign-key dependency analysis and table ordering.

Builds a dependency graph over the selected tables and orders it with
Kahn's algorithm so that every referenced (parent) table comes before
the tables referencing it.  Ties are broken by case-insensitive name, so
the same catalog always yields the same order.  Tables caught in a cycle
are appended at the end in case-insensitive order.

A failed foreign-key query does not raise: it is returned as an
``AnalysisOutcome`` carrying the error, and the caller switches to the
fallback script.

Usage:
    from db_backup.schema.dependencies import analyze_dependencies

    outcome = analyze_dependencies(catalog, ["users", "orders"], "public")
    if outcome.ok:
        print(outcome.plan.tables)
"""

import heapq
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from db_backup.dialects.base import CatalogAdapter
from db_backup.errors import DependencyQueryError
from db_backup.schema.models import BackupPlan, ForeignKeyEdge

logger = logging.getLogger(__name__)


@dataclass
class AnalysisOutcome:
    """Either a ``BackupPlan`` or the ``DependencyQueryError`` that prevented one."""

    plan: BackupPlan | None = None
    error: DependencyQueryError | None = None

    def __post_init__(self) -> None:
        if (self.plan is None) == (self.error is None):
            raise ValueError("AnalysisOutcome needs exactly one of plan or error")

    @property
    def ok(self) -> bool:
        return self.plan is not None

    def unwrap(self) -> BackupPlan:
        """Return the plan, or raise the captured error."""
        if self.error is not None:
            raise self.error
        return self.plan


def _sort_key(name: str) -> tuple[str, str]:
    # casefold first; the raw name keeps "Users" and "users" in a stable order
    return (name.casefold(), name)


def _unique(tables: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for table in tables:
        if table not in seen:
            seen.add(table)
            result.append(table)
    return result


def build_plan(tables: Sequence[str], edges: Iterable[ForeignKeyEdge]) -> BackupPlan:
    """Order *tables* so that parents precede children.

    Args:
        tables: The selected table set.
        edges: Foreign-key edges.  Edges with an endpoint outside *tables*
            are ignored; self-references are kept aside.

    Returns:
        BackupPlan with ordered tables, the cross-table edges among them,
        the circular set, and the self-referencing edges.
    """
    ordered_input = _unique(tables)
    members = set(ordered_input)

    cross_edges: list[ForeignKeyEdge] = []
    self_references: list[ForeignKeyEdge] = []
    seen_edges: set[ForeignKeyEdge] = set()
    for edge in edges:
        if edge.child_table not in members or edge.parent_table not in members:
            continue
        if edge in seen_edges:
            continue
        seen_edges.add(edge)
        if edge.is_self_reference:
            self_references.append(edge)
        else:
            cross_edges.append(edge)

    # parent -> children; composite keys contribute one pair
    children: dict[str, set[str]] = {t: set() for t in ordered_input}
    in_degree: dict[str, int] = {t: 0 for t in ordered_input}
    for edge in cross_edges:
        if edge.child_table not in children[edge.parent_table]:
            children[edge.parent_table].add(edge.child_table)
            in_degree[edge.child_table] += 1

    heap = [_sort_key(t) for t in ordered_input if in_degree[t] == 0]
    heapq.heapify(heap)

    ordered: list[str] = []
    while heap:
        _, table = heapq.heappop(heap)
        ordered.append(table)
        for child in children[table]:
            in_degree[child] -= 1
            if in_degree[child] == 0:
                heapq.heappush(heap, _sort_key(child))

    placed = set(ordered)
    circular = sorted((t for t in ordered_input if t not in placed), key=_sort_key)
    if circular:
        logger.warning(
            "Circular foreign-key references among %d tables: %s",
            len(circular),
            ", ".join(circular),
        )

    return BackupPlan(
        tables=ordered + circular,
        edges=cross_edges,
        circular_tables=circular,
        self_references=self_references,
    )


def analyze_dependencies(
    catalog: CatalogAdapter, tables: Sequence[str], schema: str
) -> AnalysisOutcome:
    """Discover foreign keys among *tables* and build the backup plan.

    Args:
        catalog: Catalog adapter for the live connection.
        tables: Filtered table set.
        schema: Resolved schema.

    Returns:
        AnalysisOutcome holding the plan, or the ``DependencyQueryError``
        if the foreign-key query failed.
    """
    try:
        edges = catalog.list_foreign_keys(schema, list(tables))
    except DependencyQueryError as e:
        logger.error("Foreign-key discovery failed for schema %s: %s", schema, e)
        return AnalysisOutcome(error=e)

    logger.info("Found %d foreign-key column pairs in %s", len(edges), schema)
    plan = build_plan(tables, edges)
    logger.debug("Table order: %s", ", ".join(plan.tables))
    return AnalysisOutcome(plan=plan)
