"""Tests for table filtering: system tables, include/exclude precedence."""

import pytest

from db_backup.dialects.base import Dialect
from db_backup.schema.filter import (
    COMMON_SYSTEM_TABLE_PATTERNS,
    MYSQL_SYSTEM_TABLE_PATTERNS,
    POSTGRESQL_SYSTEM_TABLE_PATTERNS,
    SPATIAL_SYSTEM_TABLE_PATTERNS,
    filter_tables,
    is_system_table,
    select_tables,
    system_table_patterns,
)
from db_backup.schema.models import FilterResult


# ------------------------------------------------------------------
# System tables
# ------------------------------------------------------------------


class TestSystemTables:
    """Verify dialect-specific system-table detection."""

    @pytest.mark.parametrize(
        "table",
        ["pg_stat_statements", "PG_Class", "information_schema.tables"],
    )
    def test_postgres_catalog_tables(self, table: str) -> None:
        """pg_* and information_schema.* are system tables on PostgreSQL."""
        assert is_system_table(table, Dialect.POSTGRESQL)

    @pytest.mark.parametrize(
        "table",
        ["mysql.user", "sys.metrics", "performance_schema.threads", "information_schema.columns"],
    )
    def test_mysql_catalog_tables(self, table: str) -> None:
        """mysql.*, sys.*, performance_schema.* and information_schema.* on MySQL."""
        assert is_system_table(table, Dialect.MYSQL)

    def test_pg_prefix_is_not_system_on_mysql(self) -> None:
        """pg_* is only a system pattern for PostgreSQL."""
        assert not is_system_table("pg_settings", Dialect.MYSQL)

    @pytest.mark.parametrize("dialect", list(Dialect))
    @pytest.mark.parametrize(
        "table",
        [
            "geometry_columns",
            "spatial_ref_sys",
            "geography_columns",
            "raster_columns",
            "flyway_schema_history",
            "liquibasechangelog",
            "__EFMigrationsHistory",
        ],
    )
    def test_extension_and_tool_tables(self, table: str, dialect: Dialect) -> None:
        """Spatial and migration-tool tables are system tables on both dialects."""
        assert is_system_table(table, dialect)

    @pytest.mark.parametrize("table", ["users", "orders", "pgsql_notes", "_private"])
    def test_user_tables(self, table: str) -> None:
        """Ordinary tables are not system tables."""
        assert not is_system_table(table, Dialect.POSTGRESQL)

    @pytest.mark.parametrize("table", [None, "", "   "])
    def test_blank_is_not_system(self, table) -> None:
        """None and blank names are not system tables."""
        assert not is_system_table(table, Dialect.POSTGRESQL)

    def test_patterns_are_tuples(self) -> None:
        """System patterns are immutable module-level tuples."""
        for patterns in (
            MYSQL_SYSTEM_TABLE_PATTERNS,
            POSTGRESQL_SYSTEM_TABLE_PATTERNS,
            SPATIAL_SYSTEM_TABLE_PATTERNS,
            COMMON_SYSTEM_TABLE_PATTERNS,
        ):
            assert isinstance(patterns, tuple)

    def test_dialect_patterns_include_shared_ones(self) -> None:
        """Each dialect's pattern set includes the spatial and common patterns."""
        for dialect in Dialect:
            patterns = system_table_patterns(dialect)
            assert set(SPATIAL_SYSTEM_TABLE_PATTERNS) <= set(patterns)
            assert set(COMMON_SYSTEM_TABLE_PATTERNS) <= set(patterns)


# ------------------------------------------------------------------
# Rule precedence
# ------------------------------------------------------------------


class TestFilterTables:
    """Verify first-match-wins rule evaluation."""

    def test_wildcard_scenario(self) -> None:
        """temp_* and test? exclude exactly the matching tables."""
        tables = ["users", "temp_users", "temp_data", "test1", "test12", "orders"]
        result = filter_tables(
            tables, Dialect.POSTGRESQL, exclude_patterns=["temp_*", "test?"]
        )
        assert result.included == ["users", "test12", "orders"]
        assert result.excluded == ["temp_users", "temp_data", "test1"]
        assert result.original_count == 6

    def test_include_patterns_restrict_first(self) -> None:
        """With include patterns, non-matching tables are excluded."""
        result = filter_tables(
            ["users", "orders", "audit_log"],
            Dialect.POSTGRESQL,
            include_patterns=["user*", "orders"],
        )
        assert result.included == ["users", "orders"]
        assert result.excluded == ["audit_log"]

    def test_system_filter_beats_include(self) -> None:
        """An included system table is still excluded when system filtering is on."""
        result = filter_tables(
            ["pg_notes", "users"], Dialect.POSTGRESQL, include_patterns=["*"]
        )
        assert result.included == ["users"]
        assert result.excluded == ["pg_notes"]

    def test_system_filter_can_be_disabled(self) -> None:
        """exclude_system_tables=False keeps system tables."""
        result = filter_tables(
            ["flyway_schema_history", "users"],
            Dialect.MYSQL,
            exclude_system_tables=False,
        )
        assert result.included == ["flyway_schema_history", "users"]
        assert not result.has_excluded

    def test_exclude_applies_after_include(self) -> None:
        """A table matching both include and exclude patterns is excluded."""
        result = filter_tables(
            ["user_data", "user_tmp"],
            Dialect.POSTGRESQL,
            include_patterns=["user_*"],
            exclude_patterns=["*_tmp"],
        )
        assert result.included == ["user_data"]
        assert result.excluded == ["user_tmp"]

    def test_original_order_preserved(self) -> None:
        """Both lists keep the catalog order."""
        tables = ["zeta", "temp_b", "alpha", "temp_a", "mid"]
        result = filter_tables(tables, Dialect.POSTGRESQL, exclude_patterns=["temp_*"])
        assert result.included == ["zeta", "alpha", "mid"]
        assert result.excluded == ["temp_b", "temp_a"]

    def test_partition_is_complete(self) -> None:
        """Every input table lands in exactly one list."""
        tables = ["users", "pg_x", "temp_1", "orders", "flyway_h"]
        result = filter_tables(tables, Dialect.POSTGRESQL, exclude_patterns=["temp_*"])
        assert sorted(result.included + result.excluded) == sorted(tables)
        assert result.included_count + result.excluded_count == result.original_count

    def test_empty_input(self) -> None:
        """No tables in, no tables out."""
        result = filter_tables([], Dialect.MYSQL)
        assert result == FilterResult(original_count=0)

    def test_empty_pattern_strings_are_ignored(self) -> None:
        """Blank patterns neither include nor exclude anything."""
        result = filter_tables(
            ["users"], Dialect.POSTGRESQL, exclude_patterns=[""], include_patterns=[""]
        )
        assert result.included == ["users"]

    def test_select_tables_returns_included(self) -> None:
        """select_tables is the included list of filter_tables."""
        tables = ["users", "temp_users"]
        assert select_tables(
            tables, Dialect.POSTGRESQL, exclude_patterns=["temp_*"]
        ) == ["users"]

    def test_result_is_frozen(self) -> None:
        """FilterResult cannot be mutated."""
        result = filter_tables(["users"], Dialect.POSTGRESQL)
        with pytest.raises(Exception):
            result.original_count = 5
