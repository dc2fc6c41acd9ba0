"""Tests for package exports, public API, and library hygiene."""

import ast
import importlib
from pathlib import Path

import pytest

PACKAGE_DIR = Path(__file__).parent.parent / "src" / "db_backup"


# ============================================================================
# Top-level package exports
# ============================================================================


class TestTopLevelExports:
    """Tests for src/db_backup/__init__.py exports."""

    def test_version_defined(self) -> None:
        """Package __version__ is defined and is a string."""
        import db_backup

        assert db_backup.__version__ == "0.1.0"

    def test_all_names_are_importable(self) -> None:
        """Every name in __all__ is actually accessible on the module."""
        import db_backup

        assert isinstance(db_backup.__all__, list)
        for name in db_backup.__all__:
            assert hasattr(db_backup, name), (
                f"'{name}' is in __all__ but not accessible on db_backup"
            )

    def test_pipeline_exports(self) -> None:
        """The backup pipeline is importable from the top level."""
        from db_backup import (
            BackupOptions,
            Dialect,
            analyze_dependencies,
            filter_tables,
            resolve_schema,
            run_backup,
        )

        assert callable(run_backup)
        assert callable(resolve_schema)
        assert callable(filter_tables)
        assert callable(analyze_dependencies)
        assert isinstance(BackupOptions, type)
        assert Dialect("mysql") is Dialect.MYSQL

    def test_error_hierarchy(self) -> None:
        """Fatal errors share BackupError as a base."""
        from db_backup import (
            BackupError,
            CatalogError,
            DependencyQueryError,
            SchemaResolutionError,
            UnsafeIdentifierError,
        )

        assert issubclass(CatalogError, BackupError)
        assert issubclass(SchemaResolutionError, CatalogError)
        assert issubclass(DependencyQueryError, BackupError)
        assert issubclass(UnsafeIdentifierError, BackupError)
        assert issubclass(UnsafeIdentifierError, ValueError)


# ============================================================================
# Subpackage exports
# ============================================================================


class TestSubpackageExports:
    """Every subpackage __all__ resolves."""

    @pytest.mark.parametrize(
        "module_name",
        [
            "db_backup.schema",
            "db_backup.dialects",
            "db_backup.backup",
            "db_backup.config",
        ],
    )
    def test_all_names_resolve(self, module_name: str) -> None:
        """Names in __all__ exist on the subpackage."""
        module = importlib.import_module(module_name)
        for name in module.__all__:
            assert hasattr(module, name), f"{module_name}.{name} missing"

    def test_no_circular_imports(self) -> None:
        """Importing all subpackages in sequence does not cause circular imports."""
        import db_backup
        import db_backup.backup
        import db_backup.cli
        import db_backup.config
        import db_backup.dialects
        import db_backup.schema

        assert db_backup.cli.main is not None
        assert db_backup.dialects.adapters_for is not None


# ============================================================================
# Library hygiene
# ============================================================================


def _library_files() -> list[Path]:
    return [p for p in sorted(PACKAGE_DIR.rglob("*.py")) if "cli" not in p.parts]


class TestLibraryHygiene:
    """Library modules log instead of printing."""

    def test_no_print_calls(self) -> None:
        """No print() calls outside the CLI."""
        offenders = []
        for path in _library_files():
            tree = ast.parse(path.read_text())
            for node in ast.walk(tree):
                if (
                    isinstance(node, ast.Call)
                    and isinstance(node.func, ast.Name)
                    and node.func.id == "print"
                ):
                    offenders.append(f"{path.name}:{node.lineno}")
        assert offenders == []

    def test_no_rich_in_library(self) -> None:
        """Only the CLI depends on rich."""
        for path in _library_files():
            tree = ast.parse(path.read_text())
            for node in ast.walk(tree):
                if isinstance(node, ast.ImportFrom) and node.module:
                    assert not node.module.startswith("rich"), path.name
                elif isinstance(node, ast.Import):
                    for alias in node.names:
                        assert not alias.name.startswith("rich"), path.name

    def test_no_bare_except(self) -> None:
        """Exceptions are always caught by type."""
        for path in _library_files():
            tree = ast.parse(path.read_text())
            for node in ast.walk(tree):
                if isinstance(node, ast.ExceptHandler):
                    assert node.type is not None, f"bare except in {path.name}:{node.lineno}"
