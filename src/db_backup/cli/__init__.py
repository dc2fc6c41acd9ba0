"""CLI for dependency-ordered SQL backups.

Provides commands for listing profiles, previewing the table order of a
backup, and writing a backup script.

Usage:
    db-backup profiles
    DB_BACKUP_PROFILE=local db-backup plan
    db-backup dump --profile local
    db-backup dump --profile local --exclude 'temp_*' --output shop.sql
    db-backup dump --profile local --stdout > shop.sql

Commands:
    profiles  - List available profiles
    plan      - Show schema resolution, table filter, and dependency order
    dump      - Write a backup script for the selected tables
"""

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from db_backup.backup.models import BackupReport, BackupStatus, IssueSeverity
from db_backup.backup.naming import generate_file_name
from db_backup.backup.orchestrator import run_backup
from db_backup.config.loader import load_config
from db_backup.config.models import BackupConfig, BackupOptions, DatabaseProfile
from db_backup.dialects import adapters_for
from db_backup.errors import BackupError
from db_backup.factory import (
    PROFILE_ENV_VAR,
    ProfileNotFoundError,
    create_engine_for_profile,
    database_name,
    get_active_profile_name,
    get_profile,
    resolve_url,
)
from db_backup.schema.dependencies import analyze_dependencies
from db_backup.schema.filter import filter_tables
from db_backup.schema.resolver import resolve_schema

console = Console()
err_console = Console(stderr=True)


# ============================================================================
# Helpers
# ============================================================================


def _setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Send log records to stderr through rich."""
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING

    handler = RichHandler(
        console=err_console,
        rich_tracebacks=True,
        show_path=verbose,
        show_time=True,
    )
    handler.setLevel(level)

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)


def _load_profile(
    args: argparse.Namespace,
) -> tuple[BackupConfig, str, DatabaseProfile] | None:
    """Load config and select the profile; print the error and return None on failure."""
    try:
        config = load_config(args.config)
        name = get_active_profile_name(getattr(args, "profile", None))
        profile = get_profile(config, name)
    except (FileNotFoundError, ValueError, ProfileNotFoundError) as e:
        err_console.print(f"[red]Error: {e}[/red]")
        return None
    return config, name, profile


def _build_options(
    config: BackupConfig, profile: DatabaseProfile, args: argparse.Namespace
) -> BackupOptions:
    """Merge command-line overrides into the configured backup options.

    ``--include`` replaces the configured include patterns; ``--exclude``
    adds to the configured exclude patterns.
    """
    base = config.backup
    update: dict = {
        "schema_name": args.schema or base.schema_name or profile.schema_name,
        "exclude_patterns": base.exclude_patterns + (args.exclude or []),
    }
    if args.include:
        update["include_patterns"] = list(args.include)
    if args.no_system_filter:
        update["exclude_system_tables"] = False
    return base.model_copy(update=update)


def _print_report(report: BackupReport, out: Console) -> None:
    table = Table(title="Backup Report", show_header=False)
    table.add_column("Key", style="dim")
    table.add_column("Value")

    style = {
        BackupStatus.SUCCESS: "green",
        BackupStatus.PARTIAL_SUCCESS: "yellow",
        BackupStatus.FAILED: "red",
    }[report.status]
    table.add_row("Status", f"[bold {style}]{report.status.value}[/bold {style}]")
    table.add_row("Dialect", report.dialect.value)
    if report.schema_resolution:
        res = report.schema_resolution
        table.add_row("Schema", f"{res.resolved_schema} ({res.method.value})")
    if report.filter_result:
        fr = report.filter_result
        table.add_row(
            "Tables",
            f"{fr.included_count} of {fr.original_count} ({fr.excluded_count} excluded)",
        )
    table.add_row("Rows", str(report.stats.rows))
    table.add_row("Constraints", str(report.stats.constraints))
    if report.used_fallback:
        table.add_row("Ordering", "[yellow]not applied (fallback)[/yellow]")
    table.add_row("Duration", f"{report.duration.total_seconds():.2f}s")
    out.print(table)

    for issue in report.issues:
        color = "red" if issue.severity is IssueSeverity.ERROR else "yellow"
        out.print(f"[{color}]![/{color}] {escape(str(issue))}")


# ============================================================================
# Commands
# ============================================================================


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from the config file.

    Reads only local TOML config -- no database calls.

    Returns:
        0 on success, 1 if the config file is missing or invalid.
    """
    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        err_console.print(f"[red]Error: {e}[/red]")
        return 1

    try:
        current = get_active_profile_name()
    except ProfileNotFoundError:
        current = None

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Dialect")
    table.add_column("Schema")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        try:
            dialect = profile.dialect.value
        except ValueError:
            dialect = "[red]unsupported[/red]"
        table.add_row(
            marker,
            f"[bold cyan]{name}[/bold cyan]" if name == current else name,
            dialect,
            profile.schema_name or "",
            profile.description or "",
        )

    console.print(table)

    if current:
        console.print(f"\n[bold green]*[/bold green] = {PROFILE_ENV_VAR}")

    return 0


def cmd_plan(args: argparse.Namespace) -> int:
    """Show schema resolution, table filtering, and dependency order.

    Returns:
        0 on success, 1 on configuration, connection, or dependency failure.
    """
    loaded = _load_profile(args)
    if loaded is None:
        return 1
    config, name, profile = loaded
    options = _build_options(config, profile, args)

    console.print(f"Planning backup for [bold cyan]{name}[/bold cyan]...", style="dim")

    try:
        engine = create_engine_for_profile(profile)
    except (ValueError, SQLAlchemyError) as e:
        err_console.print(f"[red]Error: {e}[/red]")
        return 1

    try:
        with engine.connect() as conn:
            adapters = adapters_for(profile.dialect, conn)
            resolution = resolve_schema(
                adapters.catalog, options.schema_name, profile.dialect
            )
            tables = adapters.catalog.list_tables(resolution.resolved_schema)
            filter_result = filter_tables(
                tables,
                profile.dialect,
                exclude_system_tables=options.exclude_system_tables,
                exclude_patterns=options.exclude_patterns,
                include_patterns=options.include_patterns,
            )
            outcome = analyze_dependencies(
                adapters.catalog, filter_result.included, resolution.resolved_schema
            )
    except (BackupError, SQLAlchemyError) as e:
        err_console.print(f"[red]Error: {e}[/red]")
        return 1
    finally:
        engine.dispose()

    console.print()
    exists = "[green]exists[/green]" if resolution.exists else "[yellow]not found[/yellow]"
    console.print(
        f"Schema: [bold]{resolution.resolved_schema}[/bold] "
        f"[dim]({resolution.method.value})[/dim] {exists}"
    )
    console.print(
        f"Tables: {filter_result.included_count} of {filter_result.original_count} "
        f"selected, {filter_result.excluded_count} excluded"
    )
    if filter_result.has_excluded:
        console.print(f"  [dim]Excluded: {', '.join(filter_result.excluded)}[/dim]")

    if not outcome.ok:
        console.print()
        console.print(f"[bold red]x[/bold red] Dependency analysis failed: {outcome.error}")
        console.print("[dim]A dump would fall back to unordered output.[/dim]")
        return 1

    plan = outcome.plan
    order_table = Table(title="Backup Order", show_header=True, header_style="bold")
    order_table.add_column("#", justify="right")
    order_table.add_column("Table")
    order_table.add_column("References")
    circular = set(plan.circular_tables)
    for i, table in enumerate(plan.tables, start=1):
        parents = sorted(
            {e.parent_table for e in plan.edges if e.child_table == table},
            key=str.casefold,
        )
        label = f"[yellow]{table}[/yellow]" if table in circular else table
        order_table.add_row(str(i), label, ", ".join(parents))
    console.print()
    console.print(order_table)

    if plan.has_circular_references:
        console.print(
            f"[yellow]Circular references:[/yellow] {', '.join(plan.circular_tables)}"
        )
    return 0


def cmd_dump(args: argparse.Namespace) -> int:
    """Write a backup script for the active profile.

    Returns:
        0 on success or partial success, 1 on failure.
    """
    loaded = _load_profile(args)
    if loaded is None:
        return 1
    config, name, profile = loaded
    options = _build_options(config, profile, args)

    try:
        engine = create_engine_for_profile(profile)
    except (ValueError, SQLAlchemyError) as e:
        err_console.print(f"[red]Error: {e}[/red]")
        return 1

    # The report goes to stderr when the script itself goes to stdout
    out = err_console if args.stdout else console
    output_path: Path | None = None

    try:
        with engine.connect() as conn:
            if args.stdout:
                report = run_backup(
                    conn, profile.dialect, sys.stdout, options, raise_on_error=False
                )
            else:
                if args.output:
                    output_path = Path(args.output)
                else:
                    db_name = database_name(resolve_url(profile)) or name
                    output_path = Path(options.output_dir) / generate_file_name(db_name)
                output_path.parent.mkdir(parents=True, exist_ok=True)

                out.print(f"Writing [bold]{output_path}[/bold]...", style="dim")
                with open(output_path, "w", encoding="utf-8", newline="\n") as f:
                    report = run_backup(
                        conn, profile.dialect, f, options, raise_on_error=False
                    )
    except SQLAlchemyError as e:
        err_console.print(f"[red]Error: Failed to connect to database: {e}[/red]")
        return 1
    finally:
        engine.dispose()

    out.print()
    _print_report(report, out)

    if report.status is BackupStatus.FAILED:
        if output_path is not None and output_path.exists():
            output_path.unlink()
            out.print(f"[dim]Removed incomplete file {output_path}[/dim]")
        return 1

    if output_path is not None:
        out.print(f"\n[bold green]v[/bold green] Backup written to {output_path}")
    return 0


# ============================================================================
# Main entry point
# ============================================================================


def _add_selection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--profile",
        "-p",
        help=f"Profile name from the config file (default: ${PROFILE_ENV_VAR})",
    )
    parser.add_argument(
        "--schema",
        help="Schema (PostgreSQL) or database (MySQL) hint",
    )
    parser.add_argument(
        "--include",
        action="append",
        metavar="PATTERN",
        help="Only back up tables matching PATTERN (wildcards * and ?; repeatable)",
    )
    parser.add_argument(
        "--exclude",
        action="append",
        metavar="PATTERN",
        help="Skip tables matching PATTERN (wildcards * and ?; repeatable)",
    )
    parser.add_argument(
        "--no-system-filter",
        action="store_true",
        help="Keep system, extension, and migration-tool tables",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="db-backup",
        description="Dependency-ordered SQL backups for PostgreSQL and MySQL",
    )

    # Global options
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help="Path to config file (default: ./db-backup.toml)",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "--verbose", "-v", action="store_true", help="Show debug logging"
    )
    verbosity.add_argument(
        "--quiet", "-q", action="store_true", help="Only show warnings and errors"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # profiles command
    p_profiles = subparsers.add_parser(
        "profiles",
        help="List available profiles",
    )
    p_profiles.set_defaults(func=cmd_profiles)

    # plan command
    p_plan = subparsers.add_parser(
        "plan",
        help="Show schema resolution, table filter, and dependency order",
    )
    _add_selection_arguments(p_plan)
    p_plan.set_defaults(func=cmd_plan)

    # dump command
    p_dump = subparsers.add_parser(
        "dump",
        help="Write a backup script",
    )
    _add_selection_arguments(p_dump)
    destination = p_dump.add_mutually_exclusive_group()
    destination.add_argument(
        "--output",
        "-o",
        help="Output file (default: <output_dir>/<database>_<timestamp>.sql)",
    )
    destination.add_argument(
        "--stdout",
        action="store_true",
        help="Write the script to standard output",
    )
    p_dump.set_defaults(func=cmd_dump)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(verbose=args.verbose, quiet=args.quiet)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
