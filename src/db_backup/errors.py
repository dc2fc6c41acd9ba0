"""Error kinds raised or recorded by the backup pipeline.

Fatal conditions are raised as exceptions.  Non-fatal ones (an unconfirmed
schema, a failed dependency query) are recorded on the run's
``BackupReport`` by the orchestrator so that callers decide how to surface
them.

Usage:
    from db_backup.errors import CatalogError, UnsafeIdentifierError

    try:
        report = run_backup(conn, dialect, sink, options)
    except UnsafeIdentifierError as e:
        print(f"Refusing to render {e.identifier!r}")
"""


class BackupError(Exception):
    """Base class for all backup pipeline errors."""

    pass


class CatalogError(BackupError):
    """Raised when a catalog query fails (connectivity or SQL error).

    Fatal when it happens before any table has been listed.
    """

    pass


class SchemaResolutionError(CatalogError):
    """Raised when no schema could be determined for the connection."""

    pass


class DependencyQueryError(BackupError):
    """Raised when the foreign-key catalog query fails.

    Never aborts a run: the orchestrator switches to fallback generation.
    """

    pass


class UnsafeIdentifierError(BackupError, ValueError):
    """Raised when a table or column name fails the safe-identifier check.

    Attributes:
        identifier: The rejected name (may be ``None``).
    """

    def __init__(self, identifier: str | None):
        self.identifier = identifier
        super().__init__(f"Unsafe SQL identifier: {identifier!r}")


class SchemaResolutionWarning(UserWarning):
    """The resolved schema could not be confirmed to exist in the catalog."""

    pass
