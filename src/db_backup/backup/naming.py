"""Backup file names of the form ``{database}_{YYYYmmdd_HHMMSS}.sql``."""

import re
from datetime import datetime

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
FALLBACK_NAME = "unknown"


def sanitize_database_name(name: str | None) -> str:
    """Make *name* safe for use in a file name.

    Examples:
        >>> sanitize_database_name("my db@prod")
        'my_db_prod'
        >>> sanitize_database_name("  ")
        'unknown'
    """
    if name is None or not name.strip():
        return FALLBACK_NAME

    sanitized = re.sub(r"[^A-Za-z0-9_-]", "_", name.strip())
    sanitized = re.sub(r"_{2,}", "_", sanitized)
    sanitized = sanitized.strip("_")
    return sanitized or FALLBACK_NAME


def generate_file_name(name: str | None, timestamp: datetime | None = None) -> str:
    """Backup file name for database *name*, stamped with *timestamp* (default: now).

    Example:
        >>> generate_file_name("shop", datetime(2024, 1, 15, 14, 30, 22))
        'shop_20240115_143022.sql'
    """
    if timestamp is None:
        timestamp = datetime.now()
    return f"{sanitize_database_name(name)}_{timestamp.strftime(TIMESTAMP_FORMAT)}.sql"
