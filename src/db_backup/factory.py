"""Connection factory: profile selection, URL resolution, engine creation.

Profiles come from ``db-backup.toml``; the active one is chosen by name on
the command line or via the ``DB_BACKUP_PROFILE`` environment variable.

Usage:
    from db_backup.config import load_config
    from db_backup.factory import create_engine_for_profile, get_profile

    config = load_config()
    profile = get_profile(config, "local")
    engine = create_engine_for_profile(profile)
"""

import logging
import os
from typing import Any
from urllib.parse import quote

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError

from db_backup.config.models import BackupConfig, DatabaseProfile
from db_backup.dialects.base import Dialect

logger = logging.getLogger(__name__)

PROFILE_ENV_VAR = "DB_BACKUP_PROFILE"
PASSWORD_PLACEHOLDER = "[YOUR-PASSWORD]"
CONNECT_TIMEOUT_SECONDS = 10

_DRIVER_SCHEMES = {
    Dialect.POSTGRESQL: "postgresql+psycopg",
    Dialect.MYSQL: "mysql+pymysql",
}


class ProfileNotFoundError(Exception):
    """Raised when no database profile is configured or the name is unknown."""

    pass


# ============================================================================
# Profile Selection
# ============================================================================


def get_active_profile_name(explicit: str | None = None) -> str:
    """Get the profile name to use.

    Priority:
    1. *explicit* (e.g. ``--profile`` on the command line)
    2. ``DB_BACKUP_PROFILE`` env var
    3. Raise ProfileNotFoundError

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    if explicit:
        return explicit

    env_profile = os.environ.get(PROFILE_ENV_VAR)
    if env_profile:
        return env_profile

    raise ProfileNotFoundError(
        "No database profile selected.\n"
        f"Pass --profile <name> or set {PROFILE_ENV_VAR}=<name>."
    )


def get_profile(config: BackupConfig, name: str) -> DatabaseProfile:
    """Look up profile *name* in *config*.

    Raises:
        ProfileNotFoundError: If the profile does not exist
    """
    if name not in config.profiles:
        available = ", ".join(config.profiles.keys()) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{name}' not found in config.\n"
            f"Available profiles: {available}"
        )
    return config.profiles[name]


# ============================================================================
# URL Handling
# ============================================================================


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config

    Returns:
        Connection URL with password substituted
    """
    url = profile.url
    if profile.db_password and PASSWORD_PLACEHOLDER in url:
        url = url.replace(PASSWORD_PLACEHOLDER, quote(profile.db_password, safe=""))
    return url


def normalize_url(url: str) -> str:
    """Rewrite the URL scheme to the driver this package uses.

    Examples:
        >>> normalize_url("postgres://u@localhost/app")
        'postgresql+psycopg://u@localhost/app'
        >>> normalize_url("mysql://u@localhost/shop")
        'mysql+pymysql://u@localhost/shop'
    """
    dialect = Dialect.from_url(url)
    rest = url.split("://", 1)[1]
    return f"{_DRIVER_SCHEMES[dialect]}://{rest}"


def database_name(url: str) -> str | None:
    """Database name component of *url*, if any."""
    try:
        return make_url(url).database
    except ArgumentError:
        return None


# ============================================================================
# Engine Creation
# ============================================================================


def create_engine_for_profile(profile: DatabaseProfile, **kwargs: Any) -> Engine:
    """Create a SQLAlchemy engine for *profile*.

    Extra keyword arguments are passed to ``sqlalchemy.create_engine``.
    """
    url = normalize_url(resolve_url(profile))
    connect_args = {"connect_timeout": CONNECT_TIMEOUT_SECONDS}
    connect_args.update(kwargs.pop("connect_args", {}))
    kwargs.setdefault("pool_pre_ping", True)

    logger.debug("Creating %s engine", profile.dialect.value)
    return create_engine(url, connect_args=connect_args, **kwargs)
