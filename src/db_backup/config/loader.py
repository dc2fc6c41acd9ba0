"""TOML configuration loader for db-backup."""

import tomllib
from pathlib import Path

from pydantic import ValidationError

from db_backup.config.models import BackupConfig, BackupOptions, DatabaseProfile

DEFAULT_CONFIG_FILE = "db-backup.toml"


def load_config(config_path: Path | str | None = None) -> BackupConfig:
    """Load profiles and backup settings from a TOML file.

    Args:
        config_path: Path to the config file (default: ``./db-backup.toml``)

    Returns:
        BackupConfig with all profiles and the ``[backup]`` section

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If the file is not valid TOML or a section is malformed
    """
    if config_path is None:
        config_path = Path.cwd() / DEFAULT_CONFIG_FILE
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(
            f"Backup config not found: {config_path}\n"
            f"Create {DEFAULT_CONFIG_FILE} with at least one [profiles.<name>] section."
        )

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    try:
        # Parse profiles
        profiles = {}
        for name, profile_data in data.get("profiles", {}).items():
            profiles[name] = DatabaseProfile(**profile_data)

        # Parse backup settings
        backup = BackupOptions(**data.get("backup", {}))
    except (TypeError, ValidationError) as e:
        raise ValueError(f"Invalid config in {config_path}: {e}") from e

    return BackupConfig(profiles=profiles, backup=backup)
