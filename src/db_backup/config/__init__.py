"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from db_backup.config import load_config, DatabaseProfile, BackupOptions
"""

from db_backup.config.loader import load_config
from db_backup.config.models import BackupConfig, BackupOptions, DatabaseProfile

__all__ = ["load_config", "BackupConfig", "BackupOptions", "DatabaseProfile"]
