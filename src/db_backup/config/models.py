"""Pydantic models for db-backup configuration."""

from pydantic import AliasChoices, BaseModel, Field

from db_backup.dialects.base import Dialect


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db-backup.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    schema_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("schema", "schema_name"),
    )

    @property
    def dialect(self) -> Dialect:
        """Dialect inferred from the URL scheme."""
        return Dialect.from_url(self.url)


class BackupOptions(BaseModel):
    """Table selection and output settings for a backup run."""

    output_dir: str = "./db-backup"
    exclude_system_tables: bool = True
    exclude_patterns: list[str] = Field(default_factory=list)
    include_patterns: list[str] = Field(default_factory=list)
    schema_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("schema", "schema_name"),
    )  # overrides the profile's schema hint


class BackupConfig(BaseModel):
    """Complete configuration from db-backup.toml."""

    profiles: dict[str, DatabaseProfile] = Field(default_factory=dict)
    backup: BackupOptions = Field(default_factory=BackupOptions)
