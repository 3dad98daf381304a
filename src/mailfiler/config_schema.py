"""Pydantic configuration schema for mailfiler.

This module defines the configuration schema that mirrors config.yaml structure.
All configuration is validated against these models on load.

Usage:
    from mailfiler.config_schema import AppConfig

    # Validate a config dict
    config = AppConfig(**yaml_data)
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

# Current schema version - increment when adding new required fields
CURRENT_SCHEMA_VERSION = 1


class StorageConfig(BaseModel):
    """Persistent store configuration."""

    db_path: str = Field(
        default="data/mailfiler.db",
        description="Path to the SQLite database holding the rule list",
    )
    rules_key: str = Field(
        default="rules",
        min_length=1,
        description="Name of the record that stores the ordered rule list",
    )

    @field_validator("db_path")
    @classmethod
    def validate_db_path(cls, v: str) -> str:
        """Ensure database path doesn't contain path traversal."""
        if not v or not v.strip():
            raise ValueError("Database path cannot be empty")
        if ".." in v:
            raise ValueError("Database path cannot contain '..' (path traversal)")
        return v


class FilingConfig(BaseModel):
    """Rule learning and move behaviour."""

    auto_create_rules: bool = Field(
        default=True,
        description="Create a sender rule when the user moves a message no rule covers",
    )
    protected_folder_types: list[str] = Field(
        default=["inbox", "trash"],
        description="Folder types that never become the target of a learned rule",
    )

    @field_validator("protected_folder_types")
    @classmethod
    def normalize_folder_types(cls, v: list[str]) -> list[str]:
        """Folder types are compared case-insensitively."""
        return [folder_type.strip().lower() for folder_type in v if folder_type.strip()]


class MatchingConfig(BaseModel):
    """Pattern matching configuration."""

    regex_timeout_seconds: float = Field(
        default=1.0,
        gt=0,
        le=30,
        description="Upper bound for a single pattern or address match",
    )


class LoggingConfig(BaseModel):
    """Logging output configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum log level",
    )
    json_output: bool = Field(
        default=False,
        description="Emit JSON lines instead of console output",
    )


class AppConfig(BaseModel):
    """Root configuration schema for mailfiler.

    Every section has defaults, so an empty config.yaml is valid.
    """

    schema_version: int = Field(
        default=CURRENT_SCHEMA_VERSION,
        ge=1,
        description="Config schema version for migration tracking",
    )

    storage: StorageConfig = Field(default_factory=StorageConfig)
    filing: FilingConfig = Field(default_factory=FilingConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
