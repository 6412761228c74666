"""Runtime settings, read from the environment or a ``.env`` file."""

import logging
from enum import Enum
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Packaged copy of the system Thing's authoritative sources.
DEFAULT_TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates" / "system"


class Environment(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Thing System settings.

    Field names double as environment variable names (case-insensitive),
    e.g. ``DATABASE_URL`` or ``WATCH_TEMPLATES=false``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Environment = Environment.DEVELOPMENT

    # HTTP server
    host: str = Field(default="localhost", description="Interface to bind")
    port: int = Field(default=3000, ge=1, le=65535, description="Port to bind")

    # Content store
    database_url: str = Field(
        default="sqlite:///./things.db",
        description="SQLAlchemy URL of the content store"
    )

    # Self-hosting
    templates_dir: Path = Field(
        default=DEFAULT_TEMPLATES_DIR,
        description="Directory holding the system Thing's four authoritative sources"
    )
    watch_templates: bool = Field(
        default=True,
        description="Poll the system templates and reconcile on change"
    )
    watch_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Seconds between template polls"
    )
    # Exit status the supervisor should treat as "relaunch me".
    restart_exit_code: int = Field(
        default=3,
        description="Process exit code used for self-requested restarts"
    )

    seed_examples: bool = Field(
        default=True,
        description="Load the example Things on startup (idempotent)"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Root logger level name")
    log_format: str = Field(default="json", description="'json' lines or plain 'text'")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        fmt = v.lower()
        if fmt not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return fmt


settings = Settings()
