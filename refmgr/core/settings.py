"""Settings: YAML parser and Pydantic models."""

import tempfile
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from refmgr.utils.backup import DEFAULT_APP_NAME


# ── Backups ──────────────────────────────────────────────────────────


class BackupSettings(BaseModel):
    """Where and how long copies of the library are kept before each save."""

    enabled: bool = True
    directory: Optional[Path] = Field(
        default=None, description="Backup root; defaults to <tmp>/<app_name>/backups"
    )
    app_name: str = DEFAULT_APP_NAME
    max_generations: int = Field(default=50, ge=1)
    max_age_days: int = Field(default=365, ge=1)

    @field_validator("directory")
    @classmethod
    def expand_directory(cls, v: Optional[Path]) -> Optional[Path]:
        return v.expanduser() if v is not None else None

    def root(self) -> Path:
        if self.directory is not None:
            return self.directory
        return Path(tempfile.gettempdir()) / self.app_name / "backups"


# ── Settings (top-level) ─────────────────────────────────────────────


class Settings(BaseModel):
    """Top-level configuration for a reference library."""

    library: Path
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    backup: BackupSettings = Field(default_factory=BackupSettings)

    @field_validator("library")
    @classmethod
    def expand_library(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v


def load_settings(path: str | Path) -> Settings:
    """Load a YAML settings file from disk and return a validated model."""
    path = Path(path)
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    return Settings.model_validate(raw)
