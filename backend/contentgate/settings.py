from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


class VersionStoreEnum(str, Enum):
    """Supported backing stores for content version history."""
    SQLITE = "sqlite"
    MEMORY = "memory"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CONTENTGATE_", extra="ignore")

    repo_root: Path = Field(default_factory=_default_repo_root)
    data_dir: Path | None = None
    config_dir: Path | None = None

    # Stage registry configuration (YAML). Built-in defaults are used when unset.
    stages_config_path: Path | None = None

    # Gating
    global_threshold: float = Field(default=90.0, ge=0, le=100)
    # None means the critical warning bar equals the global threshold
    critical_threshold: float | None = Field(default=None, ge=0, le=100)

    # Orchestration
    stage_timeout_s: float = Field(default=10.0, gt=0)
    run_deadline_s: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=1, ge=0)
    retry_backoff_s: float = Field(default=0.0, ge=0)
    max_in_flight: int = Field(default=8, ge=1)

    # Version history
    version_store: VersionStoreEnum = VersionStoreEnum.SQLITE

    # HTTP service
    request_timeout_s: float = 60.0
    evaluate_rate_limit: str = "120/minute"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    @property
    def resolved_data_dir(self) -> Path:
        return self.data_dir or (self.repo_root / "data")

    @property
    def resolved_config_dir(self) -> Path:
        return self.config_dir or (self.repo_root / "config")

    @property
    def db_path(self) -> Path:
        return self.resolved_data_dir / "index" / "content_versions.sqlite3"

    @property
    def resolved_stages_config_path(self) -> Path | None:
        """Explicit stages config, else ``config/quality_stages.yaml`` if it exists."""
        if self.stages_config_path:
            return self.stages_config_path
        candidate = self.resolved_config_dir / "quality_stages.yaml"
        return candidate if candidate.exists() else None

    @property
    def effective_critical_threshold(self) -> float:
        if self.critical_threshold is None:
            return self.global_threshold
        return self.critical_threshold


# Singleton instance used by the HTTP app; library code takes Settings explicitly
settings = Settings()
