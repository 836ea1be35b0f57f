"""
Configuration management using Pydantic Settings.
All parameters are loaded from environment variables with sensible defaults.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_BASE_PATH = Path(os.environ.get("PAYRECON_BASE_PATH", Path.cwd()))
ENV_FILE_PATH = APP_BASE_PATH / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: str = Field(default="development")
    app_debug: bool = Field(default=False)
    app_log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)

    # Storage
    storage_backend: Literal["memory", "json"] = Field(default="memory")
    data_dir: Path = Field(default=Path("./data"))
    log_dir: Optional[Path] = Field(default=None)

    # Matching tolerances
    amount_tolerance_cents: int = Field(default=1, ge=0)
    threeway_window_days: int = Field(default=2, ge=0)

    # Tier confidences
    reference_confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    threeway_confidence: float = Field(default=0.95, ge=0.0, le=1.0)
    threeway_ambiguous_confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    fuzzy_confidence: float = Field(default=0.6, ge=0.0, le=1.0)

    # Reporting
    history_default_limit: int = Field(default=5, ge=1)
    history_max_limit: int = Field(default=100, ge=1)

    # Audit
    audit_max_entries: int = Field(default=1000, ge=1)

    @property
    def runs_dir(self) -> Path:
        return self.data_dir / "runs"

    @property
    def audit_log_path(self) -> Path:
        return self.data_dir / "audit.jsonl"

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
