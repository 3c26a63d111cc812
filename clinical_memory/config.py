"""Configuration management for the clinical memory engine."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Patient data sources
    data_dir: Path = Field(
        default=Path("./data/patients"),
        description="Root directory of on-disk patient charts",
    )
    data_base_url: str = Field(
        default="",
        description="Base URL serving patient chart JSON (empty disables HTTP source)",
    )
    http_timeout: float = Field(
        default=10.0,
        description="Timeout in seconds for HTTP source requests",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    # Telemetry
    telemetry_enabled: bool = Field(
        default=False,
        description="Write build/assembly events to JSON Lines files",
    )
    telemetry_log_dir: Path = Field(default=Path("data/logs"))
    telemetry_full_content: bool = Field(default=False)
    telemetry_max_content_length: int = Field(default=500)

    # Builder windows
    note_content_window_days: int = Field(
        default=90,
        description="Notes newer than this are hydrated with full content",
    )
    medication_change_window_days: int = Field(
        default=90,
        description="Window for the recent medication change list",
    )
    lab_baseline_days: int = Field(
        default=30,
        description="Lab values older than this contribute to the baseline",
    )

    # Renderer
    renderer_max_lab_dates: int = Field(default=10)
    renderer_max_vitals_rows: int = Field(default=15)

    # Working memory budgets (characters)
    ask_budget_chars: int = Field(default=5000)
    dictate_budget_chars: int = Field(default=10000)
    refresh_budget_chars: int = Field(default=15000)
    write_note_budget_chars: int = Field(default=15000)

    # Assistant write-back
    max_writeback_chars: int = Field(
        default=4000,
        description="Size bound for assistant-written narrative/insight text",
    )

    @property
    def has_http_source(self) -> bool:
        """Check if an HTTP data source is configured."""
        return bool(self.data_base_url)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
