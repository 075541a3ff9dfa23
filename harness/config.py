"""Harness configuration settings."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_API_URL = "http://go_init_manager:60013/graphql"


def _default_api_url() -> str:
    # Unprefixed API_URL is honoured for existing deployments
    return os.environ.get("API_URL", DEFAULT_API_URL)


class HarnessSettings(BaseSettings):
    """Harness settings loaded from environment variables."""

    # Target API
    api_url: str = Field(default_factory=_default_api_url)
    request_timeout: float = 10.0  # seconds
    max_connections: Optional[int] = None

    # Workflow
    poll_interval: float = 0.05  # seconds
    poll_deadline: float = 30.0  # seconds

    # Scheduling
    profile_path: Optional[Path] = None
    control_interval: float = 0.1  # seconds
    graceful_stop: Optional[float] = None  # overrides the profile value
    throughput_timer: bool = False

    # Output
    output_dir: Path = Field(default=Path("./results"))
    summary_filename: str = "summary.json"
    throughput_filename: str = "throughput.json"

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_prefix = "LOADHARNESS_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def summary_path(self) -> Path:
        return self.output_dir / self.summary_filename

    @property
    def throughput_path(self) -> Path:
        return self.output_dir / self.throughput_filename


# Global settings instance
_settings: Optional[HarnessSettings] = None


def get_settings() -> HarnessSettings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = HarnessSettings()
    return _settings


def init_settings(**kwargs) -> HarnessSettings:
    """Initialize settings with custom values."""
    global _settings
    _settings = HarnessSettings(**kwargs)
    return _settings
