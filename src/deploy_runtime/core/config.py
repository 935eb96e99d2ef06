"""Configuration management for Deploy Runtime."""

import os
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server configuration
    host: str = Field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"), description="Server host")
    port: int = Field(default_factory=lambda: int(os.getenv("PORT", "8000")), description="Server port")
    workers: int = Field(1, description="Number of worker processes")
    reload: bool = Field(False, description="Enable auto-reload in development")

    # Deployment area
    deploy_dir: str = Field(
        "/tmp/deploy-runtime/webapps",
        description="Managed deployment directory; only files inside it are ever deleted",
    )
    work_dir: str = Field(
        "/tmp/deploy-runtime/work",
        description="Scratch area where archives are extracted while running",
    )
    archive_suffix: str = Field(".war", description="File suffix for archive artifacts")
    scan_on_startup: bool = Field(True, description="Deploy artifacts already present in deploy_dir at startup")
    max_artifact_size_mb: int = Field(100, description="Maximum accepted upload size in MB")

    # Remote deployment endpoint
    deployer_prefix: str = Field("/deployer", description="Mount prefix of the deployment endpoint")
    runtime_secret: Optional[str] = Field(None, description="Bearer token required by the deployment endpoint")

    # Monitoring
    monitor_timeout_ms: int = Field(20000, description="Default deployment monitor timeout")
    monitor_poll_interval_ms: int = Field(500, description="Delay between two probes")

    # Observability
    log_level: str = Field("INFO")
    log_format: str = Field("json")
    metrics_enabled: bool = Field(True)

    @field_validator("deployer_prefix")
    @classmethod
    def normalize_prefix(cls, v: str) -> str:
        """Deployer prefix must begin with '/' and carry no trailing slash."""
        v = (v or "").strip()
        if not v or v == "/":
            raise ValueError("deployer_prefix must be a non-root path")
        if not v.startswith("/"):
            v = "/" + v
        return v.rstrip("/")

    @field_validator("monitor_timeout_ms", "monitor_poll_interval_ms")
    @classmethod
    def positive_duration(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("durations must be positive")
        return v

    @property
    def deploy_path(self) -> Path:
        return Path(self.deploy_dir)

    @property
    def work_path(self) -> Path:
        return Path(self.work_dir)

    @property
    def max_artifact_size_bytes(self) -> int:
        return self.max_artifact_size_mb * 1024 * 1024
