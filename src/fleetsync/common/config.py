"""Application configuration using Pydantic Settings.

Loads configuration from environment variables and .env files.
Each concern has its own settings class and environment prefix.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_STATE_DIR = Path.home() / ".fleetsync"


class CommandSettings(BaseSettings):
    """Limits applied to every external command (kubectl, aws)."""

    model_config = SettingsConfigDict(env_prefix="COMMAND_")

    timeout_seconds: float = Field(default=60.0, ge=1.0, le=3600.0)
    # Large clusters and state documents can be tens of megabytes
    max_output_bytes: int = Field(default=50 * 1024 * 1024, ge=1024)


class ClusterSettings(BaseSettings):
    """Kubernetes cluster discovery configuration."""

    model_config = SettingsConfigDict(env_prefix="CLUSTER_")

    kubectl_binary: str = "kubectl"
    running_phase: str = "Running"


class StateBackendSettings(BaseSettings):
    """Terraform state discovery configuration."""

    model_config = SettingsConfigDict(env_prefix="STATE_BACKEND_")

    aws_binary: str = "aws"
    synthetic_host_prefix: str = Field(default="terraform", min_length=1)
    detection_max_depth: int = Field(default=5, ge=0, le=20)


class StoreSettings(BaseSettings):
    """Persistence configuration for inventory state."""

    model_config = SettingsConfigDict(env_prefix="STORE_")

    url: str = f"sqlite:///{DEFAULT_STATE_DIR / 'state.db'}"
    echo: bool = False


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "console"] = "console"
    include_timestamp: bool = True


class Settings(BaseSettings):
    """Main application settings aggregating all configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Application info
    app_name: str = "FleetSync"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"

    # Sub-configurations
    command: CommandSettings = Field(default_factory=CommandSettings)
    cluster: ClusterSettings = Field(default_factory=ClusterSettings)
    state_backend: StateBackendSettings = Field(default_factory=StateBackendSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
