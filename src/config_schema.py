"""Pydantic schema for configuration validation.

All config values are validated at startup. Typos and invalid values
fail fast with clear error messages.

Usage:
    from config_schema import load_validated_config, AppConfig
    config = load_validated_config("config/config.yaml")
    # config is now a validated AppConfig instance
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_STATIC_DIR: Path = Path(__file__).parent / "dashboard" / "static"


# =============================================================================
# BASE MODEL WITH STRICT VALIDATION
# =============================================================================

class StrictModel(BaseModel):
    """Base model that rejects unknown fields (catches typos)."""

    model_config = ConfigDict(extra="forbid")


# =============================================================================
# DASHBOARD MODEL
# =============================================================================

class DashboardConfig(StrictModel):
    """Dashboard server configuration."""

    host: str = Field(
        default="127.0.0.1",
        description="Host to bind (0.0.0.0 for all interfaces)"
    )
    port: int = Field(
        default=3274,
        gt=0,
        lt=65536,
        description="Port number"
    )
    state_dir_name: str = Field(
        default=".hank",
        min_length=1,
        description="Name of the agent's state directory inside each project root"
    )
    debounce_delay_ms: int = Field(
        default=300,
        ge=0,
        description="Quiet period after the last change notification before a broadcast"
    )
    live_log_lines: int = Field(
        default=200,
        gt=0,
        description="Number of trailing live.log lines included in a snapshot"
    )
    audit_recent_events: int = Field(
        default=100,
        gt=0,
        description="Number of most recent audit events included in a snapshot"
    )
    process_timeout_seconds: float = Field(
        default=3.0,
        gt=0,
        description="Timeout for tmux/ps listing commands"
    )
    process_lookup_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Timeout for the per-process parent lookup in orphan detection"
    )
    keepalive_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Idle interval before an SSE keepalive comment is written"
    )
    subscriber_queue_size: int = Field(
        default=16,
        gt=0,
        description="Outbound frames buffered per viewer before it is dropped"
    )
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed CORS origins"
    )
    static_dir: str = Field(
        default=str(DEFAULT_STATIC_DIR),
        description="Path to static files directory"
    )
    open_browser: bool = Field(
        default=True,
        description="Open the dashboard in a browser after startup"
    )

    @field_validator("state_dir_name")
    @classmethod
    def validate_state_dir_name(cls, v: str) -> str:
        """The state directory must be a direct child of the project root."""
        if "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError(f"state_dir_name must be a plain directory name, got {v!r}")
        return v


# =============================================================================
# LOGGING MODEL
# =============================================================================

class LoggingConfig(StrictModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root log level"
    )
    format: str = Field(
        default="%(asctime)s %(levelname)s %(name)s: %(message)s",
        description="logging.Formatter format string"
    )

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v


# =============================================================================
# ROOT CONFIG
# =============================================================================

class AppConfig(StrictModel):
    """Root configuration model for the entire application.

    All fields have sensible defaults, so an empty config file is valid.
    """

    dashboard: DashboardConfig = Field(default_factory=DashboardConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# LOADING FUNCTIONS
# =============================================================================

def load_validated_config(config_path: str | Path = "config/config.yaml") -> AppConfig:
    """Load and validate configuration from YAML file.

    Args:
        config_path: Path to config YAML file.

    Returns:
        Validated AppConfig instance.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        pydantic.ValidationError: If config is invalid (with detailed error message).
        yaml.YAMLError: If the file is not valid YAML.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw_config = yaml.safe_load(f) or {}

    return AppConfig.model_validate(raw_config)


def validate_config_dict(config_dict: dict[str, Any]) -> AppConfig:
    """Validate a configuration dictionary.

    Args:
        config_dict: Configuration as a dictionary.

    Returns:
        Validated AppConfig instance.

    Raises:
        pydantic.ValidationError: If config is invalid.
    """
    return AppConfig.model_validate(config_dict)


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "AppConfig",
    "DashboardConfig",
    "LoggingConfig",
    "StrictModel",
    "load_validated_config",
    "validate_config_dict",
]
