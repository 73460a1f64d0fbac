"""Configuration loader for the Hank dashboard

All tunable values come from config/config.yaml.
No magic numbers in code - everything is configurable.

Configuration is validated at load time using Pydantic.
Typos and invalid values fail fast with clear error messages.

Usage:
    from src.config import load_config, get_validated_config, set_config_value

    # Load and validate (call once at startup)
    load_config("config/config.yaml")

    # Override by dot-path (re-validated)
    set_config_value("dashboard.port", 8080)

    config = get_validated_config()
    delay = config.dashboard.debounce_delay_ms
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from .config_schema import AppConfig, load_validated_config, validate_config_dict

logger = logging.getLogger(__name__)

# Global config instances
_config: dict[str, Any] | None = None
_validated_config: AppConfig | None = None

# Default config path
DEFAULT_CONFIG_PATH: Path = Path(__file__).parent.parent / "config" / "config.yaml"


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """Load and validate configuration from YAML file.

    An explicit path must exist. The default path is optional: when it is
    missing the schema defaults are used.

    Args:
        config_path: Path to config file. Defaults to config/config.yaml.

    Returns:
        Configuration dictionary (validated, with defaults filled in).

    Raises:
        FileNotFoundError: If an explicitly given config file doesn't exist.
        pydantic.ValidationError: If config is invalid.
    """
    global _config, _validated_config

    if config_path is None and not DEFAULT_CONFIG_PATH.exists():
        logger.debug("No config file at %s, using defaults", DEFAULT_CONFIG_PATH)
        _validated_config = AppConfig()
    else:
        path: Path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        _validated_config = load_validated_config(path)

    _config = _validated_config.model_dump()
    return _config


def get_config() -> dict[str, Any]:
    """Get the loaded configuration dict. Loads default if not already loaded.

    For typed access, use get_validated_config() instead.
    """
    global _config
    if _config is None:
        load_config()
    if _config is None:
        raise RuntimeError("Config failed to load. Call load_config() first.")
    return _config


def get_validated_config() -> AppConfig:
    """Get the validated configuration object.

    Returns a typed AppConfig instance with IDE autocompletion support.
    Loads default config if not already loaded.
    """
    global _validated_config
    if _validated_config is None:
        load_config()
    if _validated_config is None:
        raise RuntimeError("Validated config failed to load. Call load_config() first.")
    return _validated_config


def set_config_value(key: str, value: Any) -> None:
    """Set a config value by dot-separated key path.

    Used for runtime overrides (e.g., CLI args). The result is re-validated,
    so an invalid override raises pydantic.ValidationError and leaves the
    previous configuration in place.

    Args:
        key: Dot-separated key path (e.g., "dashboard.port")
        value: Value to set
    """
    global _config, _validated_config

    current = get_config()
    updated: dict[str, Any] = _deep_copy_dict(current)

    keys = key.split(".")
    target = updated

    # Navigate to parent
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            target[k] = {}
        target = target[k]

    target[keys[-1]] = value

    _validated_config = validate_config_dict(updated)
    _config = _validated_config.model_dump()


def reset_config() -> None:
    """Forget the loaded configuration (next access reloads the default)."""
    global _config, _validated_config
    _config = None
    _validated_config = None


def _deep_copy_dict(value: dict[str, Any]) -> dict[str, Any]:
    return {
        k: _deep_copy_dict(v) if isinstance(v, dict) else (list(v) if isinstance(v, list) else v)
        for k, v in value.items()
    }
