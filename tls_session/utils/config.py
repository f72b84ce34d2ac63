"""
Configuration management for tls-session.
Loads and validates settings from YAML files and environment variables.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

ENV_PREFIX = "TLS_SESSION_"
CONFIG_DIR_ENV = "TLS_SESSION_CONFIG_DIR"


class GeneralConfig(BaseModel):
    """General configuration."""

    project_name: str = "tls-session"
    version: str = "0.1.0"
    log_level: str = "INFO"
    # None keeps logs on stderr only
    logs_dir: str | None = None
    log_json: bool = True


class SessionDefaultsConfig(BaseModel):
    """Defaults applied by ``default_config()`` when building a session.

    These mirror the values a caller gets from ``provide_default_session()``.
    Values passed explicitly to ``SessionConfig`` are never overridden.
    """

    model_config = ConfigDict(extra="forbid")

    timeout_seconds: float = Field(default=30.0, gt=0)
    profile: str = "chrome_131"
    random_tls_extension_order: bool = True
    follow_redirects: bool = False
    max_redirects: int = Field(default=10, gt=0)
    probe_proxy: bool = True


class Settings(BaseModel):
    """Main settings container."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    session: SessionDefaultsConfig = Field(default_factory=SessionDefaultsConfig)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary.
        override: Override dictionary.

    Returns:
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_local_overrides(config_dir: Path) -> dict[str, Any]:
    """Load local.yaml overrides.

    local.yaml provides machine-specific overrides. Top-level keys
    correspond to config file names (without .yaml extension).

    Example local.yaml:
        settings:
          session:
            timeout_seconds: 10

    Args:
        config_dir: Configuration directory path.

    Returns:
        Local overrides dictionary.
    """
    local_path = config_dir / "local.yaml"
    if not local_path.exists():
        return {}

    with open(local_path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _load_yaml_with_local_override(
    config_dir: Path,
    filename: str,
    section_key: str | None = None,
) -> dict[str, Any]:
    """Load YAML file with local.yaml override support.

    Args:
        config_dir: Configuration directory path.
        filename: YAML filename (e.g., "settings.yaml").
        section_key: Key in local.yaml for overrides.
                     Defaults to filename without extension.

    Returns:
        Merged configuration dictionary.
    """
    config: dict[str, Any] = {}

    base_path = config_dir / filename
    if base_path.exists():
        with open(base_path, encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}

    local_overrides = _load_local_overrides(config_dir)
    if section_key is None:
        section_key = Path(filename).stem

    if section_key in local_overrides:
        config = _deep_merge(config, local_overrides[section_key])

    return config


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides.

    Environment variables should be prefixed with TLS_SESSION_ and use
    double underscores for nested keys.

    Example:
        TLS_SESSION_SESSION__TIMEOUT_SECONDS=10

    Args:
        config: Configuration dictionary.

    Returns:
        Configuration with environment overrides.
    """
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX) or key == CONFIG_DIR_ENV:
            continue

        key_path = key[len(ENV_PREFIX) :].lower().split("__")

        current = config
        for part in key_path[:-1]:
            if part not in current or not isinstance(current[part], dict):
                current[part] = {}
            current = current[part]

        final_key = key_path[-1]
        try:
            if value.lower() in ("true", "false"):
                current[final_key] = value.lower() == "true"
            elif "." in value:
                current[final_key] = float(value)
            else:
                current[final_key] = int(value)
        except ValueError:
            current[final_key] = value

    return config


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings.

    Settings are loaded from:
    1. Default values
    2. config/settings.yaml (+ config/local.yaml)
    3. Environment variables (highest priority)

    Returns:
        Settings instance.
    """
    config_dir = Path(os.environ.get(CONFIG_DIR_ENV, "config"))

    config = _load_yaml_with_local_override(config_dir, "settings.yaml", "settings")
    config = _apply_env_overrides(config)

    return Settings(**config)


def get_project_root() -> Path:
    """Get the project root directory.

    Returns:
        Project root path.
    """
    # Assuming this file is at tls_session/utils/config.py
    return Path(__file__).parent.parent.parent
