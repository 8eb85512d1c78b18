"""Configuration loader for secretbus.

Loads settings from a YAML file on top of built-in defaults. Supports
environment variable overrides using the SECRETBUS_ prefix with
double-underscore nesting (e.g., SECRETBUS_PROMPT__TIMEOUT=120).
"""

from __future__ import annotations

import os
import pathlib
from typing import Any

import yaml
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Config sub-models
# ---------------------------------------------------------------------------

class BusConfig(BaseModel):
    name: str = "SESSION"
    call_timeout: float | None = 25.0


class PromptConfig(BaseModel):
    window_id: str = ""
    timeout: float | None = None


class LoggingConfig(BaseModel):
    level: str = "INFO"


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseModel):
    bus: BusConfig = Field(default_factory=BusConfig)
    prompt: PromptConfig = Field(default_factory=PromptConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# ---------------------------------------------------------------------------
# Deep merge helper
# ---------------------------------------------------------------------------

def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into *base*, returning a new dict."""
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "SECRETBUS_"


def _collect_env_overrides() -> dict[str, Any]:
    """Collect SECRETBUS_* env vars and build a nested dict.

    Double-underscore separates nesting levels.
    Example: SECRETBUS_BUS__CALL_TIMEOUT=5
    becomes  {"bus": {"call_timeout": 5}}
    """
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(_ENV_PREFIX):
            continue
        parts = key[len(_ENV_PREFIX) :].lower().split("__")
        current = overrides
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        # Attempt numeric coercion
        final_value: Any = value
        try:
            final_value = int(value)
        except ValueError:
            try:
                final_value = float(value)
            except ValueError:
                if value.lower() in ("true", "false"):
                    final_value = value.lower() == "true"
                elif value.lower() in ("none", "null"):
                    final_value = None
        current[parts[-1]] = final_value
    return overrides


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def default_config_path() -> pathlib.Path:
    """Return ``$XDG_CONFIG_HOME/secretbus/config.yaml``."""
    base = os.environ.get("XDG_CONFIG_HOME") or pathlib.Path.home() / ".config"
    return pathlib.Path(base) / "secretbus" / "config.yaml"


def load_settings(config_path: pathlib.Path | None = None) -> Settings:
    """Load settings with layered precedence: defaults < file < env vars.

    Parameters
    ----------
    config_path:
        Path to a YAML config file. If ``None``, the per-user file from
        :func:`default_config_path` is used when it exists.
    """
    # Layer 1: built-in defaults (model defaults)
    base: dict[str, Any] = {}

    # Layer 2: YAML config file
    path = config_path if config_path is not None else default_config_path()
    if path.exists():
        with open(path) as fh:
            file_data = yaml.safe_load(fh)
        if isinstance(file_data, dict):
            base = _deep_merge(base, file_data)

    # Layer 3: environment variable overrides
    env_overrides = _collect_env_overrides()
    if env_overrides:
        base = _deep_merge(base, env_overrides)

    return Settings(**base)
