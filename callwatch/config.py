"""
Callwatch — Config Loader

Two-tier configuration loading:
  1. Base YAML file (callwatch.yaml), falling back to built-in defaults
  2. Environment variable overrides (CW_ prefixed)

A .env file in the working directory is loaded first so provider API keys
and CW_ overrides can live there.

Usage:
    from callwatch.config import load_config, get_config_value, progress_settings

    cfg = load_config()
    limit = get_config_value("progress.preview_limit", cfg, default=40)
    settings = progress_settings(cfg)

Environment variables:
    CALLWATCH_CONFIG_PATH   — explicit path to the YAML file
    CW_*                    — overrides; "__" separates nesting levels
                              (e.g., CW_PROGRESS__SHOW_PROGRESS=false)
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml
from dotenv import find_dotenv, load_dotenv

from callwatch.errors import ConfigError
from callwatch.logging import get_logger

logger = get_logger("config")

ENV_PREFIX = "CW_"


# ═══════════════════════════════════════════════════════════════════
# Defaults
# ═══════════════════════════════════════════════════════════════════

_BUILTIN_DEFAULTS: dict = {
    "progress": {
        "show_progress": True,
        "verbose": True,
        "preview_limit": 40,
        "tool_result_limit": 100,
    },
    "logging": {
        "level": "INFO",
        "format": "console",
    },
    "default_provider": None,
    "aliases": {
        "basic": {
            "openai": "gpt-4.1-nano",
            "anthropic": "claude-3-5-haiku-latest",
            "google": "gemini-2.0-flash",
            "azure": "gpt-4.1-nano",
            "bedrock": "anthropic.claude-3-5-haiku-20241022-v1:0",
        },
        "advanced": {
            "openai": "gpt-4.1",
            "anthropic": "claude-3-7-sonnet-latest",
            "google": "gemini-2.5-pro",
            "azure": "gpt-4.1",
            "bedrock": "anthropic.claude-3-7-sonnet-20250219-v1:0",
        },
    },
    "model_to_provider": {
        "gpt-4.1-nano": "openai",
        "gpt-4.1": "openai",
        "gpt-4o": "openai",
        "gpt-4o-mini": "openai",
        "claude-3-7-sonnet-latest": "anthropic",
        "claude-3-5-haiku-latest": "anthropic",
        "gemini-2.0-flash": "google",
        "gemini-2.5-pro": "google",
    },
    "defaults": {
        "basic": {"provider": "openai"},
        "advanced": {"provider": "anthropic"},
    },
    "provider_settings": {},
}


def _config_paths() -> list[Path]:
    paths = []
    explicit = os.environ.get("CALLWATCH_CONFIG_PATH", "").strip()
    if explicit:
        paths.append(Path(explicit))
    paths.append(Path.cwd() / "callwatch.yaml")
    paths.append(Path(__file__).parent.parent / "callwatch.yaml")
    return paths


# ═══════════════════════════════════════════════════════════════════
# Deep Merge
# ═══════════════════════════════════════════════════════════════════

def deep_merge(base: dict, overlay: dict) -> dict:
    """
    Deep-merge overlay into base. Overlay values win.
    Lists are replaced (not appended). Dicts are recursed.
    """
    result = copy.deepcopy(base)
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _set_nested(d: dict, keys: list[str], value: Any):
    """Set a nested dict value from a list of keys."""
    for key in keys[:-1]:
        d = d.setdefault(key, {})
    d[keys[-1]] = value


# ═══════════════════════════════════════════════════════════════════
# Sources
# ═══════════════════════════════════════════════════════════════════

def _load_file(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}", path=str(path)) from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping", path=str(path))
    logger.debug("Loaded base config: %s", path)
    return data


def _load_env_overrides(prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """
    Load CW_ prefixed environment variables as config overrides.

    Naming convention:
      CW_SECTION__KEY=value → {"section": {"key": value}}

    Values are parsed as YAML scalars (numbers, booleans, lists).
    """
    overrides: dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        path = [p for p in key[len(prefix):].lower().split("__") if p]
        if not path:
            continue

        try:
            parsed = yaml.safe_load(value)
        except yaml.YAMLError:
            parsed = value

        _set_nested(overrides, path, parsed)

    if overrides:
        logger.debug("Loaded %d env var overrides", len(overrides))
    return overrides


# ═══════════════════════════════════════════════════════════════════
# Main Loader
# ═══════════════════════════════════════════════════════════════════

_config_cache: dict | None = None


def find_config_path() -> str | None:
    """Return the path of the config file in use, or None."""
    for p in _config_paths():
        if p.is_file():
            return str(p)
    return None


def load_config(
    base_path: str | None = None,
    include_env_vars: bool = True,
) -> dict[str, Any]:
    """
    Load configuration: built-in defaults < YAML file < CW_* env vars.

    Passing base_path bypasses the search and the cache.
    """
    global _config_cache
    if base_path is None and _config_cache is not None:
        return _config_cache

    load_dotenv(find_dotenv(usecwd=True))

    config = copy.deepcopy(_BUILTIN_DEFAULTS)
    path = base_path or find_config_path()
    if path:
        if not os.path.exists(path):
            raise ConfigError(f"Config file not found: {path}", path=path)
        config = deep_merge(config, _load_file(Path(path)))

    if include_env_vars:
        env_overrides = _load_env_overrides()
        if env_overrides:
            config = deep_merge(config, env_overrides)

    config["_config_source"] = path or "built-in defaults"

    if base_path is None:
        _config_cache = config
    return config


def reload_config() -> None:
    """Force reload of the config file. Useful for testing."""
    global _config_cache
    _config_cache = None


def get_config_value(
    path: str,
    config: dict[str, Any] | None = None,
    default: Any = None,
) -> Any:
    """
    Get a nested config value by dotted path.

    Example:
        get_config_value("progress.preview_limit", cfg, 40)
    """
    if config is None:
        config = load_config()

    current = config
    for key in path.split("."):
        if isinstance(current, dict) and key in current:
            current = current[key]
        else:
            return default
    return current


# ═══════════════════════════════════════════════════════════════════
# Typed Settings
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ProgressSettings:
    """Knobs for the progress indicator."""
    show_progress: bool = True
    verbose: bool = True          # tool, reasoning and error lines
    preview_limit: int = 40       # chars of prompt/result preview
    tool_result_limit: int = 100  # chars of tool result preview


def progress_settings(config: dict[str, Any] | None = None) -> ProgressSettings:
    """Build ProgressSettings from the `progress` section of the config."""
    section = get_config_value("progress", config, default={}) or {}
    if not isinstance(section, dict):
        raise ConfigError("'progress' config section must be a mapping")

    known = {f.name: f for f in fields(ProgressSettings)}
    values: dict[str, Any] = {}
    for key, value in section.items():
        if key not in known:
            logger.warning("Ignoring unknown progress setting %r", key)
            continue
        default = known[key].default
        try:
            values[key] = _coerce(value, type(default))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value for progress.{key}: {value!r}", key=key) from e

    settings = ProgressSettings(**values)
    if settings.preview_limit <= 0 or settings.tool_result_limit <= 0:
        raise ConfigError("Preview limits must be positive")
    return settings


def _coerce(value: Any, kind: type) -> Any:
    if kind is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("1", "true", "yes", "on"):
            return True
        if isinstance(value, str) and value.strip().lower() in ("0", "false", "no", "off"):
            return False
        raise ValueError(value)
    if kind is int and isinstance(value, bool):
        raise TypeError(value)
    return kind(value)
