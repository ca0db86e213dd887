"""
Configuration loading with multi-layer merging.

Implements the configuration precedence chain:
    defaults < user config < project config < env vars
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from .models import GroveConfig

logger = logging.getLogger(__name__)

# Global cache to avoid reloading config multiple times per session
_config_cache: GroveConfig | None = None


def get_xdg_config_home() -> Path:
    """
    Get XDG config home directory.

    Returns:
        Path to config directory (defaults to ~/.config)
    """
    if xdg_home := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_home)
    return Path.home() / ".config"


def get_user_config_path() -> Path:
    """
    Get path to user configuration file.

    Returns:
        Path to ~/.config/grove/config.json (or XDG equivalent)
    """
    return get_xdg_config_home() / "grove" / "config.json"


def get_project_config_path(cwd: Path | None = None) -> Path:
    """
    Get path to project configuration file.

    Args:
        cwd: Project directory (defaults to current directory)

    Returns:
        Path to .grove.json in the project root
    """
    if cwd is None:
        cwd = Path.cwd()
    return cwd / ".grove.json"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Values in `override` take precedence over values in `base`.
    Nested dicts are merged, not replaced.

    Example:
        >>> deep_merge({"a": 1, "b": {"x": 10}}, {"b": {"y": 20}})
        {'a': 1, 'b': {'x': 10, 'y': 20}}
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_json_file(path: Path) -> dict[str, Any] | None:
    """
    Load a JSON file, returning None if it doesn't exist or is invalid.
    """
    if not path.exists():
        return None

    try:
        with path.open() as f:
            data = json.load(f)
            if isinstance(data, dict):
                return data
            return None
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to parse config at %s: %s", path, e)
        return None


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Supported env vars:
        GROVE_MAX_CONCURRENT - overrides workstreams.max_concurrent
        GROVE_BRANCH_NAMESPACE - overrides workstreams.branch_namespace
    """
    result = config_dict.copy()
    workstreams = dict(result.get("workstreams") or {})

    if max_str := os.environ.get("GROVE_MAX_CONCURRENT"):
        try:
            max_value = int(max_str)
            if max_value < 1:
                logger.warning("GROVE_MAX_CONCURRENT must be >= 1, got %d, ignoring", max_value)
            else:
                workstreams["max_concurrent"] = max_value
        except ValueError:
            logger.warning("Invalid GROVE_MAX_CONCURRENT value '%s', ignoring", max_str)

    if namespace := os.environ.get("GROVE_BRANCH_NAMESPACE"):
        workstreams["branch_namespace"] = namespace

    if workstreams:
        result["workstreams"] = workstreams
    return result


def get_default_config() -> dict[str, Any]:
    """
    Get hardcoded default configuration.

    Returns:
        Dictionary with default configuration values
    """
    return {
        "workstreams": {
            "max_concurrent": 3,
            "branch_namespace": "grove",
            "worktree_dir": ".worktrees",
            "default_mode": "execute",
        },
    }


def load_config(project_dir: Path | None = None, use_cache: bool = True) -> GroveConfig:
    """
    Load configuration with multi-layer merging.

    Configuration precedence (highest to lowest):
        1. Environment variables (GROVE_*)
        2. Project config (.grove.json)
        3. User config (~/.config/grove/config.json)
        4. Hardcoded defaults

    Args:
        project_dir: Project directory to load .grove.json from (defaults to cwd)
        use_cache: If True, return cached config from previous load

    Returns:
        Validated GroveConfig instance

    Raises:
        ValidationError: If the merged config fails Pydantic validation
    """
    global _config_cache

    if use_cache and _config_cache is not None:
        return _config_cache

    merged = get_default_config()

    if user_config := load_json_file(get_user_config_path()):
        merged = deep_merge(merged, user_config)

    if project_config := load_json_file(get_project_config_path(project_dir)):
        merged = deep_merge(merged, project_config)

    merged = apply_env_overrides(merged)

    config = GroveConfig(**merged)
    _config_cache = config
    return config


def clear_cache() -> None:
    """
    Clear the cached configuration.

    Useful for testing or when config files change during execution.
    """
    global _config_cache
    _config_cache = None
