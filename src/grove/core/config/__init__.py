"""
Configuration models and loading.

This module provides Pydantic models for grove configuration
with multi-layer merging: defaults < user < project < env vars.
"""

from .loader import (
    clear_cache,
    get_project_config_path,
    get_user_config_path,
    get_xdg_config_home,
    load_config,
)
from .models import GroveConfig, WorkstreamsConfig

__all__ = [
    # Models
    "GroveConfig",
    "WorkstreamsConfig",
    # Loader functions
    "clear_cache",
    "get_project_config_path",
    "get_user_config_path",
    "get_xdg_config_home",
    "load_config",
]
