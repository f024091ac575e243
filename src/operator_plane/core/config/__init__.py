"""Operator configuration: settings and state-directory layout."""

from operator_plane.core.config.paths import RuntimePaths, run_dir
from operator_plane.core.config.settings import (
    OperatorSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "OperatorSettings",
    "RuntimePaths",
    "clear_settings_cache",
    "get_settings",
    "run_dir",
]
