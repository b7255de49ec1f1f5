"""Utility functions for reading the optional testharbor settings file."""

from __future__ import annotations

import os
import platform
from pathlib import Path
from typing import Any, Dict

import yaml

SETTINGS_FILE = "settings.yaml"
MISSING_MESSAGE = "Missing required setting: {}"
NOT_GIVEN = object()


def get_system_file_path(filename: str) -> Path:
    """Return the path to the configuration file for the current OS."""
    os_name = platform.system()
    if os_name in {"Linux", "Darwin"}:
        return Path.home() / ".config" / "testharbor" / filename
    elif os_name == "Windows":
        appdata = os.getenv("APPDATA")
        if appdata is not None:
            return Path(appdata) / "testharbor" / filename
    return Path(filename)


def load_settings(path: Path | None = None) -> Dict[str, Any]:
    """Load settings from the YAML settings file, if there is one."""
    settings_file = path or get_system_file_path(SETTINGS_FILE)
    if not settings_file.exists():
        return {}

    with open(settings_file, "r") as f:
        settings = yaml.safe_load(f) or {}

    if not isinstance(settings, dict):
        raise ValueError(f"Settings file {settings_file} must contain a mapping")
    return settings


def get_value(
    key: str,
    settings: Dict[str, Any],
    default_env: Dict[str, Any],
    default: Any = NOT_GIVEN,
) -> Any:
    """Retrieve a configuration value from the environment, settings, or defaults."""
    value = os.environ.get(key)
    if value is None or value == "":
        value = settings.get(key)

    if value is None:
        value = default_env.get(key, default)

    if value is not NOT_GIVEN:
        return value
    raise KeyError(MISSING_MESSAGE.format(key))
