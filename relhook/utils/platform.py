"""Platform detection and path utilities."""

from __future__ import annotations

import os
import sys
from pathlib import Path


def get_platform() -> str:
    if sys.platform == "win32":
        return "windows"
    if sys.platform == "darwin":
        return "macos"
    return "linux"


def get_config_dir() -> Path:
    env = os.environ.get("RELHOOK_CONFIG_DIR")
    if env:
        return Path(env)

    platform = get_platform()
    if platform == "windows":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        return base / "relhook"
    if platform == "macos":
        return Path.home() / "Library" / "Application Support" / "relhook"
    # Linux / XDG
    xdg = os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
    return Path(xdg) / "relhook"


def get_default_shell() -> str:
    # Pipelines chain stages with "&&", so a POSIX shell is required.
    return os.environ.get("RELHOOK_SHELL") or "/bin/sh"


def normalize_path(path: str | Path) -> Path:
    return Path(path).expanduser().resolve()
