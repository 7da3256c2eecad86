"""Where the launcher keeps its Java list, settings and downloaded runtimes."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

LAUNCHER_DIRECTORY_NAME = "NeoLauncher"


def sys_platform() -> str:
    """Return the lowercase platform identifier (``linux``, ``darwin``, ``nt``...)."""

    return os.uname().sysname.lower() if hasattr(os, "uname") else os.name.lower()


def _system_config_dir() -> Optional[Path]:
    """Return the per-user configuration root of this OS, if there is one."""

    system = sys_platform()
    if os.name == "nt" or system.startswith("win"):
        appdata = os.environ.get("APPDATA")
        return Path(appdata) if appdata else None
    if system == "darwin":
        return Path.home() / "Library" / "Application Support"
    if system == "linux":
        return Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config")
    return None


def get_launcher_directory() -> Path:
    """Locate the launcher home directory.

    ``NEOLAUNCHER`` overrides the location; otherwise it is a
    ``NeoLauncher`` folder in the configuration root, or the working directory
    on systems without one.
    """

    custom = os.environ.get("NEOLAUNCHER")
    if custom:
        return Path(custom)

    config_root = _system_config_dir()
    if config_root is None:
        return Path.cwd()
    return config_root / LAUNCHER_DIRECTORY_NAME


def get_java_cache_file() -> Path:
    """Return the file that stores the discovered Java list between runs."""

    return get_launcher_directory() / "java_list.json"


def get_settings_file() -> Path:
    return get_launcher_directory() / "java_settings.json"


def get_runtime_download_directory() -> Path:
    """Return the directory a bundled Java runtime is downloaded into."""

    return get_launcher_directory() / "java"
