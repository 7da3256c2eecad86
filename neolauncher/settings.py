"""Tunable knobs for Java discovery and verification."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from .paths import get_settings_file

LOGGER = logging.getLogger("neolauncher.settings")

# Directory name fragments that are worth descending into while walking a
# Windows drive. Anything else is skipped to keep the walk bounded.
DEFAULT_WINDOWS_SEARCH_TERMS: Tuple[str, ...] = (
    "java",
    "jdk",
    "jbr",
    "bin",
    "env",
    "环境",
    "run",
    "软件",
    "jre",
    "mc",
    "software",
    "cache",
    "temp",
    "corretto",
    "roaming",
    "users",
    "craft",
    "program",
    "世界",
    "net",
    "游戏",
    "oracle",
    "game",
    "file",
    "data",
    "jvm",
    "服务",
    "server",
    "客户",
    "client",
    "整合",
    "应用",
    "运行",
    "前置",
    "mojang",
    "官启",
    "新建文件夹",
    "eclipse",
    "microsoft",
    "hotspot",
    "idea",
    "android",
)


class TrustLevel(str, Enum):
    """How to treat a verification that could not be carried out."""

    LENIENT = "lenient"
    STRICT = "strict"


@dataclass(frozen=True)
class DiscoverySettings:
    verify_limit: int = 5
    process_timeout: float = 10.0
    functional_probe_timeout: float = 30.0
    unix_search_depth: int = 5
    trust_level: TrustLevel = TrustLevel.LENIENT
    windows_search_terms: Tuple[str, ...] = DEFAULT_WINDOWS_SEARCH_TERMS
    scratch_root: Optional[Path] = None
    extra_search_roots: Tuple[Path, ...] = field(default_factory=tuple)


def _coerce(name: str, raw: Any, current: Any) -> Any:
    if name == "trust_level":
        return TrustLevel(str(raw).lower())
    if name == "windows_search_terms":
        if isinstance(raw, str) or not all(isinstance(term, str) for term in raw):
            raise ValueError("expected a list of strings")
        return tuple(term.lower() for term in raw)
    if name == "extra_search_roots":
        return tuple(Path(entry) for entry in raw)
    if name == "scratch_root":
        return Path(raw) if raw else None
    if isinstance(current, int):
        value = int(raw)
        if value < 0:
            raise ValueError("must not be negative")
        return value
    if isinstance(current, float):
        value = float(raw)
        if value <= 0:
            raise ValueError("must be positive")
        return value
    raise ValueError("unsupported option")


def _apply(settings: DiscoverySettings, values: Mapping[str, Any], source: str) -> DiscoverySettings:
    updates: Dict[str, Any] = {}
    for name, raw in values.items():
        if name not in DiscoverySettings.__dataclass_fields__:
            LOGGER.warning("Ignoring unknown setting %s from %s", name, source)
            continue
        try:
            updates[name] = _coerce(name, raw, getattr(settings, name))
        except (TypeError, ValueError) as exc:
            LOGGER.warning("Ignoring invalid value %r for %s from %s: %s", raw, name, source, exc)
    return replace(settings, **updates)


_ENVIRONMENT_OVERRIDES = {
    "NEOLAUNCHER_VERIFY_LIMIT": "verify_limit",
    "NEOLAUNCHER_TRUST_LEVEL": "trust_level",
    "NEOLAUNCHER_PROCESS_TIMEOUT": "process_timeout",
}


def load_settings(
    settings_file: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> DiscoverySettings:
    """Build the effective settings.

    Values from the JSON settings file override the defaults and environment
    variables override the file.
    """

    settings_file = settings_file or get_settings_file()
    environ = os.environ if environ is None else environ
    settings = DiscoverySettings()

    if settings_file.exists():
        try:
            payload = json.loads(settings_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning("Failed to read settings from %s: %s", settings_file, exc)
        else:
            if isinstance(payload, dict):
                settings = _apply(settings, payload, str(settings_file))
            else:
                LOGGER.warning("Settings file %s does not contain an object", settings_file)

    overrides = {
        name: environ[variable]
        for variable, name in _ENVIRONMENT_OVERRIDES.items()
        if environ.get(variable)
    }
    if overrides:
        settings = _apply(settings, overrides, "environment")
    return settings
