"""Turn a candidate directory into a :class:`~neolauncher.runtime.JavaRuntime`."""

from __future__ import annotations

import asyncio
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .host import HostPlatform
from .process import ProcessTimeoutError, run_process
from .runtime import (
    Architecture,
    Compatibility,
    JavaRuntime,
    architecture_from_release,
    read_executable_architecture,
)
from .settings import DiscoverySettings

LOGGER = logging.getLogger("neolauncher.inspector")

_VERSION_RE = re.compile(r'version\s+"([\d._]+)')


@dataclass
class ReleaseInfo:
    implementor: Optional[str] = None
    version: str = ""
    architecture: Architecture = Architecture.UNKNOWN


def _release_value(line: str) -> str:
    return line.split("=", 1)[1].strip().strip('"')


def read_release_file(release_file: Path) -> ReleaseInfo:
    """Parse ``IMPLEMENTOR``, ``JAVA_VERSION`` and ``OS_ARCH`` from a release file."""

    info = ReleaseInfo()
    with open(release_file, encoding="utf-8", errors="ignore") as handle:
        for line in handle:
            if line.startswith("IMPLEMENTOR="):
                info.implementor = _release_value(line)
            elif line.startswith("JAVA_VERSION="):
                info.version = _release_value(line)
            elif line.startswith("OS_ARCH="):
                info.architecture = architecture_from_release(_release_value(line))

            if info.implementor and info.version and info.architecture is not Architecture.UNKNOWN:
                break
    return info


def normalize_directory(directory: Path) -> Path:
    return Path(os.path.abspath(directory))


def _is_file(path: Path) -> bool:
    try:
        return path.is_file()
    except OSError:
        return False


def match_version(output: str) -> Optional[str]:
    match = _VERSION_RE.search(output)
    return match.group(1) if match else None


class RuntimeInspector:
    """Characterize Java installations.

    Vendor metadata from the ``release`` file is preferred; ``java -version`` is
    only run when it does not provide a version, so at most one process is
    spawned per candidate.
    """

    def __init__(self, host: HostPlatform, settings: Optional[DiscoverySettings] = None):
        self.host = host
        self.settings = settings or DiscoverySettings()

    async def inspect(self, directory: Path, user_imported: bool = False) -> JavaRuntime:
        """Build a record for ``directory``.

        The returned record has ``Compatibility.ERROR`` when the directory does
        not hold a runnable Java; callers must discard such records.
        """

        directory = normalize_directory(directory)
        java_exe = self.host.java_executable(directory)
        runtime = JavaRuntime(
            directory_path=directory,
            java_executable=java_exe,
            javaw_executable=self.host.javaw_executable(directory),
            is_jre=not _is_file(self.host.javac_executable(directory)),
            is_user_imported=user_imported,
        )

        if not _is_file(java_exe):
            LOGGER.debug("No Java executable in %s", directory)
            runtime.compatibility = Compatibility.ERROR
            return runtime

        release_file = directory.parent / "release"
        if _is_file(release_file):
            try:
                release = await asyncio.to_thread(read_release_file, release_file)
            except OSError as exc:
                LOGGER.debug("Failed to read %s: %s", release_file, exc)
            else:
                runtime.implementor = release.implementor or None
                runtime.version = release.version
                runtime.architecture = release.architecture

        if not runtime.version.strip():
            try:
                output = await run_process([java_exe, "-version"], timeout=self.settings.process_timeout)
            except (OSError, ProcessTimeoutError) as exc:
                LOGGER.warning("Java in %s could not be run: %s", directory, exc)
                runtime.compatibility = Compatibility.ERROR
                return runtime
            # -version reports on the diagnostic stream
            runtime.version = match_version(output.stderr) or match_version(output.stdout) or ""

        if runtime.architecture is Architecture.UNKNOWN:
            runtime.architecture = await asyncio.to_thread(read_executable_architecture, java_exe)

        runtime.compatibility = self.host.compatibility_for(runtime.architecture)
        return runtime

    async def create(self, directory: Path, user_imported: bool = False) -> Optional[JavaRuntime]:
        """Like :meth:`inspect` but returns ``None`` instead of an unusable record."""

        runtime = await self.inspect(directory, user_imported=user_imported)
        if runtime.compatibility is Compatibility.ERROR:
            return None
        return runtime

    async def refresh(self, runtime: JavaRuntime) -> bool:
        """Re-inspect ``runtime`` in place.

        Returns ``False`` when the installation no longer resolves. The record
        keeps its identity and its user-imported flag either way.
        """

        fresh = await self.inspect(runtime.directory_path, user_imported=runtime.is_user_imported)
        runtime.java_executable = fresh.java_executable
        runtime.javaw_executable = fresh.javaw_executable
        runtime.version = fresh.version
        runtime.architecture = fresh.architecture
        runtime.is_jre = fresh.is_jre
        runtime.compatibility = fresh.compatibility
        runtime.implementor = fresh.implementor
        return fresh.compatibility is not Compatibility.ERROR
