"""Enumeration of directories that may contain a Java runtime.

Probes only look at the filesystem. They never validate what they find and
never raise for missing or unreadable directories; an unreadable branch simply
contributes no candidates.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import stat
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Awaitable, Dict, Iterable, List, Mapping, Optional, Sequence

LOGGER = logging.getLogger("neolauncher.probes")

# Directories behind the Windows "java.exe" shim installed by Oracle's updater.
WINDOWS_SHIM_MARKER = "javapath_target_"

_REPARSE_POINT = getattr(stat, "FILE_ATTRIBUTE_REPARSE_POINT", 0x400)


def _is_link(entry: os.DirEntry) -> bool:
    if entry.is_symlink():
        return True
    try:
        attributes = getattr(entry.stat(follow_symlinks=False), "st_file_attributes", 0)
    except OSError:
        return True
    return bool(attributes & _REPARSE_POINT)


def _key(path: Path) -> str:
    return os.path.normcase(os.path.normpath(str(path)))


async def _union(searches: Sequence[Awaitable[List[Path]]]) -> List[Path]:
    """Merge search results in completion order, dropping duplicates."""

    found: Dict[str, Path] = {}
    for search in asyncio.as_completed(searches):
        for path in await search:
            found.setdefault(_key(path), path)
    return list(found.values())


class CandidateProbe(ABC):
    """Produces candidate directories holding a ``java`` binary."""

    @abstractmethod
    async def find_candidates(self) -> List[Path]:
        """Return candidate directories without validating them."""


class WindowsProbe(CandidateProbe):
    """Search ``PATH`` and walk drive roots for ``javaw.exe``.

    The walk only descends into directories whose name contains one of
    ``search_terms`` (or which sit directly below a ``Users`` directory) to keep
    the otherwise unbounded traversal short.
    """

    def __init__(
        self,
        roots: Iterable[Path],
        search_terms: Iterable[str],
        executable_name: str = "javaw.exe",
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.roots = [Path(root) for root in roots]
        self.search_terms = tuple(term.lower() for term in search_terms)
        self.executable_name = executable_name
        self.environ = os.environ if environ is None else environ

    async def find_candidates(self) -> List[Path]:
        searches = [asyncio.to_thread(self._scan_path_variable)]
        searches.extend(asyncio.to_thread(self._walk, root) for root in self.roots)
        executables = await _union(searches)

        directories: Dict[str, Path] = {}
        for executable in sorted(executables, key=str):
            if WINDOWS_SHIM_MARKER in str(executable).lower():
                continue
            directories.setdefault(_key(executable.parent), executable.parent)
        return sorted(directories.values(), key=str)

    def _scan_path_variable(self) -> List[Path]:
        found = []
        for entry in self.environ.get("PATH", "").split(os.pathsep):
            if not entry.strip():
                continue
            candidate = Path(entry.strip().strip('"')) / self.executable_name
            try:
                if candidate.is_file():
                    found.append(candidate)
            except OSError:
                continue
        return found

    def _should_descend(self, parent_name: str, name: str) -> bool:
        if parent_name == "users":
            return True
        lowered = name.lower()
        return any(term in lowered for term in self.search_terms)

    def _walk(self, root: Path) -> List[Path]:
        found: List[Path] = []
        visited = set()
        stack = [root]
        while stack:
            directory = stack.pop()
            key = _key(directory)
            if key in visited:
                continue
            visited.add(key)

            executable = directory / self.executable_name
            try:
                if executable.is_file():
                    found.append(executable)
                entries = list(os.scandir(directory))
            except OSError as exc:
                LOGGER.debug("Skipping %s: %s", directory, exc)
                continue

            parent_name = directory.name.lower()
            for entry in entries:
                try:
                    if not entry.is_dir(follow_symlinks=False) or _is_link(entry):
                        continue
                except OSError:
                    continue
                if self._should_descend(parent_name, entry.name):
                    stack.append(Path(entry.path))
        return found


class UnixProbe(CandidateProbe):
    """Look for ``java`` in ``JAVA_HOME``, ``PATH`` and well known roots.

    ``search_roots`` are walked up to ``max_depth`` levels, the children of
    ``bundle_roots`` are checked for the macOS ``Contents/Home/bin`` layout and
    ``direct_directories`` are checked as they are.
    """

    def __init__(
        self,
        search_roots: Iterable[Path],
        bundle_roots: Iterable[Path] = (),
        direct_directories: Iterable[Path] = (),
        executable_name: str = "java",
        max_depth: int = 5,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.search_roots = [Path(root) for root in search_roots]
        self.bundle_roots = [Path(root) for root in bundle_roots]
        self.direct_directories = [Path(directory) for directory in direct_directories]
        self.executable_name = executable_name
        self.max_depth = max_depth
        self.environ = os.environ if environ is None else environ

    async def find_candidates(self) -> List[Path]:
        roots = list(self.search_roots)
        java_home = self.environ.get("JAVA_HOME")
        if java_home:
            roots.insert(0, Path(java_home))

        searches = [
            asyncio.to_thread(self._which),
            asyncio.to_thread(self._bundle_directories),
            asyncio.to_thread(self._check_direct_directories),
        ]
        searches.extend(asyncio.to_thread(self._search, root) for root in roots)
        return await _union(searches)

    def _which(self) -> List[Path]:
        located = shutil.which(self.executable_name, path=self.environ.get("PATH"))
        if not located:
            return []
        resolved = Path(os.path.realpath(located))
        if not resolved.is_file():
            return []
        return [resolved.parent]

    def _has_executable(self, directory: Path) -> bool:
        try:
            return (directory / self.executable_name).is_file()
        except OSError:
            return False

    def _check_direct_directories(self) -> List[Path]:
        return [directory for directory in self.direct_directories if self._has_executable(directory)]

    def _bundle_directories(self) -> List[Path]:
        found = []
        for bundle_root in self.bundle_roots:
            try:
                bundles = sorted(bundle_root.iterdir())
            except OSError:
                continue
            for bundle in bundles:
                bin_dir = bundle / "Contents" / "Home" / "bin"
                if self._has_executable(bin_dir):
                    found.append(bin_dir)
        return found

    def _search(self, root: Path) -> List[Path]:
        found: List[Path] = []
        stack = [(root, 0)]
        while stack:
            directory, depth = stack.pop()
            try:
                entries = sorted(os.scandir(directory), key=lambda entry: entry.name)
            except OSError as exc:
                LOGGER.debug("Skipping %s: %s", directory, exc)
                continue

            subdirectories = []
            for entry in entries:
                try:
                    if entry.name == self.executable_name and entry.is_file():
                        found.append(Path(directory))
                    elif depth < self.max_depth and entry.is_dir(follow_symlinks=False):
                        subdirectories.append(Path(entry.path))
                except OSError:
                    continue
            stack.extend((subdirectory, depth + 1) for subdirectory in reversed(subdirectories))
        return found
