"""Fake Java installations and hosts shared by the tests."""

import sys
from pathlib import Path
from typing import List, Optional

import pytest

from neolauncher.host import LinuxHost
from neolauncher.probes import CandidateProbe
from neolauncher.runtime import Architecture

posix_only = pytest.mark.skipif(sys.platform.startswith("win"), reason="fake Java binaries are shell scripts")

GENUINE_JAVA = """#!/bin/sh
for arg in "$@"; do
  if [ "$arg" = "-version" ]; then
    echo 'Property settings:' >&2
    echo '    java.vendor = Eclipse Adoptium' >&2
    echo '    java.version = {version}' >&2
    echo '' >&2
    echo 'openjdk version "{version}" 2023-10-17 LTS' >&2
    echo 'OpenJDK Runtime Environment Temurin-{version}+12 (build {version}+12-LTS)' >&2
    echo 'OpenJDK 64-Bit Server VM Temurin-{version}+12 (build {version}+12-LTS, mixed mode)' >&2
    exit 0
  fi
done
echo JavaVerificationSuccess
"""

DISGUISED_JAVA = """#!/bin/sh
for arg in "$@"; do
  if [ "$arg" = "-version" ]; then
    echo 'openjdk version "{version}"' >&2
    exit 0
  fi
done
echo 'definitely not java'
"""

SLOW_JAVA = """#!/bin/sh
exec sleep 5
"""

SUCCESS_TOOL = """#!/bin/sh
exit 0
"""

FAILING_TOOL = """#!/bin/sh
echo 'error: compilation failed' >&2
exit 1
"""

# Creates the archive named by its second argument, as `jar cfm <jar> ...` would.
ARCHIVE_TOOL = """#!/bin/sh
touch "$2"
"""


def write_script(path: Path, content: str, executable: bool = True) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    if executable:
        path.chmod(0o755)
    return path


class StaticProbe(CandidateProbe):
    """Probe returning a fixed list of candidates."""

    def __init__(self, candidates: List[Path]):
        self.candidates = list(candidates)

    async def find_candidates(self) -> List[Path]:
        return list(self.candidates)


class FakeHost(LinuxHost):
    """64-bit Linux host whose probe only sees the given candidates."""

    def __init__(self, candidates: Optional[List[Path]] = None):
        super().__init__(architecture=Architecture.X64)
        self.candidates: List[Path] = list(candidates or [])

    def create_probe(self, settings, environ=None):
        return StaticProbe(self.candidates)
