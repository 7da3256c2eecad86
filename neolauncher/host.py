"""Host platform capabilities used by discovery and verification.

Everything that differs between operating systems (where to look for Java,
what the executables are called, whether binaries carry a code signature and
which architectures can run natively) is answered by one
:class:`HostPlatform` instance, so the rest of the package never switches on
the OS name itself.
"""

from __future__ import annotations

import logging
import os
import platform
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional

from .paths import sys_platform
from .probes import CandidateProbe, UnixProbe, WindowsProbe
from .process import ProcessTimeoutError, run_process
from .runtime import Architecture, Compatibility
from .settings import DiscoverySettings

LOGGER = logging.getLogger("neolauncher.host")

_MACHINE_ARCHITECTURES = {
    "amd64": Architecture.X64,
    "x86_64": Architecture.X64,
    "x64": Architecture.X64,
    "arm64": Architecture.ARM64,
    "aarch64": Architecture.ARM64,
    "x86": Architecture.X86,
    "i386": Architecture.X86,
    "i486": Architecture.X86,
    "i586": Architecture.X86,
    "i686": Architecture.X86,
}


def detect_architecture() -> Architecture:
    return _MACHINE_ARCHITECTURES.get(platform.machine().lower(), Architecture.UNKNOWN)


@dataclass(frozen=True)
class SignatureInfo:
    """Outcome of a code-signature query."""

    status: str
    subject: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.status == "Valid"


_STATUS_RE = re.compile(r"^\s*Status\s*:\s*(\w+)", re.MULTILINE)
_SUBJECT_RE = re.compile(r"^\s*Subject\s*:\s*(.+?)\s*$", re.MULTILINE)


def parse_signature_output(output: str) -> Optional[SignatureInfo]:
    status = _STATUS_RE.search(output)
    if status is None:
        return None
    subject = _SUBJECT_RE.search(output)
    return SignatureInfo(status=status.group(1), subject=subject.group(1) if subject else None)


class HostPlatform(ABC):
    """Operating system specific behaviour.

    Subclasses supply the executable suffix, the candidate probe and the
    native architecture rules.
    """

    name: str = "unknown"
    executable_suffix: str = ""

    def __init__(self, architecture: Optional[Architecture] = None):
        self.architecture = architecture or detect_architecture()

    @property
    @abstractmethod
    def platform_id(self) -> str:
        """Identifier used by the bundled runtime index (e.g. ``windows-x64``)."""

    @abstractmethod
    def create_probe(
        self,
        settings: DiscoverySettings,
        environ: Optional[Mapping[str, str]] = None,
    ) -> CandidateProbe:
        """Return the probe enumerating candidate Java directories."""

    def _foreign_compatibility(self, architecture: Architecture) -> Compatibility:
        return Compatibility.UNKNOWN

    def compatibility_for(self, architecture: Architecture) -> Compatibility:
        """Decide whether a binary of ``architecture`` runs on this host."""

        if architecture is not Architecture.UNKNOWN and architecture is self.architecture:
            return Compatibility.YES
        return self._foreign_compatibility(architecture)

    def executable(self, directory: Path, name: str) -> Path:
        return Path(directory) / (name + self.executable_suffix)

    def java_executable(self, directory: Path) -> Path:
        return self.executable(directory, "java")

    def javaw_executable(self, directory: Path) -> Path:
        return self.java_executable(directory)

    def javac_executable(self, directory: Path) -> Path:
        return self.executable(directory, "javac")

    def jar_executable(self, directory: Path) -> Path:
        return self.executable(directory, "jar")

    async def check_signature(self, executable: Path, timeout: float) -> Optional[SignatureInfo]:
        """Return the code signature of ``executable``.

        ``None`` means the platform has no signature check or it could not be
        performed.
        """

        return None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} platform={self.name} arch={self.architecture.value}>"


class WindowsHost(HostPlatform):
    name = "windows"
    executable_suffix = ".exe"

    @property
    def platform_id(self) -> str:
        return {
            Architecture.X64: "windows-x64",
            Architecture.X86: "windows-x86",
            Architecture.ARM64: "windows-arm64",
        }.get(self.architecture, "unknown")

    def create_probe(self, settings, environ=None):
        return WindowsProbe(
            roots=self._search_roots(settings, environ),
            search_terms=settings.windows_search_terms,
            executable_name="javaw" + self.executable_suffix,
            environ=environ,
        )

    def _search_roots(self, settings: DiscoverySettings, environ: Optional[Mapping[str, str]]) -> List[Path]:
        environ = os.environ if environ is None else environ
        roots = [Path(f"{letter}:\\") for letter in "ABCDEFGHIJKLMNOPQRSTUVWXYZ"]
        roots = [root for root in roots if root.exists()]
        for variable in ("USERPROFILE", "APPDATA", "LOCALAPPDATA", "ProgramFiles", "ProgramFiles(x86)"):
            value = environ.get(variable)
            if value:
                roots.append(Path(value))
        roots.extend(settings.extra_search_roots)
        return roots

    def javaw_executable(self, directory: Path) -> Path:
        return self.executable(directory, "javaw")

    def _foreign_compatibility(self, architecture: Architecture) -> Compatibility:
        if self.architecture in {Architecture.X64, Architecture.ARM64} and architecture in {
            Architecture.X86,
            Architecture.X64,
        }:
            return Compatibility.UNDER_TRANSLATION
        return Compatibility.UNKNOWN

    async def check_signature(self, executable: Path, timeout: float) -> Optional[SignatureInfo]:
        escaped = str(executable).replace("'", "''")
        script = (
            f"Get-AuthenticodeSignature -LiteralPath '{escaped}' | "
            "Select-Object Status, @{Name='Subject';Expression={$_.SignerCertificate.Subject}} | "
            "Format-List"
        )
        try:
            output = await run_process(
                ["powershell.exe", "-NoProfile", "-NonInteractive", "-Command", script],
                timeout=timeout,
            )
        except (OSError, ProcessTimeoutError) as exc:
            LOGGER.warning("Could not query the signature of %s: %s", executable, exc)
            return None
        return parse_signature_output(output.stdout)


class UnixHost(HostPlatform):
    @property
    def platform_id(self) -> str:
        return {
            Architecture.X64: "linux",
            Architecture.X86: "linux-i386",
        }.get(self.architecture, "unknown")

    def _search_roots(self, settings: DiscoverySettings) -> List[Path]:
        home = Path.home()
        roots = [
            home / ".sdkman" / "candidates" / "java",
            home / ".jdks",
            home / ".asdf" / "installs" / "java",
        ]
        roots.extend(settings.extra_search_roots)
        return roots

    def _bundle_roots(self) -> List[Path]:
        return []

    def _direct_directories(self) -> List[Path]:
        return []

    def create_probe(self, settings, environ=None):
        return UnixProbe(
            search_roots=self._search_roots(settings),
            bundle_roots=self._bundle_roots(),
            direct_directories=self._direct_directories(),
            executable_name="java",
            max_depth=settings.unix_search_depth,
            environ=environ,
        )

    def _foreign_compatibility(self, architecture: Architecture) -> Compatibility:
        return Compatibility.NO


class LinuxHost(UnixHost):
    name = "linux"

    def _search_roots(self, settings: DiscoverySettings) -> List[Path]:
        return [
            Path("/usr/lib/jvm"),
            Path("/usr/java"),
            Path("/opt/java"),
            Path("/opt/jdk"),
            Path("/opt/jre"),
            Path("/usr/local/java"),
            Path("/usr/local/jdk"),
            Path("/usr/local/jre"),
            Path("/usr/local/opt"),
        ] + super()._search_roots(settings)


class MacHost(UnixHost):
    name = "macos"

    @property
    def platform_id(self) -> str:
        return {
            Architecture.X64: "mac-os",
            Architecture.ARM64: "mac-os-arm64",
        }.get(self.architecture, "unknown")

    def _search_roots(self, settings: DiscoverySettings) -> List[Path]:
        # Older Apple supplied Java installs
        return [Path("/System/Library/Frameworks/JavaVM.framework/Versions")] + super()._search_roots(settings)

    def _bundle_roots(self) -> List[Path]:
        return [
            Path("/Library/Java/JavaVirtualMachines"),
            Path.home() / "Library" / "Java" / "JavaVirtualMachines",
            Path("/opt/homebrew/opt/java/libexec"),
            Path("/usr/local/opt/java/libexec"),
        ]

    def _direct_directories(self) -> List[Path]:
        return [Path("/usr/bin")]

    def _foreign_compatibility(self, architecture: Architecture) -> Compatibility:
        if architecture is Architecture.FAT_FILE:
            return Compatibility.YES
        if self.architecture is Architecture.ARM64 and architecture is Architecture.X64:
            return Compatibility.UNDER_TRANSLATION
        return Compatibility.UNKNOWN


def detect_host() -> HostPlatform:
    """Return the :class:`HostPlatform` for the running operating system."""

    system = sys_platform()
    if system.startswith("win") or system == "nt":
        return WindowsHost()
    if system == "darwin":
        return MacHost()
    return LinuxHost()
