"""Data types describing a located Java installation."""

from __future__ import annotations

import re
import struct
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

_LEADING_DIGITS_RE = re.compile(r"\d+")


class Architecture(str, Enum):
    UNKNOWN = "unknown"
    X86 = "x86"
    X64 = "x64"
    ARM64 = "arm64"
    FAT_FILE = "fat"

    @property
    def is_64bit(self) -> bool:
        return self in {Architecture.X64, Architecture.ARM64, Architecture.FAT_FILE}


class Compatibility(str, Enum):
    """Whether a runtime can run on the current host."""

    UNKNOWN = "unknown"
    YES = "yes"
    NO = "no"
    UNDER_TRANSLATION = "under_translation"
    ERROR = "error"


class Vendor(str, Enum):
    UNKNOWN = "unknown"
    ORACLE = "oracle"
    OPENJDK = "openjdk"
    ADOPT_OPENJDK = "adoptopenjdk"
    ADOPTIUM_ECLIPSE = "adoptium"
    MICROSOFT = "microsoft"
    AMAZON = "amazon"
    AZUL = "azul"
    ALIBABA = "alibaba"
    TENCENT = "tencent"
    BELLSOFT = "bellsoft"
    SAP = "sap"
    REDHAT = "redhat"

    @property
    def friendly_name(self) -> str:
        return _VENDOR_NAMES[self]


_VENDOR_NAMES = {
    Vendor.UNKNOWN: "Unknown vendor",
    Vendor.ORACLE: "Oracle",
    Vendor.OPENJDK: "OpenJDK",
    Vendor.ADOPT_OPENJDK: "AdoptOpenJDK",
    Vendor.ADOPTIUM_ECLIPSE: "Eclipse Adoptium",
    Vendor.MICROSOFT: "Microsoft",
    Vendor.AMAZON: "Amazon Corretto",
    Vendor.AZUL: "Azul Zulu",
    Vendor.ALIBABA: "Alibaba Dragonwell",
    Vendor.TENCENT: "Tencent Kona",
    Vendor.BELLSOFT: "BellSoft Liberica",
    Vendor.SAP: "SAP Machine",
    Vendor.REDHAT: "RedHat OpenJDK",
}

# Checked in order, first hit wins.
_IMPLEMENTOR_VENDORS = (
    ("oracle", Vendor.ORACLE),
    ("eclipse", Vendor.ADOPTIUM_ECLIPSE),
    ("adopt", Vendor.ADOPT_OPENJDK),
    ("microsoft", Vendor.MICROSOFT),
    ("amazon", Vendor.AMAZON),
    ("azul", Vendor.AZUL),
)


def vendor_from_implementor(implementor: Optional[str]) -> Vendor:
    """Map the ``IMPLEMENTOR`` value of a ``release`` file to a vendor."""

    if not implementor:
        return Vendor.UNKNOWN
    lowered = implementor.lower()
    for needle, vendor in _IMPLEMENTOR_VENDORS:
        if needle in lowered:
            return vendor
    return Vendor.UNKNOWN


def parse_slug_version(version: str) -> int:
    """Return the major version of a Java version string.

    Legacy versions such as ``1.8.0_351`` use the second segment, everything
    else the first one. Unparsable input yields ``0``.
    """

    segments = version.strip().split(".")
    segment = segments[1] if segments[0] == "1" and len(segments) > 1 else segments[0]
    match = _LEADING_DIGITS_RE.match(segment)
    return int(match.group(0)) if match else 0


_RELEASE_ARCHITECTURES = {
    "x86_64": Architecture.X64,
    "amd64": Architecture.X64,
    "aarch64": Architecture.ARM64,
    "arm64": Architecture.ARM64,
    "x86": Architecture.X86,
    "i386": Architecture.X86,
    "i586": Architecture.X86,
    "i686": Architecture.X86,
}


def architecture_from_release(value: str) -> Architecture:
    return _RELEASE_ARCHITECTURES.get(value.strip().lower(), Architecture.UNKNOWN)


_PE_MACHINES = {
    0x014C: Architecture.X86,
    0x8664: Architecture.X64,
    0xAA64: Architecture.ARM64,
}

_ELF_MACHINES = {
    0x0003: Architecture.X86,
    0x003E: Architecture.X64,
    0x00B7: Architecture.ARM64,
}

_MACHO_CPU_TYPES = {
    0x00000007: Architecture.X86,
    0x01000007: Architecture.X64,
    0x0100000C: Architecture.ARM64,
}


def read_executable_architecture(path: Path) -> Architecture:
    """Read the architecture from a PE, ELF or Mach-O header.

    The format is sniffed from the magic bytes so that the result does not
    depend on the host operating system.
    """

    try:
        with open(path, "rb") as handle:
            header = handle.read(64)
            if header[:2] == b"MZ" and len(header) >= 0x40:
                (pe_offset,) = struct.unpack_from("<i", header, 0x3C)
                handle.seek(pe_offset)
                pe_header = handle.read(6)
                if len(pe_header) < 6 or pe_header[:4] != b"PE\0\0":
                    return Architecture.UNKNOWN
                (machine,) = struct.unpack_from("<H", pe_header, 4)
                return _PE_MACHINES.get(machine, Architecture.UNKNOWN)
    except OSError:
        return Architecture.UNKNOWN

    if header[:4] == b"\x7fELF" and len(header) >= 0x14:
        byte_order = ">" if header[5] == 2 else "<"
        (machine,) = struct.unpack_from(byte_order + "H", header, 0x12)
        return _ELF_MACHINES.get(machine, Architecture.UNKNOWN)

    if header[:4] == b"\xca\xfe\xba\xbe":
        return Architecture.FAT_FILE

    if header[:4] in {b"\xce\xfa\xed\xfe", b"\xcf\xfa\xed\xfe"} and len(header) >= 8:
        (cpu_type,) = struct.unpack_from("<I", header, 4)
        return _MACHO_CPU_TYPES.get(cpu_type, Architecture.UNKNOWN)

    return Architecture.UNKNOWN


@dataclass(eq=False)
class JavaRuntime:
    """Description of a Java runtime installation.

    ``directory_path`` is the directory holding the ``java`` binary and is the
    identity of the record; the remaining fields are filled in by
    :class:`~neolauncher.inspector.RuntimeInspector`.
    """

    directory_path: Path
    java_executable: Path
    javaw_executable: Path
    version: str = ""
    architecture: Architecture = Architecture.UNKNOWN
    is_jre: bool = True
    compatibility: Compatibility = Compatibility.UNKNOWN
    implementor: Optional[str] = None
    is_user_imported: bool = False

    @property
    def slug_version(self) -> int:
        return parse_slug_version(self.version)

    @property
    def is_64bit(self) -> bool:
        return self.architecture.is_64bit

    @property
    def vendor(self) -> Vendor:
        return vendor_from_implementor(self.implementor)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, JavaRuntime):
            return NotImplemented
        return self.directory_path == other.directory_path

    def __hash__(self) -> int:
        return hash(self.directory_path)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"JavaRuntime(path={self.directory_path}, version={self.version})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "directoryPath": str(self.directory_path),
            "javaExecutable": str(self.java_executable),
            "javawExecutable": str(self.javaw_executable),
            "version": self.version,
            "architecture": self.architecture.value,
            "isJre": self.is_jre,
            "compatibility": self.compatibility.value,
            "implementor": self.implementor,
            "isUserImported": self.is_user_imported,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JavaRuntime":
        """Rebuild a record written by :meth:`to_dict`.

        Raises ``KeyError`` or ``ValueError`` on malformed input.
        """

        return cls(
            directory_path=Path(data["directoryPath"]),
            java_executable=Path(data["javaExecutable"]),
            javaw_executable=Path(data["javawExecutable"]),
            version=str(data.get("version", "")),
            architecture=Architecture(data.get("architecture", Architecture.UNKNOWN.value)),
            is_jre=bool(data.get("isJre", True)),
            compatibility=Compatibility(data.get("compatibility", Compatibility.UNKNOWN.value)),
            implementor=data.get("implementor"),
            is_user_imported=bool(data.get("isUserImported", False)),
        )
