"""Authenticity checks for located Java runtimes.

A runtime is probed in up to three steps: the code signature of the binary
(only where the host has one), the vendor properties it reports and finally a
functional test that compiles and runs a tiny program. Steps that detect a
forgery fail the verification; steps that cannot be carried out because a
tool is missing are resolved by the configured :class:`TrustLevel`.
"""

from __future__ import annotations

import logging
import re
import shutil
import struct
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from .host import HostPlatform
from .process import ProcessTimeoutError, run_process
from .runtime import JavaRuntime, Vendor
from .settings import DiscoverySettings, TrustLevel

LOGGER = logging.getLogger("neolauncher.verifier")

PROBE_CLASS_NAME = "JavaVerification"
PROBE_EXPECTED_OUTPUT = "JavaVerificationSuccess"
PROBE_SOURCE = (
    f"public class {PROBE_CLASS_NAME} {{\n"
    "    public static void main(String[] args) {\n"
    f'        System.out.println("{PROBE_EXPECTED_OUTPUT}");\n'
    "    }\n"
    "}\n"
)
SCRATCH_PREFIX = "JavaVerification_"


@dataclass(frozen=True)
class VerifyResult:
    is_genuine: bool
    fail_reason: Optional[str] = None
    vendor: Vendor = Vendor.UNKNOWN
    vendor_description: Optional[str] = None
    build_identifier: Optional[str] = None
    is_early_access: bool = False


@dataclass(frozen=True)
class VendorInfo:
    vendor: Vendor = Vendor.UNKNOWN
    vendor_description: Optional[str] = None
    build_identifier: Optional[str] = None
    is_early_access: bool = False


_SIGNATURE_VENDORS: List[Tuple[Tuple[str, ...], Vendor]] = [
    (("oracle",), Vendor.ORACLE),
    (("microsoft",), Vendor.MICROSOFT),
    (("eclipse", "adoptium"), Vendor.ADOPTIUM_ECLIPSE),
    (("adopt", "openjdk"), Vendor.ADOPT_OPENJDK),
    (("amazon",), Vendor.AMAZON),
    (("azul",), Vendor.AZUL),
    (("alibaba",), Vendor.ALIBABA),
    (("tencent",), Vendor.TENCENT),
    (("bellsoft", "liberica"), Vendor.BELLSOFT),
    (("sap",), Vendor.SAP),
    (("redhat", "red hat"), Vendor.REDHAT),
]

# Distributions built from OpenJDK, checked once the output says "openjdk".
_DISTRIBUTION_VENDORS: List[Tuple[Tuple[str, ...], Vendor]] = [
    (("adoptium", "eclipse"), Vendor.ADOPTIUM_ECLIPSE),
    (("adoptopenjdk", "adopt"), Vendor.ADOPT_OPENJDK),
    (("microsoft", "msft"), Vendor.MICROSOFT),
    (("amazon", "corretto"), Vendor.AMAZON),
    (("azul", "zulu"), Vendor.AZUL),
    (("alibaba", "dragonwell"), Vendor.ALIBABA),
    (("tencent", "kona"), Vendor.TENCENT),
    (("bellsoft", "liberica"), Vendor.BELLSOFT),
    (("sapmachine", "sap se", "sap ag"), Vendor.SAP),
    (("redhat", "red hat"), Vendor.REDHAT),
]


def _match_vendor(text: str, table: List[Tuple[Tuple[str, ...], Vendor]]) -> Vendor:
    lowered = text.lower()
    for needles, vendor in table:
        if any(needle in lowered for needle in needles):
            return vendor
    return Vendor.UNKNOWN


def vendor_from_signature(subject: str) -> Vendor:
    return _match_vendor(subject, _SIGNATURE_VENDORS)


_PROPERTY_RE = r"^\s*{name}\s*=\s*(.+?)\s*$"
_RUNTIME_NAME_RE = re.compile(r"^(.*(?:JRE|JDK|Runtime Environment|OpenJDK).*?)\s*\(build", re.IGNORECASE | re.MULTILINE)
_BUILD_RE = re.compile(r"\(build\s+([^\s,)]+)")
_EARLY_ACCESS_RE = re.compile(r"Early[- ]Access|\bEA\b")


def _property(output: str, name: str) -> Optional[str]:
    match = re.search(_PROPERTY_RE.format(name=re.escape(name)), output, re.MULTILINE)
    return match.group(1) if match else None


def parse_vendor_info(output: str) -> VendorInfo:
    """Extract vendor details from ``java -XshowSettings:properties -version``."""

    reported_vendor = _property(output, "java.vendor") or _property(output, "java.vm.vendor")
    description = reported_vendor
    if description is None:
        runtime_name = _RUNTIME_NAME_RE.search(output)
        if runtime_name:
            description = runtime_name.group(1).strip()

    build = _BUILD_RE.search(output)
    build_identifier = build.group(1) if build else None
    is_early_access = bool(_EARLY_ACCESS_RE.search(output)) or "-ea" in (build_identifier or "")

    lowered = output.lower()
    vendor = Vendor.UNKNOWN
    if "openjdk" in lowered:
        vendor = Vendor.OPENJDK
        if reported_vendor:
            vendor = _match_vendor(reported_vendor, _DISTRIBUTION_VENDORS)
        if vendor is Vendor.UNKNOWN:
            vendor = _match_vendor(lowered, _DISTRIBUTION_VENDORS)
        if vendor is Vendor.UNKNOWN:
            vendor = Vendor.OPENJDK
    elif "oracle" in lowered or "java(tm)" in lowered:
        vendor = Vendor.ORACLE

    return VendorInfo(
        vendor=vendor,
        vendor_description=description,
        build_identifier=build_identifier,
        is_early_access=is_early_access,
    )


def _utf8(value: str) -> bytes:
    encoded = value.encode("utf-8")
    return struct.pack(">BH", 1, len(encoded)) + encoded


def build_probe_class() -> bytes:
    """Assemble the class file of the probe program.

    Equivalent to compiling :data:`PROBE_SOURCE` for Java 8, so it runs on any
    runtime the launcher supports without needing ``javac``.
    """

    constants = [
        _utf8(PROBE_CLASS_NAME),  # 1
        struct.pack(">BH", 7, 1),  # 2 class
        _utf8("java/lang/Object"),  # 3
        struct.pack(">BH", 7, 3),  # 4 super class
        _utf8("java/lang/System"),  # 5
        struct.pack(">BH", 7, 5),  # 6
        _utf8("out"),  # 7
        _utf8("Ljava/io/PrintStream;"),  # 8
        struct.pack(">BHH", 12, 7, 8),  # 9
        struct.pack(">BHH", 9, 6, 9),  # 10 System.out
        _utf8("java/io/PrintStream"),  # 11
        struct.pack(">BH", 7, 11),  # 12
        _utf8("println"),  # 13
        _utf8("(Ljava/lang/String;)V"),  # 14
        struct.pack(">BHH", 12, 13, 14),  # 15
        struct.pack(">BHH", 10, 12, 15),  # 16 PrintStream.println
        _utf8(PROBE_EXPECTED_OUTPUT),  # 17
        struct.pack(">BH", 8, 17),  # 18
        _utf8("main"),  # 19
        _utf8("([Ljava/lang/String;)V"),  # 20
        _utf8("Code"),  # 21
    ]
    # getstatic #10; ldc #18; invokevirtual #16; return
    code = bytes([0xB2, 0x00, 0x0A, 0x12, 0x12, 0xB6, 0x00, 0x10, 0xB1])
    code_attribute = struct.pack(">HHI", 2, 1, len(code)) + code + struct.pack(">HH", 0, 0)
    main_method = struct.pack(">HHHH", 0x0009, 19, 20, 1) + struct.pack(">HI", 21, len(code_attribute)) + code_attribute

    return b"".join(
        [
            struct.pack(">IHHH", 0xCAFEBABE, 0, 52, len(constants) + 1),
            *constants,
            struct.pack(">HHHHH", 0x0021, 2, 4, 0, 0),
            struct.pack(">H", 1),
            main_method,
            struct.pack(">H", 0),
        ]
    )


@dataclass(frozen=True)
class _ProbeOutcome:
    # True passed, False failed, None could not be decided
    passed: Optional[bool]
    reason: Optional[str] = None


class JavaVerifier:
    """Decide whether a runtime is a genuine, working Java and who built it."""

    def __init__(self, host: HostPlatform, settings: Optional[DiscoverySettings] = None):
        self.host = host
        self.settings = settings or DiscoverySettings()

    async def verify(self, runtime: JavaRuntime) -> VerifyResult:
        java_exe = runtime.java_executable
        if not java_exe.is_file():
            return VerifyResult(is_genuine=False, fail_reason="Java executable does not exist")

        signature_vendor = Vendor.UNKNOWN
        signature_subject = None
        signature = await self.host.check_signature(java_exe, self.settings.process_timeout)
        if signature is not None:
            if not signature.is_valid:
                return VerifyResult(
                    is_genuine=False,
                    fail_reason=f"Digital signature is not valid (status: {signature.status})",
                )
            if signature.subject:
                signature_subject = signature.subject
                signature_vendor = vendor_from_signature(signature.subject)

        try:
            output = await run_process(
                [java_exe, "-XshowSettings:properties", "-version"],
                timeout=self.settings.process_timeout,
            )
        except OSError as exc:
            return VerifyResult(is_genuine=False, fail_reason=f"Java could not be started: {exc}")
        except ProcessTimeoutError as exc:
            return self._indeterminate(str(exc), VendorInfo(vendor=signature_vendor))

        info = parse_vendor_info(output.combined)
        if info.vendor is Vendor.UNKNOWN and signature_vendor is not Vendor.UNKNOWN:
            info = VendorInfo(
                vendor=signature_vendor,
                vendor_description=info.vendor_description or signature_subject,
                build_identifier=info.build_identifier,
                is_early_access=info.is_early_access,
            )

        outcome = await self.functional_probe(java_exe)
        if outcome.passed is None:
            return self._indeterminate(outcome.reason, info)
        if not outcome.passed:
            return VerifyResult(
                is_genuine=False,
                fail_reason=f"Functional check failed, the executable may be disguised: {outcome.reason}",
                vendor=info.vendor,
                vendor_description=info.vendor_description,
            )
        return self._genuine(info)

    @staticmethod
    def _genuine(info: VendorInfo) -> VerifyResult:
        return VerifyResult(
            is_genuine=True,
            vendor=info.vendor,
            vendor_description=info.vendor_description,
            build_identifier=info.build_identifier,
            is_early_access=info.is_early_access,
        )

    def _indeterminate(self, reason: Optional[str], info: VendorInfo) -> VerifyResult:
        if self.settings.trust_level is TrustLevel.STRICT:
            return VerifyResult(
                is_genuine=False,
                fail_reason=f"Java could not be verified: {reason}",
                vendor=info.vendor,
                vendor_description=info.vendor_description,
            )
        LOGGER.info("Assuming genuine Java, verification was inconclusive: %s", reason)
        return self._genuine(info)

    async def functional_probe(self, java_exe: Path) -> _ProbeOutcome:
        """Compile (or archive) and run the probe program in a scratch directory.

        The scratch directory is removed on every exit path.
        """

        scratch_root = self.settings.scratch_root
        try:
            scratch = Path(tempfile.mkdtemp(prefix=SCRATCH_PREFIX, dir=str(scratch_root) if scratch_root else None))
        except OSError as exc:
            return _ProbeOutcome(None, f"no scratch directory: {exc}")
        try:
            javac = self.host.javac_executable(java_exe.parent)
            if javac.is_file():
                return await self._compile_and_run(java_exe, javac, scratch)
            return await self._archive_and_run(java_exe, scratch)
        except ProcessTimeoutError as exc:
            return _ProbeOutcome(None, str(exc))
        except OSError as exc:
            return _ProbeOutcome(None, f"scratch directory unusable: {exc}")
        finally:
            shutil.rmtree(scratch, ignore_errors=True)
            if scratch.exists():
                LOGGER.warning("Could not remove verification directory %s", scratch)

    async def _compile_and_run(self, java_exe: Path, javac: Path, scratch: Path) -> _ProbeOutcome:
        timeout = self.settings.functional_probe_timeout
        source = scratch / f"{PROBE_CLASS_NAME}.java"
        source.write_text(PROBE_SOURCE, encoding="utf-8")

        try:
            compiled = await run_process([javac, "-encoding", "UTF-8", source.name], timeout=timeout, cwd=scratch)
        except OSError as exc:
            return _ProbeOutcome(False, f"compiler could not be started: {exc}")
        if compiled.returncode != 0:
            return _ProbeOutcome(False, f"compiler exited with code {compiled.returncode}")

        return await self._run_probe(
            [java_exe, "-cp", str(scratch), PROBE_CLASS_NAME],
            scratch,
        )

    async def _archive_and_run(self, java_exe: Path, scratch: Path) -> _ProbeOutcome:
        jar_tool = self.host.jar_executable(java_exe.parent)
        if not jar_tool.is_file():
            return _ProbeOutcome(None, "neither a compiler nor an archiving tool is available")

        (scratch / f"{PROBE_CLASS_NAME}.class").write_bytes(build_probe_class())
        (scratch / "MANIFEST.MF").write_text(f"Main-Class: {PROBE_CLASS_NAME}\n\n", encoding="utf-8")
        archive = scratch / "verification.jar"

        try:
            archived = await run_process(
                [jar_tool, "cfm", archive.name, "MANIFEST.MF", f"{PROBE_CLASS_NAME}.class"],
                timeout=self.settings.functional_probe_timeout,
                cwd=scratch,
            )
        except OSError as exc:
            return _ProbeOutcome(None, f"archiving tool could not be started: {exc}")
        if archived.returncode != 0 or not archive.is_file():
            return _ProbeOutcome(None, "archiving tool failed to build the probe archive")

        return await self._run_probe([java_exe, "-jar", str(archive)], scratch)

    async def _run_probe(self, command: List, scratch: Path) -> _ProbeOutcome:
        try:
            result = await run_process(command, timeout=self.settings.functional_probe_timeout, cwd=scratch)
        except OSError as exc:
            return _ProbeOutcome(False, f"Java could not be started: {exc}")
        if result.stdout.strip() != PROBE_EXPECTED_OUTPUT:
            return _ProbeOutcome(False, "probe program printed unexpected output")
        return _ProbeOutcome(True)
