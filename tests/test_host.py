"""Unit tests for host platform capabilities."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from neolauncher.host import (
    LinuxHost,
    MacHost,
    WindowsHost,
    detect_host,
    parse_signature_output,
)
from neolauncher.probes import UnixProbe, WindowsProbe
from neolauncher.process import ProcessOutput, ProcessTimeoutError
from neolauncher.runtime import Architecture, Compatibility
from neolauncher.settings import DiscoverySettings


class TestCompatibility:
    """Test which architectures a host runs."""

    def test_native_architecture_is_compatible(self):
        host = LinuxHost(architecture=Architecture.X64)
        assert host.compatibility_for(Architecture.X64) is Compatibility.YES

    def test_unknown_architecture_is_never_yes(self):
        """Unknown binaries are never reported as native."""
        host = LinuxHost(architecture=Architecture.UNKNOWN)
        assert host.compatibility_for(Architecture.UNKNOWN) is not Compatibility.YES

    def test_linux_rejects_foreign_architectures(self):
        host = LinuxHost(architecture=Architecture.X64)
        assert host.compatibility_for(Architecture.UNKNOWN) is Compatibility.NO
        assert host.compatibility_for(Architecture.ARM64) is Compatibility.NO
        assert host.compatibility_for(Architecture.X86) is Compatibility.NO

    def test_windows_runs_x86_under_translation(self):
        """32-bit and emulated x64 binaries run through a translation layer."""
        x64 = WindowsHost(architecture=Architecture.X64)
        arm = WindowsHost(architecture=Architecture.ARM64)

        assert x64.compatibility_for(Architecture.X86) is Compatibility.UNDER_TRANSLATION
        assert arm.compatibility_for(Architecture.X64) is Compatibility.UNDER_TRANSLATION
        assert x64.compatibility_for(Architecture.ARM64) is Compatibility.UNKNOWN

    def test_mac_runs_universal_binaries_and_rosetta(self):
        host = MacHost(architecture=Architecture.ARM64)

        assert host.compatibility_for(Architecture.FAT_FILE) is Compatibility.YES
        assert host.compatibility_for(Architecture.X64) is Compatibility.UNDER_TRANSLATION
        assert host.compatibility_for(Architecture.X86) is Compatibility.UNKNOWN


class TestExecutables:
    """Test executable naming per platform."""

    def test_windows_names(self):
        host = WindowsHost(architecture=Architecture.X64)
        directory = Path("C:/Java/bin")

        assert host.java_executable(directory) == directory / "java.exe"
        assert host.javaw_executable(directory) == directory / "javaw.exe"
        assert host.javac_executable(directory) == directory / "javac.exe"
        assert host.jar_executable(directory) == directory / "jar.exe"

    def test_unix_javaw_is_java(self):
        host = LinuxHost(architecture=Architecture.X64)
        directory = Path("/usr/lib/jvm/java-21/bin")

        assert host.javaw_executable(directory) == directory / "java"

    @pytest.mark.parametrize(
        "host, expected",
        [
            (WindowsHost(architecture=Architecture.X64), "windows-x64"),
            (WindowsHost(architecture=Architecture.X86), "windows-x86"),
            (LinuxHost(architecture=Architecture.X64), "linux"),
            (MacHost(architecture=Architecture.ARM64), "mac-os-arm64"),
            (LinuxHost(architecture=Architecture.ARM64), "unknown"),
        ],
    )
    def test_platform_id(self, host, expected):
        assert host.platform_id == expected


class TestProbeCreation:
    """Test the probes hosts hand out."""

    def test_linux_probe(self, tmp_path):
        settings = DiscoverySettings(unix_search_depth=3, extra_search_roots=(tmp_path,))
        probe = LinuxHost(architecture=Architecture.X64).create_probe(settings, environ={})

        assert isinstance(probe, UnixProbe)
        assert probe.max_depth == 3
        assert Path("/usr/lib/jvm") in probe.search_roots
        assert tmp_path in probe.search_roots

    def test_mac_probe_checks_bundles(self):
        probe = MacHost(architecture=Architecture.ARM64).create_probe(DiscoverySettings(), environ={})

        assert Path("/Library/Java/JavaVirtualMachines") in probe.bundle_roots
        assert Path("/usr/bin") in probe.direct_directories

    def test_windows_probe_uses_environment_roots(self, tmp_path):
        settings = DiscoverySettings(windows_search_terms=("java",))
        environ = {"LOCALAPPDATA": str(tmp_path), "PATH": ""}
        probe = WindowsHost(architecture=Architecture.X64).create_probe(settings, environ=environ)

        assert isinstance(probe, WindowsProbe)
        assert tmp_path in probe.roots
        assert probe.search_terms == ("java",)
        assert probe.executable_name == "javaw.exe"


class TestSignature:
    """Test code signature queries."""

    def test_parse_signature_output(self):
        output = "\r\nStatus  : Valid\r\nSubject : CN=Microsoft Corporation, O=Microsoft Corporation\r\n"

        info = parse_signature_output(output)

        assert info.is_valid
        assert info.subject == "CN=Microsoft Corporation, O=Microsoft Corporation"

    def test_parse_signature_output_without_status(self):
        assert parse_signature_output("") is None

    def test_parse_invalid_signature(self):
        info = parse_signature_output("Status : HashMismatch\nSubject :\n")
        assert not info.is_valid

    @pytest.mark.asyncio
    async def test_unix_hosts_have_no_signature(self, tmp_path):
        host = LinuxHost(architecture=Architecture.X64)
        assert await host.check_signature(tmp_path / "java", timeout=1) is None

    @pytest.mark.asyncio
    async def test_windows_signature_query(self):
        host = WindowsHost(architecture=Architecture.X64)
        output = ProcessOutput(returncode=0, stdout="Status : Valid\nSubject : CN=Oracle America, Inc.\n", stderr="")

        with patch("neolauncher.host.run_process", AsyncMock(return_value=output)) as run:
            info = await host.check_signature(Path("C:/Java/bin/java.exe"), timeout=5)

        assert info.is_valid
        assert "Oracle" in info.subject
        command = run.call_args.args[0]
        assert command[0] == "powershell.exe"
        assert "Get-AuthenticodeSignature" in command[-1]

    @pytest.mark.asyncio
    async def test_windows_signature_query_failure(self):
        """A failing query means no signature information, not a forgery."""
        host = WindowsHost(architecture=Architecture.X64)

        with patch("neolauncher.host.run_process", AsyncMock(side_effect=ProcessTimeoutError("slow"))):
            assert await host.check_signature(Path("C:/java.exe"), timeout=5) is None
        with patch("neolauncher.host.run_process", AsyncMock(side_effect=FileNotFoundError("powershell"))):
            assert await host.check_signature(Path("C:/java.exe"), timeout=5) is None


class TestDetectHost:
    """Test host selection."""

    @pytest.mark.parametrize(
        "system, expected",
        [("windows", WindowsHost), ("nt", WindowsHost), ("darwin", MacHost), ("linux", LinuxHost)],
    )
    def test_detect_host(self, system, expected):
        with patch("neolauncher.host.sys_platform", return_value=system):
            assert isinstance(detect_host(), expected)
