"""Unit tests for Java authenticity verification."""

import asyncio
import struct
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from neolauncher.host import SignatureInfo
from neolauncher.inspector import RuntimeInspector
from neolauncher.runtime import JavaRuntime, Vendor
from neolauncher.settings import DiscoverySettings, TrustLevel
from neolauncher.verifier import (
    PROBE_CLASS_NAME,
    PROBE_EXPECTED_OUTPUT,
    JavaVerifier,
    build_probe_class,
    parse_vendor_info,
    vendor_from_signature,
)
from tests.helpers import (
    ARCHIVE_TOOL,
    DISGUISED_JAVA,
    FAILING_TOOL,
    SLOW_JAVA,
    posix_only,
    write_script,
)

TEMURIN_OUTPUT = """Property settings:
    java.vendor = Eclipse Adoptium
    java.version = 21.0.1

openjdk version "21.0.1" 2023-10-17 LTS
OpenJDK Runtime Environment Temurin-21.0.1+12 (build 21.0.1+12-LTS)
OpenJDK 64-Bit Server VM Temurin-21.0.1+12 (build 21.0.1+12-LTS, mixed mode, sharing)
"""

ORACLE_OUTPUT = """java version "1.8.0_351"
Java(TM) SE Runtime Environment (build 1.8.0_351-b10)
Java HotSpot(TM) 64-Bit Server VM (build 25.351-b10, mixed mode)
"""

ZULU_OUTPUT = """openjdk version "17.0.8" 2023-07-18 LTS
OpenJDK Runtime Environment Zulu17.44+15-CA (build 17.0.8+7-LTS)
OpenJDK 64-Bit Server VM Zulu17.44+15-CA (build 17.0.8+7-LTS, mixed mode, sharing)
"""

EARLY_ACCESS_OUTPUT = """openjdk version "23-ea" 2024-09-17
OpenJDK Runtime Environment (build 23-ea+25-1966)
OpenJDK 64-Bit Server VM (build 23-ea+25-1966, mixed mode, sharing)
"""

# Reports a version but nothing that identifies the vendor.
ANONYMOUS_JAVA = """#!/bin/sh
for arg in "$@"; do
  if [ "$arg" = "-version" ]; then
    echo 'java version "21.0.1"' >&2
    exit 0
  fi
done
echo JavaVerificationSuccess
"""

# Answers the metadata probe but never finishes the functional one.
HANGING_PROBE_JAVA = """#!/bin/sh
for arg in "$@"; do
  if [ "$arg" = "-version" ]; then
    echo 'openjdk version "21.0.1"' >&2
    exit 0
  fi
done
exec sleep 10
"""


def _runtime(bin_dir: Path) -> JavaRuntime:
    return JavaRuntime(
        directory_path=bin_dir,
        java_executable=bin_dir / "java",
        javaw_executable=bin_dir / "java",
    )


class TestVendorParsing:
    """Test vendor detection from java output."""

    def test_temurin(self):
        info = parse_vendor_info(TEMURIN_OUTPUT)

        assert info.vendor is Vendor.ADOPTIUM_ECLIPSE
        assert info.vendor_description == "Eclipse Adoptium"
        assert info.build_identifier == "21.0.1+12-LTS"
        assert not info.is_early_access

    def test_oracle(self):
        info = parse_vendor_info(ORACLE_OUTPUT)

        assert info.vendor is Vendor.ORACLE
        assert info.vendor_description == "Java(TM) SE Runtime Environment"
        assert info.build_identifier == "1.8.0_351-b10"

    def test_distribution_from_runtime_name(self):
        """OpenJDK builds are attributed by the distribution name."""
        assert parse_vendor_info(ZULU_OUTPUT).vendor is Vendor.AZUL

    def test_early_access_build(self):
        info = parse_vendor_info(EARLY_ACCESS_OUTPUT)

        assert info.vendor is Vendor.OPENJDK
        assert info.is_early_access
        assert info.build_identifier == "23-ea+25-1966"

    def test_unrecognised_output(self):
        assert parse_vendor_info("something else entirely").vendor is Vendor.UNKNOWN

    @pytest.mark.parametrize(
        "subject, expected",
        [
            ("CN=Oracle America, Inc., O=Oracle America, Inc.", Vendor.ORACLE),
            ("CN=Microsoft Corporation, O=Microsoft Corporation", Vendor.MICROSOFT),
            ("CN=Eclipse.org Foundation, Inc.", Vendor.ADOPTIUM_ECLIPSE),
            ("CN=Azul Systems, Inc.", Vendor.AZUL),
            ("CN=Somebody Else", Vendor.UNKNOWN),
        ],
    )
    def test_vendor_from_signature(self, subject, expected):
        assert vendor_from_signature(subject) is expected


class TestProbeClass:
    """Test the in-process class file used when javac is missing."""

    def test_header(self):
        data = build_probe_class()
        magic, minor, major = struct.unpack_from(">IHH", data)

        assert magic == 0xCAFEBABE
        assert minor == 0
        assert major == 52

    def test_contains_names_and_output(self):
        data = build_probe_class()

        assert PROBE_CLASS_NAME.encode() in data
        assert PROBE_EXPECTED_OUTPUT.encode() in data
        assert b"java/io/PrintStream" in data
        assert b"([Ljava/lang/String;)V" in data

    def test_constant_pool_count(self):
        (count,) = struct.unpack_from(">H", build_probe_class(), 8)
        assert count == 22


@posix_only
class TestJavaVerifier:
    """Test verification against fake Java installations."""

    @pytest.mark.asyncio
    async def test_genuine_java_with_compiler(self, host, settings, scratch_root, make_java):
        """A working JDK passes and its scratch directory is removed."""
        bin_dir = make_java()

        result = await JavaVerifier(host, settings).verify(_runtime(bin_dir))

        assert result.is_genuine
        assert result.fail_reason is None
        assert result.vendor is Vendor.ADOPTIUM_ECLIPSE
        assert result.build_identifier == "21.0.1+12-LTS"
        assert list(scratch_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_disguised_executable(self, host, settings, scratch_root, make_java):
        """Wrong probe output fails and the scratch directory is still removed."""
        bin_dir = make_java(name="fake", java=DISGUISED_JAVA)

        result = await JavaVerifier(host, settings).verify(_runtime(bin_dir))

        assert not result.is_genuine
        assert "disguised" in result.fail_reason
        assert list(scratch_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_compile_failure(self, host, settings, scratch_root, make_java):
        bin_dir = make_java(name="broken-javac", javac=FAILING_TOOL)

        result = await JavaVerifier(host, settings).verify(_runtime(bin_dir))

        assert not result.is_genuine
        assert "compiler" in result.fail_reason
        assert list(scratch_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_runtime_only_install_uses_archive(self, host, settings, scratch_root, make_java):
        """Without javac the probe is archived with jar and run with -jar."""
        bin_dir = make_java(name="jre", javac=None, jar=ARCHIVE_TOOL)

        result = await JavaVerifier(host, settings).verify(_runtime(bin_dir))

        assert result.is_genuine
        assert list(scratch_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_missing_tools_lenient(self, host, settings, make_java):
        """A runtime with neither javac nor jar is trusted by default."""
        bin_dir = make_java(name="minimal", javac=None)

        result = await JavaVerifier(host, settings).verify(_runtime(bin_dir))

        assert result.is_genuine
        assert result.vendor is Vendor.ADOPTIUM_ECLIPSE

    @pytest.mark.asyncio
    async def test_missing_tools_strict(self, host, scratch_root, make_java):
        """The strict trust level fails inconclusive checks."""
        bin_dir = make_java(name="minimal", javac=None)
        settings = DiscoverySettings(trust_level=TrustLevel.STRICT, scratch_root=scratch_root)

        result = await JavaVerifier(host, settings).verify(_runtime(bin_dir))

        assert not result.is_genuine
        assert "could not be verified" in result.fail_reason
        assert list(scratch_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_metadata_timeout(self, host, scratch_root, make_java):
        bin_dir = make_java(name="slow", java=SLOW_JAVA)
        lenient = DiscoverySettings(process_timeout=0.2, scratch_root=scratch_root)
        strict = DiscoverySettings(process_timeout=0.2, scratch_root=scratch_root, trust_level=TrustLevel.STRICT)

        assert (await JavaVerifier(host, lenient).verify(_runtime(bin_dir))).is_genuine
        assert not (await JavaVerifier(host, strict).verify(_runtime(bin_dir))).is_genuine

    @pytest.mark.asyncio
    async def test_missing_executable(self, host, settings, tmp_path):
        result = await JavaVerifier(host, settings).verify(_runtime(tmp_path))

        assert not result.is_genuine
        assert "does not exist" in result.fail_reason

    @pytest.mark.asyncio
    async def test_not_executable(self, host, settings, make_java):
        bin_dir = make_java(name="stub", executable=False)

        result = await JavaVerifier(host, settings).verify(_runtime(bin_dir))

        assert not result.is_genuine
        assert "could not be started" in result.fail_reason

    @pytest.mark.asyncio
    async def test_invalid_signature(self, host, settings, make_java):
        """An invalid signature fails before anything is run."""
        bin_dir = make_java()
        signature = AsyncMock(return_value=SignatureInfo(status="HashMismatch"))

        with patch.object(host, "check_signature", signature), patch("neolauncher.verifier.run_process") as run:
            result = await JavaVerifier(host, settings).verify(_runtime(bin_dir))

        assert not result.is_genuine
        assert "HashMismatch" in result.fail_reason
        run.assert_not_called()

    @pytest.mark.asyncio
    async def test_signature_vendor_fallback(self, host, settings, make_java):
        """The signer names the vendor when the output does not."""
        bin_dir = make_java(name="anonymous", java=ANONYMOUS_JAVA)
        signature = AsyncMock(return_value=SignatureInfo(status="Valid", subject="CN=Microsoft Corporation"))

        with patch.object(host, "check_signature", signature):
            result = await JavaVerifier(host, settings).verify(_runtime(bin_dir))

        assert result.is_genuine
        assert result.vendor is Vendor.MICROSOFT

    @pytest.mark.asyncio
    async def test_cancellation_removes_scratch_directory(self, host, scratch_root, make_java):
        bin_dir = make_java(name="hangs", java=HANGING_PROBE_JAVA)
        settings = DiscoverySettings(functional_probe_timeout=30.0, scratch_root=scratch_root)

        task = asyncio.ensure_future(JavaVerifier(host, settings).verify(_runtime(bin_dir)))
        for _ in range(100):
            if any(scratch_root.iterdir()):
                break
            await asyncio.sleep(0.05)
        await asyncio.sleep(0.2)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert list(scratch_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_inspected_runtime_round_trip(self, host, settings, make_java):
        """Records produced by the inspector verify as expected."""
        bin_dir = make_java(release='IMPLEMENTOR="Eclipse Adoptium"\nJAVA_VERSION="21.0.1"\nOS_ARCH="x86_64"\n')

        runtime = await RuntimeInspector(host, settings).create(bin_dir)
        result = await JavaVerifier(host, settings).verify(runtime)

        assert result.is_genuine
