"""Pytest configuration and shared fixtures."""

from pathlib import Path
from typing import Callable, Optional

import pytest

from neolauncher.settings import DiscoverySettings
from tests.helpers import GENUINE_JAVA, SUCCESS_TOOL, FakeHost, write_script


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def scratch_root(tmp_path) -> Path:
    root = tmp_path / "scratch"
    root.mkdir()
    return root


@pytest.fixture
def settings(scratch_root) -> DiscoverySettings:
    return DiscoverySettings(process_timeout=5.0, functional_probe_timeout=5.0, scratch_root=scratch_root)


@pytest.fixture
def make_java(tmp_path) -> Callable[..., Path]:
    """Create a fake Java home and return its ``bin`` directory."""

    def factory(
        name: str = "jdk-21",
        version: str = "21.0.1",
        java: str = GENUINE_JAVA,
        javac: Optional[str] = SUCCESS_TOOL,
        jar: Optional[str] = None,
        release: Optional[str] = None,
        executable: bool = True,
    ) -> Path:
        home = tmp_path / "jvms" / name
        bin_dir = home / "bin"
        write_script(bin_dir / "java", java.replace("{version}", version), executable=executable)
        if javac is not None:
            write_script(bin_dir / "javac", javac)
        if jar is not None:
            write_script(bin_dir / "jar", jar)
        if release is not None:
            (home / "release").write_text(release, encoding="utf-8")
        return bin_dir

    return factory
