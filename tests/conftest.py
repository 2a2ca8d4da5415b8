"""
Pytest configuration and shared fixtures for BinKeeper tests.
"""

import io
import json
import stat
import tarfile
import zipfile
from pathlib import Path
from typing import Callable, Dict, List, Union

import pytest

from binkeeper.core.platform import PlatformInfo, clear_platform_cache

DOWNLOAD_BASE = "https://github.example.com/owner/typmark/releases/download"

LINUX_SUFFIX = "x86_64-unknown-linux-gnu.tar.gz"
MAC_ARM_SUFFIX = "aarch64-apple-darwin.tar.gz"
WINDOWS_SUFFIX = "x86_64-pc-windows-msvc.zip"


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run integration tests that require network access",
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --integration flag is provided."""
    if not config.getoption("--integration"):
        skip_integration = pytest.mark.skip(reason="need --integration option to run")
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (requires --integration)",
    )


# ============================================================================
# Shared Test Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def _reset_platform_cache():
    """Platform detection is cached per process; isolate tests from it."""
    clear_platform_cache()
    yield
    clear_platform_cache()


@pytest.fixture
def storage_dir(tmp_path) -> Path:
    """Storage directory for managed executables (not created)."""
    return tmp_path / "storage"


@pytest.fixture
def linux_platform() -> PlatformInfo:
    return PlatformInfo(os="linux", arch="x64")


@pytest.fixture
def tool_script() -> Callable[[str], str]:
    """Factory for a POSIX shell script that prints a version line."""

    def make(version: str = "0.3.1") -> str:
        return f"#!/bin/sh\necho 'typmark-cli {version}'\n"

    return make


@pytest.fixture
def write_executable() -> Callable[[Path, str], Path]:
    """Factory writing an executable file."""

    def write(path: Path, content: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return write


@pytest.fixture
def tar_gz_bytes() -> Callable[[Dict[str, Union[str, bytes]]], bytes]:
    """Factory building an in-memory .tar.gz from {member path: content}."""

    def build(files: Dict[str, Union[str, bytes]]) -> bytes:
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
            for name, content in files.items():
                data = content.encode("utf-8") if isinstance(content, str) else content
                info = tarfile.TarInfo(name=name)
                info.size = len(data)
                info.mode = 0o755
                tar.addfile(info, io.BytesIO(data))
        return buffer.getvalue()

    return build


@pytest.fixture
def zip_bytes() -> Callable[[Dict[str, Union[str, bytes]]], bytes]:
    """Factory building an in-memory .zip from {member path: content}."""

    def build(files: Dict[str, Union[str, bytes]]) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            for name, content in files.items():
                zf.writestr(name, content)
        return buffer.getvalue()

    return build


@pytest.fixture
def release_json() -> Callable[..., str]:
    """Factory for a release metadata payload."""

    def build(tag: str = "v0.3.1", asset_names: List[str] = None) -> str:
        if asset_names is None:
            asset_names = [
                f"typmark-cli-{LINUX_SUFFIX}",
                f"typmark-cli-{MAC_ARM_SUFFIX}",
                f"typmark-cli-{WINDOWS_SUFFIX}",
            ]
        return json.dumps(
            {
                "tag_name": tag,
                "assets": [
                    {
                        "name": name,
                        "browser_download_url": f"{DOWNLOAD_BASE}/{tag}/{name}",
                    }
                    for name in asset_names
                ],
            }
        )

    return build

