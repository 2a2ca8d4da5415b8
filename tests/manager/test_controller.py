"""
Tests for the managed executable lifecycle.

The install pipeline runs end to end against mocked HTTP endpoints serving
real archives; the installed "executable" is a shell script that reports a
version, so these tests are POSIX-only.
"""

import json
import os
import subprocess
import threading
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
import responses

from binkeeper.config.parser import ManagerConfig, ToolSpec
from binkeeper.core.exceptions import (
    AssetNotFoundError,
    ConfigurationError,
    DownloadError,
    ExtractionError,
    InstallError,
    LocatorError,
    OperationCancelled,
    UnsupportedPlatformError,
)
from binkeeper.core.locking import LockTimeout
from binkeeper.core.platform import PlatformInfo
from binkeeper.manager.controller import (
    CliManager,
    LifecycleState,
    ManagedArtifact,
    query_version,
)

pytestmark = pytest.mark.skipif(os.name == "nt", reason="uses POSIX shell scripts")

RELEASES_URL = "https://api.example.com/repos/owner/typmark/releases/latest"
ASSET_BASE = "https://github.example.com/owner/typmark/releases/download"
CDN_BASE = "https://objects.example.com/release-assets"
LINUX_ASSET = "typmark-cli-x86_64-unknown-linux-gnu.tar.gz"
WINDOWS_ASSET = "typmark-cli-x86_64-pc-windows-msvc.zip"


def release_payload(tag, asset_names):
    return {
        "tag_name": tag,
        "assets": [
            {"name": name, "browser_download_url": f"{ASSET_BASE}/{tag}/{name}"}
            for name in asset_names
        ],
    }


@pytest.fixture
def config(storage_dir):
    return ManagerConfig(storage_dir=storage_dir, tool=ToolSpec(releases_url=RELEASES_URL))


@pytest.fixture
def linux_manager(config, linux_platform):
    def make(**kwargs):
        return CliManager(config, platform=linux_platform, **kwargs)

    return make


@pytest.fixture
def serve_release(tar_gz_bytes, tool_script):
    """Register the release endpoint and a redirected asset download."""

    def serve(rsps, tag="v0.3.1", files=None, asset_names=(LINUX_ASSET, WINDOWS_ASSET)):
        if files is None:
            files = {f"typmark-cli-{tag}/typmark-cli": tool_script(tag.lstrip("v"))}
        rsps.add(
            responses.GET,
            RELEASES_URL,
            body=json.dumps(release_payload(tag, asset_names)),
            status=200,
        )
        rsps.add(
            responses.GET,
            f"{ASSET_BASE}/{tag}/{LINUX_ASSET}",
            status=302,
            headers={"Location": f"{CDN_BASE}/{LINUX_ASSET}"},
        )
        rsps.add(responses.GET, f"{CDN_BASE}/{LINUX_ASSET}", body=tar_gz_bytes(files), status=200)

    return serve


def leftover_scratch(storage_dir: Path):
    return [p.name for p in storage_dir.iterdir() if p.name.startswith("tmp-")]


class TestResolve:
    """Test path resolution."""

    def test_explicit_path_is_unmanaged(self, storage_dir, linux_platform):
        """Test an explicit cli_path bypasses storage and the network."""
        config = ManagerConfig(cli_path="  /opt/typmark/typmark-cli ", storage_dir=storage_dir)
        manager = CliManager(config, platform=linux_platform)

        with responses.RequestsMock():
            artifact = manager.ensure()

        assert artifact == ManagedArtifact(Path("/opt/typmark/typmark-cli"), managed=False)
        assert manager.state == LifecycleState.READY
        assert not storage_dir.exists()

    def test_managed_path(self, linux_manager, storage_dir):
        artifact = linux_manager().resolve()

        assert artifact.managed is True
        assert artifact.path == (storage_dir / "typmark-cli").absolute()
        assert storage_dir.is_dir()

    def test_windows_path_has_exe(self, config, storage_dir):
        manager = CliManager(config, platform=PlatformInfo("windows", "x64"))
        assert manager.resolve().path.name == "typmark-cli.exe"

    def test_resolve_is_cached(self, linux_manager):
        manager = linux_manager()
        assert manager.resolve() is manager.resolve()

    def test_unsupported_platform(self, config):
        manager = CliManager(config, platform=PlatformInfo("plan9", "mips"))

        with pytest.raises(UnsupportedPlatformError):
            manager.ensure()

        assert manager.state == LifecycleState.FAILED


class TestEnsureInstall:
    """Test ensure() when the executable is missing."""

    def test_installs_latest_release(self, linux_manager, storage_dir, serve_release):
        """Test the full fetch, download, extract, locate, install pipeline."""
        manager = linux_manager()

        with responses.RequestsMock() as rsps:
            serve_release(rsps, tag="v0.3.1")
            artifact = manager.ensure()

        assert manager.state == LifecycleState.READY
        assert artifact.path.is_file()
        assert os.access(artifact.path, os.X_OK)
        assert query_version(artifact.path) == "0.3.1"
        assert leftover_scratch(storage_dir) == []
        # Nothing else leaks into storage (archive stays in scratch space)
        assert sorted(p.name for p in storage_dir.iterdir()) == ["lock", "typmark-cli"]

    def test_no_matching_asset(self, linux_manager, storage_dir):
        """Test a release without this platform's asset fails cleanly."""
        manager = linux_manager()

        with responses.RequestsMock() as rsps:
            rsps.add(
                responses.GET,
                RELEASES_URL,
                json=release_payload("v0.3.1", [WINDOWS_ASSET]),
            )
            with pytest.raises(AssetNotFoundError) as exc_info:
                manager.ensure()

        assert WINDOWS_ASSET in exc_info.value.available
        assert manager.state == LifecycleState.FAILED
        assert not (storage_dir / "typmark-cli").exists()
        assert leftover_scratch(storage_dir) == []

    def test_download_failure(self, linux_manager, storage_dir):
        manager = linux_manager()

        with responses.RequestsMock() as rsps:
            rsps.add(responses.GET, RELEASES_URL, json=release_payload("v0.3.1", [LINUX_ASSET]))
            rsps.add(responses.GET, f"{ASSET_BASE}/v0.3.1/{LINUX_ASSET}", status=404)
            with pytest.raises(DownloadError):
                manager.ensure()

        assert manager.state == LifecycleState.FAILED
        assert not (storage_dir / "typmark-cli").exists()
        assert leftover_scratch(storage_dir) == []

    def test_corrupt_archive(self, linux_manager, storage_dir):
        manager = linux_manager()

        with responses.RequestsMock() as rsps:
            rsps.add(responses.GET, RELEASES_URL, json=release_payload("v0.3.1", [LINUX_ASSET]))
            rsps.add(
                responses.GET, f"{ASSET_BASE}/v0.3.1/{LINUX_ASSET}", body=b"not an archive"
            )
            with pytest.raises(ExtractionError):
                manager.ensure()

        assert leftover_scratch(storage_dir) == []

    def test_archive_without_executable(self, linux_manager, storage_dir, serve_release):
        manager = linux_manager()

        with responses.RequestsMock() as rsps:
            serve_release(rsps, files={"docs/README.md": "readme"})
            with pytest.raises(LocatorError, match="not found"):
                manager.ensure()

        assert not (storage_dir / "typmark-cli").exists()
        assert leftover_scratch(storage_dir) == []

    def test_cancelled(self, linux_manager, storage_dir):
        cancel = threading.Event()
        cancel.set()
        manager = linux_manager(cancel_event=cancel)

        with responses.RequestsMock():
            with pytest.raises(OperationCancelled):
                manager.ensure()

        assert manager.state == LifecycleState.FAILED

    def test_invalid_content_length(self, linux_manager, storage_dir, tar_gz_bytes, tool_script):
        """Test an unparsable content-length doesn't break the install."""
        manager = linux_manager(progress_callback=lambda progress: None)

        with responses.RequestsMock() as rsps:
            rsps.add(responses.GET, RELEASES_URL, json=release_payload("v0.3.1", [LINUX_ASSET]))
            rsps.add(
                responses.GET,
                f"{ASSET_BASE}/v0.3.1/{LINUX_ASSET}",
                body=tar_gz_bytes({"typmark-cli": tool_script("0.3.1")}),
                headers={"content-length": "bogus"},
            )
            artifact = manager.ensure()

        assert manager.state == LifecycleState.READY
        assert query_version(artifact.path) == "0.3.1"

    def test_scratch_creation_failure(self, linux_manager, storage_dir):
        """Test an unwritable storage directory fails with a typed error."""
        manager = linux_manager()

        with responses.RequestsMock() as rsps:
            rsps.add(responses.GET, RELEASES_URL, json=release_payload("v0.3.1", [LINUX_ASSET]))
            with patch(
                "binkeeper.core.filesystem.tempfile.mkdtemp",
                side_effect=PermissionError(13, "Permission denied"),
            ):
                with pytest.raises(InstallError, match="scratch directory"):
                    manager.ensure()

        assert manager.state == LifecycleState.FAILED
        assert not (storage_dir / "typmark-cli").exists()

    def test_lock_directory_failure(self, linux_manager, storage_dir):
        """Test a storage directory that can't hold locks is a configuration error."""
        storage_dir.mkdir()
        (storage_dir / "lock").write_text("not a directory")
        manager = linux_manager()

        with pytest.raises(ConfigurationError, match="lock directory"):
            manager.ensure()

        assert manager.state == LifecycleState.FAILED

    def test_lock_timeout_is_install_error(self, linux_manager):
        manager = linux_manager()
        manager.resolve()
        manager._lock_manager.install_lock = Mock(side_effect=LockTimeout("install.lock"))

        with pytest.raises(InstallError, match="still running"):
            manager.ensure()


class TestEnsureExisting:
    """Test ensure() when the executable is already installed."""

    def test_present_without_auto_update(
        self, linux_manager, storage_dir, write_executable, tool_script
    ):
        """Test no network access happens when auto_update is off."""
        exe = write_executable(storage_dir / "typmark-cli", tool_script("0.1.0"))
        manager = linux_manager()

        with responses.RequestsMock():
            artifact = manager.ensure()

        assert artifact.path == exe.absolute()
        assert query_version(exe) == "0.1.0"
        assert manager.state == LifecycleState.READY

    def test_up_to_date(self, config, linux_platform, storage_dir, write_executable, tool_script):
        """Test equal versions only cost the release lookup."""
        config.auto_update = True
        exe = write_executable(storage_dir / "typmark-cli", tool_script("0.3.1"))
        original = exe.read_text()
        states = []
        manager = CliManager(config, platform=linux_platform)

        with responses.RequestsMock() as rsps:
            rsps.add(responses.GET, RELEASES_URL, json=release_payload("v0.3.1", [LINUX_ASSET]))
            with patch.object(
                manager, "_transition", side_effect=lambda s: states.append(s)
            ):
                manager.ensure()
            assert len(rsps.calls) == 1

        assert LifecycleState.UP_TO_DATE in states
        assert LifecycleState.INSTALLING not in states
        assert exe.read_text() == original

    def test_auto_mode_updates(
        self, config, linux_platform, storage_dir, write_executable, tool_script, serve_release
    ):
        config.auto_update = True
        config.update_mode = "auto"
        exe = write_executable(storage_dir / "typmark-cli", tool_script("0.2.0"))
        manager = CliManager(config, platform=linux_platform)

        with responses.RequestsMock() as rsps:
            serve_release(rsps, tag="v0.3.1")
            manager.ensure()

        assert query_version(exe) == "0.3.1"
        assert manager.state == LifecycleState.READY

    def test_prompt_accepted(
        self, config, linux_platform, storage_dir, write_executable, tool_script, serve_release
    ):
        config.auto_update = True
        exe = write_executable(storage_dir / "typmark-cli", tool_script("0.2.0"))
        decide = Mock(return_value=True)
        manager = CliManager(config, platform=linux_platform, decide_update=decide)

        with responses.RequestsMock() as rsps:
            serve_release(rsps, tag="v0.3.1")
            manager.ensure()

        decide.assert_called_once_with("0.2.0", "0.3.1")
        assert query_version(exe) == "0.3.1"

    def test_prompt_declined(
        self, config, linux_platform, storage_dir, write_executable, tool_script
    ):
        """Test declining keeps the existing executable."""
        config.auto_update = True
        exe = write_executable(storage_dir / "typmark-cli", tool_script("0.2.0"))
        decide = Mock(return_value=False)
        manager = CliManager(config, platform=linux_platform, decide_update=decide)

        with responses.RequestsMock() as rsps:
            rsps.add(responses.GET, RELEASES_URL, json=release_payload("v0.3.1", [LINUX_ASSET]))
            artifact = manager.ensure()

        decide.assert_called_once_with("0.2.0", "0.3.1")
        assert artifact.path == exe.absolute()
        assert query_version(exe) == "0.2.0"
        assert manager.state == LifecycleState.READY

    def test_prompt_without_callback_declines(
        self, config, linux_platform, storage_dir, write_executable, tool_script
    ):
        config.auto_update = True
        exe = write_executable(storage_dir / "typmark-cli", tool_script("0.2.0"))
        manager = CliManager(config, platform=linux_platform)

        with responses.RequestsMock() as rsps:
            rsps.add(responses.GET, RELEASES_URL, json=release_payload("v0.3.1", [LINUX_ASSET]))
            manager.ensure()

        assert query_version(exe) == "0.2.0"

    def test_failed_update_keeps_existing(
        self, config, linux_platform, storage_dir, write_executable, tool_script
    ):
        """Test a broken download leaves the previous executable in place."""
        config.auto_update = True
        config.update_mode = "auto"
        exe = write_executable(storage_dir / "typmark-cli", tool_script("0.2.0"))
        manager = CliManager(config, platform=linux_platform)

        with responses.RequestsMock() as rsps:
            rsps.add(responses.GET, RELEASES_URL, json=release_payload("v0.3.1", [LINUX_ASSET]))
            rsps.add(responses.GET, f"{ASSET_BASE}/v0.3.1/{LINUX_ASSET}", status=500)
            with pytest.raises(DownloadError):
                manager.ensure()

        assert query_version(exe) == "0.2.0"
        assert manager.state == LifecycleState.FAILED


class TestUpdate:
    """Test update() and check_for_update()."""

    def test_update_reinstalls(
        self, linux_manager, storage_dir, write_executable, tool_script, serve_release
    ):
        exe = write_executable(storage_dir / "typmark-cli", tool_script("0.3.1"))
        manager = linux_manager()

        with responses.RequestsMock() as rsps:
            serve_release(rsps, tag="v0.4.0")
            manager.update()

        assert query_version(exe) == "0.4.0"

    def test_update_unmanaged(self, storage_dir, linux_platform):
        config = ManagerConfig(cli_path="/usr/local/bin/typmark-cli", storage_dir=storage_dir)
        manager = CliManager(config, platform=linux_platform)

        with pytest.raises(ConfigurationError, match="not managed"):
            manager.update()

    def test_check_for_update(self, linux_manager, storage_dir, write_executable, tool_script):
        write_executable(storage_dir / "typmark-cli", tool_script("0.2.0"))
        manager = linux_manager()

        with responses.RequestsMock() as rsps:
            rsps.add(responses.GET, RELEASES_URL, json=release_payload("v0.3.1", [LINUX_ASSET]))
            update = manager.check_for_update()

        assert update.current_version == "0.2.0"
        assert update.latest_version == "0.3.1"
        assert update.release.tag == "v0.3.1"

    def test_check_for_update_when_current(
        self, linux_manager, storage_dir, write_executable, tool_script
    ):
        write_executable(storage_dir / "typmark-cli", tool_script("0.3.1"))
        manager = linux_manager()

        with responses.RequestsMock() as rsps:
            rsps.add(responses.GET, RELEASES_URL, json=release_payload("0.3.1", [LINUX_ASSET]))
            assert manager.check_for_update() is None

    def test_missing_executable_has_unknown_version(self, linux_manager):
        manager = linux_manager()

        with responses.RequestsMock() as rsps:
            rsps.add(responses.GET, RELEASES_URL, json=release_payload("v0.3.1", [LINUX_ASSET]))
            update = manager.check_for_update()

        assert update.current_version == ""
        assert manager.local_version() == ""


class TestQueryVersion:
    """Test query_version function."""

    def _completed(self, stdout="", returncode=0):
        return subprocess.CompletedProcess(
            args=["typmark-cli", "--version"], returncode=returncode, stdout=stdout, stderr=""
        )

    @pytest.mark.parametrize(
        "stdout, expected",
        [
            ("typmark-cli v1.2.3\n", "1.2.3"),
            ("0.3.1", "0.3.1"),
            ("\n\n  typmark 0.3.1  \nbuilt 2024-01-01\n", "0.3.1"),
            ("", ""),
        ],
    )
    def test_parse_output(self, stdout, expected):
        with patch("subprocess.run", return_value=self._completed(stdout)) as mock_run:
            assert query_version(Path("/bin/typmark-cli")) == expected

        assert mock_run.call_args[0][0] == ["/bin/typmark-cli", "--version"]

    def test_nonzero_exit_still_reads_output(self):
        """Test a version printed before a failing exit is still used."""
        with patch("subprocess.run", return_value=self._completed("1.0.0", returncode=2)):
            assert query_version(Path("/bin/typmark-cli")) == "1.0.0"

    def test_nonzero_exit_without_output(self):
        with patch("subprocess.run", return_value=self._completed("", returncode=1)):
            assert query_version(Path("/bin/typmark-cli")) == ""

    def test_missing_executable(self, tmp_path):
        assert query_version(tmp_path / "does-not-exist") == ""

    def test_timeout(self):
        with patch(
            "subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="typmark-cli", timeout=10),
        ):
            assert query_version(Path("/bin/typmark-cli")) == ""

    def test_custom_version_arg(self):
        with patch("subprocess.run", return_value=self._completed("2.0")) as mock_run:
            query_version(Path("/bin/tool"), version_arg="-V")

        assert mock_run.call_args[0][0] == ["/bin/tool", "-V"]
