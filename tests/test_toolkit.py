from __future__ import annotations

import asyncio
import hashlib

import pytest
import requests

from vmsetup.provisioning import (
    ChecksumMismatchError,
    DownloadError,
    ProvisioningToolkit,
    checksum,
    compare_versions,
)


class _FakeResponse:
    def __init__(self, payload: bytes, *, status: int = 200, chunk: int = 4) -> None:
        self.payload = payload
        self.status = status
        self.chunk = chunk
        self.headers = {"Content-Length": str(len(payload))}

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self) -> None:
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self.payload), self.chunk):
            yield self.payload[start : start + self.chunk]


class _FakeSession:
    def __init__(self, response: _FakeResponse | None = None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.requested: list[str] = []

    def get(self, url, stream=False, timeout=None):
        self.requested.append(url)
        if self.error is not None:
            raise self.error
        return self.response


def test_compare_versions():
    assert compare_versions("1.6.2", "1.7.0") == -1
    assert compare_versions("v1.7.0", "1.7.0") == 0
    assert compare_versions("1.10.0", "1.9.3") == 1
    assert compare_versions("4.3.28r100309", "4.3.30") == -1


def test_checksum(tmp_path):
    target = tmp_path / "blob.bin"
    target.write_bytes(b"docker")
    assert checksum(target) == hashlib.sha256(b"docker").hexdigest()


async def test_download_reports_progress_and_verifies_checksum(config, tmp_path):
    payload = b"0123456789abcdef"
    session = _FakeSession(_FakeResponse(payload))
    toolkit = ProvisioningToolkit(config, session=session)
    destination = tmp_path / "support" / "VirtualBox.run"
    progress: list[float] = []

    result = await toolkit.download(
        "https://example.invalid/vbox",
        destination,
        hashlib.sha256(payload).hexdigest(),
        progress.append,
    )

    assert result == destination
    assert destination.read_bytes() == payload
    assert progress == [25, 50, 75, 100, 100]
    assert not destination.with_name("VirtualBox.run.download").exists()


async def test_download_reuses_matching_file(config, tmp_path):
    destination = tmp_path / "VirtualBox.run"
    destination.write_bytes(b"cached")
    session = _FakeSession(error=AssertionError("network should not be used"))
    toolkit = ProvisioningToolkit(config, session=session)
    progress: list[float] = []

    await toolkit.download("https://example.invalid/vbox", destination, checksum(destination), progress.append)

    assert session.requested == []
    assert progress == [100]


async def test_download_checksum_mismatch(config, tmp_path):
    session = _FakeSession(_FakeResponse(b"tampered"))
    toolkit = ProvisioningToolkit(config, session=session)
    destination = tmp_path / "VirtualBox.run"

    with pytest.raises(ChecksumMismatchError) as excinfo:
        await toolkit.download("https://example.invalid/vbox", destination, "0" * 64, lambda _: None)

    assert excinfo.value.expected == "0" * 64
    assert not destination.exists()
    assert not destination.with_name("VirtualBox.run.download").exists()


async def test_download_wraps_request_errors(config, tmp_path):
    session = _FakeSession(error=requests.ConnectionError("offline"))
    toolkit = ProvisioningToolkit(config, session=session)

    with pytest.raises(DownloadError):
        await toolkit.download("https://example.invalid/vbox", tmp_path / "vbox.run", None, lambda _: None)


def test_installer_validity(config):
    toolkit = ProvisioningToolkit(config, session=_FakeSession())
    assert toolkit.installer_is_valid() is False

    installer = config.installer_path()
    installer.parent.mkdir(parents=True, exist_ok=True)
    installer.write_bytes(b"installer")
    assert toolkit.installer_is_valid() is True

    config.set("virtualbox_checksum", "f" * 64)
    assert toolkit.installer_is_valid() is False


def test_virtualbox_url_uses_version_and_filename(config):
    toolkit = ProvisioningToolkit(config, session=_FakeSession())
    url = toolkit.virtualbox_url()
    assert "/4.3.28/" in url
    assert url.endswith(config.get("virtualbox_filename"))


def test_privileged_commands_per_platform(config):
    linux = ProvisioningToolkit(config, session=_FakeSession(), platform="linux")
    mac = ProvisioningToolkit(config, session=_FakeSession(), platform="darwin")

    assert linux.sudo_cmd("echo hi") == "pkexec sh -c 'echo hi'"
    assert "with administrator privileges" in mac.sudo_cmd('echo "hi"')
    assert mac.install_virtualbox_cmd().startswith("hdiutil attach")
    assert linux.install_virtualbox_cmd().endswith("--nox11")


def test_binary_commands_reference_configured_paths(config, tmp_path):
    toolkit = ProvisioningToolkit(config, session=_FakeSession())
    copy = toolkit.copy_binaries_cmd()

    assert f"mkdir -p {tmp_path / 'bin'}" in copy
    assert "docker-machine" in copy
    assert "chmod +x" in toolkit.fix_binaries_cmd()


def test_binary_update_detection(config):
    toolkit = ProvisioningToolkit(config, session=_FakeSession())
    resources = config.resources_dir()
    resources.mkdir(parents=True)
    (resources / "docker").write_bytes(b"v2")

    assert toolkit.should_update_binaries() is True

    bin_dir = config.bin_dir()
    bin_dir.mkdir(parents=True)
    (bin_dir / "docker").write_bytes(b"v2")
    assert toolkit.should_update_binaries() is False
    assert toolkit.needs_binary_fix() is False


async def test_simulated_progress_stops_below_completion(config):
    toolkit = ProvisioningToolkit(config, session=_FakeSession())
    progress: list[float] = []

    task = toolkit.simulate_progress(0.05, progress.append, interval=0.01)
    await asyncio.wait_for(task, timeout=2)

    assert progress
    assert progress == sorted(progress)
    assert progress[-1] == 99
