"""Download, checksum and installer command helpers used by setup steps."""
from __future__ import annotations

import asyncio
import getpass
import hashlib
import logging
import os
import re
import shlex
import sys
from pathlib import Path
from typing import Any, Callable, Sequence

import requests
from packaging.version import InvalidVersion, Version

from vmsetup.config import Config
from vmsetup.utils.process import exec_shell

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

_CHUNK_SIZE = 1 << 16
_VERSION_PARTS = re.compile(r"\d+")


class DownloadError(RuntimeError):
    """Raised when an installer download fails."""


class ChecksumMismatchError(DownloadError):
    """Raised when a downloaded file does not match its expected checksum."""

    def __init__(self, path: Path, expected: str, actual: str) -> None:
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(f"Checksum mismatch for {path.name}: expected {expected}, got {actual}")


def compare_versions(left: str, right: str) -> int:
    """Return ``-1``, ``0`` or ``1`` comparing two version strings."""

    try:
        a: Any = Version(left.strip().lstrip("vV"))
        b: Any = Version(right.strip().lstrip("vV"))
    except InvalidVersion:
        a = tuple(int(part) for part in _VERSION_PARTS.findall(left))
        b = tuple(int(part) for part in _VERSION_PARTS.findall(right))
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def checksum(path: Path) -> str:
    """Return the hex SHA-256 digest of *path*."""

    digest = hashlib.sha256()
    with Path(path).open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _shell_join(parts: Sequence[str]) -> str:
    return " && ".join(part for part in parts if part)


class ProvisioningToolkit:
    """Helpers for the provisioning steps bound to the active configuration."""

    def __init__(
        self,
        config: Config,
        *,
        session: requests.Session | None = None,
        platform: str | None = None,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()
        self.platform = platform or sys.platform

    # --- versions / checksums ------------------------------------------
    compare_versions = staticmethod(compare_versions)
    checksum = staticmethod(checksum)

    def installer_is_valid(self) -> bool:
        """Return ``True`` when the downloaded installer exists and matches its checksum."""

        path = self.config.installer_path()
        if not path.exists():
            return False
        expected = str(self.config.get("virtualbox_checksum") or "")
        if not expected:
            return True
        return checksum(path) == expected

    # --- download ------------------------------------------------------
    def virtualbox_url(self) -> str:
        return self.config.virtualbox_url()

    async def download(
        self,
        url: str,
        destination: Path,
        expected_checksum: str | None,
        progress: ProgressCallback,
    ) -> Path:
        """Download *url* to *destination*, reporting percent complete.

        An existing file with a matching checksum is reused. The transfer runs
        in a worker thread; *progress* is always invoked on the event loop.
        """

        destination = Path(destination)
        if expected_checksum and destination.exists():
            actual = await asyncio.to_thread(checksum, destination)
            if actual == expected_checksum:
                progress(100)
                return destination

        loop = asyncio.get_running_loop()

        def _report(percent: float) -> None:
            loop.call_soon_threadsafe(progress, percent)

        partial = destination.with_name(destination.name + ".download")
        await asyncio.to_thread(self._fetch, url, partial, _report)
        if expected_checksum:
            actual = await asyncio.to_thread(checksum, partial)
            if actual != expected_checksum:
                partial.unlink(missing_ok=True)
                raise ChecksumMismatchError(destination, expected_checksum, actual)
        os.replace(partial, destination)
        progress(100)
        return destination

    def _fetch(self, url: str, target: Path, report: ProgressCallback) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Downloading %s", url)
        try:
            with self.session.get(url, stream=True, timeout=30) as response:
                response.raise_for_status()
                total = int(response.headers.get("Content-Length") or 0)
                received = 0
                last = -1
                with target.open("wb") as handle:
                    for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                        if not chunk:
                            continue
                        handle.write(chunk)
                        received += len(chunk)
                        if total:
                            percent = min(int(received * 100 / total), 100)
                            if percent != last:
                                last = percent
                                report(percent)
        except requests.RequestException as exc:
            target.unlink(missing_ok=True)
            raise DownloadError(f"Failed to download {url}: {exc}") from exc

    # --- binaries ------------------------------------------------------
    def _binary_pairs(self) -> list[tuple[Path, Path]]:
        resources = self.config.resources_dir()
        bin_dir = self.config.bin_dir()
        return [
            (resources / name, bin_dir / name)
            for name in self.config.get("binaries", [])
        ]

    def copy_binaries_cmd(self) -> str:
        bin_dir = self.config.bin_dir()
        parts = [f"mkdir -p {shlex.quote(str(bin_dir))}"]
        for source, target in self._binary_pairs():
            parts.append(f"cp -f {shlex.quote(str(source))} {shlex.quote(str(target))}")
        return _shell_join(parts)

    def fix_binaries_cmd(self) -> str:
        user = getpass.getuser()
        targets = " ".join(shlex.quote(str(target)) for _, target in self._binary_pairs())
        bin_dir = shlex.quote(str(self.config.bin_dir()))
        return _shell_join(
            [
                f"chown {shlex.quote(user)} {bin_dir}",
                f"chown {shlex.quote(user)} {targets}" if targets else "",
                f"chmod +x {targets}" if targets else "",
            ]
        )

    def install_virtualbox_cmd(self) -> str:
        installer = shlex.quote(str(self.config.installer_path()))
        if self.platform == "darwin":
            volume = "/Volumes/VirtualBox"
            return _shell_join(
                [
                    f"hdiutil attach {installer} -mountpoint {volume} -nobrowse",
                    f"installer -pkg {volume}/VirtualBox.pkg -target /",
                    f"hdiutil detach {volume}",
                ]
            )
        return f"sh {installer} --nox11"

    def sudo_cmd(self, command: str) -> str:
        """Wrap *command* so it runs with administrator privileges."""

        if self.platform == "darwin":
            escaped = command.replace("\\", "\\\\").replace('"', '\\"')
            script = f'do shell script "{escaped}" with administrator privileges'
            return f"/usr/bin/osascript -e {shlex.quote(script)}"
        return f"pkexec sh -c {shlex.quote(command)}"

    def needs_binary_fix(self) -> bool:
        """Return ``True`` when installed binaries are not writable by the current user."""

        bin_dir = self.config.bin_dir()
        if bin_dir.exists() and not os.access(bin_dir, os.W_OK):
            return True
        for _, target in self._binary_pairs():
            if target.exists() and not os.access(target, os.W_OK):
                return True
        return False

    def should_update_binaries(self) -> bool:
        """Return ``True`` when a bundled binary is missing or differs from the installed one."""

        for source, target in self._binary_pairs():
            if not source.exists():
                continue
            if not target.exists():
                return True
            if checksum(source) != checksum(target):
                return True
        return False

    async def run(self, command: str) -> str:
        """Execute a shell *command* built by this toolkit."""

        return await exec_shell(command)

    # --- progress ------------------------------------------------------
    def simulate_progress(
        self,
        seconds: float,
        progress: ProgressCallback,
        *,
        interval: float = 0.5,
    ) -> asyncio.Task[None]:
        """Report time-based progress up to 99 percent over *seconds*.

        The returned task runs until cancelled by the caller.
        """

        async def _tick() -> None:
            loop = asyncio.get_running_loop()
            started = loop.time()
            while True:
                await asyncio.sleep(interval)
                elapsed = loop.time() - started
                percent = min(elapsed / max(seconds, 0.001) * 100, 99)
                progress(percent)
                if percent >= 99:
                    return

        return asyncio.get_running_loop().create_task(_tick())


__all__ = [
    "ChecksumMismatchError",
    "DownloadError",
    "ProgressCallback",
    "ProvisioningToolkit",
    "checksum",
    "compare_versions",
]
