"""``docker-machine`` backed implementation of :class:`MachineDriver`."""
from __future__ import annotations

import asyncio
import logging
import re
import shutil
from pathlib import Path

from vmsetup.config import Config
from vmsetup.utils.process import CommandError, exec_command

from .driver import NOT_INSTALLED, MachineInfo, MachineState
from .virtualbox import VirtualBox

logger = logging.getLogger(__name__)

_ISO_NAME = "boot2docker.iso"
_ISO_HEADER_BYTES = 64 * 1024
_ISO_VERSION = re.compile(rb"Boot2Docker-v(\d+(?:\.\d+)+)")


def read_iso_version(path: Path) -> str | None:
    """Return the boot2docker version stamped in the ISO volume label."""

    try:
        with Path(path).open("rb") as handle:
            header = handle.read(_ISO_HEADER_BYTES)
    except OSError:
        return None
    match = _ISO_VERSION.search(header)
    return match.group(1).decode("ascii") if match else None


class DockerMachineDriver:
    """Drive the ``docker-machine`` CLI for the configured machine."""

    def __init__(
        self,
        config: Config,
        *,
        virtualbox: VirtualBox | None = None,
        executable: str | None = None,
    ) -> None:
        self.config = config
        self.virtualbox = virtualbox or VirtualBox(config.get("virtualbox_manage", "/usr/bin/VBoxManage"))
        self.executable = executable or shutil.which("docker-machine") or str(
            config.bin_dir() / "docker-machine"
        )

    def name(self) -> str:
        return str(self.config.get("machine_name"))

    def machine_dir(self) -> Path:
        return self.config.machine_dir()

    async def _machine(self, *args: str, timeout: float | None = None) -> str:
        return await exec_command([self.executable, *args], timeout=timeout)

    async def exists(self) -> bool:
        try:
            out = await self._machine("ls", "-q", timeout=30)
        except CommandError:
            logger.debug("docker-machine ls failed", exc_info=True)
            return False
        return self.name() in out.split()

    async def state(self) -> str:
        try:
            out = await self._machine("status", self.name(), timeout=30)
        except CommandError:
            return MachineState.ERROR.value
        return MachineState.parse(out).value

    async def create(self) -> None:
        driver = str(self.config.get("machine_driver", "virtualbox"))
        logger.info("Creating machine %s with driver %s", self.name(), driver)
        await self._machine("create", "-d", driver, self.name())

    async def rm(self) -> None:
        await self._machine("rm", "-f", self.name())

    async def start(self) -> None:
        await self._machine("start", self.name())

    async def stop(self) -> None:
        await self._machine("stop", self.name())

    async def upgrade(self) -> None:
        await self._machine("upgrade", self.name())

    async def info(self) -> MachineInfo:
        state = await self.state()
        url: str | None = None
        ip: str | None = None
        if state == MachineState.RUNNING:
            try:
                url = await self._machine("url", self.name(), timeout=30) or None
                ip = await self._machine("ip", self.name(), timeout=30) or None
            except CommandError:
                logger.warning("Could not read connection details for %s", self.name(), exc_info=True)
        return MachineInfo(name=self.name(), url=url, state=state, ip=ip)

    async def isoversion(self) -> str | None:
        return await asyncio.to_thread(read_iso_version, self.machine_dir() / _ISO_NAME)

    async def installed(self) -> bool:
        return self.virtualbox.installed()

    async def version(self) -> str:
        if not self.virtualbox.installed():
            return NOT_INSTALLED
        return await self.virtualbox.version()

    async def killall(self) -> None:
        await self.virtualbox.killall()

    async def destroy_vm(self, vm_name: str) -> None:
        await self.virtualbox.vmdestroy(vm_name)


__all__ = ["DockerMachineDriver", "read_iso_version"]
