"""Helpers wrapping the ``VBoxManage`` command line tool."""
from __future__ import annotations

import logging
import shutil
from pathlib import Path

import psutil

from vmsetup.utils.process import CommandError, exec_command, run_command_async

from .driver import NOT_INSTALLED

logger = logging.getLogger(__name__)

_PROCESS_NAMES = ("VirtualBox", "VBoxHeadless", "VBoxNetDHCP", "VBoxNetNAT", "VBoxSVC", "VBoxXPCOMIPCD")


class VirtualBox:
    """Host virtualization tool used by the docker-machine driver."""

    def __init__(self, manage: str | Path = "/usr/bin/VBoxManage") -> None:
        self.manage = Path(manage)

    def command(self) -> str:
        if self.manage.exists():
            return str(self.manage)
        return shutil.which("VBoxManage") or str(self.manage)

    def installed(self) -> bool:
        return self.manage.exists() or shutil.which("VBoxManage") is not None

    async def version(self) -> str:
        if not self.installed():
            return NOT_INSTALLED
        try:
            out = await exec_command([self.command(), "-v"], timeout=10)
        except CommandError:
            logger.debug("VBoxManage -v failed", exc_info=True)
            return NOT_INSTALLED
        # VBoxManage reports e.g. "4.3.28r100309"
        return out.split("r", 1)[0] if out else NOT_INSTALLED

    async def killall(self) -> int:
        """Terminate VirtualBox processes, returning how many were signalled."""

        killed = 0
        for proc in psutil.process_iter(["name"]):
            name = proc.info.get("name") or ""
            if name not in _PROCESS_NAMES:
                continue
            try:
                proc.terminate()
                killed += 1
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                logger.debug("Could not terminate %s (%s)", name, proc.pid, exc_info=True)
        return killed

    async def vm_exists(self, name: str) -> bool:
        out, error = await run_command_async(
            [self.command(), "showvminfo", name, "--machinereadable"],
            capture=True,
        )
        return error is None and bool(out)

    async def vmdestroy(self, name: str) -> bool:
        """Power off and unregister *name*, returning ``True`` if it existed."""

        if not self.installed() or not await self.vm_exists(name):
            return False
        logger.info("Removing legacy VirtualBox VM %s", name)
        await self.poweroff(name)
        await exec_command([self.command(), "unregistervm", name, "--delete"])
        return True

    async def poweroff(self, name: str) -> bool:
        """Power off *name*; a VM that is already off is not an error."""

        _, error = await run_command_async([self.command(), "controlvm", name, "poweroff"])
        if error is not None:
            logger.debug("VBoxManage could not power off %s: %s", name, error)
            return False
        return True


__all__ = ["VirtualBox"]
