"""Host session state owned by the shell rather than the orchestrator."""
from __future__ import annotations

import logging

from vmsetup.config import Config
from vmsetup.machine.driver import MachineDriver
from vmsetup.utils.process import CommandError

logger = logging.getLogger(__name__)


class HostSession:
    """Track shell preferences such as stopping the VM when the shell quits."""

    def __init__(self, config: Config, driver: MachineDriver) -> None:
        self.config = config
        self.driver = driver

    @property
    def pause_vm_on_quit(self) -> bool:
        return bool(self.config.get("pause_vm_on_quit", False))

    def set_pause_vm_on_quit(self, enabled: bool) -> None:
        self.config.set("pause_vm_on_quit", bool(enabled))
        self.config.save()
        logger.info("Stop VM on quit %s", "enabled" if enabled else "disabled")

    async def shutdown(self) -> bool:
        """Stop the machine when the preference is enabled.

        Returns ``True`` when a stop was issued successfully.
        """

        if not self.pause_vm_on_quit:
            return False
        logger.info("Stopping machine %s before exit", self.driver.name())
        try:
            await self.driver.stop()
        except CommandError as exc:
            logger.warning("Failed to stop machine %s: %s", self.driver.name(), exc)
            return False
        return True


__all__ = ["HostSession"]
