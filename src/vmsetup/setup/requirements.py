"""Decide which provisioning steps the current host still needs."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from vmsetup.config import Config
from vmsetup.machine.driver import MachineDriver, MachineState
from vmsetup.provisioning.toolkit import ProvisioningToolkit, compare_versions

from .steps import Step, StepRegistry

logger = logging.getLogger(__name__)

UPGRADE_ESTIMATE_SECONDS = 33
START_ESTIMATE_SECONDS = 23


@dataclass
class RequirementReport:
    """Facts observed while evaluating requirements and the resulting decision."""

    installed: bool
    installer_valid: bool
    needs_binary_fix: bool
    exists: bool
    state: str | None
    isoversion: str | None
    target_version: str
    needs_upgrade: bool
    required: dict[str, bool] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class RequirementEvaluator:
    """Compute and cache the ordered list of steps the host requires."""

    def __init__(
        self,
        registry: StepRegistry,
        driver: MachineDriver,
        toolkit: ProvisioningToolkit,
        config: Config,
    ) -> None:
        self.registry = registry
        self.driver = driver
        self.toolkit = toolkit
        self.config = config
        self._cached: list[Step] | None = None
        self._default_estimate = registry.get("init").estimated_seconds if "init" in registry else None
        self.report: RequirementReport | None = None

    def invalidate(self) -> None:
        self._cached = None

    async def required_steps(self) -> list[Step]:
        if self._cached is None:
            self._cached = await self._evaluate()
        return self._cached

    async def _evaluate(self) -> list[Step]:
        installed = await self.driver.installed()
        installer_valid = await asyncio.to_thread(self.toolkit.installer_is_valid)
        needs_binary_fix = self.toolkit.needs_binary_fix() if installed else False
        exists = await self.driver.exists()
        state = await self.driver.state() if exists else None
        isoversion = await self.driver.isoversion() if exists else None
        target = str(self.config.get("docker_version"))
        outdated = bool(isoversion) and compare_versions(isoversion, target) < 0
        needs_upgrade = not isoversion or outdated

        required = {
            "download": not installed and not installer_valid,
            "install": not installed or needs_binary_fix,
        }
        required["init"] = (
            required["install"]
            or not exists
            or state != MachineState.RUNNING
            or needs_upgrade
        )

        if "init" in self.registry:
            init = self.registry.get("init")
            init.estimated_seconds = self._default_estimate
            if exists and outdated:
                init.estimated_seconds = UPGRADE_ESTIMATE_SECONDS
            elif exists and state != MachineState.ERROR:
                init.estimated_seconds = START_ESTIMATE_SECONDS

        self.report = RequirementReport(
            installed=installed,
            installer_valid=installer_valid,
            needs_binary_fix=needs_binary_fix,
            exists=exists,
            state=state,
            isoversion=isoversion,
            target_version=target,
            needs_upgrade=needs_upgrade,
            required=required,
        )
        steps = [step for step in self.registry if required.get(step.name, False)]
        logger.info(
            "Required setup steps: %s",
            ", ".join(step.name for step in steps) or "none",
        )
        logger.debug("Requirement report: %s", self.report.as_dict())
        return steps


__all__ = [
    "RequirementEvaluator",
    "RequirementReport",
    "START_ESTIMATE_SECONDS",
    "UPGRADE_ESTIMATE_SECONDS",
]
