"""Step definitions, attempt outcomes and the default provisioning catalog."""
from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterator, Optional

from vmsetup.config import Config
from vmsetup.machine.driver import MachineDriver, MachineState
from vmsetup.provisioning.toolkit import ProvisioningToolkit, compare_versions
from vmsetup.utils.process import CommandError

logger = logging.getLogger(__name__)


class SetupCancelled(RuntimeError):
    """Raised by a step procedure when the user abandoned the attempt."""


class OutcomeStatus(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class StepOutcome:
    """Result of a single attempt at a step."""

    status: OutcomeStatus
    error: BaseException | None = None

    @classmethod
    def success(cls) -> "StepOutcome":
        return cls(OutcomeStatus.SUCCESS)

    @classmethod
    def failure(cls, error: BaseException) -> "StepOutcome":
        return cls(OutcomeStatus.FAILURE, error)

    @classmethod
    def cancelled(cls) -> "StepOutcome":
        return cls(OutcomeStatus.CANCELLED)

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @property
    def failed(self) -> bool:
        return self.status is OutcomeStatus.FAILURE

    @property
    def was_cancelled(self) -> bool:
        return self.status is OutcomeStatus.CANCELLED

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "error": repr(self.error) if self.error is not None else None,
        }


StepProcedure = Callable[["StepContext"], Awaitable[Optional[StepOutcome]]]


@dataclass
class Step:
    """A unit of provisioning work with its live progress."""

    name: str
    title: str
    message: str
    weight: float
    run: StepProcedure = field(repr=False)
    percent: float = 0.0
    estimated_seconds: float | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "message": self.message,
            "weight": self.weight,
            "percent": self.percent,
            "estimated_seconds": self.estimated_seconds,
        }


@dataclass
class StepContext:
    """Collaborators handed to a step procedure for one attempt."""

    step: Step
    driver: MachineDriver
    toolkit: ProvisioningToolkit
    config: Config
    report_progress: Callable[[float], None]


class StepRegistry:
    """Ordered catalog of steps keyed by name."""

    def __init__(self) -> None:
        self._steps: Dict[str, Step] = {}

    def register(self, step: Step) -> Step:
        if step.name in self._steps:
            raise ValueError(f"Step '{step.name}' already registered")
        self._steps[step.name] = step
        return step

    def get(self, name: str) -> Step:
        return self._steps[name]

    def names(self) -> list[str]:
        return list(self._steps)

    def by_name(self) -> dict[str, Step]:
        return dict(self._steps)

    def __contains__(self, name: object) -> bool:
        return name in self._steps

    def __iter__(self) -> Iterator[Step]:
        return iter(self._steps.values())

    def __len__(self) -> int:
        return len(self._steps)


# --- default catalog ---------------------------------------------------


async def download_virtualbox(ctx: StepContext) -> None:
    checksum = str(ctx.config.get("virtualbox_checksum") or "") or None
    await ctx.toolkit.download(
        ctx.toolkit.virtualbox_url(),
        ctx.config.installer_path(),
        checksum,
        ctx.report_progress,
    )


async def install_virtualbox(ctx: StepContext) -> StepOutcome | None:
    toolkit = ctx.toolkit
    commands = [toolkit.copy_binaries_cmd(), toolkit.fix_binaries_cmd()]
    if not await ctx.driver.installed():
        await ctx.driver.killall()
        commands.append(toolkit.install_virtualbox_cmd())
    elif not toolkit.needs_binary_fix():
        return StepOutcome.success()

    ctx.report_progress(50)
    try:
        await toolkit.run(toolkit.sudo_cmd(" && ".join(cmd for cmd in commands if cmd)))
    except CommandError as exc:
        # Dismissing the administrator prompt fails the privileged command.
        logger.info("Privileged install command did not complete: %s", exc)
        raise SetupCancelled("Administrator authorization was not granted") from exc
    return None


async def init_machine(ctx: StepContext) -> None:
    driver = ctx.driver
    simulated = ctx.toolkit.simulate_progress(ctx.step.estimated_seconds or 0, ctx.report_progress)
    try:
        legacy = ctx.config.get("legacy_vm_name")
        if legacy:
            await driver.destroy_vm(str(legacy))

        exists = await driver.exists()
        if not exists or await driver.state() == MachineState.ERROR:
            try:
                await driver.rm()
                await driver.create()
            except Exception:
                logger.warning("Machine creation failed, wiping %s and retrying", driver.name(), exc_info=True)
                shutil.rmtree(ctx.config.machine_dir(), ignore_errors=True)
                await driver.create()
            return

        isoversion = await driver.isoversion()
        target = str(ctx.config.get("docker_version"))
        if not isoversion or compare_versions(isoversion, target) < 0:
            logger.info("Upgrading %s from %s to %s", driver.name(), isoversion or "unknown", target)
            await driver.stop()
            await driver.upgrade()
        await driver.start()
    finally:
        simulated.cancel()


def build_default_steps() -> list[Step]:
    return [
        Step(
            name="download",
            title="Downloading VirtualBox",
            message="VirtualBox is being downloaded. Containers run inside a VirtualBox virtual machine.",
            weight=35,
            run=download_virtualbox,
        ),
        Step(
            name="install",
            title="Installing VirtualBox & Docker",
            message="VirtualBox & Docker are being installed or upgraded in the background. "
            "We may need you to type in your password to continue.",
            weight=5,
            run=install_virtualbox,
            estimated_seconds=5,
        ),
        Step(
            name="init",
            title="Starting Docker VM",
            message="To run Docker containers on your computer, we are starting a Linux virtual machine. "
            "This may take a minute...",
            weight=60,
            run=init_machine,
            estimated_seconds=53,
        ),
    ]


def default_registry() -> StepRegistry:
    registry = StepRegistry()
    for step in build_default_steps():
        registry.register(step)
    return registry


__all__ = [
    "OutcomeStatus",
    "SetupCancelled",
    "Step",
    "StepContext",
    "StepOutcome",
    "StepProcedure",
    "StepRegistry",
    "build_default_steps",
    "default_registry",
    "download_virtualbox",
    "init_machine",
    "install_virtualbox",
]
