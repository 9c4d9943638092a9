"""Contract between the setup orchestrator and the VM it provisions."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Protocol, runtime_checkable

NOT_INSTALLED = "Not installed"


class MachineState(str, Enum):
    """States reported by ``docker-machine status``."""

    RUNNING = "Running"
    STOPPED = "Stopped"
    STARTING = "Starting"
    STOPPING = "Stopping"
    PAUSED = "Paused"
    SAVED = "Saved"
    ERROR = "Error"
    TIMEOUT = "Timeout"
    NONE = ""

    @classmethod
    def parse(cls, value: str | None) -> "MachineState":
        text = (value or "").strip()
        for member in cls:
            if member.value.lower() == text.lower():
                return member
        return cls.ERROR if text else cls.NONE


@dataclass
class MachineInfo:
    """Connection details of the provisioned machine."""

    name: str
    url: str | None = None
    state: str = MachineState.NONE.value
    ip: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def reachable(self) -> bool:
        return bool(self.url)

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "state": self.state,
            "ip": self.ip,
            **dict(self.extra),
        }


@runtime_checkable
class MachineDriver(Protocol):
    """Asynchronous operations over the VM and its host virtualization tool."""

    def name(self) -> str:
        ...

    async def exists(self) -> bool:
        ...

    async def state(self) -> str:
        ...

    async def create(self) -> None:
        ...

    async def rm(self) -> None:
        ...

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...

    async def upgrade(self) -> None:
        ...

    async def info(self) -> MachineInfo:
        ...

    async def isoversion(self) -> str | None:
        ...

    async def installed(self) -> bool:
        """Return ``True`` when the host virtualization tool is installed."""
        ...

    async def version(self) -> str:
        """Return the host tool version, or :data:`NOT_INSTALLED`."""
        ...

    async def killall(self) -> None:
        """Terminate running host tool processes ahead of an install."""
        ...

    async def destroy_vm(self, vm_name: str) -> None:
        """Remove a VM registered directly with the host tool, if present."""
        ...


__all__ = ["MachineDriver", "MachineInfo", "MachineState", "NOT_INSTALLED"]
