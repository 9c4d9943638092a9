"""Machine driver contract and the docker-machine implementation."""
from __future__ import annotations

from .docker_machine import DockerMachineDriver, read_iso_version
from .driver import NOT_INSTALLED, MachineDriver, MachineInfo, MachineState
from .virtualbox import VirtualBox

__all__ = [
    "DockerMachineDriver",
    "MachineDriver",
    "MachineInfo",
    "MachineState",
    "NOT_INSTALLED",
    "VirtualBox",
    "read_iso_version",
]
