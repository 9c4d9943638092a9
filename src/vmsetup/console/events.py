"""Event primitives shared between the setup orchestrator and dashboards."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class SetupEventType(str, Enum):
    """Kinds of events emitted by the setup orchestrator."""

    PROGRESS = "progress"
    STEP = "step"
    ERROR = "error"


@dataclass(slots=True)
class SetupEvent:
    """Notification that orchestrator state changed.

    Only the step name travels with the event; consumers query the
    orchestrator for the rest of the state.
    """

    type: SetupEventType
    step: str | None = None
    payload: Mapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "step": self.step, "payload": dict(self.payload)}


__all__ = ["SetupEvent", "SetupEventType"]
