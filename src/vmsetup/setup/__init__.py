"""Setup orchestration: step catalog, requirement evaluation and the orchestrator."""
from __future__ import annotations

from .orchestrator import MachineUnreachableError, PauseToken, SetupOrchestrator
from .requirements import RequirementEvaluator, RequirementReport
from .steps import (
    OutcomeStatus,
    SetupCancelled,
    Step,
    StepContext,
    StepOutcome,
    StepRegistry,
    build_default_steps,
    default_registry,
)

__all__ = [
    "MachineUnreachableError",
    "OutcomeStatus",
    "PauseToken",
    "RequirementEvaluator",
    "RequirementReport",
    "SetupCancelled",
    "SetupOrchestrator",
    "Step",
    "StepContext",
    "StepOutcome",
    "StepRegistry",
    "build_default_steps",
    "default_registry",
]
