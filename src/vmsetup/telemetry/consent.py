"""Telemetry consent for the ``vmsetup`` command line.

Telemetry is opt-in. The effective decision is resolved in this order:

1. ``--no-telemetry`` on the command line (``source="flag"``);
2. the ``VMSETUP_TELEMETRY`` environment variable (``source="env"``);
3. the decision stored by ``vmsetup telemetry on|off`` (``source="stored"``);
4. otherwise telemetry stays off (``source="default"``) and nothing is written.
"""
from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

CONSENT_ENV = "VMSETUP_TELEMETRY"
_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ConsentDecision:
    """Effective telemetry decision and where it came from."""

    granted: bool
    source: str
    decided_at: float | None = None

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


class TelemetryConsentManager:
    """Resolve and persist the user's telemetry choice."""

    def __init__(
        self,
        storage_path: Path,
        *,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.storage_path = Path(storage_path)
        self.clock = clock or time.time

    def stored_decision(self) -> ConsentDecision | None:
        if not self.storage_path.exists():
            return None
        try:
            state = json.loads(self.storage_path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable consent file %s: %s", self.storage_path, exc)
            return None
        if not isinstance(state, dict) or "granted" not in state:
            return None
        decided_at = state.get("decided_at")
        return ConsentDecision(
            granted=bool(state["granted"]),
            source="stored",
            decided_at=float(decided_at) if isinstance(decided_at, (int, float)) else None,
        )

    def resolve(self, *, disabled: bool = False) -> ConsentDecision:
        if disabled:
            return ConsentDecision(granted=False, source="flag")
        env = os.getenv(CONSENT_ENV)
        if env is not None:
            return ConsentDecision(granted=env.strip().lower() in _TRUTHY, source="env")
        return self.stored_decision() or ConsentDecision(granted=False, source="default")

    def decide(self, granted: bool) -> ConsentDecision:
        """Persist an explicit choice made with ``vmsetup telemetry on|off``."""

        decision = ConsentDecision(granted=granted, source="user", decided_at=self.clock())
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"granted": decision.granted, "decided_at": decision.decided_at}
        self.storage_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.info("Telemetry %s", "enabled" if granted else "disabled")
        return decision


__all__ = ["CONSENT_ENV", "ConsentDecision", "TelemetryConsentManager"]
