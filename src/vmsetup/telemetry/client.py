"""Telemetry client forwarding named setup metrics to storage."""
from __future__ import annotations

from typing import Callable, Mapping
import platform
import time

from .events import TelemetryEvent, TelemetryEventType
from .storage import TelemetryStorageAdapter


class NullTelemetryClient:
    """Telemetry client that drops all events."""

    def track(self, name: str, properties: Mapping[str, object] | None = None) -> None:
        return None

    def record_crash(self, name: str, metadata: Mapping[str, object]) -> None:
        return None

    def flush(self) -> None:
        return None


class TelemetryClient:
    """Collects telemetry events and forwards them to the configured storage."""

    def __init__(
        self,
        storage: TelemetryStorageAdapter,
        *,
        clock: Callable[[], float] | None = None,
        enabled: bool = True,
    ) -> None:
        self.storage = storage
        self.clock = clock or time.time
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def disable(self) -> None:
        self._enabled = False

    def enable(self) -> None:
        self._enabled = True

    def _record(self, event: TelemetryEvent) -> None:
        if not self._enabled:
            return
        self.storage.persist(event)

    def track(self, name: str, properties: Mapping[str, object] | None = None) -> None:
        """Record the named metric with optional *properties*."""

        data = dict(properties or {})
        data.setdefault("os", platform.platform())
        self._record(
            TelemetryEvent(TelemetryEventType.METRIC, name, timestamp=self.clock(), metadata=data)
        )

    def record_crash(self, name: str, metadata: Mapping[str, object]) -> None:
        self._record(
            TelemetryEvent(
                TelemetryEventType.CRASH, name, timestamp=self.clock(), metadata=dict(metadata)
            )
        )

    def record_consent(self, *, granted: bool, source: str) -> None:
        self._record(
            TelemetryEvent(
                TelemetryEventType.CONSENT,
                "Consent",
                timestamp=self.clock(),
                metadata={"granted": granted, "source": source},
            )
        )

    def flush(self) -> None:
        if not self._enabled:
            return
        self.storage.flush()


__all__ = ["TelemetryClient", "NullTelemetryClient"]
