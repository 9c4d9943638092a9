"""Storage adapters for telemetry events."""
from __future__ import annotations

from pathlib import Path
from threading import Lock

from typing import Iterable, List, Protocol, Sequence
import json
import logging

from .events import TelemetryEvent


class TelemetryStorageAdapter(Protocol):
    """Protocol for persisting telemetry events."""

    def persist(self, event: TelemetryEvent) -> None:
        ...

    def flush(self) -> None:
        ...

    def bootstrap(self) -> Iterable[TelemetryEvent]:
        """Return previously persisted events."""
        return []


class JsonlTelemetryStorage:
    """Append-only JSON-lines storage suitable for opt-in telemetry."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._buffer: List[TelemetryEvent] = []
        self._lock = Lock()

    def persist(self, event: TelemetryEvent) -> None:
        with self._lock:
            self._buffer.append(event)

    def flush(self) -> None:
        with self._lock:
            if not self._buffer:
                return
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                for event in self._buffer:
                    handle.write(json.dumps(event.to_dict(), default=str) + "\n")
            self._buffer.clear()

    def bootstrap(self) -> Iterable[TelemetryEvent]:
        if not self.path.exists():
            return []
        events: List[TelemetryEvent] = []
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                for line in handle:
                    line = line.strip()
                    if not line:
                        continue
                    events.append(TelemetryEvent.from_dict(json.loads(line)))
        except (OSError, json.JSONDecodeError, KeyError, ValueError):
            logging.getLogger(__name__).debug(
                "Ignoring unreadable telemetry log %s", self.path, exc_info=True
            )
            return []
        return events


class InMemoryTelemetryStorage:
    """Non-persistent storage used for unit tests."""

    def __init__(self) -> None:
        self.events: List[TelemetryEvent] = []

    def persist(self, event: TelemetryEvent) -> None:
        self.events.append(event)

    def flush(self) -> None:
        return None

    def bootstrap(self) -> Iterable[TelemetryEvent]:
        return list(self.events)

    def named(self, name: str) -> List[TelemetryEvent]:
        return [event for event in self.events if event.name == name]


class CompositeTelemetryStorage:
    """Multiplex events across multiple storage adapters."""

    def __init__(
        self,
        adapters: Sequence[TelemetryStorageAdapter],
        *,
        bootstrap_index: int = 0,
    ) -> None:
        if not adapters:
            raise ValueError("CompositeTelemetryStorage requires at least one adapter")
        self._adapters: tuple[TelemetryStorageAdapter, ...] = tuple(adapters)
        if bootstrap_index < 0 or bootstrap_index >= len(self._adapters):
            raise IndexError("bootstrap_index out of range")
        self._bootstrap_index = bootstrap_index

    def persist(self, event: TelemetryEvent) -> None:
        for adapter in self._adapters:
            try:
                adapter.persist(event)
            except Exception:  # pragma: no cover - best effort delivery
                logging.getLogger(__name__).debug(
                    "Telemetry adapter %s.persist failed", adapter, exc_info=True
                )

    def flush(self) -> None:
        for adapter in self._adapters:
            try:
                adapter.flush()
            except Exception:  # pragma: no cover - best effort delivery
                logging.getLogger(__name__).debug(
                    "Telemetry adapter %s.flush failed", adapter, exc_info=True
                )

    def bootstrap(self) -> Iterable[TelemetryEvent]:
        return self._adapters[self._bootstrap_index].bootstrap()


__all__ = [
    "TelemetryStorageAdapter",
    "JsonlTelemetryStorage",
    "InMemoryTelemetryStorage",
    "CompositeTelemetryStorage",
]
