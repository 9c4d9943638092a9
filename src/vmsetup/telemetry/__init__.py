"""Telemetry package providing consent, storage and crash reporting utilities."""
from .client import NullTelemetryClient, TelemetryClient
from .consent import CONSENT_ENV, ConsentDecision, TelemetryConsentManager
from .crash import CrashReporter
from .events import TelemetryEvent, TelemetryEventType
from .storage import (
    CompositeTelemetryStorage,
    InMemoryTelemetryStorage,
    JsonlTelemetryStorage,
    TelemetryStorageAdapter,
)
from . import tracing

__all__ = [
    "CONSENT_ENV",
    "NullTelemetryClient",
    "TelemetryClient",
    "TelemetryConsentManager",
    "ConsentDecision",
    "CrashReporter",
    "TelemetryEvent",
    "TelemetryEventType",
    "TelemetryStorageAdapter",
    "JsonlTelemetryStorage",
    "InMemoryTelemetryStorage",
    "CompositeTelemetryStorage",
    "tracing",
]
