"""Crash reporting sink used when a setup step fails."""
from __future__ import annotations

import logging
from typing import Any, Mapping

from .client import NullTelemetryClient, TelemetryClient

logger = logging.getLogger(__name__)


def _safe(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    if isinstance(value, Mapping):
        return {str(key): _safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_safe(item) for item in value]
    if hasattr(value, "as_dict"):
        return _safe(value.as_dict())
    return repr(value)


class CrashReporter:
    """Fire-and-forget crash sink.

    Reports are logged and forwarded to the telemetry client as ``CRASH``
    events. Delivery failures are swallowed so that reporting never changes
    the outcome of the operation being reported.
    """

    def __init__(
        self,
        telemetry: TelemetryClient | NullTelemetryClient | None = None,
        *,
        logger_: logging.Logger | None = None,
    ) -> None:
        self.telemetry = telemetry or NullTelemetryClient()
        self.logger = logger_ or logger

    def notify(self, name: str, message: str, metadata: Mapping[str, Any] | None = None) -> None:
        payload = {"message": message}
        payload.update(_safe(dict(metadata or {})))
        self.logger.error("%s: %s (%s)", name, message, payload)
        try:
            self.telemetry.record_crash(name, payload)
        except Exception:  # pragma: no cover - best effort delivery
            self.logger.debug("crash report delivery failed", exc_info=True)


__all__ = ["CrashReporter"]
