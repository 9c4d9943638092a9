"""Lightweight helpers for integrating OpenTelemetry tracing."""
from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator, Mapping

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode

_LOGGER = logging.getLogger(__name__)
_TRACER_NAME = "vmsetup.setup"
_CONFIGURED = False


def _env_flag(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() not in {"", "0", "false", "no", "off"}


def _coerce_attribute(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def configure_from_environment(*, force: bool = False) -> None:
    """Install a console span exporter when ``VMSETUP_OTEL_EXPORT_CONSOLE`` is set."""

    global _CONFIGURED
    if _CONFIGURED and not force:
        return
    _CONFIGURED = True
    if not _env_flag(os.getenv("VMSETUP_OTEL_EXPORT_CONSOLE")):
        return
    service_name = os.getenv("VMSETUP_OTEL_SERVICE_NAME", "vmsetup")
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)


@contextmanager
def start_span(name: str, *, attributes: Mapping[str, Any] | None = None) -> Iterator[Span]:
    """Start a span under the setup tracer and make it current."""

    tracer = trace.get_tracer(_TRACER_NAME)
    with tracer.start_as_current_span(name, record_exception=False, set_status_on_exception=False) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, _coerce_attribute(value))
        yield span


def step_span(step_name: str, attempt: int) -> Any:
    """Span wrapping one attempt of a provisioning step."""

    return start_span(
        f"setup.step.{step_name}",
        attributes={"setup.step": step_name, "setup.attempt": attempt},
    )


def mark_outcome(span: Span, status: str, error: BaseException | None = None) -> None:
    """Record the attempt outcome on *span*."""

    span.set_attribute("setup.outcome", status)
    if error is not None:
        span.record_exception(error)
        span.set_status(Status(StatusCode.ERROR, str(error)))
    else:
        span.set_status(Status(StatusCode.OK))


__all__ = [
    "configure_from_environment",
    "mark_outcome",
    "start_span",
    "step_span",
]
