"""Rich-powered dashboards for the setup orchestrator."""
from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Mapping

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn

from .events import SetupEvent, SetupEventType

if TYPE_CHECKING:  # pragma: no cover - typing only
    from vmsetup.setup.orchestrator import SetupOrchestrator


class BaseDashboard:
    """Interface implemented by orchestrator event sinks."""

    orchestrator: "SetupOrchestrator | None" = None

    def attach(self, orchestrator: "SetupOrchestrator") -> None:
        self.orchestrator = orchestrator
        orchestrator.subscribe(self.handle_event)

    def detach(self) -> None:
        if self.orchestrator is not None:
            self.orchestrator.unsubscribe(self.handle_event)
            self.orchestrator = None

    def start(self) -> None:  # pragma: no cover - interface hook
        return None

    def stop(self) -> None:  # pragma: no cover - interface hook
        return None

    def handle_event(self, event: SetupEvent) -> None:
        raise NotImplementedError

    def export_state(self) -> Mapping[str, Any]:
        return {}


class JsonDashboard(BaseDashboard):
    """Headless dashboard that records events with a state snapshot."""

    def __init__(self, orchestrator: "SetupOrchestrator | None" = None) -> None:
        self.events: list[dict[str, Any]] = []
        if orchestrator is not None:
            self.attach(orchestrator)

    def handle_event(self, event: SetupEvent) -> None:
        record = event.as_dict()
        orchestrator = self.orchestrator
        if orchestrator is not None:
            error = orchestrator.error
            record.update(
                {
                    "percent": orchestrator.overall_percent,
                    "cancelled": orchestrator.cancelled,
                    "error": str(error) if error is not None else None,
                }
            )
        self.events.append(record)

    def of_type(self, event_type: SetupEventType) -> list[dict[str, Any]]:
        return [event for event in self.events if event["type"] == event_type.value]

    def export_state(self) -> Mapping[str, Any]:
        return {"events": list(self.events)}

    def as_json(self) -> str:
        return json.dumps(self.export_state(), indent=2)


class ConsoleDashboard(BaseDashboard):
    """Render setup progress on a terminal with a rich progress bar."""

    def __init__(self, orchestrator: "SetupOrchestrator", *, console: Console | None = None) -> None:
        self.console = console or Console()
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            console=self.console,
        )
        self._task: TaskID | None = None
        self._last_step: str | None = None
        self.attach(orchestrator)

    def _task_id(self) -> TaskID:
        if self._task is None:
            self._task = self._progress.add_task("Preparing", total=100)
        return self._task

    def start(self) -> None:
        self._task_id()
        self._progress.start()

    def stop(self) -> None:
        self._progress.stop()

    def handle_event(self, event: SetupEvent) -> None:
        orchestrator = self.orchestrator
        if orchestrator is None:
            return
        step = orchestrator.current_step
        if event.type is SetupEventType.ERROR and orchestrator.error is not None:
            self.console.print(
                Panel(
                    escape(str(orchestrator.error)),
                    title="Setup error",
                    border_style="red",
                )
            )
        elif event.type is SetupEventType.STEP:
            if orchestrator.cancelled and step is not None:
                self.console.print(f"[yellow]{escape(step.title)} was cancelled[/]")
            elif step is not None and step.name != self._last_step:
                self.console.print(
                    f"[bold cyan]Step {orchestrator.current_step_index} of "
                    f"{orchestrator.required_step_count}:[/] {escape(step.title)}"
                )
                self.console.print(f"[dim]{escape(step.message)}[/]")
            self._last_step = step.name if step is not None else None

        if step is not None:
            description = step.title
        elif orchestrator.complete:
            description = "Docker VM is ready"
        else:
            description = "Checking Docker VM"
        self._progress.update(
            self._task_id(),
            completed=orchestrator.overall_percent,
            description=escape(description),
        )


__all__ = ["BaseDashboard", "ConsoleDashboard", "JsonDashboard"]
