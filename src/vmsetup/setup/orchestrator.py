"""Core setup orchestrator implementation."""
from __future__ import annotations

import asyncio
import logging
import math
from contextlib import contextmanager
from typing import Any, Callable, Generator, Iterator

from vmsetup.config import Config
from vmsetup.console.events import SetupEvent, SetupEventType
from vmsetup.machine.driver import NOT_INSTALLED, MachineDriver, MachineInfo
from vmsetup.provisioning.toolkit import ProvisioningToolkit
from vmsetup.telemetry import CrashReporter, NullTelemetryClient, TelemetryClient, tracing
from vmsetup.utils.process import CommandError

from .requirements import RequirementEvaluator
from .steps import SetupCancelled, Step, StepContext, StepOutcome, StepRegistry, default_registry

EventCallback = Callable[[SetupEvent], None]

UNREACHABLE_MESSAGE = "Could not reach the Docker Engine inside the VirtualBox VM"


class MachineUnreachableError(RuntimeError):
    """Raised when provisioning finished but the machine reported no URL."""

    def __init__(self, info: MachineInfo | None = None, message: str = UNREACHABLE_MESSAGE) -> None:
        super().__init__(message)
        self.info = info


class PauseToken:
    """One-shot handle the orchestrator awaits while blocked on user input."""

    def __init__(self) -> None:
        self._future: asyncio.Future[None] = asyncio.get_running_loop().create_future()

    @property
    def resolved(self) -> bool:
        return self._future.done()

    def resolve(self) -> None:
        if not self._future.done():
            self._future.set_result(None)

    def __await__(self) -> Generator[Any, None, None]:
        return self._future.__await__()


class SetupOrchestrator:
    """Run the required provisioning steps with pause, retry and cancel support."""

    def __init__(
        self,
        driver: MachineDriver,
        toolkit: ProvisioningToolkit,
        config: Config,
        *,
        registry: StepRegistry | None = None,
        evaluator: RequirementEvaluator | None = None,
        telemetry: TelemetryClient | NullTelemetryClient | None = None,
        crash_reporter: CrashReporter | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.driver = driver
        self.toolkit = toolkit
        self.config = config
        self.registry = registry or default_registry()
        self.evaluator = evaluator or RequirementEvaluator(self.registry, driver, toolkit, config)
        self.telemetry = telemetry or NullTelemetryClient()
        self.crash_reporter = crash_reporter or CrashReporter(self.telemetry)
        self.logger = logger or logging.getLogger("vmsetup.setup.orchestrator")
        self._subscribers: list[EventCallback] = []
        self._required: list[Step] | None = None
        self._current: Step | None = None
        self._error: BaseException | None = None
        self._cancelled = False
        self._pause: PauseToken | None = None
        self._complete = False
        self._active = False
        self._attempt_serial = 0
        self._live_attempt: int | None = None
        self._cancel_requested = False

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------
    def subscribe(self, callback: EventCallback) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _publish(self, event_type: SetupEventType) -> None:
        event = SetupEvent(event_type, self._current.name if self._current else None)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                self.logger.warning("Setup subscriber failed for %s", event_type.value, exc_info=True)

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------
    @property
    def current_step(self) -> Step | None:
        return self._current

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def paused(self) -> bool:
        return self._pause is not None and not self._pause.resolved

    @property
    def complete(self) -> bool:
        return self._complete

    @property
    def running(self) -> bool:
        return self._active

    @property
    def steps(self) -> dict[str, Step]:
        return self.registry.by_name()

    @property
    def required_step_count(self) -> int:
        return len(self._required or [])

    @property
    def current_step_index(self) -> int:
        if self._current is None or not self._required:
            return 0
        try:
            return self._required.index(self._current) + 1
        except ValueError:
            return 0

    @property
    def overall_percent(self) -> int:
        if self._complete:
            return 100
        steps = self._required or []
        total = sum(step.weight for step in steps)
        if total <= 0:
            return 0
        done = sum(step.weight * step.percent / 100 for step in steps)
        return min(math.floor(done / total * 100), 99)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def retry(self) -> None:
        """Resume a paused pipeline at the step that stopped it."""

        pause = self._pause
        if pause is None or pause.resolved:
            return
        self._error = None
        self._cancelled = False
        pause.resolve()

    def cancel(self) -> None:
        """Cancel the in-flight attempt or turn an error pause into a cancelled one."""

        if self._live_attempt is not None:
            self._cancel_requested = True
            return
        if self.paused and self._error is not None:
            self._error = None
            self._cancelled = True
            self._publish(SetupEventType.STEP)

    def invalidate(self) -> None:
        """Forget the computed step list so the next run re-evaluates the host."""

        self.evaluator.invalidate()
        self._required = None
        self._complete = False

    async def required_steps(self) -> list[Step]:
        self._required = await self.evaluator.required_steps()
        return self._required

    async def update_binaries(self) -> None:
        """Refresh bundled binaries when they drifted from the installed copies."""

        try:
            if self.toolkit.needs_binary_fix():
                return
            if self.toolkit.should_update_binaries():
                self.logger.info("Updating bundled binaries in %s", self.config.bin_dir())
                await self.toolkit.run(self.toolkit.copy_binaries_cmd())
        except (CommandError, OSError) as exc:
            self.logger.warning("Failed to update binaries: %s", exc)

    async def run(self) -> MachineInfo:
        """Execute each required step once it succeeds and return the machine info."""

        with self._activate():
            return await self._run_pipeline()

    async def setup(self) -> MachineInfo:
        """Run the pipeline until the machine is reachable."""

        with self._activate():
            while True:
                info = await self._run_pipeline()
                if info.reachable:
                    break
                self.telemetry.track("Setup Failed", {"step": "done", "message": "Machine URL not set"})
                self.crash_reporter.notify(
                    "SetupError",
                    "Machine url was not set",
                    {
                        "machine": info.as_dict(),
                        "step": "done",
                        "virtualbox": await self.driver.version(),
                    },
                )
                self._error = MachineUnreachableError(info)
                self._publish(SetupEventType.ERROR)
                await self._wait_for_resume()

            self.telemetry.track("Setup Finished")
            self._complete = True
            self._publish(SetupEventType.PROGRESS)
            return info

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------
    @contextmanager
    def _activate(self) -> Iterator[None]:
        if self._active:
            raise RuntimeError("Setup is already running")
        self._active = True
        try:
            yield
        finally:
            self._active = False
            self._live_attempt = None

    async def _run_pipeline(self) -> MachineInfo:
        version = await self.driver.version()
        self.telemetry.track(
            "Started Setup",
            {"virtualbox": version if version != NOT_INSTALLED else "Not Installed"},
        )
        await self.update_binaries()

        for step in await self.required_steps():
            step.percent = 0
            self._current = step
            self._publish(SetupEventType.STEP)
            await self._run_step(step)

        self._current = None
        self._publish(SetupEventType.STEP)
        return await self.driver.info()

    async def _run_step(self, step: Step) -> None:
        attempts = 0
        while True:
            attempts += 1
            outcome = await self._attempt(step, attempts)
            if outcome.succeeded:
                self.telemetry.track("Setup Completed Step", {"name": step.name})
                step.percent = 100
                self._publish(SetupEventType.PROGRESS)
                return
            if outcome.failed:
                error = outcome.error or RuntimeError(f"Setup step {step.name} failed")
                self.logger.error("Setup step %s failed: %s", step.name, error, exc_info=error)
                self.telemetry.track("Setup Failed", {"step": step.name, "message": str(error)})
                self.crash_reporter.notify(
                    "SetupError",
                    "Setup failed",
                    {"step": step.name, "virtualbox": await self.driver.version(), "error": error},
                )
                self._error = error
                self._publish(SetupEventType.ERROR)
            else:
                self.logger.info("Setup step %s cancelled", step.name)
                self.telemetry.track("Setup Cancelled", {"step": step.name})
                self._cancelled = True
                self._publish(SetupEventType.STEP)
            await self._wait_for_resume()

    async def _attempt(self, step: Step, attempt: int) -> StepOutcome:
        self._attempt_serial += 1
        serial = self._attempt_serial
        self._cancel_requested = False
        step.percent = 0
        self._publish(SetupEventType.STEP)

        def report_progress(percent: float) -> None:
            if self._live_attempt != serial or self._current is not step:
                return
            value = max(0.0, min(100.0, float(percent)))
            if value < step.percent:
                return
            step.percent = value
            self._publish(SetupEventType.PROGRESS)

        context = StepContext(
            step=step,
            driver=self.driver,
            toolkit=self.toolkit,
            config=self.config,
            report_progress=report_progress,
        )
        with tracing.step_span(step.name, attempt) as span:
            self._live_attempt = serial
            try:
                result = await step.run(context)
                outcome = result if isinstance(result, StepOutcome) else StepOutcome.success()
            except SetupCancelled:
                outcome = StepOutcome.cancelled()
            except Exception as exc:
                outcome = StepOutcome.failure(exc)
            finally:
                self._live_attempt = None
            if self._cancel_requested:
                outcome = StepOutcome.cancelled()
                self._cancel_requested = False
            tracing.mark_outcome(span, outcome.status.value, outcome.error)
        return outcome

    async def _wait_for_resume(self) -> None:
        token = PauseToken()
        self._pause = token
        try:
            await token
        finally:
            if self._pause is token:
                self._pause = None


__all__ = [
    "EventCallback",
    "MachineUnreachableError",
    "PauseToken",
    "SetupOrchestrator",
    "UNREACHABLE_MESSAGE",
]
