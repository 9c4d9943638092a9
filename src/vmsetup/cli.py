"""Argument parsing and CLI orchestration for ``vmsetup``."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from . import __version__
from .config import Config, ConfigPaths
from .console import ConsoleDashboard, SetupEvent, SetupEventType
from .machine import DockerMachineDriver
from .provisioning import ProvisioningToolkit
from .session import HostSession
from .setup import SetupOrchestrator
from .telemetry import (
    CONSENT_ENV,
    ConsentDecision,
    CrashReporter,
    JsonlTelemetryStorage,
    TelemetryClient,
    TelemetryConsentManager,
    tracing,
)
from .utils import CommandError, setup_logging

logger = logging.getLogger(__name__)

__all__ = ["Services", "build_services", "main"]


@dataclass
class Services:
    """Long-lived collaborators wired together for one CLI invocation."""

    config: Config
    driver: DockerMachineDriver
    toolkit: ProvisioningToolkit
    telemetry: TelemetryClient
    orchestrator: SetupOrchestrator
    session: HostSession
    consent: TelemetryConsentManager
    decision: ConsentDecision


def build_services(config_dir: Path | None = None, *, telemetry_enabled: bool = True) -> Services:
    paths = ConfigPaths.create(config_dir)
    config = Config(paths=paths)
    consent = TelemetryConsentManager(paths.consent_file)
    decision = consent.resolve(disabled=not telemetry_enabled)
    telemetry = TelemetryClient(JsonlTelemetryStorage(paths.telemetry_file), enabled=decision.granted)
    driver = DockerMachineDriver(config)
    toolkit = ProvisioningToolkit(config)
    orchestrator = SetupOrchestrator(
        driver,
        toolkit,
        config,
        telemetry=telemetry,
        crash_reporter=CrashReporter(telemetry),
    )
    return Services(
        config=config,
        driver=driver,
        toolkit=toolkit,
        telemetry=telemetry,
        orchestrator=orchestrator,
        session=HostSession(config, driver),
        consent=consent,
        decision=decision,
    )


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="vmsetup",
        description="Provision the local Docker VM.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config-dir", type=Path, default=None, help="Directory holding vmsetup settings")
    parser.add_argument("--log-file", type=str, default=None, help="Also write logs to this file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--no-telemetry", action="store_true", help="Do not record telemetry for this run")
    sub = parser.add_subparsers(dest="command", required=False)

    p_setup = sub.add_parser("setup", help="Run the provisioning steps this host needs")
    p_setup.add_argument(
        "--non-interactive",
        action="store_true",
        help="Abort instead of prompting when a step fails or is cancelled",
    )
    sub.add_parser("status", help="Show which provisioning steps are required")
    sub.add_parser("stop", help="Stop the Docker VM")
    p_quit = sub.add_parser("pause-on-quit", help="Stop the VM when an interrupted setup exits")
    p_quit.add_argument("state", choices=["on", "off"])
    p_telemetry = sub.add_parser("telemetry", help="Opt in to or out of anonymous usage telemetry")
    p_telemetry.add_argument("state", choices=["on", "off", "status"])

    parser.set_defaults(command="setup", non_interactive=False)
    return parser.parse_args(argv)


def _confirm_in_background(prompt: str, console: Console) -> asyncio.Future[bool]:
    """Ask *prompt* on a daemon thread.

    The default executor is joined when ``asyncio.run`` exits, so a prompt
    still blocked on stdin after an abort would keep the process alive.
    """

    loop = asyncio.get_running_loop()
    future: asyncio.Future[bool] = loop.create_future()

    def _settle(answer: bool | None, error: Exception | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(bool(answer))

    def _worker() -> None:
        answer: bool | None = None
        error: Exception | None = None
        try:
            answer = Confirm.ask(prompt, console=console, default=True)
        except Exception as exc:
            error = exc
        if loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(_settle, answer, error)
        except RuntimeError:
            logger.debug("Prompt answered after the event loop closed")

    threading.Thread(target=_worker, name="vmsetup-prompt", daemon=True).start()
    return future


class _PausePrompter:
    """Ask the user whether to retry whenever the orchestrator pauses."""

    def __init__(
        self,
        orchestrator: SetupOrchestrator,
        dashboard: ConsoleDashboard,
        *,
        interactive: bool,
    ) -> None:
        self.orchestrator = orchestrator
        self.dashboard = dashboard
        self.interactive = interactive
        self.task: asyncio.Task[object] | None = None
        self._pending: asyncio.Task[None] | None = None

    def __call__(self, event: SetupEvent) -> None:
        if self._pending is not None:
            return
        stopped = event.type is SetupEventType.ERROR or (
            event.type is SetupEventType.STEP and self.orchestrator.cancelled
        )
        if stopped:
            self._pending = asyncio.get_running_loop().create_task(self._ask())

    def abort(self) -> None:
        if self.task is not None:
            self.task.cancel()

    async def _ask(self) -> None:
        try:
            if not self.interactive:
                self.abort()
                return
            self.dashboard.stop()
            answer = await _confirm_in_background("Retry setup?", self.dashboard.console)
            if answer:
                self.dashboard.start()
                self.orchestrator.retry()
            else:
                self.abort()
        finally:
            self._pending = None


def _install_interrupt_handler(orchestrator: SetupOrchestrator, prompter: _PausePrompter) -> None:
    def _on_interrupt() -> None:
        if orchestrator.paused:
            prompter.abort()
        else:
            orchestrator.cancel()

    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, _on_interrupt)
    except NotImplementedError:
        logger.debug("Signal handlers are not supported on this platform")


async def _setup(services: Services, console: Console, *, interactive: bool) -> int:
    orchestrator = services.orchestrator
    dashboard = ConsoleDashboard(orchestrator, console=console)
    prompter = _PausePrompter(orchestrator, dashboard, interactive=interactive)
    orchestrator.subscribe(prompter)
    _install_interrupt_handler(orchestrator, prompter)

    dashboard.start()
    prompter.task = asyncio.get_running_loop().create_task(orchestrator.setup())
    try:
        info = await prompter.task
    except asyncio.CancelledError:
        dashboard.stop()
        console.print("[yellow]Setup aborted.[/]")
        await services.session.shutdown()
        return 1
    finally:
        orchestrator.unsubscribe(prompter)
        dashboard.detach()
    dashboard.stop()
    console.print(f"[green]Docker VM [bold]{info.name}[/] is running at {info.url}[/]")
    return 0


async def _status(services: Services, console: Console) -> int:
    evaluator = services.orchestrator.evaluator
    required = {step.name for step in await evaluator.required_steps()}
    table = Table(title="Provisioning steps")
    table.add_column("Step")
    table.add_column("Title")
    table.add_column("Required")
    table.add_column("Estimate")
    for step in services.orchestrator.steps.values():
        estimate = f"{step.estimated_seconds:g}s" if step.estimated_seconds else "-"
        table.add_row(step.name, step.title, "yes" if step.name in required else "no", estimate)
    console.print(table)
    report = evaluator.report
    if report is not None:
        console.print(
            f"VirtualBox installed: {report.installed}  "
            f"machine exists: {report.exists}  state: {report.state or '-'}  "
            f"ISO: {report.isoversion or '-'} (target {report.target_version})"
        )
    return 0


def _telemetry(services: Services, console: Console, state: str) -> int:
    if state == "status":
        decision = services.decision
        console.print(f"Telemetry: {'on' if decision.granted else 'off'} ({decision.source})")
        return 0

    decision = services.consent.decide(state == "on")
    telemetry = services.telemetry
    if decision.granted and services.decision.source != "flag":
        telemetry.enable()
    telemetry.record_consent(granted=decision.granted, source=decision.source)
    if not decision.granted:
        telemetry.flush()
        telemetry.disable()
    console.print(f"Telemetry: {state}")
    if os.getenv(CONSENT_ENV) is not None:
        console.print(f"[yellow]{CONSENT_ENV} is set and overrides this choice.[/]")
    return 0


async def _stop(services: Services, console: Console) -> int:
    try:
        await services.driver.stop()
    except CommandError as exc:
        console.print(f"[red]Failed to stop {services.driver.name()}: {exc}[/]")
        return 1
    console.print(f"Stopped {services.driver.name()}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else list(argv))
    setup_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)
    tracing.configure_from_environment()
    console = Console()
    services = build_services(args.config_dir, telemetry_enabled=not args.no_telemetry)

    command = args.command
    try:
        if command == "status":
            return asyncio.run(_status(services, console))
        if command == "stop":
            return asyncio.run(_stop(services, console))
        if command == "pause-on-quit":
            services.session.set_pause_vm_on_quit(args.state == "on")
            console.print(f"Stop VM on quit: {args.state}")
            return 0
        if command == "telemetry":
            return _telemetry(services, console, args.state)
        return asyncio.run(_setup(services, console, interactive=not args.non_interactive))
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user.[/]")
        return 130
    finally:
        services.telemetry.flush()
