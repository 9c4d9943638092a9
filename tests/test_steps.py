from __future__ import annotations

import pytest

from vmsetup.setup.steps import (
    OutcomeStatus,
    SetupCancelled,
    Step,
    StepContext,
    StepOutcome,
    StepRegistry,
    build_default_steps,
    default_registry,
    download_virtualbox,
    init_machine,
    install_virtualbox,
)
from vmsetup.utils.process import CommandError

from tests.fixtures.machine import FakeDriver, FakeToolkit, succeed


def _context(config, step_name, *, driver=None, toolkit=None):
    registry = default_registry()
    progress: list[float] = []
    ctx = StepContext(
        step=registry.get(step_name),
        driver=driver or FakeDriver(),
        toolkit=toolkit or FakeToolkit(),
        config=config,
        report_progress=progress.append,
    )
    return ctx, progress


def test_registry_rejects_duplicates_and_keeps_order():
    registry = StepRegistry()
    registry.register(Step("b", "B", "", 1, succeed))
    registry.register(Step("a", "A", "", 1, succeed))

    with pytest.raises(ValueError):
        registry.register(Step("a", "Again", "", 1, succeed))

    assert registry.names() == ["b", "a"]
    assert list(registry.by_name()) == ["b", "a"]
    assert "a" in registry
    assert len(registry) == 2


def test_outcome_constructors():
    error = RuntimeError("boom")
    assert StepOutcome.success().succeeded
    assert StepOutcome.failure(error).error is error
    assert StepOutcome.failure(error).status is OutcomeStatus.FAILURE
    assert StepOutcome.cancelled().was_cancelled
    assert StepOutcome.failure(error).as_dict()["status"] == "failure"


def test_default_catalog():
    steps = {step.name: step for step in build_default_steps()}

    assert list(steps) == ["download", "install", "init"]
    assert steps["download"].weight == 35
    assert steps["install"].weight == 5
    assert steps["install"].estimated_seconds == 5
    assert steps["init"].weight == 60
    assert steps["init"].estimated_seconds == 53
    assert default_registry().get("init") is not default_registry().get("init")


async def test_download_uses_configured_installer(config):
    ctx, progress = _context(config, "download")

    await download_virtualbox(ctx)

    url, destination, checksum = ctx.toolkit.downloads[0]
    assert url.endswith("VirtualBox.run")
    assert destination == config.installer_path()
    assert checksum is None
    assert progress == [50, 100]


async def test_install_runs_virtualbox_installer_when_missing(config):
    driver = FakeDriver(installed=False)
    ctx, progress = _context(config, "install", driver=driver)

    await install_virtualbox(ctx)

    assert driver.count("killall") == 1
    assert ctx.toolkit.commands == ["sudo[copy-binaries && fix-binaries && install-virtualbox]"]
    assert progress == [50]


async def test_install_skips_when_nothing_to_fix(config):
    ctx, progress = _context(config, "install")

    outcome = await install_virtualbox(ctx)

    assert outcome is not None and outcome.succeeded
    assert ctx.toolkit.commands == []
    assert progress == []


async def test_install_fixes_binaries(config):
    ctx, _ = _context(config, "install", toolkit=FakeToolkit(binary_fix=True))

    await install_virtualbox(ctx)

    assert ctx.toolkit.commands == ["sudo[copy-binaries && fix-binaries]"]
    assert ctx.driver.count("killall") == 0


async def test_install_treats_failed_privileged_command_as_cancellation(config):
    toolkit = FakeToolkit(run_error=CommandError("pkexec", 126))
    ctx, _ = _context(config, "install", driver=FakeDriver(installed=False), toolkit=toolkit)

    with pytest.raises(SetupCancelled):
        await install_virtualbox(ctx)


async def test_init_creates_missing_machine(config):
    driver = FakeDriver(exists=False)
    ctx, _ = _context(config, "init", driver=driver)

    await init_machine(ctx)

    assert driver.destroyed == ["kitematic-vm"]
    assert [call for call in driver.calls if call in {"rm", "create", "start"}] == ["rm", "create"]
    assert ctx.toolkit.simulations == [53]


async def test_init_wipes_machine_dir_when_create_fails(config):
    driver = FakeDriver(exists=False, failures={"create": [RuntimeError("bad disk")]})
    machine_dir = config.machine_dir()
    machine_dir.mkdir(parents=True)
    (machine_dir / "disk.vmdk").write_text("broken")
    ctx, _ = _context(config, "init", driver=driver)

    await init_machine(ctx)

    assert driver.count("create") == 2
    assert not machine_dir.exists()


async def test_init_recreates_errored_machine(config):
    driver = FakeDriver(state="Error")
    ctx, _ = _context(config, "init", driver=driver)

    await init_machine(ctx)

    assert driver.count("rm") == 1
    assert driver.count("create") == 1
    assert driver.count("upgrade") == 0


async def test_init_upgrades_outdated_iso_then_starts(config):
    driver = FakeDriver(isoversion="1.6.0", state="Running")
    ctx, _ = _context(config, "init", driver=driver)

    await init_machine(ctx)

    tail = [call for call in driver.calls if call in {"stop", "upgrade", "start"}]
    assert tail == ["stop", "upgrade", "start"]


async def test_init_starts_current_machine(config):
    driver = FakeDriver(state="Stopped")
    ctx, _ = _context(config, "init", driver=driver)

    await init_machine(ctx)

    assert driver.count("start") == 1
    assert driver.count("upgrade") == 0
    assert driver.count("create") == 0
