from __future__ import annotations

import pytest

from vmsetup.machine import (
    NOT_INSTALLED,
    DockerMachineDriver,
    MachineDriver,
    MachineInfo,
    MachineState,
    VirtualBox,
    read_iso_version,
)
from vmsetup.machine import docker_machine
from vmsetup.utils.process import CommandError


class _Recorder:
    """Replacement for ``exec_command`` answering from a lookup table."""

    def __init__(self, answers: dict[tuple[str, ...], str | Exception]) -> None:
        self.answers = answers
        self.calls: list[tuple[str, ...]] = []

    async def __call__(self, cmd, *, timeout=None, cwd=None, env=None):
        args = tuple(cmd[1:])
        self.calls.append(args)
        answer = self.answers.get(args, "")
        if isinstance(answer, Exception):
            raise answer
        return answer


@pytest.fixture()
def driver(config, tmp_path, monkeypatch):
    monkeypatch.setattr("vmsetup.machine.virtualbox.shutil.which", lambda name: None)
    return DockerMachineDriver(
        config,
        virtualbox=VirtualBox(tmp_path / "missing" / "VBoxManage"),
        executable="docker-machine",
    )


def _patch(monkeypatch, answers):
    recorder = _Recorder(answers)
    monkeypatch.setattr(docker_machine, "exec_command", recorder)
    return recorder


def test_driver_satisfies_protocol(driver):
    assert isinstance(driver, MachineDriver)
    assert driver.name() == "dev"


def test_machine_state_parse():
    assert MachineState.parse("Running\n") is MachineState.RUNNING
    assert MachineState.parse("saved") is MachineState.SAVED
    assert MachineState.parse("") is MachineState.NONE
    assert MachineState.parse("Exploded") is MachineState.ERROR


def test_machine_info_reachability():
    assert MachineInfo(name="dev", url="tcp://1.2.3.4:2376").reachable
    assert not MachineInfo(name="dev").reachable
    assert MachineInfo(name="dev", extra={"driver": "virtualbox"}).as_dict()["driver"] == "virtualbox"


async def test_exists_reads_machine_list(driver, monkeypatch):
    _patch(monkeypatch, {("ls", "-q"): "other\ndev"})
    assert await driver.exists() is True


async def test_exists_false_when_listing_fails(driver, monkeypatch):
    _patch(monkeypatch, {("ls", "-q"): CommandError(["docker-machine", "ls"], 1)})
    assert await driver.exists() is False


async def test_state_reports_error_when_status_fails(driver, monkeypatch):
    _patch(monkeypatch, {("status", "dev"): CommandError(["docker-machine", "status"], 1)})
    assert await driver.state() == "Error"


async def test_lifecycle_commands(driver, monkeypatch):
    recorder = _patch(monkeypatch, {})

    await driver.rm()
    await driver.create()
    await driver.stop()
    await driver.upgrade()
    await driver.start()

    assert recorder.calls == [
        ("rm", "-f", "dev"),
        ("create", "-d", "virtualbox", "dev"),
        ("stop", "dev"),
        ("upgrade", "dev"),
        ("start", "dev"),
    ]


async def test_info_for_running_machine(driver, monkeypatch):
    _patch(
        monkeypatch,
        {
            ("status", "dev"): "Running",
            ("url", "dev"): "tcp://192.168.99.100:2376",
            ("ip", "dev"): "192.168.99.100",
        },
    )

    info = await driver.info()

    assert info.url == "tcp://192.168.99.100:2376"
    assert info.ip == "192.168.99.100"
    assert info.state == "Running"


async def test_info_for_stopped_machine_has_no_url(driver, monkeypatch):
    recorder = _patch(monkeypatch, {("status", "dev"): "Stopped"})

    info = await driver.info()

    assert info.url is None
    assert ("url", "dev") not in recorder.calls


async def test_isoversion_from_volume_label(driver, config):
    machine_dir = config.machine_dir()
    machine_dir.mkdir(parents=True)
    (machine_dir / "boot2docker.iso").write_bytes(b"\x00" * 32808 + b"Boot2Docker-v1.7.0  " + b"\x00" * 64)

    assert await driver.isoversion() == "1.7.0"


async def test_isoversion_missing(driver):
    assert await driver.isoversion() is None


def test_read_iso_version_without_label(tmp_path):
    iso = tmp_path / "boot2docker.iso"
    iso.write_bytes(b"\x00" * 1024)
    assert read_iso_version(iso) is None


async def test_virtualbox_not_installed(driver):
    assert await driver.installed() is False
    assert await driver.version() == NOT_INSTALLED


async def test_virtualbox_version_parsing(tmp_path, monkeypatch):
    manage = tmp_path / "VBoxManage"
    manage.write_text("#!/bin/sh\n")
    vbox = VirtualBox(manage)

    async def fake_exec(cmd, *, timeout=None, cwd=None, env=None):
        assert cmd == [str(manage), "-v"]
        return "4.3.28r100309"

    monkeypatch.setattr("vmsetup.machine.virtualbox.exec_command", fake_exec)

    assert vbox.installed() is True
    assert await vbox.version() == "4.3.28"


async def test_destroy_vm_skips_when_virtualbox_missing(driver):
    assert await driver.virtualbox.vmdestroy("kitematic-vm") is False
    await driver.destroy_vm("kitematic-vm")


async def test_vmdestroy_powers_off_then_unregisters(tmp_path, monkeypatch):
    manage = tmp_path / "VBoxManage"
    manage.write_text("#!/bin/sh\n")
    vbox = VirtualBox(manage)
    calls: list[tuple[str, ...]] = []

    async def fake_run(cmd, **kwargs):
        calls.append(tuple(cmd[1:]))
        if cmd[1] == "controlvm":
            return None, CommandError(cmd, 1, stderr="VM is not running")
        return 'name="kitematic-vm"', None

    async def fake_exec(cmd, *, timeout=None, cwd=None, env=None):
        calls.append(tuple(cmd[1:]))
        return ""

    monkeypatch.setattr("vmsetup.machine.virtualbox.run_command_async", fake_run)
    monkeypatch.setattr("vmsetup.machine.virtualbox.exec_command", fake_exec)

    assert await vbox.vmdestroy("kitematic-vm") is True
    assert calls == [
        ("showvminfo", "kitematic-vm", "--machinereadable"),
        ("controlvm", "kitematic-vm", "poweroff"),
        ("unregistervm", "kitematic-vm", "--delete"),
    ]
