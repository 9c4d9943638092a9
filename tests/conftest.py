import asyncio
import inspect
from pathlib import Path

import pytest

from vmsetup.config import Config, ConfigPaths
from vmsetup.telemetry import InMemoryTelemetryStorage, TelemetryClient


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        sig = inspect.signature(pyfuncitem.obj)
        kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in sig.parameters
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**kwargs))
        return True
    return None


@pytest.fixture()
def home(tmp_path, monkeypatch):
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setattr(Path, "home", lambda: home_dir)
    monkeypatch.delenv("VMSETUP_HOME", raising=False)
    monkeypatch.delenv("VMSETUP_TELEMETRY", raising=False)
    return home_dir


@pytest.fixture()
def config(tmp_path, home) -> Config:
    cfg = Config(paths=ConfigPaths.create(tmp_path / "vmsetup"))
    cfg.set("bin_dir", str(tmp_path / "bin"))
    return cfg


@pytest.fixture()
def telemetry_storage() -> InMemoryTelemetryStorage:
    return InMemoryTelemetryStorage()


@pytest.fixture()
def telemetry_client(telemetry_storage) -> TelemetryClient:
    state = {"current": 5_000.0}

    def clock() -> float:
        state["current"] += 0.5
        return state["current"]

    return TelemetryClient(telemetry_storage, clock=clock)
