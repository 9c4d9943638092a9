import json
from pathlib import Path

from vmsetup.config import DEFAULT_SETTINGS, Config, ConfigPaths


def test_defaults_loaded_when_missing(tmp_path):
    cfg = Config(paths=ConfigPaths.create(tmp_path))
    assert cfg.get("machine_name") == "dev"
    assert cfg.get("docker_version") == DEFAULT_SETTINGS["docker_version"]
    assert cfg.get("pause_vm_on_quit") is False
    assert cfg.load_ok is True
    assert cfg.support_dir.is_dir()


def test_saved_values_merge_with_defaults(tmp_path):
    paths = ConfigPaths.create(tmp_path)
    cfg = Config(paths=paths)
    cfg.set("machine_name", "work")
    assert cfg.save()

    reloaded = Config(paths=paths)
    assert reloaded.get("machine_name") == "work"
    assert reloaded.get("docker_version") == DEFAULT_SETTINGS["docker_version"]
    assert json.loads(paths.config_file.read_text())["machine_name"] == "work"


def test_invalid_file_is_backed_up_and_reset(tmp_path):
    paths = ConfigPaths.create(tmp_path)
    paths.ensure()
    paths.config_file.write_text("{not json")

    cfg = Config(paths=paths)

    assert cfg.load_ok is False
    assert cfg.get("machine_name") == "dev"
    assert paths.config_file.with_suffix(".json.bak").read_text() == "{not json"
    assert json.loads(paths.config_file.read_text())["machine_name"] == "dev"


def test_reset_to_defaults(tmp_path):
    cfg = Config(paths=ConfigPaths.create(tmp_path))
    cfg.set("docker_version", "99.0.0")
    cfg.reset_to_defaults()
    assert cfg.get("docker_version") == cfg.defaults["docker_version"]


def test_clear_cache(tmp_path):
    cfg = Config(paths=ConfigPaths.create(tmp_path))
    for i in range(3):
        (cfg.paths.cache_dir / f"tmp{i}.txt").write_text("x")
    (cfg.paths.cache_dir / "nested").mkdir()
    assert cfg.clear_cache() == 4
    assert not any(cfg.paths.cache_dir.iterdir())


def test_derived_paths(tmp_path, home):
    cfg = Config(paths=ConfigPaths.create(tmp_path))
    assert cfg.installer_path() == cfg.support_dir / cfg.get("virtualbox_filename")
    assert cfg.resources_dir() == cfg.config_dir / "resources"
    cfg.set("resources_dir", str(tmp_path / "bundle"))
    assert cfg.resources_dir() == tmp_path / "bundle"
    assert cfg.machine_dir() == home / ".docker" / "machine" / "machines" / "dev"
    assert cfg.virtualbox_url() == (
        f"https://download.virtualbox.org/virtualbox/4.3.28/{cfg.get('virtualbox_filename')}"
    )


def test_root_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("VMSETUP_HOME", str(tmp_path / "custom"))
    paths = ConfigPaths.create()
    assert paths.root == (tmp_path / "custom").resolve()
    assert paths.config_file == paths.root / "config.json"
    assert isinstance(paths.telemetry_file, Path)
