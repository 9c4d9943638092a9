"""High-level configuration manager used throughout vmsetup."""
from __future__ import annotations

import json
import logging
import shutil
from copy import deepcopy
from json import JSONDecodeError
from pathlib import Path
from typing import Any, Dict

from .defaults import DEFAULT_SETTINGS
from .paths import ConfigPaths

logger = logging.getLogger(__name__)


class Config:
    """Load, mutate, and persist provisioning settings."""

    def __init__(
        self,
        *,
        paths: ConfigPaths | None = None,
        defaults: Dict[str, Any] | None = None,
    ) -> None:
        self.paths = paths or ConfigPaths.create()
        self.defaults: Dict[str, Any] = deepcopy(defaults or DEFAULT_SETTINGS)
        self.config: Dict[str, Any] = deepcopy(self.defaults)
        self.load_ok = self._load_config()

    @property
    def config_dir(self) -> Path:
        """Return the directory holding configuration files."""

        return self.paths.root

    @property
    def config_file(self) -> Path:
        """Return the primary configuration file path."""

        return self.paths.config_file

    @property
    def support_dir(self) -> Path:
        """Return the directory downloads are written to."""

        return self.paths.support_dir

    def ensure_dirs(self) -> None:
        """Create configuration and support directories if necessary."""

        self.paths.ensure()

    def _load_config(self) -> bool:
        """Load configuration from disk, falling back to defaults."""

        self.ensure_dirs()
        path = self.paths.config_file
        if not path.exists():
            self.config = deepcopy(self.defaults)
            return True
        try:
            with open(path, "r", encoding="utf-8") as handle:
                loaded_config = json.load(handle)
            if not isinstance(loaded_config, dict):
                raise JSONDecodeError("expected a JSON object", "", 0)
            self.config = {**deepcopy(self.defaults), **loaded_config}
            return True
        except JSONDecodeError as exc:
            logger.warning("Invalid config file, resetting to defaults: %s", exc)
            backup = path.with_suffix(path.suffix + ".bak")
            try:
                shutil.move(path, backup)
            except OSError as backup_err:
                logger.warning("Failed to back up invalid config: %s", backup_err)
            self.config = deepcopy(self.defaults)
            self.save()
            return False
        except OSError as exc:
            logger.error("Error reading config: %s", exc)
            self.config = deepcopy(self.defaults)
            return False

    def save(self) -> bool:
        """Persist the current configuration to disk."""

        try:
            with open(self.paths.config_file, "w", encoding="utf-8") as handle:
                json.dump(self.config, handle, indent=4)
            return True
        except OSError as exc:
            logger.error("Error saving config: %s", exc)
            return False

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for *key* or ``default`` when unset."""

        return self.config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Assign *value* to *key* within the configuration."""

        self.config[key] = value

    def reset_to_defaults(self) -> None:
        """Replace the configuration with the default values."""

        self.config = deepcopy(self.defaults)
        self.save()

    # --- derived settings ---------------------------------------------
    def installer_path(self) -> Path:
        """Return where the VirtualBox installer is downloaded to."""

        return self.paths.support_dir / str(self.get("virtualbox_filename"))

    def virtualbox_url(self) -> str:
        template = str(self.get("virtualbox_url"))
        return template.format(
            version=self.get("virtualbox_version"),
            filename=self.get("virtualbox_filename"),
        )

    def resources_dir(self) -> Path:
        raw = Path(str(self.get("resources_dir")))
        if raw.is_absolute():
            return raw
        return self.paths.root / raw

    def bin_dir(self) -> Path:
        return Path(str(self.get("bin_dir")))

    def machine_dir(self) -> Path:
        """Return the docker-machine storage directory of the configured VM."""

        return Path.home() / ".docker" / "machine" / "machines" / str(self.get("machine_name"))

    def clear_cache(self) -> int:
        """Delete the cached files and directories, returning the count."""

        count = 0
        self.ensure_dirs()
        cache_dir = self.paths.cache_dir
        for path in cache_dir.iterdir():
            try:
                if path.is_file():
                    path.unlink()
                else:
                    shutil.rmtree(path)
                count += 1
            except OSError:
                logger.debug("Failed to remove cached entry %s", path, exc_info=True)
        return count


__all__ = ["Config"]
