"""Filesystem helpers for configuration storage."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _default_root() -> Path:
    env_root = os.environ.get("VMSETUP_HOME")
    if env_root:
        return Path(env_root)
    return Path.home() / ".vmsetup"


@dataclass(frozen=True)
class ConfigPaths:
    """Resolved filesystem locations for configuration data."""

    root: Path
    config_file: Path
    cache_dir: Path
    support_dir: Path
    telemetry_file: Path
    consent_file: Path

    @classmethod
    def create(cls, root: Path | None = None) -> "ConfigPaths":
        """Return paths rooted at *root* or the default config directory."""

        base = Path(root) if root is not None else _default_root()
        base = base.expanduser().resolve()
        return cls(
            root=base,
            config_file=base / "config.json",
            cache_dir=base / "cache",
            support_dir=base / "support",
            telemetry_file=base / "telemetry" / "events.jsonl",
            consent_file=base / "telemetry-consent.json",
        )

    def ensure(self) -> None:
        """Create the configuration, cache and support directories if needed."""

        self.root.mkdir(parents=True, exist_ok=True)
        self.cache_dir.mkdir(exist_ok=True)
        self.support_dir.mkdir(exist_ok=True)


__all__ = ["ConfigPaths"]
