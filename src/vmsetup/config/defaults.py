"""Default settings for the provisioning pipeline."""
from __future__ import annotations

from typing import Any, Dict

VIRTUALBOX_VERSION = "4.3.28"
VIRTUALBOX_BUILD = "100309"

DEFAULT_SETTINGS: Dict[str, Any] = {
    # Docker VM
    "machine_name": "dev",
    "legacy_vm_name": "kitematic-vm",
    "docker_version": "1.7.0",
    "machine_driver": "virtualbox",
    # VirtualBox installer
    "virtualbox_version": VIRTUALBOX_VERSION,
    "virtualbox_filename": f"VirtualBox-{VIRTUALBOX_VERSION}-{VIRTUALBOX_BUILD}-OSX.dmg",
    "virtualbox_checksum": "",
    "virtualbox_url": (
        "https://download.virtualbox.org/virtualbox/{version}/{filename}"
    ),
    "virtualbox_manage": "/usr/bin/VBoxManage",
    # Bundled client binaries copied into bin_dir
    "resources_dir": "resources",
    "bin_dir": "/usr/local/bin",
    "binaries": ["docker", "docker-machine"],
    # Shell preferences
    "pause_vm_on_quit": False,
}

__all__ = ["DEFAULT_SETTINGS", "VIRTUALBOX_VERSION", "VIRTUALBOX_BUILD"]
