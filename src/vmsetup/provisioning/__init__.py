"""Provisioning helpers shared by the setup steps."""
from __future__ import annotations

from .toolkit import (
    ChecksumMismatchError,
    DownloadError,
    ProgressCallback,
    ProvisioningToolkit,
    checksum,
    compare_versions,
)

__all__ = [
    "ChecksumMismatchError",
    "DownloadError",
    "ProgressCallback",
    "ProvisioningToolkit",
    "checksum",
    "compare_versions",
]
