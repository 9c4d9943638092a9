"""Shared helpers for vmsetup."""
from __future__ import annotations

from .logging_config import setup_logging
from .process import CommandError, exec_command, exec_shell, run_command_async

__all__ = [
    "CommandError",
    "exec_command",
    "exec_shell",
    "run_command_async",
    "setup_logging",
]
