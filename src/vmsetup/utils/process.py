from __future__ import annotations

"""Asynchronous wrappers for subprocess commands.

The :func:`run_command_async` coroutine executes an external command and
returns a ``(output, error)`` pair: the captured standard output (or an empty
string when ``capture`` is ``False``) and ``None`` on success, or ``None`` and
the exception describing the failure otherwise.  It never raises for process
level failures.

:func:`exec_command` and :func:`exec_shell` are the raising counterparts used
by the provisioning steps: they return the captured output and raise
:class:`CommandError` when the command cannot be started, times out or exits
with a non-zero status.
"""

import asyncio
import logging
from typing import Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

__all__ = [
    "CommandError",
    "run_command_async",
    "exec_command",
    "exec_shell",
]


class CommandError(RuntimeError):
    """Raised when an external command fails."""

    def __init__(
        self,
        cmd: Sequence[str] | str,
        returncode: int | None,
        output: str = "",
        stderr: str = "",
    ) -> None:
        self.cmd = cmd
        self.returncode = returncode
        self.output = output
        self.stderr = stderr
        shown = cmd if isinstance(cmd, str) else " ".join(cmd)
        if returncode is None:
            message = f"Command {shown!r} could not be executed"
        else:
            message = f"Command {shown!r} exited with status {returncode}"
        if stderr.strip():
            message += f": {stderr.strip()}"
        super().__init__(message)


async def _communicate(
    proc: asyncio.subprocess.Process, timeout: float | None
) -> Tuple[bytes, bytes]:
    if timeout is not None:
        return await asyncio.wait_for(proc.communicate(), timeout)
    return await proc.communicate()


async def run_command_async(
    cmd: Sequence[str],
    *,
    capture: bool = False,
    timeout: float | None = 60.0,
    check: bool = True,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
) -> Tuple[Optional[str], Exception | None]:
    """Asynchronously execute *cmd*.

    Parameters
    ----------
    cmd:
        Command and arguments to execute.
    capture:
        When ``True`` return the standard output as text.
    timeout:
        Maximum seconds to wait for the command. ``None`` disables the timeout.
    check:
        If ``True`` (default) a non-zero return code is treated as failure and
        a :class:`CommandError` is returned.
    cwd:
        Optional working directory for the new process.
    env:
        Optional environment overrides for the new process.
    """
    stdout = asyncio.subprocess.PIPE if capture else asyncio.subprocess.DEVNULL
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=stdout,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=env,
        )
    except OSError as e:
        logger.debug("Command %s failed to start", cmd, exc_info=True)
        return None, CommandError(cmd, None, stderr=str(e))

    try:
        out, err = await _communicate(proc, timeout)
    except asyncio.TimeoutError as e:
        logger.warning("Command %s timed out", cmd)
        proc.kill()
        await proc.wait()
        return None, e

    text = out.decode(errors="replace") if (capture and out) else ""
    if check and proc.returncode != 0:
        error_text = err.decode(errors="replace") if err else ""
        logger.debug("Command %s failed with code %s", cmd, proc.returncode)
        return text, CommandError(cmd, proc.returncode, output=text, stderr=error_text)
    return text, None


async def exec_command(
    cmd: Sequence[str],
    *,
    timeout: float | None = None,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
) -> str:
    """Run *cmd*, returning its stripped output or raising :class:`CommandError`."""

    out, error = await run_command_async(
        cmd, capture=True, timeout=timeout, check=True, cwd=cwd, env=env
    )
    if error is not None:
        if isinstance(error, CommandError):
            raise error
        raise CommandError(cmd, None, stderr=str(error) or type(error).__name__) from error
    return (out or "").strip()


async def exec_shell(command: str, *, timeout: float | None = None) -> str:
    """Run *command* through the shell, raising :class:`CommandError` on failure."""

    logger.debug("Running shell command: %s", command)
    try:
        proc = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise CommandError(command, None, stderr=str(e)) from e
    try:
        out, err = await _communicate(proc, timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        raise CommandError(command, None, stderr="timed out") from e
    text = out.decode(errors="replace") if out else ""
    if proc.returncode != 0:
        raise CommandError(
            command,
            proc.returncode,
            output=text,
            stderr=err.decode(errors="replace") if err else "",
        )
    return text.strip()
