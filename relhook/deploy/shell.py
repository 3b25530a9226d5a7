"""Shell command execution."""

from __future__ import annotations

import asyncio
import os
import signal
from dataclasses import dataclass
from pathlib import Path

from relhook.utils.logging import get_logger
from relhook.utils.platform import get_default_shell

log = get_logger(__name__)

_DEFAULT_TIMEOUT = 900


@dataclass
class ShellResult:
    command: str
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    error: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.error


async def run_shell(
    command: str,
    timeout: float = _DEFAULT_TIMEOUT,
    working_dir: str | Path | None = None,
) -> ShellResult:
    """Run ``command`` through the shell and capture everything it prints.

    Never raises for command-level failures; inspect the returned result.
    """
    shell = get_default_shell()
    log.info("shell_exec", command=command, timeout=timeout)

    try:
        proc = await asyncio.create_subprocess_exec(
            shell, "-c", command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=working_dir,
            start_new_session=True,
        )
    except FileNotFoundError:
        return ShellResult(command=command, error=f"Shell not found: {shell}")
    except OSError as e:
        log.exception("shell_spawn_error", command=command)
        return ShellResult(command=command, error=str(e))

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        _kill_group(proc)
        await proc.wait()
        log.warning("shell_timeout", command=command, timeout=timeout)
        return ShellResult(
            command=command,
            exit_code=proc.returncode,
            error=f"Command timed out after {timeout}s: {command}",
        )

    result = ShellResult(
        command=command,
        exit_code=proc.returncode,
        stdout=stdout.decode("utf-8", errors="replace").strip(),
        stderr=stderr.decode("utf-8", errors="replace").strip(),
    )
    if proc.returncode != 0:
        result.error = f"Command failed with exit code {proc.returncode}: {command}"
    return result


def _kill_group(proc: asyncio.subprocess.Process) -> None:
    # The shell runs in its own session; kill every stage it started.
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
