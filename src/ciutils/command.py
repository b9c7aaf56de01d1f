"""Run shell commands with a timeout."""

import asyncio
import shlex
import typing as t
from contextlib import suppress
from pathlib import Path

import ciutils.logger as logger
from ciutils.exceptions import CommandFailedError, CommandTimeoutError

__all__ = ["run_command", "to_shell_command"]


def to_shell_command(command: str, args: t.Sequence[str] = ()) -> str:
    """Join a command and its arguments into a shell command line.

    The command itself is passed through untouched so it may contain shell
    syntax. Arguments are quoted.
    """
    if not args:
        return command
    return " ".join([command, *(shlex.quote(arg) for arg in args)])


async def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill a child process and reap it."""
    with suppress(ProcessLookupError):
        proc.kill()
    await proc.wait()


async def run_command(
    command: str,
    args: t.Sequence[str] = (),
    *,
    timeout: float,
    cwd: t.Optional[t.Union[str, Path]] = None,
    env: t.Optional[t.Mapping[str, str]] = None,
) -> None:
    """Run a command through the shell and wait for it to finish.

    The child inherits stdin, stdout and stderr.

    Args:
        command: The command to run.
        args: Additional arguments to pass to the command.
        timeout: How long (in seconds) to wait before killing the command.
        cwd: Working directory for the command.
        env: Environment for the command. Defaults to the current environment.

    The child is killed if the command times out or the awaiting task is
    cancelled.

    Raises:
        CommandTimeoutError: If the command runs longer than the timeout.
        CommandFailedError: If the command cannot be spawned or exits non-zero.
    """
    cmdline = to_shell_command(command, args)
    logger.debug("Running command: %s", cmdline)
    try:
        proc = await asyncio.create_subprocess_shell(
            cmdline, cwd=cwd, env=dict(env) if env is not None else None
        )
    except OSError as e:
        raise CommandFailedError(f"Failed to spawn command: {e}") from e

    try:
        returncode = await asyncio.wait_for(proc.wait(), timeout=timeout)
    except asyncio.TimeoutError as e:
        await _kill(proc)
        raise CommandTimeoutError(timeout) from e
    except BaseException:
        # Cancelled or interrupted, the child must not outlive the caller
        await _kill(proc)
        raise

    if returncode != 0:
        raise CommandFailedError(
            f"Command exited with a non-zero exit code: {returncode}", returncode
        )
