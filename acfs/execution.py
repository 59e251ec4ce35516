"""Shell command execution for module installers."""

import asyncio
import getpass
import logging
import shlex
from typing import Mapping, Tuple

# Installers may compile or download; no timeout unless asked
INSTALL_TIMEOUT = None
CHECK_TIMEOUT = 60

_logging = logging.getLogger(__name__)


def wrap_command(command: str, run_as: str, target_user: str, current_user: str | None = None) -> str:
    """Wrap a command so it runs as the user the module asks for.

    run_as "root" and "current" run the command unchanged (the installer is
    expected to run as root); "target_user" switches to the target user with
    a login shell unless we already are that user.
    """
    if run_as != "target_user":
        return command
    if current_user is None:
        current_user = getpass.getuser()
    if current_user == target_user:
        return command
    return f"sudo -u {shlex.quote(target_user)} -H bash -lc {shlex.quote(command)}"


async def run_command_async(
    command: str,
    timeout: float | None = INSTALL_TIMEOUT,
    env: Mapping[str, str] | None = None,
    debug: bool = False,
) -> Tuple[str, int]:
    """Run a command asynchronously and return output and return code."""
    process = None
    try:
        if debug:
            _logging.debug(f"Running command: {command}")
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=dict(env) if env is not None else None,
        )
        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
            output = stdout.decode(errors="replace").strip()
            return output, process.returncode if process.returncode is not None else 1
        except asyncio.TimeoutError:
            process.kill()
            _ = await process.wait()
            _logging.error(f"Command timed out after {timeout} seconds: {command}")
            return f"Command timed out after {timeout} seconds", 1
    except OSError as e:
        _logging.error(f"Command execution failed: {type(e).__name__}: {e} | Command: {command}")
        return f"Error: {str(e)}", 1
    finally:
        if process:
            transport = getattr(process, "_transport", None)
            if transport:
                transport.close()


def run_command(
    command: str,
    timeout: float | None = INSTALL_TIMEOUT,
    env: Mapping[str, str] | None = None,
    debug: bool = False,
) -> Tuple[str, int]:
    """Blocking wrapper around run_command_async for sequential callers."""
    return asyncio.run(run_command_async(command, timeout=timeout, env=env, debug=debug))


__all__ = [
    "INSTALL_TIMEOUT",
    "CHECK_TIMEOUT",
    "wrap_command",
    "run_command_async",
    "run_command",
]
