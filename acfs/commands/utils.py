"""Shared helpers for commands."""

import dataclasses
import sys
from pathlib import Path

import click

from acfs.config import ConfigError, InstallerSettings, settings_from_env
from acfs.errors import format_error
from acfs.paths import get_state_path

# Exit codes
EXIT_SUCCESS = 0
EXIT_PHASE_FAILED = 1
EXIT_INVALID_ARGS = 2
EXIT_ABORTED = 3
EXIT_CONFIG_ERROR = 4
EXIT_STATE_ERROR = 5


def build_settings(
    state_file: Path | None = None,
    target_user: str | None = None,
    **overrides,
) -> InstallerSettings:
    """Resolve settings from the environment, then apply CLI overrides.

    Overrides that are None (or False for flags) keep the environment value,
    so a flag can turn a behavior on but never off.

    Raises:
        ConfigError: If the environment or an override is invalid
    """
    settings = settings_from_env()
    changes = {k: v for k, v in overrides.items() if v is not None and v is not False}

    if target_user:
        changes["target_user"] = target_user
        # The default state location follows the target user's home
        if not state_file and not settings.environ.get("ACFS_STATE_FILE"):
            changes["state_path"] = get_state_path(target_user, settings.environ)
    if state_file:
        changes["state_path"] = Path(state_file)

    try:
        return dataclasses.replace(settings, **changes)
    except ValueError as e:
        raise ConfigError(f"Invalid installer settings: {e}") from e


def exit_with_error(message: str, code: int) -> None:
    click.echo(format_error(message), err=True)
    sys.exit(code)


def state_file_option(f):
    return click.option(
        "--state-file",
        type=click.Path(dir_okay=False, path_type=Path),
        default=None,
        help="State file (default: $ACFS_STATE_FILE or ~<user>/.acfs/state.json)",
    )(f)


def target_user_option(f):
    return click.option(
        "--target-user",
        default=None,
        help="User being provisioned (default: $TARGET_USER or ubuntu)",
    )(f)


__all__ = [
    "EXIT_SUCCESS",
    "EXIT_PHASE_FAILED",
    "EXIT_INVALID_ARGS",
    "EXIT_ABORTED",
    "EXIT_CONFIG_ERROR",
    "EXIT_STATE_ERROR",
    "build_settings",
    "exit_with_error",
    "state_file_option",
    "target_user_option",
]
