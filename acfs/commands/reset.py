"""Reset-state command implementation."""

import click

from acfs import setup_logging
from acfs.config import ConfigError
from acfs.state import StateError, StateStore

from .utils import (
    EXIT_CONFIG_ERROR,
    EXIT_STATE_ERROR,
    build_settings,
    exit_with_error,
    state_file_option,
    target_user_option,
)


@click.command(name="reset-state")
@state_file_option
@target_user_option
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def reset_state(ctx, state_file, target_user, yes: bool):
    """Delete saved progress so the next install starts fresh."""
    setup_logging(ctx.obj.get("debug", False))
    try:
        settings = build_settings(state_file=state_file, target_user=target_user)
    except ConfigError as e:
        exit_with_error(str(e), EXIT_CONFIG_ERROR)

    store = StateStore.from_settings(settings)
    if not store.exists():
        click.echo(f"No state file at {store.path}")
        return

    if not yes and not click.confirm(f"Delete {store.path}?", default=False):
        click.echo("Aborted.")
        return

    try:
        store.reset()
    except StateError as e:
        exit_with_error(str(e), EXIT_STATE_ERROR)
    click.echo(f"Removed {store.path}")
