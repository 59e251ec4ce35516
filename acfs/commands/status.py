"""Status command implementation."""

import sys

import click

from acfs import setup_logging
from acfs.config import ConfigError
from acfs.phases import PHASE_IDS, phase_label
from acfs.state import StateError, StateStore
from acfs.tui import display_state_summary

from .utils import (
    EXIT_CONFIG_ERROR,
    EXIT_PHASE_FAILED,
    EXIT_STATE_ERROR,
    build_settings,
    exit_with_error,
    state_file_option,
    target_user_option,
)


@click.command()
@state_file_option
@target_user_option
@click.pass_context
def status(ctx, state_file, target_user):
    """Show saved installation progress."""
    setup_logging(ctx.obj.get("debug", False))
    try:
        settings = build_settings(state_file=state_file, target_user=target_user)
        store = StateStore.from_settings(settings)
        record = store.load()
    except ConfigError as e:
        exit_with_error(str(e), EXIT_CONFIG_ERROR)
    except StateError as e:
        exit_with_error(str(e), EXIT_STATE_ERROR)

    if record is None:
        click.echo(f"No installation state found at {store.path}")
        sys.exit(EXIT_PHASE_FAILED)

    display_state_summary(record)

    pending = store.pending_phases(PHASE_IDS)
    if pending:
        click.echo(f"Next phase: {phase_label(pending[0])}")
    else:
        click.secho("All phases complete.", fg="green")
