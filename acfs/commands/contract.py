"""Contract command implementation."""

import sys
from pathlib import Path

import click

from acfs import setup_logging
from acfs.config import ConfigError
from acfs.contracts import ContractError, ContractValidator, load_contracts
from acfs.installer import command_environ
from acfs.state import StateError, StateStore

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
@click.argument("target")
@state_file_option
@target_user_option
@click.option(
    "--contracts",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Contract registry (default: bundled contracts)",
)
@click.pass_context
def contract(ctx, target: str, state_file, target_user, contracts):
    """Check the preconditions of TARGET (module:<id> or phase:<id>)."""
    setup_logging(ctx.obj.get("debug", False))
    try:
        settings = build_settings(
            state_file=state_file, target_user=target_user, contracts_path=contracts
        )
        registry = load_contracts(settings.contracts_path)
        store = StateStore.from_settings(settings)
        result = ContractValidator(
            registry, store, command_environ(settings)
        ).require_contract(target)
    except ContractError as e:
        raise click.BadParameter(str(e), param_hint="TARGET")
    except ConfigError as e:
        exit_with_error(str(e), EXIT_CONFIG_ERROR)
    except StateError as e:
        exit_with_error(str(e), EXIT_STATE_ERROR)

    if result.ok:
        if target not in registry:
            click.echo(f"{target}: no contract declared")
        else:
            click.secho(f"{target}: satisfied", fg="green")
        return

    click.secho(f"{target}: not satisfied: {result.reason}", fg="red")
    sys.exit(EXIT_PHASE_FAILED)
