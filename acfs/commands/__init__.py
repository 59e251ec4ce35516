"""CLI command definitions for acfs."""

import click

from acfs import __version__
from acfs.commands.contract import contract
from acfs.commands.install import install
from acfs.commands.list import list_modules
from acfs.commands.reset import reset_state
from acfs.commands.status import status


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug output for troubleshooting")
@click.version_option(__version__, prog_name="acfs")
@click.pass_context
def cli(ctx, debug):
    """Phased environment installer with resumable progress."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


cli.add_command(install)
cli.add_command(status)
cli.add_command(reset_state, name="reset-state")
cli.add_command(contract)
cli.add_command(list_modules, name="list")

__all__ = ["cli"]


if __name__ == "__main__":
    cli()
