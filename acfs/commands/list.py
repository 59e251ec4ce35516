"""List command implementation."""

from pathlib import Path

import click

from acfs import setup_logging
from acfs.config import ConfigError
from acfs.manifest import load_manifest
from acfs.phases import PHASES, phase_label

from .utils import EXIT_CONFIG_ERROR, build_settings, exit_with_error


@click.command(name="list")
@click.option(
    "--manifest",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Module manifest (default: bundled manifest)",
)
@click.option("--all", "show_all", is_flag=True, help="Include modules disabled by default")
@click.option("--verbose", "-v", is_flag=True, help="Show commands for each module")
@click.pass_context
def list_modules(ctx, manifest, show_all: bool, verbose: bool):
    """List manifest modules grouped by phase."""
    setup_logging(ctx.obj.get("debug", False))
    try:
        settings = build_settings(manifest_path=manifest)
        loaded = load_manifest(settings.manifest_path)
    except ConfigError as e:
        exit_with_error(str(e), EXIT_CONFIG_ERROR)

    for phase in PHASES:
        modules = loaded.modules_for_phase(phase.id, include_disabled=show_all)
        if not modules:
            continue
        click.secho(phase_label(phase.id), bold=True)
        for module in modules:
            flags = []
            if module.optional:
                flags.append("optional")
            if not module.enabled_by_default:
                flags.append("disabled")
            suffix = f" [{', '.join(flags)}]" if flags else ""
            click.echo(f"  {module.id:<24} {module.description}{suffix}")
            if verbose:
                for command in module.install:
                    click.echo(f"      install: {command}")
                for command in module.verify:
                    click.echo(f"      verify:  {command}")
