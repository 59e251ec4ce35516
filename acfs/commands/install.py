"""Install command implementation."""

import logging
import sys
from pathlib import Path

import click

from acfs import setup_logging
from acfs.config import MODES, ConfigError, InstallerSettings
from acfs.contracts import ContractValidator, load_contracts
from acfs.errors import format_phase_failure, format_unpersisted, format_warning
from acfs.installer import ModuleInstaller, command_environ
from acfs.manifest import load_manifest
from acfs.phases import Phase, phase_label, select_phases
from acfs.resume import (
    ResumeDecision,
    ResumeOutcome,
    ResumeReason,
    apply_rerun_phases,
    confirm_resume,
)
from acfs.runner import PhaseStatus, PlannedPhase, run_phases
from acfs.state import StateError, StateStore
from acfs.tui import (
    ResumeAction,
    choose_resume_action,
    display_state_summary,
    stdin_is_tty,
)

from .utils import (
    EXIT_ABORTED,
    EXIT_CONFIG_ERROR,
    EXIT_PHASE_FAILED,
    EXIT_STATE_ERROR,
    build_settings,
    exit_with_error,
    state_file_option,
    target_user_option,
)

_logging = logging.getLogger(__name__)

_FRESH_MESSAGES = {
    ResumeReason.FORCED: "Force reinstall: previous progress discarded",
    ResumeReason.NO_STATE: "Starting a new installation",
    ResumeReason.CORRUPTED: "State file was unreadable and has been discarded; starting fresh",
    ResumeReason.INCOMPATIBLE: "State file is from an incompatible installer; starting fresh",
}


@click.command()
@state_file_option
@target_user_option
@click.option(
    "--manifest",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Module manifest (default: bundled manifest)",
)
@click.option(
    "--contracts",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Contract registry (default: bundled contracts)",
)
@click.option("--force-reinstall", is_flag=True, help="Discard saved progress and start over")
@click.option("--resume", "force_resume", is_flag=True, help="Resume without asking")
@click.option("--interactive", is_flag=True, help="Ask before resuming a previous run")
@click.option("--dry-run", is_flag=True, help="Show what would run without changing anything")
@click.option("--mode", type=click.Choice(MODES), default=None, help="Installation mode")
@click.option(
    "--only-phase",
    multiple=True,
    metavar="PHASE",
    help="Run only these phases (repeatable)",
)
@click.option(
    "--skip-phase",
    multiple=True,
    metavar="PHASE",
    help="Mark phases as skipped by the operator (repeatable)",
)
@click.option(
    "--continue-on-error",
    is_flag=True,
    help="Keep going with later phases after a failure",
)
@click.pass_context
def install(
    ctx,
    state_file: Path | None,
    target_user: str | None,
    manifest: Path | None,
    contracts: Path | None,
    force_reinstall: bool,
    force_resume: bool,
    interactive: bool,
    dry_run: bool,
    mode: str | None,
    only_phase: tuple[str, ...],
    skip_phase: tuple[str, ...],
    continue_on_error: bool,
):
    """Run the installation, resuming from saved progress when possible."""
    debug = ctx.obj.get("debug", False)
    setup_logging(debug)

    try:
        phases = select_phases(only_phase)
        select_phases(skip_phase)
    except ValueError as e:
        raise click.BadParameter(str(e))

    try:
        settings = build_settings(
            state_file=state_file,
            target_user=target_user,
            manifest_path=manifest,
            contracts_path=contracts,
            force_reinstall=force_reinstall,
            force_resume=force_resume,
            interactive=interactive,
            dry_run=dry_run,
            mode=mode,
        )
        store = StateStore.from_settings(settings)
        installer = _build_installer(settings, store)

        if settings.dry_run:
            _dry_run(store, installer, phases)
            return

        outcome = _resolve_start(settings, store)
        for phase_id in skip_phase:
            store.mark_phase_skipped(phase_id)

        plan = [
            PlannedPhase(p.id, phase_label(p.id), installer.phase_work(p.id))
            for p in phases
        ]
        outcomes = run_phases(store, plan, halt_on_failure=not continue_on_error)
    except ConfigError as e:
        exit_with_error(str(e), EXIT_CONFIG_ERROR)
    except StateError as e:
        exit_with_error(str(e), EXIT_STATE_ERROR)

    _logging.debug(f"Start decision: {outcome.decision.name} ({outcome.reason.value})")
    _report(store, outcomes)


def _build_installer(settings: InstallerSettings, store: StateStore) -> ModuleInstaller:
    manifest = load_manifest(settings.manifest_path)
    registry = load_contracts(settings.contracts_path)
    validator = ContractValidator(registry, store, command_environ(settings))
    return ModuleInstaller(manifest, validator, settings)


def _resolve_start(settings: InstallerSettings, store: StateStore) -> ResumeOutcome:
    """Run the resume decision and, when allowed, let the operator override it."""
    outcome = confirm_resume(settings, store)

    if outcome.decision is ResumeDecision.RESUME:
        display_state_summary(outcome.record, verbose=False)
        if outcome.version_changed:
            click.echo(
                f"Installer changed from {outcome.previous_version} to "
                f"{settings.version}"
            )
            if outcome.rerun_phases:
                click.echo(f"Phases to re-run: {', '.join(outcome.rerun_phases)}")

        if settings.interactive and not settings.force_resume and stdin_is_tty():
            action = choose_resume_action()
            if action is None or action is ResumeAction.ABORT:
                click.echo("Aborted.")
                sys.exit(EXIT_ABORTED)
            if action is ResumeAction.FRESH:
                store.reset()
                outcome = ResumeOutcome(ResumeDecision.FRESH, ResumeReason.FORCED)

    if outcome.decision is ResumeDecision.FRESH:
        click.echo(_FRESH_MESSAGES[outcome.reason])
        if outcome.backup_path:
            click.echo(f"Previous state saved to {outcome.backup_path}")
        if not store.init():
            click.secho(
                format_warning(f"could not create state file {store.path}"),
                fg="yellow",
                err=True,
            )
    else:
        apply_rerun_phases(store, outcome)
        click.echo(f"Resuming: {len(outcome.completed_phases)} phase(s) already complete")

    return outcome


def _dry_run(store: StateStore, installer: ModuleInstaller, phases: list[Phase]) -> None:
    """Print the commands each pending phase would run; state is not touched."""
    try:
        record = store.load()
    except StateError as e:
        click.echo(f"Saved state ignored: {e}")
        record = None
    done = set(record.completed_phases) if record else set()

    click.echo("Dry run: no commands are executed and no state is written")
    for phase in phases:
        label = phase_label(phase.id)
        if phase.id in done:
            click.echo(f"[{label}] Would skip (already completed)")
            continue
        click.echo(f"[{label}] Would run")
        installer.install_phase(phase.id)


def _report(store: StateStore, outcomes) -> None:
    completed = [o for o in outcomes if o.status is PhaseStatus.COMPLETED]
    skipped = [o for o in outcomes if o.status is PhaseStatus.SKIPPED]
    failed = [o for o in outcomes if o.status is PhaseStatus.FAILED]

    click.echo("")
    click.echo(
        f"Summary: {len(completed)} completed, {len(skipped)} skipped, "
        f"{len(failed)} failed"
    )

    if store.unpersisted_phases:
        click.secho(
            format_unpersisted(store.unpersisted_phases, store.path),
            fg="yellow",
            err=True,
        )

    if failed:
        first = failed[0]
        click.echo(
            format_phase_failure(first.label, first.detail),
            err=True,
        )
        sys.exit(EXIT_PHASE_FAILED)

    click.secho("Installation complete.", fg="green", bold=True)
