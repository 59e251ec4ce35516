"""Terminal UI for the installer.

- click for plain output (works in CI and over pipes)
- questionary for the resume prompt, only behind a TTY guard
"""

import sys
from enum import Enum

import click
import questionary
from prompt_toolkit.styles import Style

from .phases import PHASE_IDS, phase_label
from .state import StateRecord

_STYLE = Style(
    [
        ("resume", "fg:ansigreen"),
        ("fresh", "fg:ansiyellow"),
        ("abort", "fg:ansired"),
    ]
)


def stdin_is_tty() -> bool:
    return sys.stdin.isatty()


class ResumeAction(Enum):
    RESUME = "resume"
    FRESH = "fresh"
    ABORT = "abort"


def format_phase_line(phase_id: str, record: StateRecord) -> str:
    if phase_id in record.completed_phases:
        icon, suffix = "✅", ""
        seconds = record.phase_durations.get(phase_id)
        if seconds is not None:
            suffix = f" ({seconds}s)"
    elif phase_id == record.failed_phase:
        icon, suffix = "❌", " (failed)"
    elif phase_id in record.skipped_phases:
        icon, suffix = "⏭️ ", " (skipped)"
    else:
        icon, suffix = "⬜", ""
    return f"  {icon} {phase_label(phase_id)}{suffix}"


def display_state_summary(record: StateRecord, verbose: bool = True) -> None:
    """Print what a previous run accomplished."""
    done = sum(1 for p in PHASE_IDS if p in record.completed_phases)

    click.echo("")
    click.secho("Previous installation detected", bold=True)
    click.echo(f"  Version:   {record.version}")
    click.echo(f"  Mode:      {record.mode}")
    click.echo(f"  User:      {record.target_user}")
    click.echo(f"  Started:   {record.started_at}")
    click.echo(f"  Updated:   {record.last_accessed}")
    click.echo(f"  Progress:  {done}/{len(PHASE_IDS)} phases")

    if record.failed_phase:
        click.secho(
            f"  Failed:    {phase_label(record.failed_phase)}: {record.failed_error}",
            fg="red",
        )
    elif record.current_phase:
        click.secho(
            f"  Interrupted during: {phase_label(record.current_phase)}", fg="yellow"
        )

    if verbose:
        click.echo("")
        for phase_id in PHASE_IDS:
            click.echo(format_phase_line(phase_id, record))
    click.echo("")


def choose_resume_action() -> ResumeAction | None:
    """Ask whether to resume, start over, or abort.

    Returns:
        The chosen action, or None if the prompt was cancelled

    Raises:
        RuntimeError: If not running in a TTY
    """
    if not stdin_is_tty():
        raise RuntimeError("Interactive resume prompt requires a TTY")

    choices = [
        questionary.Choice(
            title=[("class:resume", "Resume from where it stopped")],
            value=ResumeAction.RESUME,
        ),
        questionary.Choice(
            title=[("class:fresh", "Start a fresh install (discard progress)")],
            value=ResumeAction.FRESH,
        ),
        questionary.Choice(title=[("class:abort", "Abort")], value=ResumeAction.ABORT),
    ]

    try:
        return questionary.select(
            "How do you want to continue?",
            choices=choices,
            style=_STYLE,
        ).ask()
    except KeyboardInterrupt:
        return None


__all__ = [
    "stdin_is_tty",
    "ResumeAction",
    "format_phase_line",
    "display_state_summary",
    "choose_resume_action",
]
