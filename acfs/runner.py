"""Phase execution with skip-if-done and commit-on-success."""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable

import click

from .state import StateStore

_logging = logging.getLogger(__name__)

PhaseWork = Callable[[], object]


class PhaseStatus(Enum):
    SKIPPED = "skipped"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class PhaseOutcome:
    phase_id: str
    label: str
    status: PhaseStatus
    duration: float = 0.0
    detail: str | None = None
    # False when the completion checkpoint could not be written to disk
    persisted: bool = True

    @property
    def ok(self) -> bool:
        return self.status is not PhaseStatus.FAILED


@dataclass
class PlannedPhase:
    phase_id: str
    label: str
    work: PhaseWork


def _format_duration(seconds: float) -> str:
    seconds = int(round(seconds))
    if seconds < 60:
        return f"{seconds}s"
    minutes, seconds = divmod(seconds, 60)
    return f"{minutes}m {seconds}s"


def run_phase(
    store: StateStore,
    phase_id: str,
    label: str,
    work: PhaseWork,
    *,
    force: bool = False,
    monotonic: Callable[[], float] = time.monotonic,
) -> PhaseOutcome:
    """Run one phase unless it already completed.

    The phase is recorded as completed only after `work` returns a truthy
    value. A falsy return or an exception from `work` records a failure and
    leaves the phase out of completed_phases. KeyboardInterrupt and
    SystemExit propagate with the phase left unmarked, so it runs again
    on the next invocation.

    Args:
        store: State store for the installation target
        phase_id: Phase identifier persisted in the state file
        label: Display label for progress output
        work: Zero-argument callable performing the phase
        force: Run even if the phase completed before

    Returns:
        PhaseOutcome describing what happened
    """
    if not force:
        reason = None
        if store.is_phase_completed(phase_id):
            reason = "already completed"
        elif store.should_skip(phase_id):
            reason = "user skipped"
        if reason:
            click.secho(f"[{label}] Skipped ({reason})", dim=True)
            return PhaseOutcome(phase_id, label, PhaseStatus.SKIPPED, detail=reason)

    click.secho(f"[{label}] Starting...", fg="cyan")
    store.record_phase_start(phase_id)

    started = monotonic()
    error: str | None = None
    try:
        succeeded = bool(work())
        if not succeeded:
            error = "phase work reported failure"
    except Exception as e:
        _logging.debug(f"Phase {phase_id} raised", exc_info=True)
        succeeded = False
        error = f"{type(e).__name__}: {e}"
    duration = monotonic() - started

    if not succeeded:
        store.record_phase_failure(phase_id, error)
        click.secho(f"[{label}] FAILED: {error}", fg="red", err=True)
        return PhaseOutcome(
            phase_id, label, PhaseStatus.FAILED, duration=duration, detail=error
        )

    persisted = store.mark_phase_complete(phase_id, duration)
    click.secho(f"[{label}] Complete ({_format_duration(duration)})", fg="green")
    if not persisted:
        click.secho(
            f"[{label}] Warning: progress could not be saved to {store.path}; "
            "this phase may run again on the next invocation",
            fg="yellow",
            err=True,
        )
    return PhaseOutcome(
        phase_id, label, PhaseStatus.COMPLETED, duration=duration, persisted=persisted
    )


def run_phases(
    store: StateStore,
    plan: Iterable[PlannedPhase],
    *,
    force: bool = False,
    halt_on_failure: bool = True,
) -> list[PhaseOutcome]:
    """Run phases sequentially in the given order.

    Stops after the first failed phase unless halt_on_failure is False.
    """
    outcomes: list[PhaseOutcome] = []
    for planned in plan:
        outcome = run_phase(
            store, planned.phase_id, planned.label, planned.work, force=force
        )
        outcomes.append(outcome)
        if outcome.status is PhaseStatus.FAILED and halt_on_failure:
            _logging.debug(f"Halting after failed phase {planned.phase_id}")
            break
    return outcomes


__all__ = [
    "PhaseStatus",
    "PhaseOutcome",
    "PlannedPhase",
    "run_phase",
    "run_phases",
]
