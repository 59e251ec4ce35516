"""Startup decision: resume a previous installation or start fresh.

The decision table is evaluated in order and never prompts; interactive
confirmation is the CLI's job and happens after a RESUME decision.

1. force_reinstall        -> reset, FRESH (FORCED)
2. no state file          -> FRESH (NO_STATE)
   unparsable state file  -> reset, FRESH (CORRUPTED)
3. schema mismatch        -> move aside, FRESH (INCOMPATIBLE)
4. otherwise              -> RESUME (RESUMED)

A RESUME after an installer upgrade lists the phases to re-run in
rerun_phases without touching the file; apply_rerun_phases() forgets them
once the caller has committed to resuming.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path

from packaging.version import InvalidVersion, Version

from .config import InstallerSettings
from .state import StateCorruptedError, StateRecord, StateStore, VersionCheck

_logging = logging.getLogger(__name__)


class ResumeDecision(IntEnum):
    RESUME = 0
    FRESH = 1


class ResumeReason(Enum):
    FORCED = "forced"
    NO_STATE = "no_state"
    CORRUPTED = "corrupted"
    INCOMPATIBLE = "incompatible"
    RESUMED = "resumed"


@dataclass
class ResumeOutcome:
    decision: ResumeDecision
    reason: ResumeReason
    completed_phases: list[str] = field(default_factory=list)
    record: StateRecord | None = None
    backup_path: Path | None = None
    previous_version: str | None = None
    rerun_phases: list[str] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        return int(self.decision)

    @property
    def version_changed(self) -> bool:
        return self.previous_version is not None


def versions_differ(previous: str, current: str) -> bool:
    """Compare tool versions; unparsable versions differ unless identical."""
    if previous == current:
        return False
    try:
        return Version(previous) != Version(current)
    except InvalidVersion:
        return True


def _fresh(reason: ResumeReason, backup_path: Path | None = None) -> ResumeOutcome:
    return ResumeOutcome(ResumeDecision.FRESH, reason, backup_path=backup_path)


def confirm_resume(settings: InstallerSettings, store: StateStore) -> ResumeOutcome:
    """Decide whether to resume from the persisted state or start over.

    Args:
        settings: Installer settings (force_reinstall, version, rerun_on_upgrade)
        store: State store for the installation target

    Returns:
        ResumeOutcome; on RESUME, completed_phases is the skip list

    Raises:
        StateWriteError: If a stale state file cannot be removed or moved
        StateReadError: If the state file exists but cannot be read; the
            file is left untouched
    """
    if settings.force_reinstall:
        _logging.info("Force reinstall requested, discarding saved state")
        store.reset()
        return _fresh(ResumeReason.FORCED)

    if not store.exists():
        return _fresh(ResumeReason.NO_STATE)

    try:
        check = store.check_version()
        if check is VersionCheck.INCOMPATIBLE:
            _logging.warning(
                f"State file {store.path} uses an incompatible schema, starting fresh"
            )
            return _fresh(ResumeReason.INCOMPATIBLE, store.backup_and_remove())
        record = store.load()
    except StateCorruptedError as e:
        _logging.warning(f"Discarding corrupted state file: {e}")
        store.reset()
        return _fresh(ResumeReason.CORRUPTED)

    if record is None:
        # File vanished between exists() and load()
        return _fresh(ResumeReason.NO_STATE)

    outcome = ResumeOutcome(ResumeDecision.RESUME, ResumeReason.RESUMED, record=record)

    if versions_differ(record.version, settings.version):
        outcome.previous_version = record.version
        _logging.info(
            f"State written by version {record.version}, running {settings.version}"
        )
        outcome.rerun_phases = [
            p for p in settings.rerun_on_upgrade if p in record.completed_phases
        ]

    outcome.completed_phases = [
        p for p in record.completed_phases if p not in outcome.rerun_phases
    ]
    return outcome


def apply_rerun_phases(store: StateStore, outcome: ResumeOutcome) -> list[str]:
    """Forget the phases an upgrade asked to re-run and persist the change.

    Returns:
        The phases that were forgotten
    """
    return [p for p in outcome.rerun_phases if store.forget_phase(p)]


__all__ = [
    "ResumeDecision",
    "ResumeReason",
    "ResumeOutcome",
    "versions_differ",
    "confirm_resume",
    "apply_rerun_phases",
]
