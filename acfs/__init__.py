"""acfs: phased environment installer with durable resume."""

import logging
import os

from .config import ACFS_VERSION, ConfigError, InstallerSettings, settings_from_env
from .contracts import ContractError, ContractResult, ContractValidator, load_contracts
from .errors import (
    format_error,
    format_field_error,
    format_phase_failure,
    format_suggestion,
    format_unpersisted,
    format_warning,
)
from .manifest import ManifestError, load_manifest
from .phases import PHASES, PHASE_IDS, phase_label
from .resume import (
    ResumeDecision,
    ResumeOutcome,
    ResumeReason,
    apply_rerun_phases,
    confirm_resume,
)
from .runner import PhaseOutcome, PhaseStatus, PlannedPhase, run_phase, run_phases
from .state import (
    STATE_SCHEMA_VERSION,
    IncompatibleStateError,
    StateCorruptedError,
    StateError,
    StateReadError,
    StateStore,
    StateWriteError,
    VersionCheck,
)

__version__ = ACFS_VERSION

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_debug_enabled = False
_handlers: list[logging.Handler] = []


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return _debug_enabled


def setup_logging(debug: bool = False) -> None:
    """Configure logging for the CLI.

    Debug output goes to stderr; warnings are always shown. When
    ACFS_LOG_FILE is set, everything at DEBUG level is also written there.
    Calling it again replaces the handlers installed by the previous call.
    """
    global _debug_enabled
    _debug_enabled = debug

    root = logging.getLogger()
    for handler in _handlers:
        root.removeHandler(handler)
        handler.close()
    _handlers.clear()

    stderr_handler = logging.StreamHandler()
    stderr_handler.setLevel(logging.DEBUG if debug else logging.WARNING)
    stderr_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    _handlers.append(stderr_handler)

    log_file = os.environ.get("ACFS_LOG_FILE")
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        _handlers.append(file_handler)

    for handler in _handlers:
        root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug or log_file else logging.WARNING)


__all__ = [
    "__version__",
    "setup_logging",
    "is_debug",
    "ACFS_VERSION",
    "ConfigError",
    "InstallerSettings",
    "settings_from_env",
    "ContractError",
    "ContractResult",
    "ContractValidator",
    "load_contracts",
    "format_error",
    "format_field_error",
    "format_suggestion",
    "format_phase_failure",
    "format_unpersisted",
    "format_warning",
    "ManifestError",
    "load_manifest",
    "PHASES",
    "PHASE_IDS",
    "phase_label",
    "ResumeDecision",
    "ResumeOutcome",
    "ResumeReason",
    "confirm_resume",
    "apply_rerun_phases",
    "PhaseOutcome",
    "PhaseStatus",
    "PlannedPhase",
    "run_phase",
    "run_phases",
    "STATE_SCHEMA_VERSION",
    "IncompatibleStateError",
    "StateCorruptedError",
    "StateError",
    "StateReadError",
    "StateStore",
    "StateWriteError",
    "VersionCheck",
]
