"""Phase catalog.

Phase ids are stable: the order of PHASES may change between releases but
an id always refers to the same logical phase, which is what makes the
persisted completed_phases list safe to reuse across versions.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Phase:
    id: str
    name: str


PHASES: tuple[Phase, ...] = (
    Phase("user_setup", "User Normalization"),
    Phase("filesystem", "Filesystem Setup"),
    Phase("shell_setup", "Shell Setup"),
    Phase("cli_tools", "CLI Tools"),
    Phase("languages", "Language Runtimes"),
    Phase("agents", "Coding Agents"),
    Phase("cloud_db", "Cloud & Database Tools"),
    Phase("stack", "Dicklesworthstone Stack"),
    Phase("finalize", "Final Wiring"),
)

PHASE_IDS: tuple[str, ...] = tuple(p.id for p in PHASES)


def get_phase(phase_id: str) -> Phase | None:
    return next((p for p in PHASES if p.id == phase_id), None)


def phase_name(phase_id: str) -> str:
    """Human-readable name, falling back to the id for unknown phases."""
    phase = get_phase(phase_id)
    return phase.name if phase else phase_id


def phase_label(phase_id: str) -> str:
    """Progress label such as '4/9 CLI Tools'."""
    if phase_id not in PHASE_IDS:
        return phase_id
    return f"{PHASE_IDS.index(phase_id) + 1}/{len(PHASE_IDS)} {phase_name(phase_id)}"


def select_phases(
    only: tuple[str, ...] | list[str] = (),
) -> list[Phase]:
    """Return phases in execution order, optionally restricted to `only`.

    Raises:
        ValueError: If `only` names an unknown phase
    """
    unknown = [p for p in only if p not in PHASE_IDS]
    if unknown:
        raise ValueError(
            f"Unknown phase(s): {', '.join(unknown)}. "
            f"Available: {', '.join(PHASE_IDS)}"
        )
    if not only:
        return list(PHASES)
    return [p for p in PHASES if p.id in only]


__all__ = [
    "Phase",
    "PHASES",
    "PHASE_IDS",
    "get_phase",
    "phase_name",
    "phase_label",
    "select_phases",
]
