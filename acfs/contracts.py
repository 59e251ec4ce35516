"""Contract validation for modules and phases.

A contract is a list of preconditions declared for a target id
(`module:<id>` or `phase:<id>`) that must hold before the target's work is
allowed to run. Contracts are opt-in: a target without an entry has no
preconditions.

Registry document (YAML):

    contracts:
      "module:shell.omz":
        - requires_phase: filesystem
        - requires_command: zsh
        - requires_env: TARGET_USER

The validator only reads the state store and the environment mapping it was
given; it never mutates either.
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

from .config import ConfigError, load_yaml_document
from .errors import format_field_error
from .phases import phase_name

TARGET_KINDS = ("module", "phase")

_logging = logging.getLogger(__name__)


class ContractError(Exception):
    """Raised for malformed target ids."""
    pass


@dataclass(frozen=True)
class ContractContext:
    """What a check is allowed to look at."""
    is_phase_completed: Callable[[str], bool]
    environ: Mapping[str, str]
    which: Callable[[str], str | None]


@dataclass(frozen=True)
class PhaseCompletedCheck:
    phase_id: str

    def describe(self) -> str:
        return f"phase '{self.phase_id}' completed"

    def evaluate(self, ctx: ContractContext) -> str | None:
        if ctx.is_phase_completed(self.phase_id):
            return None
        return (
            f"required phase '{self.phase_id}' ({phase_name(self.phase_id)}) "
            "has not completed"
        )


@dataclass(frozen=True)
class CommandAvailableCheck:
    command: str

    def describe(self) -> str:
        return f"command '{self.command}' on PATH"

    def evaluate(self, ctx: ContractContext) -> str | None:
        if ctx.which(self.command):
            return None
        return f"required command '{self.command}' not found on PATH"


@dataclass(frozen=True)
class EnvSetCheck:
    name: str

    def describe(self) -> str:
        return f"environment variable {self.name} set"

    def evaluate(self, ctx: ContractContext) -> str | None:
        if ctx.environ.get(self.name, "").strip():
            return None
        return f"required environment variable {self.name} is not set"


Check = PhaseCompletedCheck | CommandAvailableCheck | EnvSetCheck

_CHECK_KEYS: dict[str, Callable[[str], Check]] = {
    "requires_phase": PhaseCompletedCheck,
    "requires_command": CommandAvailableCheck,
    "requires_env": EnvSetCheck,
}


@dataclass(frozen=True)
class ContractResult:
    target: str
    ok: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.ok


@dataclass
class ContractRegistry:
    """Static target id -> checks mapping."""
    contracts: dict[str, list[Check]] = field(default_factory=dict)

    def get(self, target_id: str) -> list[Check]:
        return self.contracts.get(target_id, [])

    def __contains__(self, target_id: str) -> bool:
        return target_id in self.contracts

    def __len__(self) -> int:
        return len(self.contracts)


def parse_target(target_id: str) -> tuple[str, str]:
    """Split 'module:shell.zsh' into ('module', 'shell.zsh').

    Raises:
        ContractError: If the id lacks a known kind prefix or a name
    """
    kind, sep, name = target_id.partition(":")
    if not sep or kind not in TARGET_KINDS or not name:
        raise ContractError(
            f"Invalid contract target '{target_id}': "
            f"expected 'module:<id>' or 'phase:<id>'"
        )
    return kind, name


def _parse_check(raw: Any, entity: str, index: int) -> Check:
    if not isinstance(raw, dict) or len(raw) != 1:
        raise ConfigError(
            format_field_error(
                entity,
                f"[{index}]",
                f"must be a single-key mapping ({', '.join(_CHECK_KEYS)})",
            )
        )
    key, value = next(iter(raw.items()))
    if key not in _CHECK_KEYS:
        raise ConfigError(
            format_field_error(
                entity, f"[{index}]", f"has unknown check '{key}'"
            )
        )
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            format_field_error(entity, f"[{index}].{key}", "must be a non-empty string")
        )
    return _CHECK_KEYS[key](value.strip())


def parse_contracts(data: dict[str, Any]) -> ContractRegistry:
    """Validate a decoded registry document.

    Raises:
        ConfigError: If the document structure is invalid
    """
    raw_contracts = data.get("contracts") or {}
    if not isinstance(raw_contracts, dict):
        raise ConfigError("contracts must be a mapping of target id to checks")

    contracts: dict[str, list[Check]] = {}
    for target_id, raw_checks in raw_contracts.items():
        entity = f"Contract '{target_id}'"
        try:
            parse_target(str(target_id))
        except ContractError as e:
            raise ConfigError(str(e)) from e
        if raw_checks is None:
            raw_checks = []
        if not isinstance(raw_checks, list):
            raise ConfigError(f"{entity} must be a list of checks")
        contracts[str(target_id)] = [
            _parse_check(raw, entity, i) for i, raw in enumerate(raw_checks)
        ]

    return ContractRegistry(contracts=contracts)


def load_contracts(path: Path) -> ContractRegistry:
    """Load the contract registry from a YAML file.

    Raises:
        ConfigError: If the file cannot be read or is invalid
    """
    try:
        return parse_contracts(load_yaml_document(path))
    except ConfigError as e:
        raise ConfigError(f"Failed to load contracts {path}: {e}") from e


class ContractValidator:
    """Evaluates contracts against the state store and environment."""

    def __init__(
        self,
        registry: ContractRegistry,
        store,
        environ: Mapping[str, str],
        which: Callable[[str], str | None] = shutil.which,
    ):
        self.registry = registry
        self._ctx = ContractContext(
            is_phase_completed=store.is_phase_completed,
            environ=environ,
            which=which,
        )

    def require_contract(self, target_id: str) -> ContractResult:
        """Check the declared preconditions of a module or phase.

        Stops at the first failing check and reports which precondition is
        missing. Targets without a contract always pass.

        Raises:
            ContractError: If target_id is not 'module:<id>' or 'phase:<id>'
        """
        parse_target(target_id)

        for check in self.registry.get(target_id):
            reason = check.evaluate(self._ctx)
            if reason is not None:
                _logging.debug(f"Contract {target_id} unmet: {check.describe()}")
                return ContractResult(target=target_id, ok=False, reason=reason)

        return ContractResult(target=target_id, ok=True)


__all__ = [
    "ContractError",
    "ContractContext",
    "PhaseCompletedCheck",
    "CommandAvailableCheck",
    "EnvSetCheck",
    "ContractResult",
    "ContractRegistry",
    "ContractValidator",
    "parse_target",
    "parse_contracts",
    "load_contracts",
]
