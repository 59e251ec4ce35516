"""Module manifest loading.

The manifest lists installable modules in execution order. Each module
belongs to exactly one phase and may depend on modules declared before it.

    modules:
      - id: shell.zsh
        description: Z shell
        phase: shell_setup
        run_as: root
        installed_check: command -v zsh
        install:
          - apt-get install -y zsh
        verify:
          - zsh --version
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import ConfigError, load_yaml_document
from .phases import PHASE_IDS

RUN_AS_VALUES = {"root", "target_user", "current"}


class ManifestError(ConfigError):
    """Raised when the module manifest is invalid."""
    pass


@dataclass
class ModuleSpec:
    id: str
    description: str
    phase: str
    install: list[str] = field(default_factory=list)
    verify: list[str] = field(default_factory=list)
    installed_check: str | None = None
    run_as: str = "target_user"
    optional: bool = False
    enabled_by_default: bool = True
    dependencies: list[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.id or not isinstance(self.id, str):
            raise ValueError("id must be a non-empty string")
        if self.phase not in PHASE_IDS:
            raise ValueError(
                f"phase '{self.phase}' is not a known phase "
                f"(one of: {', '.join(PHASE_IDS)})"
            )
        if self.run_as not in RUN_AS_VALUES:
            raise ValueError(
                f"run_as must be one of: {', '.join(sorted(RUN_AS_VALUES))}"
            )
        if not self.install:
            raise ValueError("install must list at least one command")

    @property
    def contract_id(self) -> str:
        return f"module:{self.id}"


@dataclass
class Manifest:
    modules: list[ModuleSpec] = field(default_factory=list)

    def get(self, module_id: str) -> ModuleSpec | None:
        return next((m for m in self.modules if m.id == module_id), None)

    def modules_for_phase(
        self, phase_id: str, include_disabled: bool = False
    ) -> list[ModuleSpec]:
        return [
            m
            for m in self.modules
            if m.phase == phase_id and (include_disabled or m.enabled_by_default)
        ]


def _require_str_field(data: dict, field_name: str, entity_name: str) -> None:
    if field_name not in data:
        raise ManifestError(f"{entity_name} missing required field: {field_name}")
    if not isinstance(data[field_name], str) or not data[field_name].strip():
        raise ManifestError(
            f"{entity_name} field '{field_name}' must be a non-empty string"
        )


def _optional_field(
    data: dict, field_name: str, entity_name: str, field_type: type
) -> None:
    if field_name in data and data[field_name] is not None:
        if not isinstance(data[field_name], field_type):
            raise ManifestError(
                f"{entity_name} field '{field_name}' must be a "
                f"{field_type.__name__} or null"
            )


def _validate_string_list(data: dict, field_name: str, entity_name: str) -> None:
    """Validate an optional list of non-empty strings.

    Raises:
        ManifestError: If the field is not a list or holds invalid entries
    """
    if field_name not in data or data[field_name] is None:
        return
    if not isinstance(data[field_name], list):
        raise ManifestError(f"{entity_name} field '{field_name}' must be a list")
    for i, item in enumerate(data[field_name]):
        if not isinstance(item, str) or not item.strip():
            raise ManifestError(
                f"{entity_name} {field_name}[{i}] must be a non-empty string"
            )


def _validate_module_data(data: dict, entity_name: str) -> None:
    for field_name in ("id", "description", "phase"):
        _require_str_field(data, field_name, entity_name)
    _optional_field(data, "installed_check", entity_name, str)
    _optional_field(data, "run_as", entity_name, str)
    _optional_field(data, "optional", entity_name, bool)
    _optional_field(data, "enabled_by_default", entity_name, bool)
    for field_name in ("install", "verify", "dependencies"):
        _validate_string_list(data, field_name, entity_name)


def parse_manifest(data: dict[str, Any]) -> Manifest:
    """Validate a decoded manifest document.

    Raises:
        ManifestError: If a module is malformed, duplicated, or depends on a
            module that is not declared before it
    """
    raw_modules = data.get("modules")
    if raw_modules is None:
        raise ManifestError("Manifest missing top-level 'modules' key")
    if not isinstance(raw_modules, list):
        raise ManifestError("Manifest 'modules' must be a list")

    modules: list[ModuleSpec] = []
    seen: dict[str, ModuleSpec] = {}
    for i, raw in enumerate(raw_modules):
        if not isinstance(raw, dict):
            raise ManifestError(
                f"modules[{i}] must be a mapping, got {type(raw).__name__}"
            )
        entity_name = f"Module '{raw.get('id', i)}'"
        _validate_module_data(raw, entity_name)

        try:
            module = ModuleSpec(
                id=raw["id"].strip(),
                description=raw["description"].strip(),
                phase=raw["phase"].strip(),
                install=list(raw.get("install") or []),
                verify=list(raw.get("verify") or []),
                installed_check=raw.get("installed_check"),
                run_as=raw.get("run_as") or "target_user",
                optional=bool(raw.get("optional", False)),
                enabled_by_default=bool(raw.get("enabled_by_default", True)),
                dependencies=list(raw.get("dependencies") or []),
            )
        except ValueError as e:
            raise ManifestError(f"{entity_name}: {e}") from e

        if module.id in seen:
            raise ManifestError(f"Duplicate module id: {module.id}")

        for dep in module.dependencies:
            dep_module = seen.get(dep)
            if dep_module is None:
                raise ManifestError(
                    f"{entity_name} depends on '{dep}', which is not declared "
                    "before it"
                )
            if PHASE_IDS.index(dep_module.phase) > PHASE_IDS.index(module.phase):
                raise ManifestError(
                    f"{entity_name} in phase '{module.phase}' depends on '{dep}' "
                    f"from later phase '{dep_module.phase}'"
                )

        seen[module.id] = module
        modules.append(module)

    return Manifest(modules=modules)


def load_manifest(path: Path) -> Manifest:
    """Load the module manifest from a YAML file.

    Raises:
        ConfigError: If the file cannot be read
        ManifestError: If the document is invalid
    """
    data = load_yaml_document(path)
    try:
        return parse_manifest(data)
    except ManifestError as e:
        raise ManifestError(f"Invalid manifest {path}: {e}") from e


__all__ = [
    "ManifestError",
    "ModuleSpec",
    "Manifest",
    "parse_manifest",
    "load_manifest",
]
