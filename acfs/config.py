"""Installer settings and YAML document loading.

Settings are resolved once at startup from the process environment (and
then refined by CLI flags); every component receives the resulting
InstallerSettings explicitly instead of reading os.environ on its own.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml
from packaging.version import InvalidVersion, Version

from .paths import (
    DEFAULT_TARGET_USER,
    get_packaged_contracts_path,
    get_packaged_manifest_path,
    get_state_path,
)

ACFS_VERSION = "0.1.0"

MODES = ("vibe", "safe")
DEFAULT_MODE = "vibe"

# Phases re-run when the state was written by a different installer version
DEFAULT_RERUN_ON_UPGRADE = ("finalize",)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


class ConfigError(Exception):
    """Raised when settings or a configuration document cannot be loaded.

    Messages for YAML syntax errors include the line, column and a caret
    pointing at the offending character.
    """
    pass


def parse_bool(value: str | None, name: str, default: bool = False) -> bool:
    """Parse a boolean environment value.

    Raises:
        ConfigError: If the value is not a recognised boolean spelling
    """
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigError(
        f"{name} must be a boolean (true/false), got {value!r}"
    )


@dataclass(frozen=True)
class InstallerSettings:
    """Explicit configuration for one installer run."""
    state_path: Path
    version: str = ACFS_VERSION
    mode: str = DEFAULT_MODE
    target_user: str = DEFAULT_TARGET_USER
    force_reinstall: bool = False
    force_resume: bool = False
    interactive: bool = False
    dry_run: bool = False
    manifest_path: Path = field(default_factory=get_packaged_manifest_path)
    contracts_path: Path = field(default_factory=get_packaged_contracts_path)
    rerun_on_upgrade: tuple[str, ...] = DEFAULT_RERUN_ON_UPGRADE
    environ: Mapping[str, str] = field(
        default_factory=dict, repr=False, compare=False, hash=False
    )

    def __post_init__(self):
        if self.mode not in MODES:
            raise ValueError(
                f"mode must be one of: {', '.join(MODES)} (got {self.mode!r})"
            )
        if not self.target_user or not isinstance(self.target_user, str):
            raise ValueError("target_user must be a non-empty string")
        try:
            Version(self.version)
        except InvalidVersion:
            raise ValueError(f"version {self.version!r} is not a valid version")


def settings_from_env(environ: Mapping[str, str] | None = None) -> InstallerSettings:
    """Build InstallerSettings from environment variables.

    Args:
        environ: Environment mapping (defaults to a snapshot of os.environ)

    Returns:
        Validated settings

    Raises:
        ConfigError: If a variable has an invalid value
    """
    env = dict(os.environ if environ is None else environ)

    target_user = env.get("TARGET_USER") or DEFAULT_TARGET_USER
    manifest = env.get("ACFS_MANIFEST_FILE")
    contracts = env.get("ACFS_CONTRACTS_FILE")

    try:
        return InstallerSettings(
            state_path=get_state_path(target_user, env),
            version=env.get("ACFS_VERSION") or ACFS_VERSION,
            mode=env.get("MODE") or DEFAULT_MODE,
            target_user=target_user,
            force_reinstall=parse_bool(
                env.get("ACFS_FORCE_REINSTALL"), "ACFS_FORCE_REINSTALL"
            ),
            force_resume=parse_bool(env.get("ACFS_FORCE_RESUME"), "ACFS_FORCE_RESUME"),
            interactive=parse_bool(env.get("ACFS_INTERACTIVE"), "ACFS_INTERACTIVE"),
            dry_run=parse_bool(env.get("ACFS_DRY_RUN"), "ACFS_DRY_RUN"),
            manifest_path=Path(manifest) if manifest else get_packaged_manifest_path(),
            contracts_path=Path(contracts) if contracts else get_packaged_contracts_path(),
            environ=env,
        )
    except ValueError as e:
        raise ConfigError(f"Invalid installer settings: {e}") from e


def _format_syntax_error(original_text: str, error: yaml.MarkedYAMLError) -> str:
    """Format a YAML syntax error with line, caret, and context."""
    mark = error.problem_mark
    problem = error.problem or str(error)
    if mark is None:
        return f"Syntax error: {problem}"

    line_num = mark.line + 1
    col_num = mark.column + 1
    msg_parts = [f"Syntax error at line {line_num}, col {col_num}: {problem}"]

    lines = original_text.split("\n")
    if 1 <= line_num <= len(lines):
        msg_parts.append(lines[line_num - 1])
        msg_parts.append(" " * mark.column + "^")

    return "\n".join(msg_parts)


def load_yaml_document(path: Path) -> dict[str, Any]:
    """Load a YAML document that must contain a mapping at the top level.

    Raises:
        ConfigError: If the file cannot be read, does not parse, or is not
            a mapping
    """
    try:
        original_text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"File not found: {path}")
    except PermissionError:
        raise ConfigError(f"Permission denied reading {path}")
    except UnicodeDecodeError:
        raise ConfigError(f"File is not valid UTF-8: {path}")
    except OSError as e:
        raise ConfigError(f"Error reading {path}: {e}")

    try:
        data = yaml.safe_load(original_text)
    except yaml.MarkedYAMLError as e:
        raise ConfigError(f"{path}: {_format_syntax_error(original_text, e)}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"{path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"{path} must contain a mapping, got {type(data).__name__}"
        )
    return data


__all__ = [
    "ACFS_VERSION",
    "MODES",
    "ConfigError",
    "InstallerSettings",
    "parse_bool",
    "settings_from_env",
    "load_yaml_document",
]
