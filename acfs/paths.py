"""Filesystem locations used by the installer."""

import os
from pathlib import Path
from typing import Mapping

DEFAULT_TARGET_USER = "ubuntu"
STATE_FILE_NAME = "state.json"


def get_target_home(target_user: str, environ: Mapping[str, str]) -> Path:
    """Return the home directory of the user being provisioned.

    TARGET_HOME wins when set; otherwise root maps to /root and everyone
    else to /home/<user>.
    """
    if environ.get("TARGET_HOME"):
        return Path(environ["TARGET_HOME"])
    if target_user == "root":
        return Path("/root")
    return Path("/home") / target_user


def get_acfs_home(target_user: str, environ: Mapping[str, str]) -> Path:
    """Return the installer home: ACFS_HOME or <target home>/.acfs"""
    if environ.get("ACFS_HOME"):
        return Path(environ["ACFS_HOME"])
    return get_target_home(target_user, environ) / ".acfs"


def get_state_path(
    target_user: str = DEFAULT_TARGET_USER,
    environ: Mapping[str, str] | None = None,
) -> Path:
    """Return path to the installation state file.

    Priority:
    1. ACFS_STATE_FILE environment variable (if set)
    2. $ACFS_HOME/state.json
    3. <target home>/.acfs/state.json

    Args:
        target_user: User the installation targets
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Path to the state file (it may not exist yet)
    """
    env = os.environ if environ is None else environ
    if env.get("ACFS_STATE_FILE"):
        return Path(env["ACFS_STATE_FILE"])
    return get_acfs_home(target_user, env) / STATE_FILE_NAME


def get_data_dir() -> Path:
    """Return path to bundled data directory."""
    return Path(__file__).parent / "data"


def get_packaged_manifest_path() -> Path:
    return get_data_dir() / "manifest.yaml"


def get_packaged_contracts_path() -> Path:
    return get_data_dir() / "contracts.yaml"
