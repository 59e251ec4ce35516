"""Pytest fixtures and utilities for acfs tests."""

import json
import tempfile
from pathlib import Path
from typing import Generator
from unittest.mock import patch

import pytest

from acfs.config import InstallerSettings
from acfs.state import STATE_SCHEMA_VERSION, StateStore

FIXED_TIME = "2025-01-15T10:30:00+00:00"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def state_path(temp_dir: Path) -> Path:
    """Path of a state file that does not exist yet."""
    return temp_dir / ".acfs" / "state.json"


@pytest.fixture
def make_store(state_path: Path):
    """Factory for StateStore instances bound to state_path."""

    def _create(tool_version: str = "0.1.0", path: Path | None = None) -> StateStore:
        return StateStore(
            path or state_path,
            tool_version=tool_version,
            clock=lambda: FIXED_TIME,
        )

    return _create


@pytest.fixture
def make_settings(state_path: Path, temp_dir: Path):
    """Factory for InstallerSettings with test-friendly defaults."""

    def _create(**overrides) -> InstallerSettings:
        values = {
            "state_path": state_path,
            "environ": {"HOME": str(temp_dir)},
        }
        values.update(overrides)
        return InstallerSettings(**values)

    return _create


@pytest.fixture
def write_state(state_path: Path):
    """Write a raw state document (dict or text) to state_path."""

    def _write(content, path: Path | None = None) -> Path:
        target = path or state_path
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            target.write_text(content)
        else:
            target.write_text(json.dumps(content))
        return target

    return _write


def state_document(**fields) -> dict:
    """A valid schema v3 state document, with selected fields replaced."""
    doc = {
        "schema_version": STATE_SCHEMA_VERSION,
        "version": "0.1.0",
        "mode": "vibe",
        "target_user": "ubuntu",
        "started_at": FIXED_TIME,
        "last_accessed": FIXED_TIME,
        "completed_phases": [],
        "skipped_phases": [],
        "current_phase": None,
        "failed_phase": None,
        "failed_error": None,
        "phase_durations": {},
    }
    doc.update(fields)
    return doc


@pytest.fixture
def mock_tty() -> Generator[None, None, None]:
    """Mock sys.stdin.isatty to return True."""
    with patch("sys.stdin.isatty", return_value=True):
        yield


@pytest.fixture
def mock_no_tty() -> Generator[None, None, None]:
    """Mock sys.stdin.isatty to return False."""
    with patch("sys.stdin.isatty", return_value=False):
        yield
