"""Installation state store.

Persists which phases have completed so an interrupted installation can be
resumed. The store knows nothing about what a phase does; it only records
phase ids, the schema/tool version that wrote the record, and timestamps.

State file (JSON, schema v3):

    {
      "schema_version": 3,
      "version": "0.1.0",
      "mode": "vibe",
      "target_user": "ubuntu",
      "started_at": "2025-01-15T10:30:00+00:00",
      "last_accessed": "2025-01-15T10:42:00+00:00",
      "completed_phases": ["user_setup", "filesystem"],
      "skipped_phases": [],
      "current_phase": null,
      "failed_phase": null,
      "failed_error": null,
      "phase_durations": {"user_setup": 12}
    }

Write Strategy:
- Every mutation serializes the whole record to a temp file in the same
  directory, fsyncs it, and os.replace()s it over the state file, so the
  file on disk is always either the old or the new valid record.
- A failed write is reported as a warning; the in-memory record still
  counts the change for the current run. The next process may redo the
  phase, which is acceptable because phases are idempotent.
- No locking: one installer process per state file.
"""

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable

STATE_SCHEMA_VERSION = 3
STATE_FILE_MODE = 0o600

_logging = logging.getLogger(__name__)


class StateError(Exception):
    """Base class for state store failures."""
    pass


class StateCorruptedError(StateError):
    """Raised when the state file cannot be parsed as a state record."""
    pass


class IncompatibleStateError(StateError):
    """Raised when the state file was written with a different schema."""

    def __init__(self, found: Any, expected: int = STATE_SCHEMA_VERSION):
        self.found = found
        self.expected = expected
        super().__init__(
            f"State file has schema version {found!r}, expected {expected}"
        )


class StateWriteError(StateError):
    """Raised when the state file cannot be written or removed."""
    pass


class StateReadError(StateError):
    """Raised when the state file exists but cannot be read.

    Unlike StateCorruptedError this says nothing about the content, so the
    file must be left in place.
    """
    pass


class VersionCheck(Enum):
    COMPATIBLE = "compatible"
    INCOMPATIBLE = "incompatible"


def _now_iso() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")


def _backup_stamp() -> str:
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def _require_type(data: dict, key: str, expected: type) -> Any:
    if key not in data:
        raise StateCorruptedError(f"State file missing required field: {key}")
    value = data[key]
    # bool is an int subclass but never a valid state value
    if isinstance(value, bool) or not isinstance(value, expected):
        raise StateCorruptedError(
            f"State field '{key}' has invalid type {type(value).__name__}"
        )
    return value


def _string_list(data: dict, key: str, required: bool) -> list[str]:
    if key not in data and not required:
        return []
    values = _require_type(data, key, list)
    result: list[str] = []
    for i, item in enumerate(values):
        if not isinstance(item, str) or not item:
            raise StateCorruptedError(f"State field {key}[{i}] must be a non-empty string")
        if item not in result:
            result.append(item)
    return result


def _optional_str(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise StateCorruptedError(f"State field '{key}' must be a string or null")
    return value


def _timestamp(data: dict, key: str) -> str:
    value = _require_type(data, key, str)
    try:
        datetime.fromisoformat(value)
    except ValueError:
        raise StateCorruptedError(f"State field '{key}' is not an ISO-8601 timestamp")
    return value


def _check_schema(data: dict) -> VersionCheck:
    version = data.get("schema_version")
    if isinstance(version, bool) or not isinstance(version, int):
        return VersionCheck.INCOMPATIBLE
    if version != STATE_SCHEMA_VERSION:
        return VersionCheck.INCOMPATIBLE
    return VersionCheck.COMPATIBLE


@dataclass
class StateRecord:
    """One installation target's persisted progress."""
    schema_version: int
    version: str
    started_at: str
    last_accessed: str
    completed_phases: list[str] = field(default_factory=list)
    mode: str = "vibe"
    target_user: str = "ubuntu"
    skipped_phases: list[str] = field(default_factory=list)
    current_phase: str | None = None
    failed_phase: str | None = None
    failed_error: str | None = None
    phase_durations: dict[str, int] = field(default_factory=dict)

    @property
    def last_completed_phase(self) -> str | None:
        return self.completed_phases[-1] if self.completed_phases else None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> "StateRecord":
        """Validate a decoded JSON document and build a record.

        Raises:
            StateCorruptedError: If a required field is missing or malformed
        """
        if not isinstance(data, dict):
            raise StateCorruptedError(
                f"State must be a JSON object, got {type(data).__name__}"
            )

        durations_raw = data.get("phase_durations")
        if durations_raw is None:
            durations_raw = {}
        if not isinstance(durations_raw, dict):
            raise StateCorruptedError("State field 'phase_durations' must be an object")
        durations: dict[str, int] = {}
        for phase_id, seconds in durations_raw.items():
            if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
                raise StateCorruptedError(
                    f"State field phase_durations[{phase_id!r}] must be a number"
                )
            durations[phase_id] = max(0, int(seconds))

        return cls(
            schema_version=_require_type(data, "schema_version", int),
            version=_require_type(data, "version", str),
            started_at=_timestamp(data, "started_at"),
            last_accessed=_timestamp(data, "last_accessed"),
            completed_phases=_string_list(data, "completed_phases", required=True),
            mode=_optional_str(data, "mode") or "vibe",
            target_user=_optional_str(data, "target_user") or "ubuntu",
            skipped_phases=_string_list(data, "skipped_phases", required=False),
            current_phase=_optional_str(data, "current_phase"),
            failed_phase=_optional_str(data, "failed_phase"),
            failed_error=_optional_str(data, "failed_error"),
            phase_durations=durations,
        )


class StateStore:
    """Durable, atomic record of phase completion for one state file."""

    def __init__(
        self,
        path: Path | str,
        *,
        tool_version: str,
        mode: str = "vibe",
        target_user: str = "ubuntu",
        clock: Callable[[], str] | None = None,
    ):
        self.path = Path(path)
        self.tool_version = tool_version
        self.mode = mode
        self.target_user = target_user
        self._clock = clock or _now_iso
        self._record: StateRecord | None = None
        # Phases whose completion exists only in memory for this run
        self.unpersisted_phases: list[str] = []

    @classmethod
    def from_settings(cls, settings) -> "StateStore":
        return cls(
            settings.state_path,
            tool_version=settings.version,
            mode=settings.mode,
            target_user=settings.target_user,
        )

    # Reading

    def exists(self) -> bool:
        return self.path.is_file()

    def _read_document(self) -> dict[str, Any] | None:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            raise StateCorruptedError(f"State file {self.path} is not valid UTF-8: {e}") from e
        except OSError as e:
            raise StateReadError(f"Cannot read state file {self.path}: {e}") from e

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise StateCorruptedError(f"Corrupted JSON in state file {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise StateCorruptedError(
                f"State file {self.path} must contain a JSON object, "
                f"got {type(data).__name__}"
            )
        return data

    def check_version(self) -> VersionCheck:
        """Compare the persisted schema_version with STATE_SCHEMA_VERSION.

        A missing file is compatible (nothing to conflict with). Any
        mismatch, including a missing or non-integer schema_version, is
        incompatible; there is no migration path.

        Raises:
            StateCorruptedError: If the file exists but is not a JSON object
            StateReadError: If the file exists but cannot be read
        """
        data = self._read_document()
        if data is None:
            return VersionCheck.COMPATIBLE
        return _check_schema(data)

    def load(self) -> StateRecord | None:
        """Read the record from disk into memory.

        Returns:
            The record, or None when no state file exists

        Raises:
            StateCorruptedError: If the file does not parse as a record
            StateReadError: If the file exists but cannot be read
            IncompatibleStateError: If the schema version does not match
        """
        data = self._read_document()
        if data is None:
            self._record = None
            return None
        if _check_schema(data) is VersionCheck.INCOMPATIBLE:
            raise IncompatibleStateError(data.get("schema_version"))
        self._record = StateRecord.from_dict(data)
        return self._record

    @property
    def record(self) -> StateRecord | None:
        """In-memory record, loaded from disk on first access."""
        if self._record is None and self.exists():
            self.load()
        return self._record

    def is_phase_completed(self, phase_id: str) -> bool:
        record = self.record
        return record is not None and phase_id in record.completed_phases

    def should_skip(self, phase_id: str) -> bool:
        """True if the phase completed or the operator chose to skip it."""
        record = self.record
        if record is None:
            return False
        return phase_id in record.completed_phases or phase_id in record.skipped_phases

    def pending_phases(self, order: Iterable[str]) -> list[str]:
        return [phase_id for phase_id in order if not self.should_skip(phase_id)]

    # Writing

    def _new_record(self) -> StateRecord:
        now = self._clock()
        return StateRecord(
            schema_version=STATE_SCHEMA_VERSION,
            version=self.tool_version,
            started_at=now,
            last_accessed=now,
            mode=self.mode,
            target_user=self.target_user,
        )

    def _ensure_record(self) -> StateRecord:
        record = self.record
        if record is None:
            record = self._new_record()
            self._record = record
        return record

    def _write(self, record: StateRecord) -> None:
        """Atomically replace the state file with `record`.

        Raises:
            StateWriteError: If any step fails; the previous file is intact
        """
        content = json.dumps(record.to_dict(), indent=2) + "\n"
        target_dir = self.path.parent

        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=".state.", suffix=".tmp", dir=target_dir
            )
        except OSError as e:
            raise StateWriteError(f"cannot create temp file in {target_dir}: {e}") from e

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, STATE_FILE_MODE)
            os.replace(tmp_path, self.path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StateWriteError(f"cannot write state file {self.path}: {e}") from e

    def _persist(self, record: StateRecord, action: str) -> bool:
        record.last_accessed = self._clock()
        record.version = self.tool_version
        try:
            self._write(record)
        except StateWriteError as e:
            _logging.warning(f"State not persisted ({action}): {e}")
            return False
        # The whole in-memory record is now on disk, earlier gaps included
        self.unpersisted_phases.clear()
        _logging.debug(f"State saved ({action}) to {self.path}")
        return True

    def init(self) -> bool:
        """Create a fresh record if no state file exists.

        An existing file is left untouched, whatever it contains.

        Returns:
            True if a new record was created and persisted
        """
        if self.exists():
            _logging.debug(f"State file already exists: {self.path}")
            return False
        record = self._new_record()
        self._record = record
        return self._persist(record, "initialize")

    def mark_phase_complete(self, phase_id: str, duration: float | None = None) -> bool:
        """Record a phase as completed.

        Repeated calls only refresh last_accessed. If the write fails the
        phase still counts as completed for this process and is listed in
        unpersisted_phases.

        Returns:
            True if the checkpoint reached disk
        """
        record = self._ensure_record()
        if phase_id not in record.completed_phases:
            record.completed_phases.append(phase_id)
        if duration is not None:
            record.phase_durations[phase_id] = max(0, int(round(duration)))
        if record.current_phase == phase_id:
            record.current_phase = None
        if record.failed_phase == phase_id:
            record.failed_phase = None
            record.failed_error = None

        if self._persist(record, f"complete {phase_id}"):
            return True

        if phase_id not in self.unpersisted_phases:
            self.unpersisted_phases.append(phase_id)
        return False

    def record_phase_start(self, phase_id: str) -> bool:
        record = self._ensure_record()
        record.current_phase = phase_id
        record.failed_phase = None
        record.failed_error = None
        return self._persist(record, f"start {phase_id}")

    def record_phase_failure(self, phase_id: str, error: str) -> bool:
        """Record a failed phase; it is never left in completed_phases."""
        record = self._ensure_record()
        if phase_id in record.completed_phases:
            record.completed_phases.remove(phase_id)
        if phase_id in self.unpersisted_phases:
            self.unpersisted_phases.remove(phase_id)
        record.current_phase = None
        record.failed_phase = phase_id
        record.failed_error = error
        return self._persist(record, f"fail {phase_id}")

    def mark_phase_skipped(self, phase_id: str) -> bool:
        record = self._ensure_record()
        if phase_id not in record.skipped_phases:
            record.skipped_phases.append(phase_id)
        return self._persist(record, f"skip {phase_id}")

    def forget_phase(self, phase_id: str) -> bool:
        """Drop a phase from completed_phases so it runs again.

        Returns:
            True if the phase was completed before
        """
        record = self.record
        if record is None or phase_id not in record.completed_phases:
            return False
        record.completed_phases.remove(phase_id)
        record.phase_durations.pop(phase_id, None)
        self._persist(record, f"forget {phase_id}")
        return True

    def reset(self) -> None:
        """Delete the state file and forget the in-memory record.

        Raises:
            StateWriteError: If the file exists but cannot be removed
        """
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise StateWriteError(f"cannot remove state file {self.path}: {e}") from e
        _logging.debug(f"State reset: {self.path}")
        self._record = None
        self.unpersisted_phases.clear()

    def backup_and_remove(self) -> Path | None:
        """Move the state file aside to <file>.backup.<timestamp>.

        A numeric suffix is added when a backup from the same second exists.

        Returns:
            The backup path, or None if there was no state file

        Raises:
            StateWriteError: If the file cannot be moved
        """
        self._record = None
        self.unpersisted_phases.clear()
        if not self.path.exists():
            return None

        backup = self.path.with_name(f"{self.path.name}.backup.{_backup_stamp()}")
        counter = 1
        base = backup
        while backup.exists():
            backup = base.with_name(f"{base.name}.{counter}")
            counter += 1
        try:
            os.replace(self.path, backup)
        except OSError as e:
            raise StateWriteError(f"cannot move state file to {backup}: {e}") from e
        _logging.warning(f"Moved state file aside: {backup}")
        return backup


__all__ = [
    "STATE_SCHEMA_VERSION",
    "StateError",
    "StateCorruptedError",
    "IncompatibleStateError",
    "StateWriteError",
    "StateReadError",
    "VersionCheck",
    "StateRecord",
    "StateStore",
]
