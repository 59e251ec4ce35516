"""Tests for TUI utilities."""

from unittest.mock import patch

import pytest

from acfs.state import StateRecord
from acfs.tui import (
    ResumeAction,
    choose_resume_action,
    display_state_summary,
    format_phase_line,
)
from tests.conftest import FIXED_TIME


def _record(**fields) -> StateRecord:
    values = {
        "schema_version": 3,
        "version": "0.1.0",
        "started_at": FIXED_TIME,
        "last_accessed": FIXED_TIME,
    }
    values.update(fields)
    return StateRecord(**values)


class TestFormatPhaseLine:
    """Tests for format_phase_line function."""

    def test_completed_with_duration(self):
        record = _record(completed_phases=["cli_tools"], phase_durations={"cli_tools": 42})
        line = format_phase_line("cli_tools", record)
        assert "✅" in line
        assert "4/9 CLI Tools" in line
        assert "(42s)" in line

    def test_failed(self):
        record = _record(failed_phase="agents", failed_error="exit 1")
        line = format_phase_line("agents", record)
        assert "❌" in line
        assert "(failed)" in line

    def test_skipped(self):
        line = format_phase_line("cloud_db", _record(skipped_phases=["cloud_db"]))
        assert "(skipped)" in line

    def test_pending(self):
        line = format_phase_line("stack", _record())
        assert "⬜" in line


class TestDisplayStateSummary:
    """Tests for display_state_summary function."""

    def test_shows_progress(self, capsys):
        record = _record(completed_phases=["user_setup", "filesystem"], mode="safe")
        display_state_summary(record)
        out = capsys.readouterr().out
        assert "Previous installation detected" in out
        assert "Mode:      safe" in out
        assert "Progress:  2/9 phases" in out
        assert "9/9 Final Wiring" in out

    def test_shows_failure(self, capsys):
        record = _record(failed_phase="agents", failed_error="bun missing")
        display_state_summary(record, verbose=False)
        out = capsys.readouterr().out
        assert "Failed:    6/9 Coding Agents: bun missing" in out
        assert "Final Wiring" not in out

    def test_shows_interrupted_phase(self, capsys):
        display_state_summary(_record(current_phase="languages"), verbose=False)
        assert "Interrupted during: 5/9 Language Runtimes" in capsys.readouterr().out


class TestChooseResumeAction:
    """Tests for the interactive resume prompt."""

    def test_requires_tty(self, mock_no_tty):
        with pytest.raises(RuntimeError, match="requires a TTY"):
            choose_resume_action()

    @pytest.mark.parametrize("action", list(ResumeAction))
    def test_returns_selection(self, mock_tty, action):
        with patch("questionary.select") as mock_select:
            mock_select.return_value.ask.return_value = action
            assert choose_resume_action() is action

    def test_cancel_returns_none(self, mock_tty):
        with patch("questionary.select") as mock_select:
            mock_select.return_value.ask.return_value = None
            assert choose_resume_action() is None

    def test_keyboard_interrupt_returns_none(self, mock_tty):
        with patch("questionary.select") as mock_select:
            mock_select.return_value.ask.side_effect = KeyboardInterrupt
            assert choose_resume_action() is None
