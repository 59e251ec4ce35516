"""Tests for the acfs CLI."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

from acfs.commands import cli
from acfs.phases import PHASE_IDS
from acfs.tui import ResumeAction
from tests.conftest import state_document


@pytest.fixture
def runner():
    """Create a CliRunner for testing."""
    return CliRunner()


@pytest.fixture
def workspace(temp_dir: Path):
    """State, manifest and contracts files plus a marker log for commands."""

    class Workspace:
        state = temp_dir / "acfs" / "state.json"
        manifest = temp_dir / "manifest.yaml"
        contracts = temp_dir / "contracts.yaml"
        marker = temp_dir / "marker.log"

        def write_manifest(self, fail_filesystem: bool = False):
            modules = [
                {
                    "id": "demo.user",
                    "description": "User step",
                    "phase": "user_setup",
                    "run_as": "current",
                    "install": [f'echo user_setup >> "{self.marker}"'],
                },
                {
                    "id": "demo.fs",
                    "description": "Filesystem step",
                    "phase": "filesystem",
                    "run_as": "current",
                    "install": [
                        "false" if fail_filesystem else f'echo filesystem >> "{self.marker}"'
                    ],
                },
                {
                    "id": "demo.optional",
                    "description": "Optional extra",
                    "phase": "cli_tools",
                    "run_as": "current",
                    "optional": True,
                    "enabled_by_default": False,
                    "install": ["true"],
                },
            ]
            self.manifest.write_text(yaml.safe_dump({"modules": modules}))

        def write_contracts(self, contracts=None):
            self.contracts.write_text(yaml.safe_dump({"contracts": contracts or {}}))

        def env(self, **extra):
            values = {
                "ACFS_STATE_FILE": str(self.state),
                "ACFS_MANIFEST_FILE": str(self.manifest),
                "ACFS_CONTRACTS_FILE": str(self.contracts),
                "TARGET_USER": "tester",
                "ACFS_FORCE_REINSTALL": None,
                "ACFS_FORCE_RESUME": None,
                "ACFS_INTERACTIVE": None,
                "ACFS_DRY_RUN": None,
                "ACFS_VERSION": None,
                "ACFS_LOG_FILE": None,
                "MODE": None,
            }
            values.update(extra)
            return values

        def marker_lines(self):
            if not self.marker.exists():
                return []
            return self.marker.read_text().split()

        def state_data(self):
            return json.loads(self.state.read_text())

    ws = Workspace()
    ws.write_manifest()
    ws.write_contracts()
    return ws


class TestInstall:
    """Tests for the install command."""

    def test_fresh_install_completes_all_phases(self, runner, workspace):
        result = runner.invoke(cli, ["install"], env=workspace.env())

        assert result.exit_code == 0, result.output
        assert "Starting a new installation" in result.output
        assert "Installation complete." in result.output
        assert workspace.state_data()["completed_phases"] == list(PHASE_IDS)
        assert workspace.marker_lines() == ["user_setup", "filesystem"]

    def test_failure_exits_1_and_records_failure(self, runner, workspace):
        workspace.write_manifest(fail_filesystem=True)
        result = runner.invoke(cli, ["install"], env=workspace.env())

        assert result.exit_code == 1
        assert "re-run 'acfs install' to resume" in result.output
        data = workspace.state_data()
        assert data["completed_phases"] == ["user_setup"]
        assert data["failed_phase"] == "filesystem"

    def test_rerun_resumes_without_repeating_work(self, runner, workspace):
        workspace.write_manifest(fail_filesystem=True)
        runner.invoke(cli, ["install"], env=workspace.env())

        workspace.write_manifest()
        result = runner.invoke(cli, ["install"], env=workspace.env())

        assert result.exit_code == 0, result.output
        assert "Resuming: 1 phase(s) already complete" in result.output
        assert "Skipped (already completed)" in result.output
        assert workspace.marker_lines() == ["user_setup", "filesystem"]

    def test_force_reinstall_repeats_work(self, runner, workspace):
        runner.invoke(cli, ["install"], env=workspace.env())
        result = runner.invoke(cli, ["install", "--force-reinstall"], env=workspace.env())

        assert result.exit_code == 0, result.output
        assert "Force reinstall" in result.output
        assert workspace.marker_lines().count("user_setup") == 2

    def test_force_reinstall_from_environment(self, runner, workspace):
        runner.invoke(cli, ["install"], env=workspace.env())
        result = runner.invoke(
            cli, ["install"], env=workspace.env(ACFS_FORCE_REINSTALL="true")
        )
        assert "Force reinstall" in result.output

    def test_corrupted_state_starts_fresh(self, runner, workspace):
        workspace.state.parent.mkdir(parents=True)
        workspace.state.write_text("{truncated")

        result = runner.invoke(cli, ["install"], env=workspace.env())

        assert result.exit_code == 0, result.output
        assert "unreadable" in result.output
        assert workspace.state_data()["completed_phases"] == list(PHASE_IDS)

    def test_incompatible_state_is_backed_up(self, runner, workspace):
        workspace.state.parent.mkdir(parents=True)
        workspace.state.write_text(json.dumps(state_document(schema_version=2)))

        result = runner.invoke(cli, ["install"], env=workspace.env())

        assert result.exit_code == 0, result.output
        assert "incompatible" in result.output
        assert "Previous state saved to" in result.output
        backups = list(workspace.state.parent.glob("state.json.backup.*"))
        assert len(backups) == 1

    def test_dry_run_writes_nothing(self, runner, workspace):
        result = runner.invoke(cli, ["install", "--dry-run"], env=workspace.env())

        assert result.exit_code == 0, result.output
        assert "[DRY-RUN] demo.user: install:" in result.output
        assert not workspace.state.exists()
        assert workspace.marker_lines() == []

    def test_only_phase(self, runner, workspace):
        result = runner.invoke(
            cli, ["install", "--only-phase", "user_setup"], env=workspace.env()
        )
        assert result.exit_code == 0, result.output
        assert workspace.state_data()["completed_phases"] == ["user_setup"]

    def test_unknown_phase_is_usage_error(self, runner, workspace):
        result = runner.invoke(
            cli, ["install", "--only-phase", "desserts"], env=workspace.env()
        )
        assert result.exit_code == 2
        assert "Unknown phase(s): desserts" in result.output

    def test_skip_phase_is_recorded(self, runner, workspace):
        result = runner.invoke(
            cli, ["install", "--skip-phase", "filesystem"], env=workspace.env()
        )
        assert result.exit_code == 0, result.output
        data = workspace.state_data()
        assert data["skipped_phases"] == ["filesystem"]
        assert "filesystem" not in data["completed_phases"]
        assert workspace.marker_lines() == ["user_setup"]

    def test_continue_on_error(self, runner, workspace):
        workspace.write_manifest(fail_filesystem=True)
        result = runner.invoke(
            cli, ["install", "--continue-on-error"], env=workspace.env()
        )
        assert result.exit_code == 1
        assert "finalize" in workspace.state_data()["completed_phases"]

    def test_unmet_contract_fails_phase(self, runner, workspace):
        workspace.write_contracts({"module:demo.user": [{"requires_env": "ACFS_TEST_TOKEN"}]})
        result = runner.invoke(cli, ["install"], env=workspace.env(ACFS_TEST_TOKEN=None))

        assert result.exit_code == 1
        assert "ACFS_TEST_TOKEN" in result.output
        assert workspace.state_data()["completed_phases"] == []

    def test_invalid_mode_is_config_error(self, runner, workspace):
        result = runner.invoke(cli, ["install"], env=workspace.env(MODE="yolo"))
        assert result.exit_code == 4
        assert "mode must be one of" in result.output

    def test_invalid_manifest_is_config_error(self, runner, workspace):
        workspace.manifest.write_text("modules: [")
        result = runner.invoke(cli, ["install"], env=workspace.env())
        assert result.exit_code == 4
        assert "Syntax error" in result.output

    def test_interactive_abort_keeps_state(self, runner, workspace):
        workspace.write_manifest(fail_filesystem=True)
        runner.invoke(cli, ["install"], env=workspace.env())
        before = workspace.state.read_text()

        with patch("acfs.commands.install.stdin_is_tty", return_value=True), patch(
            "acfs.commands.install.choose_resume_action", return_value=ResumeAction.ABORT
        ):
            result = runner.invoke(cli, ["install", "--interactive"], env=workspace.env())

        assert result.exit_code == 3
        assert "Aborted." in result.output
        assert workspace.state.read_text() == before

    def test_interactive_abort_after_upgrade_keeps_state(self, runner, workspace):
        runner.invoke(cli, ["install"], env=workspace.env(ACFS_VERSION="0.0.9"))
        before = workspace.state.read_text()

        with patch("acfs.commands.install.stdin_is_tty", return_value=True), patch(
            "acfs.commands.install.choose_resume_action", return_value=ResumeAction.ABORT
        ):
            result = runner.invoke(
                cli, ["install", "--interactive"], env=workspace.env(ACFS_VERSION="0.2.0")
            )

        assert result.exit_code == 3
        assert "Phases to re-run: finalize" in result.output
        assert workspace.state.read_text() == before
        assert workspace.state_data()["version"] == "0.0.9"

    def test_unreadable_state_exits_with_state_error(self, runner, workspace):
        runner.invoke(cli, ["install", "--only-phase", "user_setup"], env=workspace.env())
        before = workspace.state.read_text()
        original_read_text = Path.read_text

        def deny_state(path, *args, **kwargs):
            if path == workspace.state:
                raise PermissionError(13, "Permission denied", str(path))
            return original_read_text(path, *args, **kwargs)

        with patch.object(Path, "read_text", deny_state):
            result = runner.invoke(cli, ["install"], env=workspace.env())

        assert result.exit_code == 5
        assert "Cannot read state file" in result.output
        assert workspace.state.read_text() == before
        assert workspace.marker_lines() == ["user_setup"]

    def test_interactive_fresh_discards_progress(self, runner, workspace):
        runner.invoke(cli, ["install"], env=workspace.env())

        with patch("acfs.commands.install.stdin_is_tty", return_value=True), patch(
            "acfs.commands.install.choose_resume_action", return_value=ResumeAction.FRESH
        ):
            result = runner.invoke(cli, ["install", "--interactive"], env=workspace.env())

        assert result.exit_code == 0, result.output
        assert workspace.marker_lines().count("user_setup") == 2

    def test_resume_flag_skips_prompt(self, runner, workspace):
        runner.invoke(cli, ["install"], env=workspace.env())

        with patch("acfs.commands.install.stdin_is_tty", return_value=True), patch(
            "acfs.commands.install.choose_resume_action"
        ) as mock_choose:
            result = runner.invoke(
                cli, ["install", "--interactive", "--resume"], env=workspace.env()
            )

        mock_choose.assert_not_called()
        assert result.exit_code == 0, result.output

    def test_version_change_reruns_finalize(self, runner, workspace):
        runner.invoke(cli, ["install"], env=workspace.env(ACFS_VERSION="0.0.9"))
        result = runner.invoke(cli, ["install"], env=workspace.env(ACFS_VERSION="0.2.0"))

        assert result.exit_code == 0, result.output
        assert "Installer changed from 0.0.9 to 0.2.0" in result.output
        assert "[9/9 Final Wiring] Starting..." in result.output
        assert workspace.state_data()["version"] == "0.2.0"


class TestStatus:
    """Tests for the status command."""

    def test_no_state(self, runner, workspace):
        result = runner.invoke(cli, ["status"], env=workspace.env())
        assert result.exit_code == 1
        assert "No installation state found" in result.output

    def test_partial_progress(self, runner, workspace):
        workspace.write_manifest(fail_filesystem=True)
        runner.invoke(cli, ["install"], env=workspace.env())

        result = runner.invoke(cli, ["status"], env=workspace.env())

        assert result.exit_code == 0, result.output
        assert "Progress:  1/9 phases" in result.output
        assert "Failed:    2/9 Filesystem Setup" in result.output
        assert "Next phase: 2/9 Filesystem Setup" in result.output

    def test_corrupted_state(self, runner, workspace):
        workspace.state.parent.mkdir(parents=True)
        workspace.state.write_text("nope")
        result = runner.invoke(cli, ["status"], env=workspace.env())
        assert result.exit_code == 5


class TestResetState:
    """Tests for the reset-state command."""

    def test_reset_with_yes(self, runner, workspace):
        runner.invoke(cli, ["install"], env=workspace.env())
        result = runner.invoke(cli, ["reset-state", "--yes"], env=workspace.env())
        assert result.exit_code == 0
        assert not workspace.state.exists()

    def test_reset_declined(self, runner, workspace):
        runner.invoke(cli, ["install"], env=workspace.env())
        result = runner.invoke(cli, ["reset-state"], env=workspace.env(), input="n\n")
        assert "Aborted." in result.output
        assert workspace.state.exists()

    def test_reset_without_state(self, runner, workspace):
        result = runner.invoke(cli, ["reset-state", "--yes"], env=workspace.env())
        assert result.exit_code == 0
        assert "No state file" in result.output


class TestContract:
    """Tests for the contract command."""

    def test_no_contract(self, runner, workspace):
        result = runner.invoke(cli, ["contract", "module:demo.user"], env=workspace.env())
        assert result.exit_code == 0
        assert "no contract declared" in result.output

    def test_satisfied(self, runner, workspace):
        workspace.write_contracts({"module:demo.user": [{"requires_env": "TARGET_USER"}]})
        result = runner.invoke(cli, ["contract", "module:demo.user"], env=workspace.env())
        assert result.exit_code == 0
        assert "satisfied" in result.output

    def test_unmet_phase(self, runner, workspace):
        workspace.write_contracts({"phase:agents": [{"requires_phase": "languages"}]})
        result = runner.invoke(cli, ["contract", "phase:agents"], env=workspace.env())
        assert result.exit_code == 1
        assert "not satisfied" in result.output
        assert "languages" in result.output

    def test_invalid_target(self, runner, workspace):
        result = runner.invoke(cli, ["contract", "demo.user"], env=workspace.env())
        assert result.exit_code == 2
        assert "Invalid contract target" in result.output


class TestList:
    """Tests for the list command."""

    def test_lists_enabled_modules(self, runner, workspace):
        result = runner.invoke(cli, ["list"], env=workspace.env())
        assert result.exit_code == 0
        assert "1/9 User Normalization" in result.output
        assert "demo.user" in result.output
        assert "demo.optional" not in result.output

    def test_all_includes_disabled(self, runner, workspace):
        result = runner.invoke(cli, ["list", "--all", "-v"], env=workspace.env())
        assert "demo.optional" in result.output
        assert "[optional, disabled]" in result.output
        assert "install: true" in result.output

    def test_bundled_manifest(self, runner):
        result = runner.invoke(cli, ["list"], env={"ACFS_MANIFEST_FILE": None})
        assert result.exit_code == 0
        assert "shell.zsh" in result.output


class TestVersion:
    def test_version_option(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output
