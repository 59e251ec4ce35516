"""Module installation: turns manifest modules into phase work functions."""

import logging
from typing import Callable, Tuple

import click

from .config import InstallerSettings
from .contracts import ContractValidator
from .execution import CHECK_TIMEOUT, INSTALL_TIMEOUT, run_command, wrap_command
from .manifest import Manifest, ModuleSpec

_logging = logging.getLogger(__name__)

CommandRunner = Callable[..., Tuple[str, int]]


def command_environ(settings: InstallerSettings) -> dict[str, str]:
    """Environment seen by module commands and contract checks."""
    env = dict(settings.environ)
    env["TARGET_USER"] = settings.target_user
    env["MODE"] = settings.mode
    env["ACFS_VERSION"] = settings.version
    return env


class ModuleInstaller:
    """Runs the modules of a phase behind their contracts.

    A required module failing (contract unmet, install or verify command
    failing) fails the whole phase; an optional module failing is reported
    and skipped.
    """

    def __init__(
        self,
        manifest: Manifest,
        validator: ContractValidator,
        settings: InstallerSettings,
        runner: CommandRunner = run_command,
        current_user: str | None = None,
    ):
        self.manifest = manifest
        self.validator = validator
        self.settings = settings
        self._runner = runner
        self._current_user = current_user
        self.installed: list[str] = []
        self.failed: list[str] = []

    def _run(self, module: ModuleSpec, command: str, timeout) -> Tuple[str, int]:
        wrapped = wrap_command(
            command, module.run_as, self.settings.target_user, self._current_user
        )
        return self._runner(wrapped, timeout=timeout, env=command_environ(self.settings))

    def _is_installed(self, module: ModuleSpec) -> bool:
        if not module.installed_check or self.settings.force_reinstall:
            return False
        _, returncode = self._run(module, module.installed_check, CHECK_TIMEOUT)
        return returncode == 0

    def _unmet_dependency(self, module: ModuleSpec) -> str | None:
        for dep in module.dependencies:
            if dep in self.failed:
                return dep
        return None

    def install_module(self, module: ModuleSpec) -> bool:
        """Install one module.

        Returns:
            True if the module is installed (or would be, in dry-run mode)
        """
        if self.settings.dry_run:
            # Earlier phases have not run, so phase contracts cannot hold yet
            click.echo(f"    [DRY-RUN] {module.id}: contract {module.contract_id}")
            for command in module.install:
                click.echo(f"    [DRY-RUN] {module.id}: install: {command} ({module.run_as})")
            for command in module.verify:
                click.echo(f"    [DRY-RUN] {module.id}: verify: {command} ({module.run_as})")
            return True

        result = self.validator.require_contract(module.contract_id)
        if not result.ok:
            click.secho(f"    {module.id}: contract not met: {result.reason}", fg="red", err=True)
            return False

        dep = self._unmet_dependency(module)
        if dep:
            click.secho(f"    {module.id}: dependency '{dep}' failed", fg="red", err=True)
            return False

        if self._is_installed(module):
            click.echo(f"    {module.id}: already installed")
            return True

        click.echo(f"    Installing {module.id}")
        for command in module.install:
            output, returncode = self._run(module, command, INSTALL_TIMEOUT)
            if returncode != 0:
                _logging.debug(f"{module.id} install output:\n{output}")
                click.secho(
                    f"    {module.id}: install command failed: {command}", fg="red", err=True
                )
                return False

        for command in module.verify:
            output, returncode = self._run(module, command, CHECK_TIMEOUT)
            if returncode != 0:
                _logging.debug(f"{module.id} verify output:\n{output}")
                click.secho(f"    {module.id}: verify failed: {command}", fg="red", err=True)
                return False

        click.secho(f"    {module.id} installed", fg="green")
        return True

    def install_phase(self, phase_id: str) -> bool:
        if self.settings.dry_run:
            result = None
        else:
            result = self.validator.require_contract(f"phase:{phase_id}")
        if result is not None and not result.ok:
            click.secho(f"    Phase contract not met: {result.reason}", fg="red", err=True)
            return False

        ok = True
        for module in self.manifest.modules_for_phase(phase_id):
            if self.install_module(module):
                self.installed.append(module.id)
                continue
            self.failed.append(module.id)
            if module.optional:
                click.secho(f"    Warning: optional module {module.id} skipped", fg="yellow")
                continue
            ok = False
            break
        return ok

    def phase_work(self, phase_id: str) -> Callable[[], bool]:
        """Return the zero-argument work function for a phase."""
        return lambda: self.install_phase(phase_id)


__all__ = ["ModuleInstaller", "command_environ"]
