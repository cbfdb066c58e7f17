"""Runs the patched installer behind the privilege boundary."""

import os
import subprocess
from typing import List, Optional, Sequence

from defenderpin.constants import SCRIPT_FILE_NAME, SCRIPT_MODE
from defenderpin.errors import InstallerError
from defenderpin.models import RunResult


def default_privilege_command() -> List[str]:
    if hasattr(os, "geteuid") and os.geteuid() == 0:
        return []
    return ["sudo"]


class Launcher:
    """Writes the script to a private scratch directory and executes it."""

    def __init__(
        self,
        filesystem_service,
        logger,
        console,
        subprocess_module=subprocess,
        privilege_command: Optional[Sequence[str]] = None,
    ):
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.console = console
        self.subprocess = subprocess_module
        self.privilege_command = (
            list(privilege_command) if privilege_command is not None else default_privilege_command()
        )

    def build_args(self, console_address: str, passthrough_args: Sequence[str]) -> List[str]:
        return ["-c", console_address] + list(passthrough_args)

    def build_command(self, script_path: str, console_address: str, passthrough_args: Sequence[str]) -> List[str]:
        return self.privilege_command + ["bash", script_path] + self.build_args(console_address, passthrough_args)

    def launch(
        self,
        body: str,
        console_address: str,
        passthrough_args: Sequence[str],
        version_tag: Optional[str] = None,
    ) -> RunResult:
        scratch_dir = self.filesystem_service.create_scratch_dir()
        try:
            script_path = os.path.join(scratch_dir, SCRIPT_FILE_NAME)
            with open(script_path, "w", encoding="utf-8", newline="") as file_obj:
                file_obj.write(body)
            self.filesystem_service.set_permissions(script_path, SCRIPT_MODE)

            cmd = self.build_command(script_path, console_address, passthrough_args)
            args = self.build_args(console_address, passthrough_args)
            self.console.print(f"[blue]Running defender.sh with args: {' '.join(args)}[/blue]")
            self.logger.debug("Executing: %s", " ".join(cmd))

            exit_code = self._run(cmd)
        finally:
            self.filesystem_service.cleanup_dir(scratch_dir)

        return RunResult(
            exit_code=exit_code,
            installed_version=version_tag if exit_code == 0 else None,
        )

    def _run(self, cmd: List[str]) -> int:
        try:
            process = self.subprocess.Popen(cmd)
        except FileNotFoundError as exc:
            raise InstallerError(f"Required command not found: {cmd[0]}. Please install it and try again.") from exc

        try:
            return process.wait()
        except KeyboardInterrupt:
            self.logger.warning("Interrupted, waiting for defender.sh to stop...")
            process.terminate()
            try:
                process.wait(timeout=10)
            except self.subprocess.TimeoutExpired:
                process.kill()
                process.wait()
            raise
