import logging
import shlex
import subprocess
from typing import List, Optional

import requests
from rich.console import Console
from rich.syntax import Syntax

from .constants import DEFAULT_FETCH_TIMEOUT
from .errors import InstallerError, LaunchError, MissingImageSource
from .errors_catalog import actionable_error
from .models import InstallRequest, NoImageSource, RunResult, RunState
from .services.command_runner import CommandRunner
from .services.docker_runtime import DockerRuntimeService
from .services.filesystem import FileSystemService
from .services.image_resolver import ImageResolver, local_image_name
from .services.launcher import Launcher
from .services.patcher import ScriptPatcher, render_diff
from .services.script_fetch import ScriptFetchService
from .services.validation import ValidationService

console = Console()
error_console = Console(stderr=True)
logger = logging.getLogger("defenderpin")


class DefenderInstaller:
    """Runs one validated install request through resolve, fetch, patch and launch.

    Concurrent runs pinning the same tag share the runtime's image store
    without any locking and are not supported.
    """

    def __init__(
        self,
        request: InstallRequest,
        allow_insecure_http: bool = False,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
    ):
        self.request = request
        self.state = RunState.VALIDATING
        self.state_history: List[RunState] = [RunState.VALIDATING]
        self.result: Optional[RunResult] = None
        self.local_image: Optional[str] = None

        self.filesystem_service = FileSystemService(logger=logger, console=console)
        self.validation_service = ValidationService(allow_insecure_http=allow_insecure_http)
        self.command_runner = CommandRunner(logger=logger)
        self.docker_runtime_service = DockerRuntimeService(
            logger=logger,
            console=console,
            run_cmd=self._run_cmd,
            runtime=request.runtime,
            subprocess_module=subprocess,
        )
        self.image_resolver = ImageResolver(
            docker_runtime_service=self.docker_runtime_service,
            logger=logger,
            console=console,
        )
        self.script_fetch_service = ScriptFetchService(
            validation_service=self.validation_service,
            logger=logger,
            console=console,
            requests_module=requests,
            timeout=fetch_timeout,
        )
        self.script_patcher = ScriptPatcher(logger=logger, console=console)
        self.launcher = Launcher(
            filesystem_service=self.filesystem_service,
            logger=logger,
            console=console,
            subprocess_module=subprocess,
        )

    def _transition(self, state: RunState):
        logger.debug("State: %s -> %s", self.state.value, state.value)
        self.state = state
        self.state_history.append(state)

    def _run_step(self, state: RunState, callback, *args, **kwargs):
        self._transition(state)
        return callback(*args, **kwargs)

    def _run_cmd(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
    ) -> subprocess.CompletedProcess:
        return self.command_runner.run(cmd, check=check, capture_output=capture_output)

    def validate(self):
        """Re-checks the request invariants that guard every side effect."""
        if self.request.version_tag is not None:
            self.validation_service.check_tag(self.request.version_tag)
            if isinstance(self.request.image_source, NoImageSource):
                raise MissingImageSource(actionable_error("tag_requires_source"))

    def resolve_image(self) -> str:
        self.local_image = self.image_resolver.resolve(self.request)
        return self.local_image

    def fetch_script(self) -> str:
        return self.script_fetch_service.fetch(self.request)

    def patch_script(self, body: str) -> str:
        return self.script_patcher.apply(body, self.request).body

    def launch(self, body: str) -> RunResult:
        console.print("[bold]=======================================[/bold]")
        result = self.launcher.launch(
            body,
            self.request.console_address,
            self.request.passthrough_args,
            version_tag=self.request.version_tag,
        )
        if result.exit_code != 0:
            raise LaunchError(result.exit_code)
        return result

    def show_plan(self, original: str, patched: str):
        diff = render_diff(original, patched)
        if diff:
            console.print(Syntax(diff, "diff", word_wrap=True))
        else:
            console.print("[yellow]No modifications apply to defender.sh.[/yellow]")

        args = self.launcher.build_command("defender.sh", self.request.console_address, self.request.passthrough_args)
        console.print(f"[blue]Would run:[/blue] {shlex.join(args)}")
        if self.request.version_tag:
            console.print(
                f"[blue]Would resolve image:[/blue] {local_image_name(self.request.version_tag)}"
            )

    def report_success(self):
        console.print("[bold]=======================================[/bold]")
        console.print("[green]Defender installation completed successfully![/green]")
        if self.request.keep_work_files:
            console.print("[green]Configuration files preserved in .twistlock/[/green]")

        tag = self.request.version_tag
        if not tag:
            return

        image = self.local_image or local_image_name(tag)
        console.print(f"[green]Installed version: {tag}[/green]")
        if self.request.backup_archive:
            self.docker_runtime_service.save_archive(image, self.request.backup_archive)
            console.print(f"[green]Backup written to {self.request.backup_archive}[/green]")
        else:
            console.print("[dim]TIP: To backup this version for future rollbacks:[/dim]")
            console.print(f"[dim]  {self.request.runtime} save {image} | gzip > defender{tag}.tar.gz[/dim]")

    def cleanup(self):
        self.filesystem_service.cleanup_scratch()

    def run(self) -> int:
        exit_code = 1
        failed = True

        try:
            logger.info("Starting defenderpin...")
            self.validate()

            if self.request.version_tag:
                console.print(f"[blue]Custom tag requested: {self.request.version_tag}[/blue]")
                if not self.request.dry_run:
                    self._run_step(RunState.RESOLVING_IMAGE, self.resolve_image)

            original = self._run_step(RunState.FETCHING, self.fetch_script)
            patched = self._run_step(RunState.PATCHING, self.patch_script, original)

            if self.request.dry_run:
                self.show_plan(original, patched)
                self.result = RunResult(exit_code=0)
            else:
                self.result = self._run_step(RunState.LAUNCHING, self.launch, patched)
                self.report_success()

            exit_code = self.result.exit_code
            failed = False
            return exit_code

        except KeyboardInterrupt:
            error_console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            return exit_code
        except LaunchError as exc:
            error_console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            self.result = RunResult(exit_code=exc.exit_code)
            exit_code = exc.exit_code
            return exit_code
        except InstallerError as exc:
            error_console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            return exit_code
        except Exception as exc:
            error_console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            return exit_code
        finally:
            self._transition(RunState.CLEANING)
            self.cleanup()
            self._transition(RunState.FAILED if failed else RunState.DONE)
