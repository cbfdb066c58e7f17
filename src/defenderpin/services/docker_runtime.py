"""Container runtime services for defenderpin."""

import gzip
import os
import re
import shutil
import subprocess
from typing import Callable, List

from defenderpin.errors import InstallerError

_LOADED_IMAGE_RE = re.compile(r"^Loaded image(?: ID)?:\s*(\S+)\s*$", re.MULTILINE)


class DockerRuntimeService:
    """Wraps the image store operations of the container runtime CLI."""

    def __init__(self, logger, console, run_cmd: Callable, runtime: str = "docker", subprocess_module=subprocess):
        self.logger = logger
        self.console = console
        self.run_cmd = run_cmd
        self.runtime = runtime
        self.subprocess = subprocess_module

    def image_exists(self, image: str) -> bool:
        result = self.run_cmd(
            [self.runtime, "image", "inspect", "--format", "{{.Id}}", image],
            check=False,
            capture_output=True,
        )
        return result.returncode == 0

    def load_archive(self, archive_path: str) -> List[str]:
        """Loads an image archive and returns the image names it declared."""
        self.console.print(f"[blue]Loading image from file: {archive_path}[/blue]")
        result = self.run_cmd(
            [self.runtime, "load", "--input", archive_path],
            check=True,
            capture_output=True,
        )
        return _LOADED_IMAGE_RE.findall(result.stdout or "")

    def tag(self, source: str, target: str):
        self.logger.info("Re-tagging image: %s -> %s", source, target)
        self.run_cmd([self.runtime, "tag", source, target], check=True, capture_output=True)

    def pull(self, image: str):
        self.console.print(f"[blue]Pulling image: {image}[/blue]")
        self.run_cmd([self.runtime, "pull", image], check=True, capture_output=True)

    def save_archive(self, image: str, dest_path: str):
        """Streams `<runtime> save` into a gzip archive at dest_path."""
        self.console.print(f"[blue]Saving {image} to {dest_path}...[/blue]")
        cmd = [self.runtime, "save", image]
        self.logger.debug("Executing: %s", " ".join(cmd))

        parent = os.path.dirname(dest_path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        try:
            process = self.subprocess.Popen(cmd, stdout=self.subprocess.PIPE, stderr=self.subprocess.PIPE)
        except FileNotFoundError as exc:
            raise InstallerError(
                f"Required command not found: {self.runtime}. Please install it and try again."
            ) from exc

        try:
            with gzip.open(dest_path, "wb") as archive:
                shutil.copyfileobj(process.stdout, archive)
        except OSError as exc:
            process.kill()
            self._remove_partial(dest_path)
            raise InstallerError(f"Failed to write image archive {dest_path}: {exc}") from exc
        finally:
            process.stdout.close()
            return_code = process.wait()

        if return_code != 0:
            stderr = process.stderr.read().decode("utf-8", errors="replace").strip() if process.stderr else ""
            self._remove_partial(dest_path)
            raise InstallerError(f"Command failed ({return_code}): {' '.join(cmd)}\n{stderr}".rstrip())

    def _remove_partial(self, path: str):
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            self.logger.warning("Could not remove partial archive %s: %s", path, exc)
