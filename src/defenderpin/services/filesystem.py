"""Filesystem helpers for defenderpin."""

import logging
import os
import shutil
import sys
import tempfile
from typing import List

from rich.console import Console

from defenderpin.constants import DIR_MODE, SCRATCH_DIR_PREFIX


class FileSystemService:
    """Encapsulates scratch directory side effects for one run."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console
        self.scratch_dirs: List[str] = []

    def set_permissions(self, path: str, mode: int):
        if sys.platform == "win32":
            return

        try:
            os.chmod(path, mode)
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)

    def create_scratch_dir(self) -> str:
        path = tempfile.mkdtemp(prefix=SCRATCH_DIR_PREFIX)
        self.set_permissions(path, DIR_MODE)
        self.scratch_dirs.append(path)
        self.logger.debug("Created scratch directory: %s", path)
        return path

    def cleanup_dir(self, path: str):
        if os.path.exists(path):
            try:
                shutil.rmtree(path)
                self.logger.debug("Removed directory: %s", path)
            except OSError as exc:
                message = f"Warning: Could not remove {path}: {exc}"
                self.console.print(f"[yellow]{message}[/yellow]")
                self.logger.warning(message)

    def cleanup_scratch(self):
        while self.scratch_dirs:
            self.cleanup_dir(self.scratch_dirs.pop())
