"""Shared domain models for defenderpin."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

from .constants import DEFAULT_RUNTIME


@dataclass(frozen=True)
class NoImageSource:
    """No image source configured; the console decides the version."""


@dataclass(frozen=True)
class ArchiveFile:
    path: str


@dataclass(frozen=True)
class ExistingImage:
    reference: str


@dataclass(frozen=True)
class Registry:
    url: str


ImageSource = Union[NoImageSource, ArchiveFile, ExistingImage, Registry]


@dataclass(frozen=True)
class ResourceLimits:
    cpu_set: Optional[str] = None
    memory_limit: Optional[str] = None


@dataclass(frozen=True)
class InstallRequest:
    """Validated configuration for one invocation."""

    console_address: str
    api_base: str
    auth_token: str = field(repr=False)
    version_tag: Optional[str] = None
    image_source: ImageSource = NoImageSource()
    keep_work_files: bool = False
    resource_limits: Optional[ResourceLimits] = None
    passthrough_args: Tuple[str, ...] = ()
    runtime: str = DEFAULT_RUNTIME
    dry_run: bool = False
    backup_archive: Optional[str] = None

    @property
    def cpu_set(self) -> Optional[str]:
        return self.resource_limits.cpu_set if self.resource_limits else None

    @property
    def memory_limit(self) -> Optional[str]:
        return self.resource_limits.memory_limit if self.resource_limits else None


@dataclass(frozen=True)
class RunResult:
    exit_code: int
    installed_version: Optional[str] = None


class RunState(Enum):
    VALIDATING = "validating"
    RESOLVING_IMAGE = "resolving_image"
    FETCHING = "fetching"
    PATCHING = "patching"
    LAUNCHING = "launching"
    CLEANING = "cleaning"
    DONE = "done"
    FAILED = "failed"
