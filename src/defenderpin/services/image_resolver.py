"""Pinned Defender image resolution."""

import os

from defenderpin.constants import IMAGE_NAMESPACE, IMAGE_TAG_PREFIX
from defenderpin.errors import (
    ArchiveLoadFailed,
    ArchiveNotFound,
    ArtifactMismatch,
    InstallerError,
    MissingImageSource,
    RegistryPullFailed,
    RetagFailed,
    SourceImageNotFound,
)
from defenderpin.errors_catalog import actionable_error
from defenderpin.models import ArchiveFile, ExistingImage, InstallRequest, NoImageSource, Registry


def local_image_name(tag: str) -> str:
    """Name the vendor installer expects for a normalized tag."""
    return f"{IMAGE_NAMESPACE}:{IMAGE_TAG_PREFIX}{tag}"


class ImageResolver:
    """Makes the pinned image available in the local image store.

    Sources are tried in a fixed order and the first one that applies wins:
    an image already present under the expected name, then the configured
    archive, existing image or registry. Failures are terminal.
    """

    def __init__(self, docker_runtime_service, logger, console):
        self.docker = docker_runtime_service
        self.logger = logger
        self.console = console

    def resolve(self, request: InstallRequest) -> str:
        if request.version_tag is None:
            raise InstallerError("Image resolution requires a version tag.")

        target = local_image_name(request.version_tag)
        source = request.image_source
        if isinstance(source, NoImageSource):
            raise MissingImageSource(actionable_error("tag_requires_source"))

        if self.docker.image_exists(target):
            self.logger.info("Image %s already present locally, nothing to fetch.", target)
            self.console.print(f"[green]Image ready: {target}[/green]")
            return target

        if isinstance(source, ArchiveFile):
            self._load_archive(source.path, target)
        elif isinstance(source, ExistingImage):
            self._retag_existing(source.reference, target)
        elif isinstance(source, Registry):
            self._pull_from_registry(source.url, target)

        self.console.print(f"[green]Image ready: {target}[/green]")
        return target

    def _load_archive(self, path: str, target: str):
        if not os.path.isfile(path) or not os.access(path, os.R_OK):
            raise ArchiveNotFound(actionable_error("archive_not_found", path=path))

        try:
            loaded = self.docker.load_archive(path)
        except InstallerError as exc:
            raise ArchiveLoadFailed(f"Failed to load image from {path}: {exc}") from exc

        self.logger.info("Loaded from %s: %s", path, ", ".join(loaded) or "<unknown>")
        if not self.docker.image_exists(target):
            raise ArtifactMismatch(
                actionable_error(
                    "artifact_mismatch",
                    path=path,
                    image=target,
                    loaded=", ".join(loaded) or "nothing",
                )
            )

    def _retag_existing(self, reference: str, target: str):
        if not self.docker.image_exists(reference):
            raise SourceImageNotFound(f"Source image not found: {reference}")
        self._tag(reference, target)

    def _pull_from_registry(self, registry_url: str, target: str):
        remote = f"{registry_url.rstrip('/')}/{target}"
        try:
            self.docker.pull(remote)
        except InstallerError as exc:
            raise RegistryPullFailed(f"Failed to pull {remote}: {exc}") from exc
        self._tag(remote, target)

    def _tag(self, source: str, target: str):
        try:
            self.docker.tag(source, target)
        except InstallerError as exc:
            raise RetagFailed(f"Failed to re-tag {source} -> {target}: {exc}") from exc
