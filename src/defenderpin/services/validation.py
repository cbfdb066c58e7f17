"""Environment, flag and URL validation helpers for defenderpin."""

import re
from typing import Mapping, Optional, Sequence
from urllib.parse import urlparse

from defenderpin.constants import API_SUFFIXES, IMAGE_TAG_PREFIX, REQUIRED_ENV_VARS
from defenderpin.constants import ENV_API_URL, ENV_CONSOLE, ENV_TOKEN
from defenderpin.errors import ConfigurationError, MissingImageSource
from defenderpin.errors_catalog import actionable_error
from defenderpin.models import (
    ArchiveFile,
    ExistingImage,
    ImageSource,
    InstallRequest,
    NoImageSource,
    Registry,
    ResourceLimits,
)

_TAG_RE = re.compile(r"[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}")
_CPU_SET_RE = re.compile(r"\d+(?:-\d+)?(?:,\d+(?:-\d+)?)*")
_MEMORY_RE = re.compile(r"\d+[bkmgBKMG]?")


def redact_token(token: str) -> str:
    if len(token) <= 8:
        return "****"
    return f"{token[:4]}****"


class ValidationService:
    """Turns raw environment and CLI input into an InstallRequest."""

    def __init__(self, allow_insecure_http: bool = False):
        self.allow_insecure_http = allow_insecure_http

    def enforce_https_policy(self, location: str, label: str, logger, console):
        scheme = urlparse(location).scheme.lower()
        if scheme == "https":
            return

        if scheme == "http" and not self.allow_insecure_http:
            raise ConfigurationError(actionable_error("insecure_http", label=label))

        if scheme == "http":
            logger.warning("Insecure HTTP enabled for %s: %s", label, location)
            console.print(
                f"[yellow]Warning:[/yellow] Using insecure HTTP for {label}. "
                "Prefer HTTPS whenever possible."
            )
            return

        raise ConfigurationError(f"{label} must be an HTTPS URL, got: {location}")

    def normalize_api_base(self, api_url: str) -> str:
        """Strips a trailing slash and a known API suffix from the console URL."""
        base = api_url.strip()
        if base.endswith("/"):
            base = base[:-1]
        for suffix in API_SUFFIXES:
            if base.endswith(suffix):
                base = base[: -len(suffix)]
        return base

    def normalize_tag(self, tag: str) -> str:
        clean_tag = tag.strip()
        if clean_tag.startswith(IMAGE_TAG_PREFIX):
            clean_tag = clean_tag[len(IMAGE_TAG_PREFIX):]

        self.check_tag(clean_tag, original=tag)
        return clean_tag

    def check_tag(self, tag: str, original: Optional[str] = None):
        if not tag or not _TAG_RE.fullmatch(tag):
            raise ConfigurationError(actionable_error("invalid_tag", tag=original or tag))

    def check_environment(self, environ: Mapping[str, str]):
        missing = [name for name in REQUIRED_ENV_VARS if not environ.get(name)]
        if missing:
            raise ConfigurationError(
                actionable_error("missing_env", names=", ".join(missing)),
                missing=missing,
            )

    def resolve_image_source(
        self,
        image: Optional[str],
        source_image: Optional[str],
        registry: Optional[str],
    ) -> ImageSource:
        given = [
            (option, value)
            for option, value in (
                ("--image", image),
                ("--source-image", source_image),
                ("--registry", registry),
            )
            if value
        ]
        if len(given) > 1:
            options = ", ".join(option for option, _ in given)
            raise ConfigurationError(actionable_error("conflicting_sources", options=options))

        if image:
            return ArchiveFile(path=image)
        if source_image:
            return ExistingImage(reference=source_image)
        if registry:
            return Registry(url=registry.rstrip("/"))
        return NoImageSource()

    def build_request(
        self,
        environ: Mapping[str, str],
        logger,
        console,
        tag: Optional[str] = None,
        image: Optional[str] = None,
        source_image: Optional[str] = None,
        registry: Optional[str] = None,
        keep_files: bool = False,
        cpu_limit: Optional[str] = None,
        memory_limit: Optional[str] = None,
        passthrough_args: Sequence[str] = (),
        runtime: str = "docker",
        dry_run: bool = False,
        backup_archive: Optional[str] = None,
    ) -> InstallRequest:
        """Validates every input before any network, disk or runtime side effect."""
        self.check_environment(environ)

        api_base = self.normalize_api_base(environ[ENV_API_URL])
        self.enforce_https_policy(api_base, ENV_API_URL, logger, console)

        image_source = self.resolve_image_source(image, source_image, registry)
        version_tag = None
        if tag is not None:
            version_tag = self.normalize_tag(tag)
            if version_tag != tag.strip():
                logger.info("Tag: '%s' -> '%s'", tag, version_tag)
            if isinstance(image_source, NoImageSource):
                raise MissingImageSource(actionable_error("tag_requires_source"))
        elif not isinstance(image_source, NoImageSource):
            option = {
                ArchiveFile: "--image",
                ExistingImage: "--source-image",
                Registry: "--registry",
            }[type(image_source)]
            raise ConfigurationError(actionable_error("source_requires_tag", option=option))

        if backup_archive and version_tag is None:
            raise ConfigurationError("--backup-archive requires --tag.")

        if cpu_limit and not _CPU_SET_RE.fullmatch(cpu_limit):
            raise ConfigurationError(
                actionable_error("invalid_resource_limit", option="--cpu-limit", value=cpu_limit)
            )
        if memory_limit and not _MEMORY_RE.fullmatch(memory_limit):
            raise ConfigurationError(
                actionable_error("invalid_resource_limit", option="--memory-limit", value=memory_limit)
            )

        resource_limits = None
        if cpu_limit or memory_limit:
            resource_limits = ResourceLimits(cpu_set=cpu_limit or None, memory_limit=memory_limit or None)

        token = environ[ENV_TOKEN]
        logger.debug("Using API base %s with token %s", api_base, redact_token(token))

        return InstallRequest(
            console_address=environ[ENV_CONSOLE],
            api_base=api_base,
            auth_token=token,
            version_tag=version_tag,
            image_source=image_source,
            keep_work_files=keep_files,
            resource_limits=resource_limits,
            passthrough_args=tuple(passthrough_args),
            runtime=runtime,
            dry_run=dry_run,
            backup_archive=backup_archive,
        )
