"""Domain errors for defenderpin."""

from typing import Optional, Sequence


class InstallerError(RuntimeError):
    """Raised when the install cannot continue safely."""


class ConfigurationError(InstallerError):
    """Missing or invalid environment, flags or configuration file."""

    def __init__(self, message: str, missing: Sequence[str] = ()):
        self.missing = tuple(missing)
        super().__init__(message)


class ImageResolutionError(InstallerError):
    """The pinned image could not be made available locally."""


class ArchiveNotFound(ImageResolutionError):
    pass


class ArchiveLoadFailed(ImageResolutionError):
    pass


class SourceImageNotFound(ImageResolutionError):
    pass


class RegistryPullFailed(ImageResolutionError):
    pass


class RetagFailed(ImageResolutionError):
    pass


class ArtifactMismatch(ImageResolutionError):
    pass


class MissingImageSource(ImageResolutionError, ConfigurationError):
    """A version tag was requested without any image source."""


class FetchError(InstallerError):
    """The installer script could not be downloaded from the console."""


class PatchError(InstallerError):
    """The installer script could not be patched."""


class AnchorNotFound(PatchError):
    def __init__(self, rule_id: str, message: Optional[str] = None):
        self.rule_id = rule_id
        super().__init__(message or f"Patch anchor not found for rule '{rule_id}'.")


class LaunchError(InstallerError):
    """The patched installer exited with a nonzero status."""

    def __init__(self, exit_code: int, message: Optional[str] = None):
        self.exit_code = exit_code
        super().__init__(message or f"Defender installation failed with exit code {exit_code}.")
