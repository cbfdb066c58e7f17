"""
defenderpin - Pinned-version wrapper for the Prisma Cloud Defender installer
"""

__version__ = "0.1.0"

from .core import DefenderInstaller, InstallerError

__all__ = ["DefenderInstaller", "InstallerError"]
