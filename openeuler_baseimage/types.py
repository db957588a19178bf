"""Shared type definitions for openeuler_baseimage.

This module contains enums, dataclasses and type aliases shared across
subpackages to avoid circular imports.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

# Lower-cased release identifier, e.g. "22.03-lts"
VersionTag = str


class Architecture(str, Enum):
    """CPU architecture an image is prepared for."""

    X86_64 = "x86_64"
    AARCH64 = "aarch64"


@dataclass(frozen=True)
class BuildRequest:
    """Directory and image name handed to the build step."""

    directory: Path
    image_name: str

    def __post_init__(self) -> None:
        """Validate fields after initialization."""
        if not self.image_name:
            raise ValueError("image_name must be provided")


__all__ = ["Architecture", "BuildRequest", "VersionTag"]
