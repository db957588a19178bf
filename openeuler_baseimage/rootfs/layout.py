"""On-disk layout and upstream URLs for prepared archives.

Every function here is pure: the same inputs always give the same paths.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from openeuler_baseimage.types import Architecture, VersionTag

DISTRO_ROOT = "openEuler"

DOCKERFILE_NAME = "Dockerfile"


def _arch_value(architecture: Architecture | str) -> str:
    return Architecture(architecture).value


def archive_dir(
    work_dir: Path,
    version: VersionTag,
    architecture: Architecture | str,
    distro_root: str = DISTRO_ROOT,
) -> Path:
    """Return ``<work_dir>/<distro_root>/<version>/<architecture>``."""
    return work_dir / distro_root / version / _arch_value(architecture)


def image_filename(architecture: Architecture | str) -> str:
    """Compressed multi-layer image published upstream."""
    return f"openEuler-docker.{_arch_value(architecture)}.tar.xz"


def checksum_filename(architecture: Architecture | str) -> str:
    """Checksum sidecar published next to the image."""
    return f"{image_filename(architecture)}.sha256sum"


def rootfs_tar_filename(architecture: Architecture | str) -> str:
    """Uncompressed rootfs, only present while repacking."""
    return f"openEuler-docker-rootfs.{_arch_value(architecture)}.tar"


def rootfs_filename(architecture: Architecture | str) -> str:
    """Final repackaged rootfs archive."""
    return f"{rootfs_tar_filename(architecture)}.xz"


def release_base_url(mirror_url: str, version: VersionTag) -> str:
    """Return the docker image directory of a release on the mirror."""
    return f"{mirror_url.rstrip('/')}/openEuler-{version.upper()}/docker_img"


def artifact_url(
    mirror_url: str,
    version: VersionTag,
    architecture: Architecture | str,
    filename: str,
) -> str:
    """Return the download URL of one file of a release/architecture."""
    base = release_base_url(mirror_url, version)
    return f"{base}/{_arch_value(architecture)}/{filename}"


@dataclass
class PreparedArchive:
    """Files making up one prepared (version, architecture) directory.

    Attributes:
        version: Release version tag.
        architecture: Target architecture.
        directory: Directory holding every file below.
        image_path: Downloaded compressed image.
        checksum_path: Downloaded checksum sidecar.
        rootfs_path: Repackaged rootfs archive.
        dockerfile_path: Build recipe copied from the template.
        downloaded: Filenames fetched during this run.
        repacked: Whether the rootfs was derived during this run.
    """

    version: VersionTag
    architecture: Architecture
    directory: Path
    image_path: Path
    checksum_path: Path
    rootfs_path: Path
    dockerfile_path: Path
    downloaded: list[str] = field(default_factory=list)
    repacked: bool = False

    @classmethod
    def for_pair(
        cls,
        work_dir: Path,
        version: VersionTag,
        architecture: Architecture | str,
        distro_root: str = DISTRO_ROOT,
    ) -> PreparedArchive:
        """Build the layout of a (version, architecture) pair under work_dir."""
        arch = Architecture(architecture)
        directory = archive_dir(work_dir, version, arch, distro_root)
        return cls(
            version=version,
            architecture=arch,
            directory=directory,
            image_path=directory / image_filename(arch),
            checksum_path=directory / checksum_filename(arch),
            rootfs_path=directory / rootfs_filename(arch),
            dockerfile_path=directory / DOCKERFILE_NAME,
        )

    @property
    def is_complete(self) -> bool:
        """True when every file needed for a build is present."""
        return all(
            p.exists()
            for p in (
                self.image_path,
                self.checksum_path,
                self.rootfs_path,
                self.dockerfile_path,
            )
        )


__all__ = [
    "DISTRO_ROOT",
    "DOCKERFILE_NAME",
    "PreparedArchive",
    "archive_dir",
    "artifact_url",
    "checksum_filename",
    "image_filename",
    "release_base_url",
    "rootfs_filename",
    "rootfs_tar_filename",
]
