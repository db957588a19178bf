"""Repackaging of upstream images into rootfs archives.

The upstream image is a ``docker save`` style archive. The rootfs layer is
pulled out with the system ``tar``, renamed, recompressed with ``xz`` and
paired with a Dockerfile so the directory can be handed to a build.

Every command runs with an explicit working directory; the process working
directory is never changed.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
import sys
from pathlib import Path

from openeuler_baseimage.rootfs.layout import (
    DISTRO_ROOT,
    DOCKERFILE_NAME,
    rootfs_filename,
    rootfs_tar_filename,
)
from openeuler_baseimage.types import Architecture

logger = logging.getLogger(__name__)

REQUIRED_PLATFORM = "linux"

# Inner layer archive that must not be taken for the rootfs
EXCLUDED_MEMBER = "layer.tar"


class PlatformError(Exception):
    """Raised when repackaging is attempted on an unsupported host."""

    def __init__(self, platform: str, code: str = "unsupported_platform") -> None:
        super().__init__(
            f"Repackaging requires a {REQUIRED_PLATFORM} host, running on {platform}"
        )
        self.platform = platform
        self.code = code


class RepackError(Exception):
    """Raised when an image cannot be repackaged."""

    def __init__(
        self,
        message: str,
        code: str = "repack_error",
        exit_code: int | None = None,
    ) -> None:
        """Initialize RepackError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
            exit_code: Exit status of the failed command, if any.
        """
        super().__init__(message)
        self.code = code
        self.exit_code = exit_code


def ensure_supported_platform(platform: str | None = None) -> None:
    """Fail unless running on the platform whose archive tools are required.

    Raises:
        PlatformError: On any non-Linux host.
    """
    current = sys.platform if platform is None else platform
    if not current.startswith(REQUIRED_PLATFORM):
        raise PlatformError(current)


def run_command(cmd: list[str], cwd: Path) -> str:
    """Run an external command in ``cwd`` and return its stdout.

    Raises:
        RepackError: If the command is missing or exits non-zero.
    """
    cmd_str = shlex.join(cmd)
    logger.info("Executing: %s (cwd: %s)", cmd_str, cwd)

    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as e:
        raise RepackError(
            f"Command not found: {cmd[0]}",
            code="command_not_found",
        ) from e
    except OSError as e:
        raise RepackError(
            f"Failed to execute {cmd_str}: {e}",
            code="execution_error",
        ) from e

    if result.returncode != 0:
        raise RepackError(
            f"{cmd_str} failed with exit code {result.returncode}: "
            f"{(result.stderr or '').strip()}",
            code="command_failed",
            exit_code=result.returncode,
        )

    if result.stdout:
        logger.debug("%s", result.stdout.rstrip())
    return result.stdout or ""


def extract_nested_archive(image_path: Path, dest_dir: Path) -> None:
    """Extract the top-level ``*.tar`` members of an image, skipping layers."""
    run_command(
        [
            "tar",
            "-xf",
            str(image_path),
            "--wildcards",
            "*.tar",
            "--exclude",
            EXCLUDED_MEMBER,
        ],
        cwd=dest_dir,
    )


def select_extracted_member(directory: Path, prefix: str = DISTRO_ROOT) -> Path:
    """Find the single archive left behind by the extraction.

    Candidates are top-level ``*.tar`` files whose name does not start with
    the distribution prefix (those are the downloads and our own outputs).

    Raises:
        RepackError: If there is not exactly one candidate.
    """
    candidates = sorted(
        p
        for p in directory.iterdir()
        if p.is_file() and p.name.endswith(".tar") and not p.name.startswith(prefix)
    )

    if not candidates:
        raise RepackError(
            f"No extracted archive found in {directory}",
            code="member_not_found",
        )
    if len(candidates) > 1:
        raise RepackError(
            f"Ambiguous extraction in {directory}: "
            f"{', '.join(p.name for p in candidates)}",
            code="ambiguous_member",
        )
    return candidates[0]


def compress_xz(tar_path: Path) -> Path:
    """Compress ``tar_path`` in place with xz, returning the ``.xz`` path."""
    run_command(["xz", "-z", tar_path.name], cwd=tar_path.parent)
    return tar_path.with_name(tar_path.name + ".xz")


def install_dockerfile(template: Path, directory: Path) -> Path:
    """Copy the Dockerfile template into ``directory``.

    Raises:
        RepackError: If the template does not exist.
    """
    if not template.is_file():
        raise RepackError(
            f"Dockerfile template not found: {template}",
            code="missing_dockerfile",
        )
    dest = directory / DOCKERFILE_NAME
    shutil.copyfile(template, dest)
    logger.debug("Copied %s to %s", template, dest)
    return dest


def repack_rootfs(
    image_path: Path,
    architecture: Architecture | str,
    platform: str | None = None,
) -> Path:
    """Derive the compressed rootfs archive from a downloaded image.

    Args:
        image_path: Verified compressed image.
        architecture: Architecture the image belongs to.
        platform: Override of the detected host platform.

    Returns:
        Path to the ``openEuler-docker-rootfs.<arch>.tar.xz`` archive.

    Raises:
        PlatformError: If not running on Linux.
        RepackError: If any step fails.
    """
    ensure_supported_platform(platform)

    directory = image_path.parent
    logger.info("Repacking %s", image_path)

    extract_nested_archive(image_path, directory)
    member = select_extracted_member(directory)

    rootfs_tar = directory / rootfs_tar_filename(architecture)
    try:
        member.rename(rootfs_tar)
    except OSError as e:
        raise RepackError(
            f"Failed to rename {member.name}: {e}",
            code="os_error",
        ) from e

    rootfs_path = compress_xz(rootfs_tar)
    expected = directory / rootfs_filename(architecture)
    if not expected.exists():
        raise RepackError(
            f"Compression did not produce {expected.name}",
            code="missing_output",
        )

    logger.info("Created %s", rootfs_path)
    return rootfs_path


__all__ = [
    "EXCLUDED_MEMBER",
    "PlatformError",
    "REQUIRED_PLATFORM",
    "RepackError",
    "compress_xz",
    "ensure_supported_platform",
    "extract_nested_archive",
    "install_dockerfile",
    "repack_rootfs",
    "run_command",
    "select_extracted_member",
]
