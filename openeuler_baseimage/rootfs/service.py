"""Archive materializer.

This module provides the high-level API that turns a list of missing
versions into prepared directories:
- materialize(): prepare every (version, architecture) pair
- prepare_archive(): prepare a single pair

Pairs are processed one after another. Within a pair the image and its
checksum sidecar are downloaded concurrently and joined before
verification.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from openeuler_baseimage.config import get_settings
from openeuler_baseimage.rootfs.fetch import (
    ProgressCallback,
    VerificationError,
    download_file,
    verify_checksum,
)
from openeuler_baseimage.rootfs.layout import PreparedArchive, artifact_url
from openeuler_baseimage.rootfs.repack import install_dockerfile, repack_rootfs
from openeuler_baseimage.types import Architecture, VersionTag

if TYPE_CHECKING:
    from openeuler_baseimage.config import Settings

logger = logging.getLogger(__name__)


class MaterializeError(Exception):
    """Raised when a prepared directory cannot be set up."""

    def __init__(self, message: str, code: str = "materialize_error") -> None:
        """Initialize MaterializeError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


def _fetch_missing(
    client: httpx.Client,
    archive: PreparedArchive,
    mirror_url: str,
    settings: Settings,
    on_progress: ProgressCallback | None,
) -> None:
    """Download the image and sidecar if absent, waiting for both."""
    missing = [
        p for p in (archive.image_path, archive.checksum_path) if not p.exists()
    ]
    if not missing:
        logger.debug("Image files already present in %s", archive.directory)
        return

    with ThreadPoolExecutor(
        max_workers=settings.max_concurrent_downloads,
        thread_name_prefix="download",
    ) as executor:
        futures: list[Future] = [
            executor.submit(
                download_file,
                client,
                artifact_url(mirror_url, archive.version, archive.architecture, p.name),
                p,
                timeout=settings.download_timeout,
                on_progress=on_progress,
            )
            for p in missing
        ]
        # Re-raises the first failure once every download has finished
        for future in futures:
            future.result()

    archive.downloaded.extend(p.name for p in missing)


def prepare_archive(
    client: httpx.Client,
    work_dir: Path,
    version: VersionTag,
    architecture: Architecture | str,
    settings: Settings | None = None,
    on_progress: ProgressCallback | None = None,
) -> PreparedArchive:
    """Prepare the directory of one (version, architecture) pair.

    Args:
        client: HTTPX client instance.
        work_dir: Root for all prepared directories.
        version: Release version tag.
        architecture: Target architecture.
        settings: Optional settings; uses default if not provided.
        on_progress: Optional download progress callback.

    Returns:
        PreparedArchive describing the directory and what this call did.

    Raises:
        MaterializeError: If the directory cannot be created.
        DownloadError: If a download fails.
        VerificationError: If the image does not match its sidecar.
        PlatformError: If repackaging is needed on a non-Linux host.
        RepackError: If repackaging fails.
    """
    if settings is None:
        settings = get_settings()

    archive = PreparedArchive.for_pair(
        work_dir, version, architecture, settings.distro_root
    )
    logger.info(
        "Preparing %s/%s in %s",
        version,
        archive.architecture.value,
        archive.directory,
    )

    try:
        archive.directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise MaterializeError(
            f"Failed to create {archive.directory}: {e}",
            code="mkdir_error",
        ) from e

    _fetch_missing(client, archive, settings.mirror_url, settings, on_progress)

    try:
        verify_checksum(archive.image_path, archive.checksum_path)
    except VerificationError:
        logger.error(
            "Removing %s and %s after failed verification",
            archive.image_path.name,
            archive.checksum_path.name,
        )
        archive.image_path.unlink(missing_ok=True)
        archive.checksum_path.unlink(missing_ok=True)
        raise

    if not archive.rootfs_path.exists():
        repack_rootfs(archive.image_path, archive.architecture)
        archive.repacked = True
    else:
        logger.debug("Rootfs %s already present", archive.rootfs_path.name)

    if not archive.dockerfile_path.exists():
        install_dockerfile(
            settings.resolved_dockerfile_template(work_dir), archive.directory
        )

    return archive


def materialize(
    versions: Sequence[VersionTag],
    architectures: Sequence[Architecture | str],
    work_dir: Path | None = None,
    client: httpx.Client | None = None,
    settings: Settings | None = None,
    on_progress: ProgressCallback | None = None,
) -> list[PreparedArchive]:
    """Prepare every version for every architecture.

    Versions are the outer loop, architectures the inner one. The first
    failure stops the run.

    Args:
        versions: Versions to prepare.
        architectures: Architectures to prepare each version for.
        work_dir: Root directory; defaults to the configured work_dir.
        client: HTTPX client; a new one is created and closed if omitted.
        settings: Optional settings; uses default if not provided.
        on_progress: Optional download progress callback.

    Returns:
        One PreparedArchive per pair, in processing order.
    """
    if settings is None:
        settings = get_settings()
    if work_dir is None:
        work_dir = settings.work_dir

    owns_client = client is None
    if client is None:
        client = httpx.Client(follow_redirects=True)

    prepared: list[PreparedArchive] = []
    try:
        for version in versions:
            for architecture in architectures:
                prepared.append(
                    prepare_archive(
                        client,
                        work_dir,
                        version,
                        architecture,
                        settings=settings,
                        on_progress=on_progress,
                    )
                )
    finally:
        if owns_client:
            client.close()

    logger.info(
        "Prepared %d archive(s) for %d version(s)", len(prepared), len(versions)
    )
    return prepared


__all__ = ["MaterializeError", "materialize", "prepare_archive"]
