"""Rootfs archive preparation.

This module handles:
- Deterministic on-disk layout for each (version, architecture) pair
- Downloading and verifying upstream images against checksum sidecars
- Repackaging images into rootfs archives with a Dockerfile
"""

from openeuler_baseimage.rootfs.fetch import (
    DownloadError,
    DownloadResult,
    VerificationError,
    compute_file_sha256,
    download_file,
    verify_checksum,
)
from openeuler_baseimage.rootfs.layout import PreparedArchive, archive_dir
from openeuler_baseimage.rootfs.repack import PlatformError, RepackError
from openeuler_baseimage.rootfs.service import (
    MaterializeError,
    materialize,
    prepare_archive,
)

__all__ = [
    # Layout
    "PreparedArchive",
    "archive_dir",
    # Fetch module
    "DownloadError",
    "DownloadResult",
    "VerificationError",
    "compute_file_sha256",
    "download_file",
    "verify_checksum",
    # Repack module
    "PlatformError",
    "RepackError",
    # Service module
    "MaterializeError",
    "materialize",
    "prepare_archive",
]
