"""Download and verification of upstream image files.

This module handles:
- Streaming downloads with progress reporting
- SHA256 computation of downloaded files
- Verification against published checksum sidecars
"""

from __future__ import annotations

import hashlib
import logging
import shutil
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import httpx

logger = logging.getLogger(__name__)

# Timeout for downloads (seconds)
DOWNLOAD_TIMEOUT = 3600

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB

# Hex-encoded SHA256 length
SHA256_HEX_LENGTH = 64

# Called with (destination, bytes read so far, declared total or None)
ProgressCallback = Callable[[Path, int, int | None], None]


class DownloadError(Exception):
    """Raised when a download fails."""

    def __init__(self, message: str, code: str = "download_error") -> None:
        """Initialize DownloadError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class VerificationError(Exception):
    """Raised when checksum verification fails."""

    def __init__(self, message: str, code: str = "verification_error") -> None:
        """Initialize VerificationError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


@dataclass
class DownloadResult:
    """Result of a single download."""

    path: Path
    size_bytes: int
    total_bytes: int | None


def progress_percent(current: int, total: int | None) -> float | None:
    """Return download progress in percent, or None when the size is unknown."""
    if not total:
        return None
    return current * 100.0 / total


def _declared_length(response: httpx.Response) -> int | None:
    value = response.headers.get("Content-Length")
    if value is None:
        return None
    try:
        length = int(value)
    except ValueError:
        return None
    return length or None


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    timeout: float = DOWNLOAD_TIMEOUT,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
    on_progress: ProgressCallback | None = None,
) -> DownloadResult:
    """Download a file, moving it into place only once complete.

    The body is streamed into a temporary file next to ``dest_path`` so an
    interrupted transfer never leaves a file that looks finished.

    Args:
        client: HTTPX client instance.
        url: URL to download from.
        dest_path: Destination path for the downloaded file.
        timeout: Download timeout in seconds.
        chunk_size: Size of chunks to download.
        on_progress: Optional progress callback.

    Returns:
        DownloadResult with path and size.

    Raises:
        DownloadError: If download fails.
    """
    logger.info("Downloading %s to %s", url, dest_path)

    dest_path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        dir=dest_path.parent, prefix=f".{dest_path.name}.", suffix=".part", delete=False
    ) as tmp_file:
        tmp_path = Path(tmp_file.name)

    try:
        with client.stream("GET", url, timeout=timeout) as response:
            response.raise_for_status()

            total = _declared_length(response)
            current = 0
            logged_decile = -1

            with tmp_path.open("wb") as f:
                for chunk in response.iter_bytes(chunk_size):
                    f.write(chunk)
                    current += len(chunk)
                    if on_progress is not None:
                        on_progress(dest_path, current, total)

                    percent = progress_percent(current, total)
                    if percent is not None and int(percent) // 10 > logged_decile:
                        logged_decile = int(percent) // 10
                        logger.debug("%s: %.0f%%", dest_path.name, percent)

        shutil.move(str(tmp_path), str(dest_path))

    except httpx.HTTPStatusError as e:
        tmp_path.unlink(missing_ok=True)
        raise DownloadError(
            f"HTTP error downloading {url}: {e.response.status_code} {e.response.reason_phrase}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        tmp_path.unlink(missing_ok=True)
        raise DownloadError(
            f"Timeout downloading {url}",
            code="timeout",
        ) from e
    except httpx.RequestError as e:
        tmp_path.unlink(missing_ok=True)
        raise DownloadError(
            f"Network error downloading {url}: {e}",
            code="network_error",
        ) from e
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise DownloadError(
            f"OS error writing {dest_path}: {e}",
            code="os_error",
        ) from e

    logger.info("Downloaded %s (%d bytes)", dest_path.name, current)
    return DownloadResult(path=dest_path, size_bytes=current, total_bytes=total)


def compute_file_sha256(file_path: Path, chunk_size: int = DOWNLOAD_CHUNK_SIZE) -> str:
    """Compute SHA256 checksum of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks to read.

    Returns:
        SHA256 hex digest.
    """
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def read_sidecar_digest(sidecar_path: Path) -> str:
    """Read the expected digest from a checksum sidecar.

    Only the first 64 characters are used; the filename that usually
    follows the digest is ignored.

    Raises:
        VerificationError: If the sidecar is shorter than a digest.
    """
    content = sidecar_path.read_text(encoding="utf-8", errors="replace")
    digest = content[:SHA256_HEX_LENGTH]
    if len(digest) < SHA256_HEX_LENGTH:
        raise VerificationError(
            f"Checksum file {sidecar_path} is too short to hold a SHA256 digest",
            code="malformed_sidecar",
        )
    return digest


def verify_checksum(file_path: Path, sidecar_path: Path) -> str:
    """Verify a file against its checksum sidecar.

    Args:
        file_path: File to hash.
        sidecar_path: Sidecar holding the expected digest.

    Returns:
        The verified hex digest.

    Raises:
        VerificationError: If the digests differ.
    """
    expected = read_sidecar_digest(sidecar_path)
    computed = compute_file_sha256(file_path)

    if computed != expected:
        raise VerificationError(
            f"Checksum mismatch for {file_path.name}: "
            f"expected {expected}, got {computed}",
            code="checksum_mismatch",
        )

    logger.info("Verified %s (checksum: %s)", file_path.name, computed[:16] + "...")
    return computed


__all__ = [
    "DOWNLOAD_CHUNK_SIZE",
    "DOWNLOAD_TIMEOUT",
    "DownloadError",
    "DownloadResult",
    "ProgressCallback",
    "VerificationError",
    "compute_file_sha256",
    "download_file",
    "progress_percent",
    "read_sidecar_digest",
    "verify_checksum",
]
