"""Container engine operations.

This module handles:
- Building an image from a prepared directory
- Pulling images from a registry
- Listing local images

All calls go through the docker SDK; the engine is located from the
environment (DOCKER_HOST and friends).
"""

from __future__ import annotations

import logging
import tarfile
import tempfile
from pathlib import Path
from typing import Any

import docker
from docker.errors import DockerException
from requests.exceptions import ReadTimeout, RequestException

from openeuler_baseimage.rootfs.layout import DOCKERFILE_NAME

logger = logging.getLogger(__name__)

# Timeout for build submission (seconds)
BUILD_TIMEOUT = 300


class BuildInvocationError(Exception):
    """Raised when the container engine rejects or fails a request."""

    def __init__(
        self,
        message: str,
        code: str = "engine_error",
        messages: list[str] | None = None,
    ) -> None:
        """Initialize BuildInvocationError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
            messages: Build log lines received before the failure.
        """
        super().__init__(message)
        self.code = code
        self.messages = messages or []


def get_client(timeout: int = BUILD_TIMEOUT) -> docker.DockerClient:
    """Connect to the container engine configured in the environment.

    Raises:
        BuildInvocationError: If the engine is not reachable.
    """
    try:
        return docker.from_env(timeout=timeout)
    except DockerException as e:
        raise BuildInvocationError(
            f"Container engine is not available: {e}",
            code="engine_unavailable",
        ) from e


def create_context_tar(directory: Path, tar_path: Path) -> Path:
    """Write ``directory``'s contents into an uncompressed tar."""
    with tarfile.open(tar_path, "w") as tar:
        for entry in sorted(directory.iterdir()):
            tar.add(entry, arcname=entry.name)
    return tar_path


def collect_build_output(stream: Any) -> list[str]:
    """Turn a decoded build stream into log lines.

    Raises:
        BuildInvocationError: If the stream reports a build error.
    """
    messages: list[str] = []
    for entry in stream:
        if "error" in entry:
            raise BuildInvocationError(
                f"Build failed: {str(entry['error']).strip()}",
                code="build_failed",
                messages=messages,
            )
        text = entry.get("stream") or entry.get("status")
        if text:
            messages.extend(line for line in str(text).splitlines() if line.strip())
    return messages


def build_image(
    directory: Path,
    image_name: str,
    timeout: int = BUILD_TIMEOUT,
    client: docker.DockerClient | None = None,
) -> list[str]:
    """Build and tag an image from a prepared directory.

    The directory is packed into a temporary tar that is sent as the build
    context. The temporary file is removed and an owned client is closed on
    every exit path.

    Args:
        directory: Directory holding the Dockerfile and rootfs archive.
        image_name: Tag for the built image.
        timeout: Engine request timeout in seconds.
        client: Docker client; created from the environment if omitted.

    Returns:
        Build log lines.

    Raises:
        BuildInvocationError: If the directory is unusable or the build fails.
    """
    if not directory.is_dir():
        raise BuildInvocationError(
            f"Build directory does not exist: {directory}",
            code="missing_directory",
        )
    if not (directory / DOCKERFILE_NAME).is_file():
        raise BuildInvocationError(
            f"No {DOCKERFILE_NAME} in {directory}",
            code="missing_dockerfile",
        )

    with tempfile.NamedTemporaryFile(
        prefix="docker-", suffix=".image", delete=False
    ) as tmp_file:
        tar_path = Path(tmp_file.name)

    owns_client = client is None
    try:
        create_context_tar(directory, tar_path)
        if client is None:
            client = get_client(timeout)

        logger.info("Building %s from %s", image_name, directory)
        with tar_path.open("rb") as context:
            stream = client.api.build(
                fileobj=context,
                custom_context=True,
                tag=image_name,
                dockerfile=DOCKERFILE_NAME,
                nocache=True,
                rm=True,
                timeout=timeout,
                decode=True,
            )
            messages = collect_build_output(stream)

    except DockerException as e:
        raise BuildInvocationError(
            f"Failed to build {image_name}: {e}",
            code="engine_error",
        ) from e
    except ReadTimeout as e:
        raise BuildInvocationError(
            f"Build of {image_name} timed out after {timeout}s",
            code="timeout",
        ) from e
    except RequestException as e:
        raise BuildInvocationError(
            f"Failed to reach the engine while building {image_name}: {e}",
            code="engine_error",
        ) from e
    except (OSError, tarfile.TarError) as e:
        raise BuildInvocationError(
            f"Failed to pack build context {directory}: {e}",
            code="context_error",
        ) from e
    finally:
        tar_path.unlink(missing_ok=True)
        if owns_client and client is not None:
            client.close()

    logger.info("Built %s (%d log lines)", image_name, len(messages))
    return messages


def pull_image(
    reference: str,
    username: str | None = None,
    password: str | None = None,
    client: docker.DockerClient | None = None,
) -> list[str]:
    """Pull an image, authenticating when credentials are given.

    Returns:
        Tags of the pulled image.

    Raises:
        BuildInvocationError: If the pull fails.
    """
    auth_config: dict[str, str] | None = None
    if username and password:
        auth_config = {"username": username, "password": password}

    owns_client = client is None
    try:
        if client is None:
            client = get_client()
        logger.info("Pulling %s", reference)
        image = client.images.pull(reference, auth_config=auth_config)
    except DockerException as e:
        raise BuildInvocationError(
            f"Failed to pull {reference}: {e}",
            code="pull_failed",
        ) from e
    finally:
        if owns_client and client is not None:
            client.close()

    if isinstance(image, list):
        return [tag for img in image for tag in img.tags]
    return list(image.tags)


def list_images(client: docker.DockerClient | None = None) -> list[str]:
    """Return the repository tags of every local image."""
    owns_client = client is None
    try:
        if client is None:
            client = get_client()
        images = client.images.list()
    except DockerException as e:
        raise BuildInvocationError(
            f"Failed to list images: {e}",
            code="engine_error",
        ) from e
    finally:
        if owns_client and client is not None:
            client.close()

    return [tag for image in images for tag in image.tags]


__all__ = [
    "BUILD_TIMEOUT",
    "BuildInvocationError",
    "build_image",
    "collect_build_output",
    "create_context_tar",
    "get_client",
    "list_images",
    "pull_image",
]
