"""Container engine integration.

Builds images from prepared directories and wraps the pull and list calls
of the docker SDK.
"""

from openeuler_baseimage.engine.build import (
    BuildInvocationError,
    build_image,
    list_images,
    pull_image,
)

__all__ = [
    "BuildInvocationError",
    "build_image",
    "list_images",
    "pull_image",
]
