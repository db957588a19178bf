"""openEuler base image preparation.

This package discovers openEuler releases on the upstream mirror, compares
them with tags already published to the registry, and turns the missing ones
into verified rootfs archives ready for a container build.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
