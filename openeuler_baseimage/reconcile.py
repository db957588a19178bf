"""Version reconciliation between the mirror and the registry."""

from __future__ import annotations

from collections.abc import Sequence

from openeuler_baseimage.types import VersionTag


def reconcile(
    source: Sequence[VersionTag],
    destination: Sequence[VersionTag],
) -> list[VersionTag]:
    """Return the versions in ``source`` that are missing from ``destination``.

    Source order and duplicates are preserved. Membership is exact string
    equality; tags must already be normalized.

    Args:
        source: Versions available upstream.
        destination: Versions already published.

    Returns:
        Versions that still need to be prepared.
    """
    published = set(destination)
    return [version for version in source if version not in published]


__all__ = ["reconcile"]
