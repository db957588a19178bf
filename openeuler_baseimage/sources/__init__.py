"""Version source adapters.

This module handles:
- Scraping release directories from the openEuler mirror
- Listing tags already published to the registry
"""

from openeuler_baseimage.sources.errors import SourceError
from openeuler_baseimage.sources.mirror import fetch_mirror_versions
from openeuler_baseimage.sources.registry import fetch_registry_tags

__all__ = [
    "SourceError",
    "fetch_mirror_versions",
    "fetch_registry_tags",
]
