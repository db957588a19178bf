"""openEuler mirror adapter.

Scrapes the mirror's directory listing and turns release directories such as
``openEuler-22.03-LTS/`` into version tags such as ``22.03-lts``.
"""

from __future__ import annotations

import logging
import re

import httpx
from bs4 import BeautifulSoup

from openeuler_baseimage.sources.errors import SourceError, source_error_from_httpx
from openeuler_baseimage.types import VersionTag

logger = logging.getLogger(__name__)

# Official openEuler repository
OPENEULER_MIRROR_BASE = "https://repo.openeuler.org"

RELEASE_DIR_PREFIX = "openEuler-"

_RELEASE_DIR_RE = re.compile(r"^openEuler-\d.*")


def is_release_directory(name: str) -> bool:
    """Return True if a listing entry names a release directory."""
    return len(_RELEASE_DIR_RE.findall(name)) == 1


def version_from_directory(name: str) -> VersionTag:
    """Derive the version tag from a release directory name.

    Args:
        name: Listing entry, e.g. ``openEuler-22.03-LTS/``.

    Returns:
        Lower-cased version without prefix and trailing slash.
    """
    return name[len(RELEASE_DIR_PREFIX) :].rstrip("/").lower()


def parse_release_listing(html: str) -> list[VersionTag]:
    """Extract version tags from a mirror directory listing page.

    The mirror renders entries inside ``table#list td.link``; plain
    autoindex pages without that table fall back to every anchor.

    Args:
        html: Listing page markup.

    Returns:
        Version tags in page order.
    """
    soup = BeautifulSoup(html, "html.parser")
    table = soup.select_one("table#list")
    if table is not None:
        anchors = [cell.find("a") for cell in table.select("td.link")]
    else:
        anchors = soup.find_all("a")

    versions: list[VersionTag] = []
    for anchor in anchors:
        if anchor is None:
            continue
        text = anchor.get_text(strip=True)
        if is_release_directory(text):
            versions.append(version_from_directory(text))
    return versions


def fetch_mirror_versions(
    client: httpx.Client,
    mirror_url: str = OPENEULER_MIRROR_BASE,
    timeout: float = 30,
) -> list[VersionTag]:
    """Fetch the releases published on the mirror.

    Args:
        client: HTTPX client instance.
        mirror_url: Mirror root URL.
        timeout: Request timeout in seconds.

    Returns:
        Version tags found on the mirror.

    Raises:
        SourceError: If the listing cannot be fetched.
    """
    url = mirror_url.rstrip("/") + "/"
    logger.debug("Fetching release listing from %s", url)

    try:
        response = client.get(url, timeout=timeout)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise source_error_from_httpx(url, e) from e

    versions = parse_release_listing(response.text)
    logger.info("Found %d release(s) on %s", len(versions), url)
    return versions


__all__ = [
    "OPENEULER_MIRROR_BASE",
    "SourceError",
    "fetch_mirror_versions",
    "is_release_directory",
    "parse_release_listing",
    "version_from_directory",
]
