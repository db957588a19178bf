"""Docker Hub tag-list adapter."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from openeuler_baseimage.sources.errors import SourceError, source_error_from_httpx
from openeuler_baseimage.types import VersionTag

logger = logging.getLogger(__name__)

DOCKER_HUB_API_BASE = "https://hub.docker.com/v2/repositories"

# Floating tag, never a release
LATEST_TAG = "latest"

# Safety net against a registry that keeps returning the same "next" link
MAX_PAGES = 100


def build_tags_url(repository: str, api_url: str = DOCKER_HUB_API_BASE) -> str:
    """Build the tag-list URL for ``namespace/name``."""
    return f"{api_url.rstrip('/')}/{repository.strip('/')}/tags"


def parse_tag_page(payload: Any) -> tuple[list[VersionTag], str | None]:
    """Extract tag names and the next-page link from one API page.

    Args:
        payload: Decoded JSON body.

    Returns:
        Tuple of (tag names without ``latest``, next page URL or None).

    Raises:
        SourceError: If the payload has no ``results`` list.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("results"), list):
        raise SourceError(
            "Tag list response has no 'results' list", code="invalid_response"
        )

    tags = [
        item["name"]
        for item in payload["results"]
        if isinstance(item, dict) and item.get("name") and item["name"] != LATEST_TAG
    ]
    return tags, payload.get("next") or None


def fetch_registry_tags(
    client: httpx.Client,
    repository: str,
    api_url: str = DOCKER_HUB_API_BASE,
    timeout: float = 30,
) -> list[VersionTag]:
    """Fetch every published tag of a repository, following pagination.

    Args:
        client: HTTPX client instance.
        repository: Repository as ``namespace/name``.
        api_url: Repositories API base URL.
        timeout: Request timeout in seconds.

    Returns:
        Published tags, ``latest`` excluded.

    Raises:
        SourceError: If a page cannot be fetched or decoded.
    """
    url: str | None = build_tags_url(repository, api_url)
    tags: list[VersionTag] = []
    pages = 0

    while url and pages < MAX_PAGES:
        logger.debug("Fetching tags from %s", url)
        try:
            response = client.get(url, timeout=timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise source_error_from_httpx(url, e) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise SourceError(
                f"Invalid JSON from {url}: {e}", code="invalid_response"
            ) from e

        page_tags, url = parse_tag_page(payload)
        tags.extend(page_tags)
        pages += 1

    if url:
        logger.warning("Stopped following tag pages after %d requests", MAX_PAGES)

    logger.info("Found %d published tag(s) in %s", len(tags), repository)
    return tags


__all__ = [
    "DOCKER_HUB_API_BASE",
    "LATEST_TAG",
    "build_tags_url",
    "fetch_registry_tags",
    "parse_tag_page",
]
