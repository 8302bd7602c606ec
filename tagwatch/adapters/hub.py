"""Docker Hub adapter: tag lookup and tag listing through the Hub API."""

from __future__ import annotations

import logging
from typing import Any

import requests

from tagwatch.adapters.base import BaseAdapter, ContentIdentity, TagDiscoveryError
from tagwatch.registry.parser import ImageReference

logger = logging.getLogger(__name__)

_DOCKERHUB_API = "https://hub.docker.com/v2/repositories"

_PAGE_SIZE = 100

_UNSUPPORTED_STATUSES = (401, 403, 404)


class HubAdapter(BaseAdapter):
    """Resolve digests and tags from the Docker Hub web API.

    Requests are anonymous: ``cli_auths`` is not used, so private Docker Hub
    repositories resolve to a synthetic identity and report as degraded.
    """

    name = "hub"

    def fetch_content_id(self, ref: ImageReference, tag: str) -> ContentIdentity:
        url = f"{_DOCKERHUB_API}/{ref.repository}/tags/{tag}"
        try:
            data = self._get_json(url)
        except (requests.RequestException, ValueError) as exc:
            return self._fallback(ref, tag, exc)

        digest = data.get("digest")
        if not digest:
            images = data.get("images") or []
            digest = images[0].get("digest") if images else None
        if not digest and data.get("id") is not None:
            digest = str(data["id"])
        if not digest:
            return self._fallback(ref, tag, "no digest in tag lookup response")

        published = data.get("tag_last_pushed") or data.get("last_updated") or data.get("last_pushed")
        logger.debug("Hub digest for %s:%s is %s", ref.repository, tag, digest)
        return ContentIdentity(digest, published)

    def fetch_all_tags(self, ref: ImageReference) -> list[str]:
        """Return tag names, following ``next`` cursors up to :attr:`max_tags`.

        A private or missing repository (401, 403 or 404 on the first page)
        yields an empty list. Any other failure raises
        :class:`TagDiscoveryError`, including one after some pages were read.
        """
        tags: list[str] = []
        url: str | None = f"{_DOCKERHUB_API}/{ref.repository}/tags?page_size={_PAGE_SIZE}"
        while url:
            try:
                data = self._get_json(url)
            except requests.HTTPError as exc:
                status = exc.response.status_code if exc.response is not None else None
                if not tags and status in _UNSUPPORTED_STATUSES:
                    logger.info("Tag discovery unavailable for %s (HTTP %s)", ref.repository, status)
                    return []
                raise TagDiscoveryError(
                    f"Tag listing for {ref.repository} failed after {len(tags)} tags: {exc}"
                ) from exc
            except (requests.RequestException, ValueError) as exc:
                raise TagDiscoveryError(
                    f"Tag listing for {ref.repository} failed after {len(tags)} tags: {exc}"
                ) from exc
            for result in data.get("results") or []:
                name = result.get("name")
                if name:
                    tags.append(name)
            if len(tags) >= self.max_tags:
                logger.info("Tag listing for %s capped at %d tags", ref.repository, self.max_tags)
                return tags[: self.max_tags]
            url = data.get("next") or None
        return tags

    def _get_json(self, url: str) -> dict[str, Any]:
        logger.debug("GET %s", url)
        resp = self._session.get(url, headers={"Accept": "application/json"}, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()  # type: ignore[no-any-return]
