"""OCI distribution adapter for ghcr.io, lscr.io and custom registries."""

from __future__ import annotations

import logging
from typing import Any

from tagwatch.adapters.base import BaseAdapter, ContentIdentity, TagDiscoveryError
from tagwatch.registry.auth import resolve_credentials
from tagwatch.registry.client import (
    MANIFEST_V2,
    OCI_MANIFEST,
    RegistryClient,
    RegistryError,
)
from tagwatch.registry.parser import ImageReference

logger = logging.getLogger(__name__)

_SINGLE_MANIFEST_ACCEPT = f"{MANIFEST_V2}, {OCI_MANIFEST}"

_CREATED_ANNOTATION = "org.opencontainers.image.created"

_UNSUPPORTED_STATUSES = (401, 403, 404)


def _is_index(manifest: dict[str, Any]) -> bool:
    media_type = manifest.get("mediaType") or ""
    return "manifest.list" in media_type or "image.index" in media_type or "manifests" in manifest


def _select_platform(manifests: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Prefer the ``linux/amd64`` entry of an index, else the first one."""
    for entry in manifests:
        platform = entry.get("platform") or {}
        if platform.get("os") == "linux" and platform.get("architecture") == "amd64":
            return entry
    return manifests[0] if manifests else None


def _platform_name(entry: dict[str, Any]) -> str | None:
    platform = entry.get("platform") or {}
    if not platform.get("os") or not platform.get("architecture"):
        return None
    parts = [platform["os"], platform["architecture"]]
    if platform.get("variant"):
        parts.append(platform["variant"])
    return "/".join(parts)


class OciAdapter(BaseAdapter):
    """Resolve digests with manifest GETs against a V2 registry."""

    name = "oci"

    def client_for(self, ref: ImageReference) -> RegistryClient:
        username, password = resolve_credentials(ref.domain, self.cli_auths)
        return RegistryClient(
            ref.domain,
            ref.repository,
            username=username,
            password=password,
            timeout=self.timeout,
            session=self._session,
        )

    def fetch_content_id(self, ref: ImageReference, tag: str) -> ContentIdentity:
        client = self.client_for(ref)
        platform = None
        try:
            manifest, digest = client.get_manifest(tag)
            if _is_index(manifest):
                entry = _select_platform(manifest.get("manifests") or [])
                if entry and entry.get("digest"):
                    logger.debug(
                        "Following %s platform manifest %s for %s:%s",
                        entry.get("platform"),
                        entry["digest"],
                        ref.repository,
                        tag,
                    )
                    manifest, digest = client.get_manifest(entry["digest"], accept=_SINGLE_MANIFEST_ACCEPT)
                    digest = digest or entry["digest"]
                    platform = _platform_name(entry)
        except (RegistryError, ValueError) as exc:
            return self._fallback(ref, tag, exc)

        config = manifest.get("config") or {}
        content_id = digest or config.get("digest") or manifest.get("digest")
        if not content_id:
            return self._fallback(ref, tag, "no digest in manifest response")

        return ContentIdentity(content_id, self._created(client, manifest), platform=platform)

    def fetch_all_tags(self, ref: ImageReference) -> list[str]:
        """List tags through ``/tags/list``.

        Registries that refuse or do not serve tag listing (401, 403 or
        404) yield an empty list. Transport errors, server errors and
        throttling raise :class:`TagDiscoveryError`.
        """
        try:
            return self.client_for(ref).list_tags(limit=self.max_tags)
        except RegistryError as exc:
            if exc.status_code in _UNSUPPORTED_STATUSES:
                logger.info("Tag discovery unavailable for %s/%s: %s", ref.domain, ref.repository, exc)
                return []
            raise TagDiscoveryError(f"Tag listing for {ref.domain}/{ref.repository} failed: {exc}") from exc
        except ValueError as exc:
            raise TagDiscoveryError(f"Tag listing for {ref.domain}/{ref.repository} failed: {exc}") from exc

    def _created(self, client: RegistryClient, manifest: dict[str, Any]) -> str | None:
        """Extract the image creation time from annotations or the config blob."""
        annotations = manifest.get("annotations") or {}
        if annotations.get(_CREATED_ANNOTATION):
            return annotations[_CREATED_ANNOTATION]  # type: ignore[no-any-return]

        config_digest = (manifest.get("config") or {}).get("digest")
        if not config_digest:
            return None
        try:
            blob = client.get_blob(config_digest)
        except (RegistryError, ValueError):
            logger.debug("Config blob fetch failed for %s", client.repository, exc_info=True)
            return None
        return blob.get("created") if isinstance(blob, dict) else None
