"""HTTP client for the Docker Registry V2 / OCI distribution API."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urljoin

import requests

from tagwatch import TagwatchError

logger = logging.getLogger(__name__)

# Docker Hub authentication endpoint.
_DOCKER_AUTH_URL = "https://auth.docker.io/token"
_DOCKER_AUTH_SERVICE = "registry.docker.io"

#: Accept header for single-platform manifests.
MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
MANIFEST_LIST_V2 = "application/vnd.docker.distribution.manifest.list.v2+json"
OCI_INDEX = "application/vnd.oci.image.index.v1+json"

DEFAULT_MANIFEST_ACCEPT = ", ".join((MANIFEST_V2, OCI_MANIFEST, MANIFEST_LIST_V2, OCI_INDEX))

#: Page size requested from ``/tags/list``.
TAGS_PAGE_SIZE = 1000


class RegistryError(TagwatchError):
    """Raised when a registry API call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RegistryClient:
    """Client for interacting with a Docker Registry V2 API.

    Handles token-based authentication transparently.

    Args:
        registry: Registry hostname (e.g. ``ghcr.io``).
        repository: Full repository path (e.g. ``linuxserver/sonarr``).
        timeout: HTTP request timeout in seconds.
    """

    def __init__(
        self,
        registry: str,
        repository: str,
        *,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 10,
        session: requests.Session | None = None,
    ) -> None:
        self.registry = registry
        self.repository = repository
        self.username = username
        self.password = password
        self.timeout = timeout
        self._session = session or requests.Session()
        self._token: str | None = None
        self._base_url = f"https://{registry}/v2"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def list_tags(self, limit: int | None = None) -> list[str]:
        """Return the tags of the repository in registry order.

        Follows ``Link: rel="next"`` pagination until the registry reports
        no further page or *limit* tags have been accumulated.

        Args:
            limit: Maximum number of tags to return.

        Returns:
            Tag names, truncated to *limit*.

        Raises:
            RegistryError: If the API call fails.
        """
        tags: list[str] = []
        url: str | None = f"{self._base_url}/{self.repository}/tags/list?n={TAGS_PAGE_SIZE}"
        while url:
            try:
                resp = self._get(url)
            except RegistryError as exc:
                if not tags:
                    raise
                # Partial listings carry no status code.
                raise RegistryError(f"Tag listing for {self.repository} failed after {len(tags)} tags: {exc}") from exc
            tags.extend(resp.json().get("tags") or [])
            if limit is not None and len(tags) >= limit:
                logger.debug("Tag list for %s capped at %d", self.repository, limit)
                return tags[:limit]
            next_link = resp.links.get("next", {}).get("url")
            url = urljoin(f"https://{self.registry}", next_link) if next_link else None
        return tags

    def get_manifest(
        self,
        reference: str,
        *,
        accept: str = DEFAULT_MANIFEST_ACCEPT,
    ) -> tuple[dict[str, Any], str | None]:
        """Fetch the manifest for a tag or digest.

        Args:
            reference: The image tag or a ``sha256:`` digest.
            accept: Media types to negotiate.

        Returns:
            A ``(manifest, digest)`` tuple where *digest* is the
            ``Docker-Content-Digest`` response header, if present.
        """
        resp = self._get(f"{self._base_url}/{self.repository}/manifests/{reference}", accept=accept)
        return resp.json(), resp.headers.get("Docker-Content-Digest")

    def get_blob(self, digest: str) -> dict[str, Any]:
        """Fetch a blob (typically an image config) by digest.

        Args:
            digest: The blob digest (e.g. ``sha256:abc123...``).

        Returns:
            Parsed blob JSON.
        """
        return self._get(f"{self._base_url}/{self.repository}/blobs/{digest}").json()  # type: ignore[no-any-return]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _get(
        self,
        url: str,
        *,
        accept: str | None = None,
    ) -> requests.Response:
        """Make an authenticated GET request to the registry."""
        headers: dict[str, str] = {}

        if accept:
            headers["Accept"] = accept

        # Try without auth first, then authenticate on 401.
        resp = self._request(url, headers)
        if resp.status_code == 401:
            self._authenticate(resp)
            resp = self._request(url, headers)

        if resp.status_code != 200:
            raise RegistryError(
                f"Registry returned {resp.status_code} for {url}: {resp.text[:200]}",
                status_code=resp.status_code,
            )

        return resp

    def _request(
        self,
        url: str,
        headers: dict[str, str],
    ) -> requests.Response:
        """Execute a single GET request, attaching the bearer token if available."""
        req_headers = {**headers}
        if self._token:
            req_headers["Authorization"] = f"Bearer {self._token}"

        logger.debug("GET %s", url)
        try:
            return self._session.get(url, headers=req_headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise RegistryError(f"Request to {url} failed: {exc}") from exc

    def _authenticate(self, response: requests.Response) -> None:
        """Parse a ``WWW-Authenticate`` header and obtain a bearer token."""
        www_auth = response.headers.get("WWW-Authenticate", "")
        params = _parse_www_authenticate(www_auth)

        realm = params.get("realm", _DOCKER_AUTH_URL)
        service = params.get("service", _DOCKER_AUTH_SERVICE)
        scope = params.get("scope", f"repository:{self.repository}:pull")

        logger.debug("Authenticating: realm=%s service=%s scope=%s", realm, service, scope)

        auth = None
        if self.username and self.password:
            auth = (self.username, self.password)

        try:
            token_resp = self._session.get(
                realm,
                params={"service": service, "scope": scope},
                auth=auth,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise RegistryError(f"Token request to {realm} failed: {exc}") from exc

        if token_resp.status_code != 200:
            raise RegistryError(
                f"Token service returned {token_resp.status_code} for {self.repository}",
                status_code=token_resp.status_code,
            )
        body = token_resp.json()
        self._token = body.get("token") or body.get("access_token")


def _parse_www_authenticate(header: str) -> dict[str, str]:
    """Parse a ``Bearer realm=...,service=...,scope=...`` header into a dict."""
    # Strip the "Bearer " prefix.
    if header.lower().startswith("bearer "):
        header = header[7:]

    params: dict[str, str] = {}
    for part in header.split(","):
        part = part.strip()
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        params[key.strip()] = value.strip().strip('"')
    return params
