"""Classify raw image paths into registry references."""

from __future__ import annotations

import re
from dataclasses import dataclass

from tagwatch.models import RegistryKind

#: Registry API host behind Docker Hub references.
HUB_REGISTRY = "registry-1.docker.io"

#: Namespace Docker Hub uses for official images.
OFFICIAL_NAMESPACE = "library"


@dataclass(frozen=True)
class ImageReference:
    """Parsed reference to an image repository.

    Attributes:
        kind: Registry family the reference belongs to.
        namespace: Owner / organisation segment (may be empty for custom
            registries hosting top-level repositories).
        image: Repository name below the namespace.
        custom_domain: Registry host for ``custom`` references.
        full_path: The raw path the reference was classified from.
    """

    kind: RegistryKind
    namespace: str
    image: str
    full_path: str
    custom_domain: str | None = None

    @property
    def repository(self) -> str:
        """Return the repository path as used by the registry API."""
        if self.namespace:
            return f"{self.namespace}/{self.image}"
        return self.image

    @property
    def domain(self) -> str:
        """Return the registry host the reference points at."""
        if self.custom_domain:
            return self.custom_domain
        return _KIND_DOMAINS[self.kind]


_KIND_DOMAINS: dict[RegistryKind, str] = {
    RegistryKind.HUB: HUB_REGISTRY,
    RegistryKind.GHCR: "ghcr.io",
    RegistryKind.MIRROR: "lscr.io",
    RegistryKind.CUSTOM: "",
}

# Literal prefixes recognized before any heuristic runs.
_KNOWN_PREFIXES: tuple[tuple[str, RegistryKind], ...] = (
    ("docker.io/", RegistryKind.HUB),
    ("index.docker.io/", RegistryKind.HUB),
    ("registry-1.docker.io/", RegistryKind.HUB),
    ("registry.hub.docker.com/", RegistryKind.HUB),
    ("ghcr.io/", RegistryKind.GHCR),
    ("lscr.io/", RegistryKind.MIRROR),
)

# Common top-level domains seen on registry hosts.
_KNOWN_TLDS: frozenset[str] = frozenset({
    "io", "com", "net", "org", "dev", "app", "cloud", "co", "me", "sh",
    "xyz", "tech", "info", "biz", "eu", "us", "uk", "de", "fr", "nl",
    "ch", "at", "be", "ca", "au", "jp", "cn", "in", "ru", "se", "no",
    "fi", "dk", "pl", "it", "es", "br", "local", "lan", "internal", "home",
})

_PORT_RE = re.compile(r"^[A-Za-z0-9.-]+:\d+$")


def looks_like_domain(segment: str) -> bool:
    """Return True if *segment* looks like a registry hostname.

    This is a heuristic: a dotted label ending in a known TLD, any
    hostname with three or more labels, ``localhost`` or a ``host:port``
    pair. Namespaces containing dots can be misread as hosts and exotic
    TLDs can be missed; :class:`~tagwatch.models.MonitoredImage` carries an
    explicit ``registry`` override for those cases.
    """
    if not segment:
        return False
    if segment == "localhost" or _PORT_RE.match(segment):
        return True
    if "." not in segment:
        return False
    labels = segment.lower().split(".")
    if any(not label for label in labels):
        return False
    return labels[-1] in _KNOWN_TLDS or len(labels) >= 3


def strip_reference_suffix(image_path: str) -> str:
    """Drop a trailing ``:tag`` and/or ``@digest`` from an image path."""
    path = image_path.strip()
    path = path.split("@", 1)[0]
    last_slash = path.rfind("/")
    colon = path.rfind(":")
    if colon > last_slash:
        path = path[:colon]
    return path.strip("/")


def classify(image_path: str, override: RegistryKind | str | None = None) -> ImageReference:
    """Classify *image_path* into an :class:`ImageReference`.

    Any path classifies. Precedence: known registry prefixes, then the
    domain-looking first segment (``custom``), then the ``namespace/image``
    Docker Hub shorthand, then an official Docker Hub image.

    Args:
        image_path: Raw image path, optionally carrying a tag or digest.
        override: Explicit registry kind that replaces the inferred one.

    Returns:
        The classified reference.

    Raises:
        ValueError: If *override* is not a known registry kind.
    """
    path = strip_reference_suffix(image_path)
    ref = _classify_path(path, image_path)

    if override is not None:
        kind = RegistryKind(override)
        if kind is not ref.kind:
            ref = _apply_override(ref, kind, path)
    return ref


def _classify_path(path: str, full_path: str) -> ImageReference:
    for prefix, kind in _KNOWN_PREFIXES:
        if not path.startswith(prefix):
            continue
        parts = path[len(prefix):].split("/")
        if kind is RegistryKind.HUB:
            if len(parts) == 1:
                return ImageReference(kind, OFFICIAL_NAMESPACE, parts[0], full_path)
            return ImageReference(kind, parts[0], "/".join(parts[1:]), full_path)
        if len(parts) >= 2:
            return ImageReference(kind, parts[0], "/".join(parts[1:]), full_path)
        # A bare "ghcr.io/name" falls through to the generic domain rule.
        break

    parts = path.split("/")
    if len(parts) >= 2 and looks_like_domain(parts[0]):
        return ImageReference(
            RegistryKind.CUSTOM,
            "/".join(parts[1:-1]),
            parts[-1],
            full_path,
            custom_domain=parts[0],
        )

    if len(parts) >= 2:
        return ImageReference(RegistryKind.HUB, parts[0], "/".join(parts[1:]), full_path)

    return ImageReference(RegistryKind.HUB, OFFICIAL_NAMESPACE, path, full_path)


def _apply_override(ref: ImageReference, kind: RegistryKind, path: str) -> ImageReference:
    """Re-home *ref* onto an explicitly requested registry kind."""
    if kind is RegistryKind.CUSTOM:
        # The first segment is the host even though it does not look like one.
        parts = path.split("/")
        if len(parts) < 2:
            return ImageReference(kind, "", parts[0], ref.full_path, custom_domain=parts[0])
        return ImageReference(
            kind, "/".join(parts[1:-1]), parts[-1], ref.full_path, custom_domain=parts[0]
        )

    namespace, image = ref.namespace, ref.image
    if ref.kind is RegistryKind.CUSTOM:
        # The first segment was misread as a host: it is the namespace.
        parts = path.split("/")
        namespace, image = parts[0], "/".join(parts[1:])
    if kind is RegistryKind.HUB and not namespace:
        namespace = OFFICIAL_NAMESPACE
    return ImageReference(kind, namespace, image, ref.full_path)
