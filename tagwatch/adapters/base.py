"""Base class for all registry adapters."""

from __future__ import annotations

import hashlib
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import NamedTuple

import requests

from tagwatch import TagwatchError
from tagwatch.registry.parser import ImageReference

logger = logging.getLogger(__name__)

#: Upper bound on tags accumulated while paginating a repository.
MAX_TAGS = 2500

#: Default per-request timeout, in seconds.
DEFAULT_TIMEOUT = 10.0

SYNTHETIC_PREFIX = "synthetic:"


class AdapterError(TagwatchError):
    """Raised when an adapter cannot produce a result."""


class UnsupportedRegistryError(AdapterError):
    """Raised when no adapter handles a registry kind."""


class TagDiscoveryError(AdapterError):
    """Raised when a tag listing fails part-way or on a transient error.

    Distinct from an empty listing, which means tag discovery is not
    supported for the repository.
    """


class ContentIdentity(NamedTuple):
    """Content identity of a tag at the time of the check.

    ``synthetic`` is True when the registry could not be queried and
    ``content_id`` is a deterministic placeholder. ``platform`` names the
    ``os/architecture`` entry followed out of a multi-platform index.
    """

    content_id: str
    published_at: str | None = None
    synthetic: bool = False
    platform: str | None = None


def synthetic_content_id(
    scope: str,
    full_path: str,
    tag: str,
    now: datetime | None = None,
) -> str:
    """Return a placeholder identity stable for one UTC day.

    Args:
        scope: Registry domain the identity is scoped to.
        full_path: The raw image path.
        tag: The checked tag.
        now: Clock override.
    """
    day = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
    digest = hashlib.sha256(f"{scope}|{full_path}|{tag}|{day}".encode("utf-8")).hexdigest()
    return SYNTHETIC_PREFIX + digest


class BaseAdapter(ABC):
    """Abstract base class for registry adapters.

    Subclasses must define :attr:`name` and implement
    :meth:`fetch_content_id` and :meth:`fetch_all_tags`.

    Args:
        timeout: Per-request timeout in seconds.
        max_tags: Cap on accumulated tags while paginating.
        cli_auths: Credential overrides in ``registry=user:pass`` form.
        session: Shared :class:`requests.Session`.
    """

    #: Human-readable name of the adapter.
    name: str = ""

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_tags: int = MAX_TAGS,
        cli_auths: list[str] | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.timeout = timeout
        self.max_tags = max_tags
        self.cli_auths = cli_auths
        self._session = session or requests.Session()

    @abstractmethod
    def fetch_content_id(self, ref: ImageReference, tag: str) -> ContentIdentity:
        """Return the content identity currently behind *tag*.

        Registry failures do not raise: they produce a synthetic identity
        (see :func:`synthetic_content_id`).
        """

    @abstractmethod
    def fetch_all_tags(self, ref: ImageReference) -> list[str]:
        """Return the tags published for the repository.

        An empty list means tag discovery is unavailable, not an error.

        Raises:
            TagDiscoveryError: If the listing failed on a transient error
                or stopped part-way through pagination.
        """

    def _fallback(self, ref: ImageReference, tag: str, reason: Exception | str) -> ContentIdentity:
        logger.warning(
            "%s: registry unreachable for %s:%s (%s); using synthetic identity",
            self.name,
            ref.full_path,
            tag,
            reason,
        )
        return ContentIdentity(synthetic_content_id(ref.domain, ref.full_path, tag), synthetic=True)
