"""Data model shared by the checker, the reconciler and the store."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

DEFAULT_TAG = "latest"


class RegistryKind(str, Enum):
    """Registry family an image reference resolves to."""

    HUB = "hub"
    GHCR = "ghcr"
    MIRROR = "mirror"
    CUSTOM = "custom"


class TrackingMode(str, Enum):
    """How "newer" is decided for a tracked tag."""

    LATEST = "latest"
    VERSION = "version"


@dataclass
class MonitoredImage:
    """An image the user asked to watch.

    Attributes:
        name: Display name.
        image_path: Raw image path (e.g. ``ghcr.io/org/app``).
        tag: Tracked tag, ``latest`` when omitted.
        registry: Optional explicit :class:`RegistryKind` value that
            bypasses the classifier heuristic.
    """

    name: str
    image_path: str
    tag: str = DEFAULT_TAG
    registry: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return self.image_path, self.tag or DEFAULT_TAG

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MonitoredImage:
        return cls(
            name=data.get("name") or data["imagePath"],
            image_path=data["imagePath"],
            tag=data.get("tag") or DEFAULT_TAG,
            registry=data.get("registry"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "imagePath": self.image_path,
            "tag": self.tag,
        }
        if self.registry:
            data["registry"] = self.registry
        return data


@dataclass
class CheckResult:
    """Outcome of a single registry check.

    ``error`` is set when the check failed outright. ``degraded`` is set
    when the registry could not be reached and ``latest_content_id`` is a
    synthetic placeholder rather than a real digest. ``platform`` names the
    ``os/architecture`` entry followed when the tag is a multi-platform index.
    """

    image: str
    tag: str
    latest_content_id: str
    checked_at: str
    tracking_mode: TrackingMode = TrackingMode.LATEST
    last_published_at: str | None = None
    latest_available_version: str | None = None
    available_tags: list[str] | None = None
    representative_tag: str | None = None
    platform: str | None = None
    error: str | None = None
    degraded: bool = False

    @property
    def key(self) -> tuple[str, str]:
        return self.image, self.tag

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "image": self.image,
            "tag": self.tag,
            "latestContentId": self.latest_content_id,
            "checkedAt": self.checked_at,
            "lastPublishedAt": self.last_published_at,
            "trackingMode": self.tracking_mode.value,
            "latestAvailableVersion": self.latest_available_version,
            "availableTags": self.available_tags,
            "representativeTag": self.representative_tag,
            "platform": self.platform,
            "error": self.error,
            "degraded": self.degraded,
        }


@dataclass
class ImageState:
    """Persisted reconciliation state for one ``(image, tag)`` pair.

    An empty ``current_content_id`` means the pair has never been checked
    successfully. ``baseline_content_id`` is the identity last known to be
    up to date; an update flag clears when the registry reverts to it.
    """

    image: str
    tag: str
    current_content_id: str = ""
    checked_at: str | None = None
    published_at: str | None = None
    has_update: bool = False
    dismissed: bool = False
    dismissed_content_id: str | None = None
    latest_available_version: str | None = None
    tracking_mode: TrackingMode = TrackingMode.LATEST
    representative_tag: str | None = None
    platform: str | None = None
    is_new: bool = False
    baseline_content_id: str | None = None
    error: bool = False
    status_message: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return self.image, self.tag

    @property
    def never_checked(self) -> bool:
        return not self.current_content_id

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ImageState:
        return cls(
            image=data["image"],
            tag=data.get("tag") or DEFAULT_TAG,
            current_content_id=data.get("currentContentId") or "",
            checked_at=data.get("checkedAt"),
            published_at=data.get("publishedAt"),
            has_update=bool(data.get("hasUpdate", False)),
            dismissed=bool(data.get("dismissed", False)),
            dismissed_content_id=data.get("dismissedContentId"),
            latest_available_version=data.get("latestAvailableVersion"),
            tracking_mode=TrackingMode(data.get("trackingMode") or TrackingMode.LATEST.value),
            representative_tag=data.get("representativeTag"),
            platform=data.get("platform"),
            is_new=bool(data.get("isNew", False)),
            baseline_content_id=data.get("baselineContentId"),
            error=bool(data.get("error", False)),
            status_message=data.get("statusMessage"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "image": self.image,
            "tag": self.tag,
            "currentContentId": self.current_content_id,
            "checkedAt": self.checked_at,
            "publishedAt": self.published_at,
            "hasUpdate": self.has_update,
            "dismissed": self.dismissed,
            "dismissedContentId": self.dismissed_content_id,
            "latestAvailableVersion": self.latest_available_version,
            "trackingMode": self.tracking_mode.value,
            "representativeTag": self.representative_tag,
            "platform": self.platform,
            "isNew": self.is_new,
            "baselineContentId": self.baseline_content_id,
            "error": self.error,
            "statusMessage": self.status_message,
        }
