"""Version analysis: tracking mode, semver parsing and tag selection."""

from __future__ import annotations

import re
from typing import Iterable

import semver

from tagwatch.models import TrackingMode

# Floating tags that always follow the newest build.
_FLOATING_TAGS = ("latest", "stable", "main")

# Optional "v", MAJOR.MINOR.PATCH, optional "-suffix".
_VERSION_TAG_RE = re.compile(r"^v?\d+\.\d+\.\d+(?:-.+)?$")

_CORE_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")

UNKNOWN_TAG = "unknown"


def determine_tracking_mode(tag: str) -> TrackingMode:
    """Return how updates of *tag* should be detected.

    Floating tags and anything that is not a ``MAJOR.MINOR.PATCH`` version
    are tracked by content identity; version tags by semver ordering.
    """
    tag = tag.strip()
    if tag in _FLOATING_TAGS:
        return TrackingMode.LATEST
    if _VERSION_TAG_RE.match(tag):
        return TrackingMode.VERSION
    return TrackingMode.LATEST


def parse_version(tag: str | None) -> semver.Version | None:
    """Parse the ``MAJOR.MINOR.PATCH`` core out of a tag.

    A leading ``v`` and any ``-suffix`` are dropped before matching, so
    ``v2.0.0-rc`` parses as ``2.0.0``.

    Returns:
        The parsed version, or ``None`` if the tag carries no version.
    """
    if not tag:
        return None
    core = tag.strip()
    if core.startswith("v"):
        core = core[1:]
    core = core.split("-", 1)[0]
    match = _CORE_RE.match(core)
    if not match:
        return None
    major, minor, patch = (int(part) for part in match.groups())
    return semver.Version(major, minor, patch)


def _components(version: semver.Version | str) -> list[int]:
    if isinstance(version, semver.Version):
        return [version.major, version.minor, version.patch]
    text = version.strip()
    if text.startswith("v"):
        text = text[1:]
    text = text.split("-", 1)[0]
    return [int(part) if part.isdigit() else 0 for part in text.split(".")]


def compare_versions(a: semver.Version | str, b: semver.Version | str) -> int:
    """Compare two versions component by component.

    Missing trailing components count as ``0``, so ``1.2`` equals
    ``1.2.0``.

    Returns:
        ``-1``, ``0`` or ``1``.
    """
    left, right = _components(a), _components(b)
    width = max(len(left), len(right))
    left += [0] * (width - len(left))
    right += [0] * (width - len(right))
    for x, y in zip(left, right):
        if x != y:
            return 1 if x > y else -1
    return 0


def find_latest_version(tags: Iterable[str]) -> semver.Version | None:
    """Return the highest version any of *tags* parses to, or ``None``."""
    best: semver.Version | None = None
    for tag in tags:
        version = parse_version(tag)
        if version is None:
            continue
        if best is None or compare_versions(version, best) > 0:
            best = version
    return best


def select_representative_tag(
    available_tags: list[str],
    latest_version: semver.Version | str | None,
) -> str:
    """Pick the tag that best describes the newest available image.

    Precedence: the tag spelled exactly like *latest_version*, then
    ``latest``, ``stable``, ``main``, then any tag parsing to
    *latest_version*, then the first tag, then ``unknown``.
    """
    if not available_tags:
        return UNKNOWN_TAG

    wanted = str(latest_version) if latest_version is not None else None
    if wanted is not None and wanted in available_tags:
        return wanted

    for floating in _FLOATING_TAGS:
        if floating in available_tags:
            return floating

    if wanted is not None:
        for tag in available_tags:
            version = parse_version(tag)
            if version is not None and compare_versions(version, wanted) == 0:
                return tag

    return available_tags[0]
