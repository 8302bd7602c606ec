"""Check orchestration: run registry checks for one image or a batch."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Mapping

from tagwatch.adapters import build_adapters
from tagwatch.adapters.base import (
    DEFAULT_TIMEOUT,
    MAX_TAGS,
    BaseAdapter,
    TagDiscoveryError,
    UnsupportedRegistryError,
)
from tagwatch.models import CheckResult, MonitoredImage, RegistryKind, TrackingMode
from tagwatch.registry.parser import classify
from tagwatch.versioning import (
    determine_tracking_mode,
    find_latest_version,
    parse_version,
    select_representative_tag,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Checker:
    """Run registry checks against the adapter matching each image.

    Args:
        adapters: Adapter instance per registry kind. Defaults to the
            built-in adapters.
        pacing: Seconds to wait between two images of a batch.
        timeout: Per-request timeout handed to the default adapters.
        max_tags: Tag cap handed to the default adapters.
        cli_auths: Credential overrides handed to the default adapters.
    """

    def __init__(
        self,
        adapters: Mapping[RegistryKind, BaseAdapter] | None = None,
        *,
        pacing: float = 1.0,
        timeout: float = DEFAULT_TIMEOUT,
        max_tags: int = MAX_TAGS,
        cli_auths: list[str] | None = None,
    ) -> None:
        if adapters is None:
            adapters = build_adapters(timeout=timeout, max_tags=max_tags, cli_auths=cli_auths)
        self.adapters = dict(adapters)
        self.pacing = pacing

    def adapter_for(self, kind: RegistryKind) -> BaseAdapter:
        try:
            return self.adapters[kind]
        except KeyError:
            raise UnsupportedRegistryError(f"No adapter for registry kind '{kind.value}'") from None

    def check_one(self, image: MonitoredImage) -> CheckResult:
        """Check a single image end-to-end.

        Registry outages yield a ``degraded`` result; anything the
        adapters cannot handle yields a result with ``error`` set.
        """
        image_path, tag = image.key
        tracking_mode = determine_tracking_mode(tag)
        try:
            return self._check(image, tag, tracking_mode)
        except UnsupportedRegistryError as exc:
            message = str(exc)
        except Exception as exc:
            logger.exception("Unexpected error checking %s:%s", image_path, tag)
            message = f"Check failed: {exc}"

        logger.warning("Check failed for %s:%s: %s", image_path, tag, message)
        return CheckResult(
            image=image_path,
            tag=tag,
            latest_content_id="",
            checked_at=_now(),
            tracking_mode=tracking_mode,
            error=message,
        )

    def _check(self, image: MonitoredImage, tag: str, tracking_mode: TrackingMode) -> CheckResult:
        try:
            ref = classify(image.image_path, override=image.registry)
        except ValueError:
            raise UnsupportedRegistryError(f"Unknown registry kind '{image.registry}'") from None
        adapter = self.adapter_for(ref.kind)
        logger.debug("Checking %s:%s with %s adapter (%s)", image.image_path, tag, adapter.name, ref)

        identity = adapter.fetch_content_id(ref, tag)
        result = CheckResult(
            image=image.image_path,
            tag=tag,
            latest_content_id=identity.content_id,
            checked_at=_now(),
            tracking_mode=tracking_mode,
            last_published_at=identity.published_at,
            platform=identity.platform,
            degraded=identity.synthetic,
        )

        try:
            tags = adapter.fetch_all_tags(ref)
        except TagDiscoveryError as exc:
            logger.warning("Tag discovery failed for %s:%s: %s", image.image_path, tag, exc)
            if tracking_mode is TrackingMode.VERSION:
                # Without the tag list the newest version is unknown.
                result.degraded = True
            tags = None

        if tags is not None:
            latest = find_latest_version(tags)
            if latest is None and tracking_mode is TrackingMode.VERSION:
                # Tag enumeration unsupported or empty: fall back to the tag itself.
                latest = parse_version(tag)
            result.available_tags = tags
            result.latest_available_version = str(latest) if latest is not None else None
            result.representative_tag = select_representative_tag(tags, latest)

        logger.info(
            "Checked %s:%s -> %s%s",
            image.image_path,
            tag,
            result.latest_available_version or identity.content_id[:19],
            " (degraded)" if result.degraded else "",
        )
        return result

    def check_all(
        self,
        images: list[MonitoredImage],
        cancel: threading.Event | None = None,
    ) -> list[CheckResult]:
        """Check *images* one after the other, pacing between requests.

        A failing image never aborts the batch. Setting *cancel* stops the
        batch before the next image; the results gathered so far are
        returned.
        """
        results: list[CheckResult] = []
        for i, image in enumerate(images):
            if cancel is not None and cancel.is_set():
                logger.info("Batch cancelled after %d of %d images", i, len(images))
                break
            results.append(self.check_one(image))

            if i < len(images) - 1 and self.pacing > 0:
                if cancel is not None:
                    cancel.wait(self.pacing)
                else:
                    time.sleep(self.pacing)
        return results
