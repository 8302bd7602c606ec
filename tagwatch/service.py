"""Operations exposed to the outer surface (CLI or an HTTP layer)."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from tagwatch import TagwatchError
from tagwatch.checker import Checker
from tagwatch.config import Settings
from tagwatch.models import CheckResult, ImageState, MonitoredImage
from tagwatch.reconciler import apply_results, dismiss, reset
from tagwatch.store import StateKey, StateStore

logger = logging.getLogger(__name__)

#: Called once per image whose state moved into "update available".
Notifier = Callable[[MonitoredImage, ImageState], None]


class ImageNotFoundError(TagwatchError):
    """Raised when a monitored image index is out of range."""


class StateNotFoundError(TagwatchError):
    """Raised when no state row exists for an ``(image, tag)`` pair."""


def update_transitions(
    before: dict[StateKey, ImageState],
    after: dict[StateKey, ImageState],
) -> list[ImageState]:
    """Return the rows of *after* that newly report an update."""
    transitions = []
    for key, state in after.items():
        previous = before.get(key)
        if state.has_update and (previous is None or not previous.has_update):
            transitions.append(state)
    return transitions


class WatchService:
    """Glue between the store, the checker and the reconciler.

    Network checks run outside the state transaction; results are folded
    into freshly loaded state so a concurrent single check and batch check
    do not overwrite each other.

    Args:
        store: The data directory store.
        checker: The registry checker.
        notifier: Optional callback for update transitions.
    """

    def __init__(
        self,
        store: StateStore,
        checker: Checker,
        notifier: Notifier | None = None,
    ) -> None:
        self.store = store
        self.checker = checker
        self.notifier = notifier

    @classmethod
    def from_settings(cls, settings: Settings, notifier: Notifier | None = None) -> WatchService:
        checker = Checker(
            pacing=settings.pacing,
            timeout=settings.request_timeout,
            max_tags=settings.max_tags,
            cli_auths=settings.auths or None,
        )
        return cls(StateStore(settings.data_dir), checker, notifier)

    def list_states(self) -> list[ImageState]:
        return list(self.store.load_states().values())

    def check_single(self, index: int) -> CheckResult:
        """Check the monitored image at *index* and persist the outcome.

        Raises:
            ImageNotFoundError: If *index* is out of range.
        """
        images = self.store.load_images()
        if index < 0 or index >= len(images):
            raise ImageNotFoundError(f"No monitored image at index {index}")

        result = self.checker.check_one(images[index])
        self._commit([result], images)
        return result

    def check_all(self, cancel: threading.Event | None = None) -> list[CheckResult]:
        """Check every monitored image and persist the outcomes."""
        images = self.store.load_images()
        if not images:
            logger.info("No images to check")
            return []

        logger.info("Checking %d images", len(images))
        results = self.checker.check_all(images, cancel=cancel)
        self._commit(results, images)
        failed = sum(1 for r in results if r.failed or r.degraded)
        logger.info("Checked %d images, %d failed or degraded", len(results), failed)
        return results

    def reset_state(self, image: str, tag: str) -> ImageState:
        """Mark ``image:tag`` as up to date.

        Raises:
            StateNotFoundError: If the pair has no state row.
        """
        with self.store.transaction() as states:
            state = self._require(states, image, tag)
            updated = reset(state)
            states[state.key] = updated
        return updated

    def dismiss_update(self, image: str, tag: str) -> ImageState:
        """Dismiss the pending update of ``image:tag``.

        Raises:
            StateNotFoundError: If the pair has no state row.
        """
        with self.store.transaction() as states:
            state = self._require(states, image, tag)
            updated = dismiss(state)
            states[state.key] = updated
        return updated

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _require(self, states: dict[StateKey, ImageState], image: str, tag: str) -> ImageState:
        try:
            return states[(image, tag)]
        except KeyError:
            raise StateNotFoundError(f"No state for {image}:{tag}") from None

    def _commit(self, results: list[CheckResult], images: list[MonitoredImage]) -> None:
        with self.store.transaction() as states:
            before = dict(states)
            after = apply_results(states, results)
            states.clear()
            states.update(after)

        if self.notifier is None:
            return
        by_key = {image.key: image for image in images}
        for state in update_transitions(before, after):
            image = by_key.get(state.key)
            if image is None:
                continue
            try:
                self.notifier(image, state)
            except Exception:
                logger.exception("Notifier failed for %s:%s", state.image, state.tag)
