"""State reconciliation: fold check results into persisted image state.

Each ``(image, tag)`` pair moves through the states *unseen*, *baseline*,
then *up to date*, *update available* or *dismissed*:

* The first successful observation only establishes a baseline. Version
  pins are the exception: a pinned ``2.0.0`` is compared against the newest
  published version right away.
* Under ``latest`` tracking an update is raised when the content identity
  moves away from the baseline and stays raised until it is dismissed,
  reset, or the registry reverts to the baseline identity.
* Under ``version`` tracking an update is raised while a strictly newer
  version exists.
* A dismissal suppresses exactly the identity (or version) it was made
  for and lapses as soon as anything else is observed.

Failed and degraded checks never move the baseline: the last known state is
kept and only flagged as erroneous.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable

import semver

from tagwatch.models import CheckResult, ImageState, TrackingMode
from tagwatch.versioning import compare_versions, parse_version

logger = logging.getLogger(__name__)

StateKey = tuple[str, str]

DEGRADED_MESSAGE = "registry unreachable; showing last known state"


def reconcile(existing: ImageState | None, result: CheckResult) -> ImageState:
    """Return the state that follows *existing* once *result* is observed.

    *existing* is never mutated.
    """
    if result.failed or result.degraded:
        return _record_failure(existing, result)

    if existing is None:
        state = ImageState(image=result.image, tag=result.tag, is_new=True)
        _establish_baseline(state, result)
        logger.debug("New state for %s:%s (has_update=%s)", result.image, result.tag, state.has_update)
        return state

    state = replace(existing, is_new=False)
    if state.never_checked:
        _establish_baseline(state, result)
        return state

    tracked = parse_version(state.tag)
    candidate = parse_version(result.latest_available_version)
    if result.tracking_mode is TrackingMode.VERSION and tracked and candidate:
        _reconcile_version(state, result, tracked, candidate)
    else:
        _reconcile_identity(state, result)

    _record_observation(state, result)
    return state


def apply_results(
    states: dict[StateKey, ImageState],
    results: Iterable[CheckResult],
) -> dict[StateKey, ImageState]:
    """Reconcile every result against *states* and return the new map."""
    updated = dict(states)
    for result in results:
        updated[result.key] = reconcile(updated.get(result.key), result)
    return updated


def dismiss(state: ImageState) -> ImageState:
    """Acknowledge the pending update so it is no longer reported.

    The dismissal remembers the latest available version for version
    tracking and the current content identity otherwise; observing anything
    else later lifts it.
    """
    if state.tracking_mode is TrackingMode.VERSION and state.latest_available_version:
        dismissed_id = state.latest_available_version
    else:
        dismissed_id = state.current_content_id
    return replace(
        state,
        dismissed=True,
        dismissed_content_id=dismissed_id,
        has_update=False,
        baseline_content_id=state.current_content_id or state.baseline_content_id,
    )


def reset(state: ImageState) -> ImageState:
    """Mark the image up to date without recording a dismissal."""
    return replace(
        state,
        has_update=False,
        baseline_content_id=state.current_content_id or state.baseline_content_id,
    )


# ----------------------------------------------------------------------
# Internal
# ----------------------------------------------------------------------


def _version_is_newer(tag: str, latest_available: str | None) -> bool:
    tracked = parse_version(tag)
    candidate = parse_version(latest_available)
    return bool(tracked and candidate and compare_versions(candidate, tracked) > 0)


def _establish_baseline(state: ImageState, result: CheckResult) -> None:
    state.has_update = (
        result.tracking_mode is TrackingMode.VERSION
        and _version_is_newer(state.tag, result.latest_available_version)
    )
    state.dismissed = False
    state.dismissed_content_id = None
    state.baseline_content_id = result.latest_content_id
    _record_observation(state, result)


def _reconcile_identity(state: ImageState, result: CheckResult) -> None:
    observed = result.latest_content_id
    changed = state.current_content_id != observed

    if state.dismissed:
        if observed != state.dismissed_content_id:
            logger.info("Dismissal lifted for %s:%s, new identity %s", state.image, state.tag, observed)
            state.dismissed = False
            state.dismissed_content_id = None
            state.has_update = True
        else:
            state.has_update = False
        return

    if state.has_update and observed == state.baseline_content_id:
        logger.info("%s:%s reverted to its baseline identity", state.image, state.tag)
        state.has_update = False
    else:
        state.has_update = state.has_update or changed

    if not state.has_update:
        state.baseline_content_id = observed


def _reconcile_version(
    state: ImageState,
    result: CheckResult,
    tracked: semver.Version,
    candidate: semver.Version,
) -> None:
    observed = str(candidate)

    if state.dismissed and state.dismissed_content_id != observed:
        logger.info("Dismissal lifted for %s:%s, new version %s", state.image, state.tag, observed)
        state.dismissed = False
        state.dismissed_content_id = None

    newer = compare_versions(candidate, tracked) > 0
    state.has_update = newer and not state.dismissed
    if not state.has_update:
        state.baseline_content_id = result.latest_content_id


def _record_observation(state: ImageState, result: CheckResult) -> None:
    state.current_content_id = result.latest_content_id
    state.checked_at = result.checked_at
    state.published_at = result.last_published_at
    state.tracking_mode = result.tracking_mode
    state.platform = result.platform
    if result.tracking_mode is TrackingMode.VERSION or result.available_tags is not None:
        # Latest-mode checks keep the last tag summary when listing failed.
        state.latest_available_version = result.latest_available_version
        state.representative_tag = result.representative_tag
    state.error = False
    state.status_message = None


def _record_failure(existing: ImageState | None, result: CheckResult) -> ImageState:
    if existing is None:
        # Placeholder row: the next successful check establishes the baseline.
        state = ImageState(
            image=result.image,
            tag=result.tag,
            is_new=True,
            tracking_mode=result.tracking_mode,
        )
    else:
        state = replace(existing, is_new=False)

    state.checked_at = result.checked_at
    state.error = True
    state.status_message = result.error or DEGRADED_MESSAGE
    return state
