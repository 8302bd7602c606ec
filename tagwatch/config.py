"""Runtime settings, read from ``TAGWATCH_*`` environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from tagwatch.adapters.base import DEFAULT_TIMEOUT, MAX_TAGS

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = "data"
DEFAULT_PACING = 1.0


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


@dataclass
class Settings:
    """Engine settings.

    Attributes:
        data_dir: Directory holding ``images.yml`` and ``state.json``.
        request_timeout: Per-request registry timeout in seconds.
        pacing: Delay between two images of a batch, in seconds.
        max_tags: Cap on tags accumulated while paginating.
        auths: Credential overrides in ``registry=user:pass`` form.
    """

    data_dir: Path = field(default_factory=lambda: Path(DEFAULT_DATA_DIR))
    request_timeout: float = DEFAULT_TIMEOUT
    pacing: float = DEFAULT_PACING
    max_tags: int = MAX_TAGS
    auths: list[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            data_dir=Path(os.environ.get("TAGWATCH_DATA_DIR") or DEFAULT_DATA_DIR),
            request_timeout=_float_env("TAGWATCH_REQUEST_TIMEOUT", DEFAULT_TIMEOUT),
            pacing=_float_env("TAGWATCH_PACING", DEFAULT_PACING),
            max_tags=_int_env("TAGWATCH_MAX_TAGS", MAX_TAGS),
        )
