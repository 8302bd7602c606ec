"""File-backed store for monitored images and reconciliation state.

``images.yml`` lists the monitored images; ``state.json`` holds the state
rows together with a ``revision`` counter. Every save bumps the revision
and refuses to overwrite a file whose revision moved since it was loaded.
The revision check and the replace run under an exclusive lock on
``state.lock`` (``flock`` on POSIX, ``msvcrt.locking`` on Windows), so
writers in other processes are serialized as well.
"""

from __future__ import annotations

import json
import logging
import os
import platform
import tempfile
import threading
import time
from contextlib import contextmanager
from importlib import resources
from pathlib import Path
from typing import Any, Iterable, Iterator

import jsonschema
import yaml

from tagwatch import TagwatchError
from tagwatch.models import ImageState, MonitoredImage

logger = logging.getLogger(__name__)

IMAGES_FILE = "images.yml"
STATE_FILE = "state.json"
LOCK_FILE = "state.lock"

IS_WINDOWS = platform.system() == "Windows"
if IS_WINDOWS:
    import msvcrt
else:
    import fcntl

StateKey = tuple[str, str]


class StoreError(TagwatchError):
    """Raised when a data file cannot be read, validated or written."""


class StaleStateError(StoreError):
    """Raised when the state file changed between load and save."""


def _load_schema(name: str) -> dict[str, Any]:
    """Load a JSON Schema shipped in ``tagwatch/schemas/``."""
    schema_ref = resources.files("tagwatch") / "schemas" / name
    return json.loads(schema_ref.read_text(encoding="utf-8"))  # type: ignore[no-any-return]


def _validate(document: Any, schema_name: str, path: Path) -> None:
    try:
        jsonschema.validate(instance=document, schema=_load_schema(schema_name))
    except jsonschema.ValidationError as exc:
        raise StoreError(f"{path} failed schema validation: {exc.message}") from exc


class StateStore:
    """Read and write the data directory.

    Args:
        data_dir: Directory holding ``images.yml`` and ``state.json``.
    """

    def __init__(self, data_dir: str | os.PathLike[str]) -> None:
        self.data_dir = Path(data_dir)
        self.images_path = self.data_dir / IMAGES_FILE
        self.state_path = self.data_dir / STATE_FILE
        self.lock_path = self.data_dir / LOCK_FILE
        self._lock = threading.RLock()
        self._lock_depth = 0

    # ------------------------------------------------------------------
    # Monitored images
    # ------------------------------------------------------------------

    def load_images(self) -> list[MonitoredImage]:
        """Return the monitored images, or an empty list if none are configured."""
        if not self.images_path.exists():
            return []
        try:
            document = yaml.safe_load(self.images_path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise StoreError(f"Cannot read {self.images_path}: {exc}") from exc

        _validate(document, "images.schema.json", self.images_path)
        return [MonitoredImage.from_dict(item) for item in document.get("images") or []]

    def save_images(self, images: Iterable[MonitoredImage]) -> None:
        document = {"images": [image.to_dict() for image in images]}
        self._write(self.images_path, yaml.safe_dump(document, sort_keys=False))

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def load_states(self) -> dict[StateKey, ImageState]:
        """Return the persisted state rows keyed by ``(image, tag)``."""
        return self._read_states()[1]

    def save_states(
        self,
        states: dict[StateKey, ImageState],
        expected_revision: int | None = None,
    ) -> int:
        """Replace the persisted state and return the new revision.

        Args:
            states: The full state map.
            expected_revision: Revision the caller loaded. When given, the
                save fails if the file has moved on since.

        Raises:
            StaleStateError: If *expected_revision* is stale.
        """
        with self._locked():
            current, _ = self._read_states()
            if expected_revision is not None and current != expected_revision:
                raise StaleStateError(
                    f"{self.state_path} is at revision {current}, expected {expected_revision}"
                )
            revision = current + 1
            document = {
                "revision": revision,
                "states": [state.to_dict() for state in states.values()],
            }
            self._write(self.state_path, json.dumps(document, indent=2) + "\n")
            logger.debug("Saved %d state rows at revision %d", len(states), revision)
            return revision

    @contextmanager
    def transaction(self) -> Iterator[dict[StateKey, ImageState]]:
        """Load the state map, let the caller modify it, then save it.

        The whole block holds the store lock, so writers in this and
        other processes are serialized. A writer that bypasses the lock and
        saves in the meantime makes the save raise :class:`StaleStateError`.
        Nothing is saved if the block raises.
        """
        with self._locked():
            revision, states = self._read_states()
            yield states
            self.save_states(states, expected_revision=revision)

    def prune(self, keys: Iterable[StateKey]) -> int:
        """Delete the rows for *keys*; return how many were removed."""
        removed = 0
        with self.transaction() as states:
            for key in keys:
                if states.pop(key, None) is not None:
                    removed += 1
        return removed

    @property
    def revision(self) -> int:
        return self._read_states()[0]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _read_states(self) -> tuple[int, dict[StateKey, ImageState]]:
        if not self.state_path.exists():
            return 0, {}
        try:
            document = json.loads(self.state_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StoreError(f"Cannot read {self.state_path}: {exc}") from exc

        # Older files hold a bare list of rows.
        if isinstance(document, list):
            document = {"revision": 0, "states": document}

        _validate(document, "state.schema.json", self.state_path)
        states: dict[StateKey, ImageState] = {}
        for row in document.get("states") or []:
            state = ImageState.from_dict(row)
            states[state.key] = state
        return int(document.get("revision", 0)), states

    def _write(self, path: Path, text: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, path)
        except OSError as exc:
            raise StoreError(f"Cannot write {path}: {exc}") from exc

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Hold the in-process lock and an exclusive lock on ``state.lock``.

        Re-entrant within a thread: only the outermost call touches the
        lock file.
        """
        with self._lock:
            if self._lock_depth:
                self._lock_depth += 1
                try:
                    yield
                finally:
                    self._lock_depth -= 1
                return

            try:
                self.data_dir.mkdir(parents=True, exist_ok=True)
                fp = open(self.lock_path, "w")
            except OSError as exc:
                raise StoreError(f"Cannot open {self.lock_path}: {exc}") from exc
            try:
                _lock_file(fp)
                self._lock_depth = 1
                try:
                    yield
                finally:
                    self._lock_depth = 0
                    _unlock_file(fp)
            finally:
                fp.close()


def _lock_file(fp: Any) -> None:
    if IS_WINDOWS:
        while True:
            try:
                msvcrt.locking(fp.fileno(), msvcrt.LK_NBLCK, 1)
                return
            except OSError:
                time.sleep(0.1)
    fcntl.flock(fp, fcntl.LOCK_EX)


def _unlock_file(fp: Any) -> None:
    if IS_WINDOWS:
        msvcrt.locking(fp.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        fcntl.flock(fp, fcntl.LOCK_UN)
