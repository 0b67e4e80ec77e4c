"""Persistence store contract and the JSON file implementation.

Caches treat persistence as best-effort: a disabled store is never touched,
and load/save failures are logged by the caller and otherwise ignored.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

import structlog

log = structlog.get_logger(__name__)


class PersistenceStore(Protocol):
    """Keyed blob storage used by the caches."""

    def is_enabled(self) -> bool: ...

    def load_state(self, key: str) -> dict[str, Any] | None: ...

    def save_state(self, key: str, blob: dict[str, Any]) -> None: ...


class DisabledPersistence:
    """Store that reports itself disabled."""

    def is_enabled(self) -> bool:
        return False

    def load_state(self, key: str) -> dict[str, Any] | None:  # noqa: ARG002
        return None

    def save_state(self, key: str, blob: dict[str, Any]) -> None:  # noqa: ARG002
        return None


class JsonFilePersistence:
    """One ``<key>.json`` file per key under ``state_dir``."""

    def __init__(self, state_dir: Path, *, enabled: bool = True) -> None:
        self._state_dir = state_dir
        self._enabled = enabled

    @property
    def state_dir(self) -> Path:
        return self._state_dir

    def is_enabled(self) -> bool:
        return self._enabled

    def _path(self, key: str) -> Path:
        return self._state_dir / f"{key}.json"

    def load_state(self, key: str) -> dict[str, Any] | None:
        """Read a blob. Missing file is None; corrupt JSON raises ValueError."""
        path = self._path(key)
        if not path.exists():
            return None
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"State file {path} does not hold an object")
        return data

    def save_state(self, key: str, blob: dict[str, Any]) -> None:
        """Write a blob atomically (temp file + rename)."""
        self._state_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self._state_dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(blob, f, separators=(",", ":"))
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        log.debug("state_saved", key=key, path=str(path))
