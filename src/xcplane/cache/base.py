"""Shared load/save plumbing for the persisted caches."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import structlog

from xcplane.cache.persistence import PersistenceStore
from xcplane.core.scheduling import DelayedTaskQueue

log = structlog.get_logger(__name__)

LOAD_TASK_PREFIX = "load:"
SAVE_TASK_PREFIX = "save:"


class PersistedCache(ABC):
    """Base for caches whose state survives restarts on a best-effort basis.

    Construction schedules a load (it never runs inline, so the cache is
    usable immediately). Mutations call ``_schedule_save``, which coalesces
    into one write per debounce window. Persistence errors are logged and
    dropped; the in-memory state is authoritative.
    """

    state_key: str

    def __init__(
        self,
        *,
        persistence: PersistenceStore,
        tasks: DelayedTaskQueue,
        debounce_sec: float = 1.0,
    ) -> None:
        self._persistence = persistence
        self._tasks = tasks
        self._debounce_sec = debounce_sec
        if self._persistence.is_enabled():
            self._tasks.schedule(LOAD_TASK_PREFIX + self.state_key, 0.0, self._load_persisted_state)

    @abstractmethod
    def _restore(self, blob: dict[str, Any]) -> None:
        """Merge a persisted blob into the in-memory state."""

    @abstractmethod
    def _snapshot(self) -> dict[str, Any]:
        """JSON-serializable view of the in-memory state."""

    def _load_persisted_state(self) -> None:
        try:
            blob = self._persistence.load_state(self.state_key)
            if blob:
                self._restore(blob)
        except Exception as e:
            log.warning("cache_state_load_failed", key=self.state_key, error=str(e))
            return
        log.debug("cache_state_loaded", key=self.state_key, found=bool(blob))

    def _schedule_save(self) -> None:
        if not self._persistence.is_enabled():
            return
        self._tasks.schedule(
            SAVE_TASK_PREFIX + self.state_key, self._debounce_sec, self._persist_state
        )

    def _persist_state(self) -> None:
        try:
            self._persistence.save_state(self.state_key, self._snapshot())
        except Exception as e:
            log.warning("cache_state_save_failed", key=self.state_key, error=str(e))
