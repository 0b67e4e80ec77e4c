"""Response cache for progressive disclosure.

Full command output is stored once under an opaque handle; callers get a
compact summary immediately and fetch the full text later by handle.

Bounds:
- Time: an entry is reachable while ``now - created_at < max_age``. Expiry is
  lazy: checked on read and purged on every store, never by a timer.
- Size: after purging expired entries, the oldest entries are evicted until
  at most ``max_entries`` remain.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable, Mapping
from typing import Any

import structlog

from xcplane.cache.base import PersistedCache
from xcplane.cache.persistence import DisabledPersistence, PersistenceStore
from xcplane.config.constants import RECENT_DEFAULT_LIMIT, RESPONSES_STATE_KEY
from xcplane.core.errors import InputError
from xcplane.core.scheduling import DelayedTaskQueue
from xcplane.models import CachedResponse, Scalar, is_scalar

log = structlog.get_logger(__name__)

DEFAULT_MAX_AGE_SEC = 30 * 60
DEFAULT_MAX_ENTRIES = 100


class ResponseCache(PersistedCache):
    """Bounded, time-expiring store of command output keyed by handle."""

    state_key = RESPONSES_STATE_KEY

    def __init__(
        self,
        *,
        persistence: PersistenceStore | None = None,
        tasks: DelayedTaskQueue | None = None,
        max_age_sec: float = DEFAULT_MAX_AGE_SEC,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        debounce_sec: float = 1.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        # Insertion order breaks timestamp ties (same-tick stores)
        self._entries: dict[str, CachedResponse] = {}
        self._max_age_sec = max_age_sec
        self._max_entries = max_entries
        self._clock = clock
        super().__init__(
            persistence=persistence or DisabledPersistence(),
            tasks=tasks or DelayedTaskQueue(),
            debounce_sec=debounce_sec,
        )

    @property
    def max_age_sec(self) -> float:
        return self._max_age_sec

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def __len__(self) -> int:
        return len(self._entries)

    def store(
        self,
        tool: str,
        *,
        stdout: str,
        stderr: str = "",
        exit_code: int = 0,
        command: str = "",
        metadata: Mapping[str, Scalar] | None = None,
    ) -> str:
        """Store one execution and return its handle.

        Raises:
            InputError: A metadata value is not a scalar
        """
        meta = dict(metadata or {})
        for key, value in meta.items():
            if not is_scalar(value):
                raise InputError.invalid_argument(
                    f"metadata.{key}", f"must be a scalar, got {type(value).__name__}"
                )

        handle = str(uuid.uuid4())
        self._entries[handle] = CachedResponse(
            handle=handle,
            tool=tool,
            created_at=self._clock(),
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            command=command,
            metadata=meta,
        )
        self._cleanup()
        self._schedule_save()
        log.debug("response_stored", tool=tool, handle=handle, entries=len(self._entries))
        return handle

    def get(self, handle: str) -> CachedResponse | None:
        """Entry for ``handle``, or None if unknown, evicted or expired."""
        entry = self._entries.get(handle)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            del self._entries[handle]
            self._schedule_save()
            return None
        return entry

    def get_recent_by_tool(self, tool: str, limit: int = RECENT_DEFAULT_LIMIT) -> list[CachedResponse]:
        """Live entries for ``tool``, newest first."""
        now = self._clock()
        matching = [
            (idx, entry)
            for idx, entry in enumerate(self._entries.values())
            if entry.tool == tool and not self._is_expired(entry, now)
        ]
        matching.sort(key=lambda pair: (pair[1].created_at, pair[0]), reverse=True)
        return [entry for _, entry in matching[:limit]]

    def delete(self, handle: str) -> bool:
        if self._entries.pop(handle, None) is None:
            return False
        self._schedule_save()
        return True

    def clear(self) -> None:
        self._entries.clear()
        self._schedule_save()

    def get_stats(self) -> dict[str, Any]:
        by_tool: dict[str, int] = {}
        for entry in self._entries.values():
            by_tool[entry.tool] = by_tool.get(entry.tool, 0) + 1
        return {"total_entries": len(self._entries), "by_tool": by_tool}

    def _is_expired(self, entry: CachedResponse, now: float) -> bool:
        return now - entry.created_at >= self._max_age_sec

    def _cleanup(self) -> None:
        now = self._clock()
        expired = [h for h, e in self._entries.items() if self._is_expired(e, now)]
        for handle in expired:
            del self._entries[handle]

        overflow = len(self._entries) - self._max_entries
        if overflow > 0:
            ordered = sorted(
                enumerate(self._entries.items()),
                key=lambda pair: (pair[1][1].created_at, pair[0]),
            )
            for _, (handle, _entry) in ordered[:overflow]:
                del self._entries[handle]

        if expired or overflow > 0:
            log.debug("responses_evicted", expired=len(expired), over_capacity=max(overflow, 0))

    def _restore(self, blob: dict[str, Any]) -> None:
        loaded: list[CachedResponse] = []
        for raw in blob.get("entries", []):
            try:
                loaded.append(CachedResponse.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                log.warning("cached_response_skipped", error=str(e))
        loaded.sort(key=lambda e: e.created_at)

        # Restored entries go beneath anything stored since construction
        merged = {e.handle: e for e in loaded if e.handle not in self._entries}
        merged.update(self._entries)
        self._entries = merged
        self._cleanup()
        log.info("responses_restored", restored=len(loaded), entries=len(self._entries))

    def _snapshot(self) -> dict[str, Any]:
        return {"entries": [entry.to_dict() for entry in self._entries.values()]}
