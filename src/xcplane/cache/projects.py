"""Per-project build preferences.

Keyed by project identity (the resolved path of the .xcodeproj/.xcworkspace).
Each project keeps:
- the preferred BuildConfig: the config of the last *successful* build. A
  failed build never replaces it, so one regression does not erase a working
  default;
- a bounded, append-only history of BuildOutcome records (oldest dropped).
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import structlog

from xcplane.cache.base import PersistedCache
from xcplane.cache.persistence import DisabledPersistence, PersistenceStore
from xcplane.config.constants import PROJECTS_STATE_KEY
from xcplane.core.scheduling import DelayedTaskQueue
from xcplane.models import BuildConfig, BuildOutcome
from xcplane.parsing.destination import destination_udid

log = structlog.get_logger(__name__)

DEFAULT_HISTORY_LIMIT = 20


def project_identity(project_path: str | Path) -> str:
    """Canonical key for a project path."""
    return str(Path(project_path).expanduser().resolve())


class SuccessfulBuildRecorder(Protocol):
    """Per-project settings store that remembers the last good simulator."""

    def record_successful_build(
        self, project: str | Path, udid: str, name: str | None = None
    ) -> Any: ...


@dataclass
class _ProjectRecord:
    preferred: BuildConfig | None = None
    history: deque[BuildOutcome] = field(default_factory=deque)


class ProjectCache(PersistedCache):
    """Learns which build configuration works for each project."""

    state_key = PROJECTS_STATE_KEY

    def __init__(
        self,
        *,
        persistence: PersistenceStore | None = None,
        tasks: DelayedTaskQueue | None = None,
        settings_store: SuccessfulBuildRecorder | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        debounce_sec: float = 1.0,
    ) -> None:
        self._projects: dict[str, _ProjectRecord] = {}
        self._settings_store = settings_store
        self._history_limit = history_limit
        super().__init__(
            persistence=persistence or DisabledPersistence(),
            tasks=tasks or DelayedTaskQueue(),
            debounce_sec=debounce_sec,
        )

    def _record(self, project: str) -> _ProjectRecord:
        key = project_identity(project)
        record = self._projects.get(key)
        if record is None:
            record = _ProjectRecord(history=deque(maxlen=self._history_limit))
            self._projects[key] = record
        return record

    def get_preferred_build_config(self, project: str | Path) -> BuildConfig | None:
        record = self._projects.get(project_identity(project))
        return record.preferred if record else None

    def record_build_result(
        self,
        project: str | Path,
        config: BuildConfig,
        outcome: BuildOutcome,
        *,
        device_name: str | None = None,
    ) -> None:
        """Append ``outcome`` to history; adopt ``config`` only when it succeeded.

        On success with a simulator id in the destination, the settings store
        is told about it. That delegation is best-effort.
        """
        key = project_identity(project)
        record = self._record(key)
        record.history.append(outcome)
        if outcome.success:
            record.preferred = config
        self._schedule_save()
        log.debug(
            "build_result_recorded",
            project=key,
            success=outcome.success,
            history=len(record.history),
        )

        udid = destination_udid(config.destination)
        if outcome.success and udid and self._settings_store is not None:
            try:
                self._settings_store.record_successful_build(key, udid, device_name)
            except Exception as e:
                log.warning("simulator_preference_not_saved", project=key, error=str(e))

    def get_build_history(self, project: str | Path) -> list[BuildOutcome]:
        record = self._projects.get(project_identity(project))
        return list(record.history) if record else []

    def get_build_trends(self, project: str | Path) -> dict[str, Any] | None:
        """Aggregate view of the retained history, or None with no history."""
        history = self.get_build_history(project)
        if not history:
            return None
        successes = [o for o in history if o.success]
        return {
            "build_count": len(history),
            "success_rate": len(successes) / len(history),
            "average_duration_ms": (
                int(sum(o.duration_ms for o in successes) / len(successes)) if successes else None
            ),
            "last_success": history[-1].success,
            "last_error_count": history[-1].error_count,
            "last_warning_count": history[-1].warning_count,
        }

    def projects(self) -> list[str]:
        return list(self._projects)

    def clear(self) -> None:
        self._projects.clear()
        self._schedule_save()

    def _restore(self, blob: dict[str, Any]) -> None:
        restored = 0
        for key, raw in (blob.get("projects") or {}).items():
            if key in self._projects:
                continue
            try:
                preferred = raw.get("preferred")
                record = _ProjectRecord(
                    preferred=BuildConfig.from_dict(preferred) if preferred else None,
                    history=deque(
                        (BuildOutcome.from_dict(o) for o in raw.get("history", [])),
                        maxlen=self._history_limit,
                    ),
                )
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                log.warning("project_record_skipped", project=key, error=str(e))
                continue
            self._projects[key] = record
            restored += 1
        log.info("projects_restored", restored=restored)

    def _snapshot(self) -> dict[str, Any]:
        return {
            "projects": {
                key: {
                    "preferred": record.preferred.to_dict() if record.preferred else None,
                    "history": [o.to_dict() for o in record.history],
                }
                for key, record in self._projects.items()
            }
        }
