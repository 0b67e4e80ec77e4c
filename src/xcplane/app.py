"""Composition root.

Owns one instance of each cache, the executor and the workflow. Nothing in
the package holds process-wide cache singletons; everything is built here and
passed down.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from xcplane.cache.base import LOAD_TASK_PREFIX, SAVE_TASK_PREFIX
from xcplane.cache.persistence import DisabledPersistence, JsonFilePersistence, PersistenceStore
from xcplane.cache.projects import ProjectCache
from xcplane.cache.responses import ResponseCache
from xcplane.cache.simulators import SimctlListingSource, SimulatorCache, SimulatorListingSource
from xcplane.config.models import XcPlaneConfig
from xcplane.config.project_settings import ProjectSettingsStore
from xcplane.core.scheduling import DelayedTaskQueue
from xcplane.execution.runner import CommandRunner
from xcplane.workflows.build import BuildWorkflow

log = structlog.get_logger(__name__)


@dataclass
class XcPlane:
    config: XcPlaneConfig
    tasks: DelayedTaskQueue
    runner: CommandRunner
    responses: ResponseCache
    projects: ProjectCache
    simulators: SimulatorCache
    workflow: BuildWorkflow

    @classmethod
    def create(
        cls,
        config: XcPlaneConfig | None = None,
        *,
        persistence: PersistenceStore | None = None,
        listing_source: SimulatorListingSource | None = None,
    ) -> XcPlane:
        """Wire everything from ``config``.

        Persistence defaults to JSON files under ``persistence.state_dir``
        (or a disabled store when persistence is turned off).
        """
        config = config or XcPlaneConfig()
        if persistence is None:
            persistence = (
                JsonFilePersistence(config.persistence.state_path)
                if config.persistence.enabled
                else DisabledPersistence()
            )

        tasks = DelayedTaskQueue()
        runner = CommandRunner(config.execution)
        debounce = config.persistence.debounce_sec
        responses = ResponseCache(
            persistence=persistence,
            tasks=tasks,
            max_age_sec=config.cache.response_max_age_sec,
            max_entries=config.cache.response_max_entries,
            debounce_sec=debounce,
        )
        projects = ProjectCache(
            persistence=persistence,
            tasks=tasks,
            settings_store=ProjectSettingsStore(),
            history_limit=config.cache.build_history_limit,
            debounce_sec=debounce,
        )
        simulators = SimulatorCache(
            listing_source or SimctlListingSource(runner),
            persistence=persistence,
            tasks=tasks,
            ttl_sec=config.cache.simulator_ttl_sec,
            debounce_sec=debounce,
        )
        workflow = BuildWorkflow(
            runner=runner,
            responses=responses,
            projects=projects,
            simulators=simulators,
            config=config.execution,
        )
        log.debug("xcplane_created", persistence=persistence.is_enabled())
        return cls(
            config=config,
            tasks=tasks,
            runner=runner,
            responses=responses,
            projects=projects,
            simulators=simulators,
            workflow=workflow,
        )

    def restore(self) -> int:
        """Load persisted cache state now instead of waiting for the loop."""
        return self.tasks.flush(LOAD_TASK_PREFIX)

    def close(self) -> int:
        """Write out any pending debounced saves."""
        # Unloaded state must be merged first or the save would drop it
        self.restore()
        written = self.tasks.flush(SAVE_TASK_PREFIX)
        log.debug("xcplane_closed", saves_flushed=written)
        return written
