"""Response, project preference and simulator caches."""

from xcplane.cache.persistence import DisabledPersistence, JsonFilePersistence, PersistenceStore
from xcplane.cache.projects import ProjectCache, project_identity
from xcplane.cache.responses import ResponseCache
from xcplane.cache.simulators import (
    SimctlListingSource,
    SimulatorCache,
    SimulatorListingSource,
    SimulatorSuggestion,
)

__all__ = [
    "DisabledPersistence",
    "JsonFilePersistence",
    "PersistenceStore",
    "ProjectCache",
    "ResponseCache",
    "SimctlListingSource",
    "SimulatorCache",
    "SimulatorListingSource",
    "SimulatorSuggestion",
    "project_identity",
]
