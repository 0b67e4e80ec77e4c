"""Config module exports."""

from xcplane.config.loader import load_config
from xcplane.config.models import (
    CacheConfig,
    ExecutionConfig,
    LoggingConfig,
    PersistenceConfig,
    XcPlaneConfig,
)

__all__ = [
    "load_config",
    "XcPlaneConfig",
    "CacheConfig",
    "ExecutionConfig",
    "LoggingConfig",
    "PersistenceConfig",
]
