"""Core module exports."""

from xcplane.core.errors import (
    ConfigError,
    ErrorCode,
    ExecutionError,
    InputError,
    InternalError,
    WorkflowError,
    XcPlaneError,
)
from xcplane.core.logging import (
    clear_request_id,
    configure_logging,
    get_logger,
    get_request_id,
    set_request_id,
)
from xcplane.core.scheduling import DelayedTaskQueue

__all__ = [
    # Errors
    "ConfigError",
    "ErrorCode",
    "ExecutionError",
    "InputError",
    "InternalError",
    "WorkflowError",
    "XcPlaneError",
    # Logging
    "clear_request_id",
    "configure_logging",
    "get_logger",
    "get_request_id",
    "set_request_id",
    # Scheduling
    "DelayedTaskQueue",
]
