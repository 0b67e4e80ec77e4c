"""xcplane error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Execution (child processes)
- 4xxx: Input
- 5xxx: Workflow (auto-install chain)
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002

    # Execution (3xxx)
    COMMAND_SPAWN_FAILED = 3001
    COMMAND_BUFFER_EXCEEDED = 3002
    COMMAND_TIMEOUT = 3003
    COMMAND_FAILED = 3004

    # Input (4xxx)
    INVALID_ARGUMENT = 4001
    PROJECT_NOT_FOUND = 4002
    HANDLE_NOT_FOUND = 4003

    # Workflow (5xxx)
    ARTIFACT_NOT_FOUND = 5001
    NO_SIMULATOR = 5002
    INSTALL_FAILED = 5003

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True, slots=True)
class XcPlaneError(Exception):
    """Base error with structured context for tool responses."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'COMMAND_TIMEOUT')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(XcPlaneError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class ExecutionError(XcPlaneError):
    """A child process could not be run to completion."""

    @classmethod
    def spawn_failed(cls, command: str, reason: str) -> "ExecutionError":
        return cls(
            code=ErrorCode.COMMAND_SPAWN_FAILED,
            message=f"Failed to execute command: {reason}",
            details={"command": command, "reason": reason},
        )

    @classmethod
    def buffer_exceeded(cls, command: str, max_buffer_bytes: int) -> "ExecutionError":
        return cls(
            code=ErrorCode.COMMAND_BUFFER_EXCEEDED,
            message=f"Command output exceeded max buffer size of {max_buffer_bytes} bytes",
            details={"command": command, "max_buffer_bytes": max_buffer_bytes},
        )

    @classmethod
    def timed_out(cls, command: str, timeout_sec: float) -> "ExecutionError":
        return cls(
            code=ErrorCode.COMMAND_TIMEOUT,
            message=f"Command timed out after {timeout_sec}s: {command}",
            retryable=True,
            details={"command": command, "timeout_sec": timeout_sec},
        )

    @classmethod
    def command_failed(cls, command: str, exit_code: int, stderr: str) -> "ExecutionError":
        return cls(
            code=ErrorCode.COMMAND_FAILED,
            message=f"Command exited with code {exit_code}: {stderr or command}",
            details={"command": command, "exit_code": exit_code, "stderr": stderr},
        )


class InputError(XcPlaneError):
    """Caller supplied arguments that cannot be acted on."""

    @classmethod
    def invalid_argument(cls, name: str, reason: str) -> "InputError":
        return cls(
            code=ErrorCode.INVALID_ARGUMENT,
            message=f"Invalid argument '{name}': {reason}",
            details={"argument": name, "reason": reason},
        )

    @classmethod
    def project_not_found(cls, path: str) -> "InputError":
        return cls(
            code=ErrorCode.PROJECT_NOT_FOUND,
            message=f"Project not found: {path}",
            details={"path": path},
        )

    @classmethod
    def handle_not_found(cls, handle: str) -> "InputError":
        return cls(
            code=ErrorCode.HANDLE_NOT_FOUND,
            message=f"No cached response for '{handle}' (expired or evicted)",
            details={"handle": handle},
        )


class WorkflowError(XcPlaneError):
    """A step of the build -> install chain failed."""

    @classmethod
    def artifact_not_found(cls, scheme: str) -> "WorkflowError":
        return cls(
            code=ErrorCode.ARTIFACT_NOT_FOUND,
            message=f'Could not find .app bundle for scheme "{scheme}"',
            details={"scheme": scheme},
        )

    @classmethod
    def no_simulator(cls) -> "WorkflowError":
        return cls(
            code=ErrorCode.NO_SIMULATOR,
            message="No suitable simulator found. Create a simulator or specify simulator_udid.",
        )

    @classmethod
    def install_failed(cls, udid: str, reason: str) -> "WorkflowError":
        return cls(
            code=ErrorCode.INSTALL_FAILED,
            message=f"Installation failed: {reason}",
            retryable=True,
            details={"udid": udid, "reason": reason},
        )


class InternalError(XcPlaneError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
