"""Child process execution."""

from xcplane.execution.commands import build_simctl_command, build_xcodebuild_command
from xcplane.execution.models import CommandResult, StreamingResult
from xcplane.execution.runner import CommandRunner, compile_patterns

__all__ = [
    "CommandResult",
    "CommandRunner",
    "StreamingResult",
    "build_simctl_command",
    "build_xcodebuild_command",
    "compile_patterns",
]
