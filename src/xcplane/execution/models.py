"""Results of child process execution."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a command that ran to completion."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class StreamingResult(CommandResult):
    """Outcome of a streamed command.

    Exactly one of three endings applies: normal exit (``timed_out`` False,
    ``fatal_match`` None), early kill on a fatal pattern (``fatal_match``
    set), or kill on timeout (``timed_out`` True).
    """

    timed_out: bool = False
    fatal_match: str | None = None

    @property
    def ending(self) -> str:
        if self.fatal_match is not None:
            return "fatal_match"
        if self.timed_out:
            return "timeout"
        return "exit"
