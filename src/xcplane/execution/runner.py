"""Child process execution with streaming output, limits and early exit.

Two entry points:
- ``CommandRunner.stream``: shell command, output read incrementally, killed
  early when a fatal pattern appears, marked timed out (not raised) when the
  deadline passes. Used for long xcodebuild runs.
- ``CommandRunner.run``: argv command without a shell, timeout raised as an
  error. Used for short simctl calls.

Both kill the whole process group (commands run in their own session) and
raise ``ExecutionError`` when the process cannot be spawned or stdout grows
past the buffer limit.
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import os
import re
import shlex
import signal
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field

import structlog

from xcplane.config.models import ExecutionConfig
from xcplane.core.errors import ExecutionError
from xcplane.execution.models import CommandResult, StreamingResult

log = structlog.get_logger(__name__)

_CHUNK_SIZE = 64 * 1024

FatalPattern = re.Pattern[str] | str


def compile_patterns(patterns: Iterable[FatalPattern]) -> list[re.Pattern[str]]:
    """Compile string patterns case-insensitively; pass compiled ones through."""
    return [p if isinstance(p, re.Pattern) else re.compile(p, re.IGNORECASE) for p in patterns]


@dataclass
class _OutputCollector:
    """Accumulates decoded output and watches for the first fatal match."""

    patterns: list[re.Pattern[str]] = field(default_factory=list)
    on_fatal_match: Callable[[str], None] | None = None
    stdout_parts: list[str] = field(default_factory=list)
    stderr_parts: list[str] = field(default_factory=list)
    stdout_bytes: int = 0
    fatal_match: str | None = None
    overflow: bool = False

    def feed(self, text: str, *, is_stdout: bool) -> bool:
        """Record a chunk. Returns True when this chunk produced the fatal match."""
        if is_stdout:
            self.stdout_parts.append(text)
        else:
            self.stderr_parts.append(text)

        if self.fatal_match is not None:
            return False
        for pattern in self.patterns:
            match = pattern.search(text)
            if match:
                self.fatal_match = match.group(0)
                if self.on_fatal_match is not None:
                    self.on_fatal_match(self.fatal_match)
                return True
        return False

    @property
    def stdout(self) -> str:
        return "".join(self.stdout_parts).strip()

    @property
    def stderr(self) -> str:
        return "".join(self.stderr_parts).strip()


def _kill_group(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError, PermissionError):
        os.killpg(proc.pid, signal.SIGKILL)


async def _pump(
    proc: asyncio.subprocess.Process,
    stream: asyncio.StreamReader | None,
    collector: _OutputCollector,
    *,
    is_stdout: bool,
    max_buffer_bytes: int,
) -> None:
    if stream is None:
        return
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        chunk = await stream.read(_CHUNK_SIZE)
        if not chunk:
            tail = decoder.decode(b"", final=True)
            if tail:
                collector.feed(tail, is_stdout=is_stdout)
            return
        if collector.feed(decoder.decode(chunk), is_stdout=is_stdout):
            _kill_group(proc)
        if is_stdout:
            collector.stdout_bytes += len(chunk)
            if collector.stdout_bytes > max_buffer_bytes:
                collector.overflow = True
                _kill_group(proc)
                return


async def _collect(
    proc: asyncio.subprocess.Process,
    collector: _OutputCollector,
    *,
    timeout_sec: float,
    max_buffer_bytes: int,
) -> tuple[int, bool]:
    """Drain both pipes and reap the process under one deadline.

    Returns (exit_code, deadline_hit). The deadline also covers a child that
    closes its pipes and keeps running.
    """
    work = asyncio.gather(
        _pump(proc, proc.stdout, collector, is_stdout=True, max_buffer_bytes=max_buffer_bytes),
        _pump(proc, proc.stderr, collector, is_stdout=False, max_buffer_bytes=max_buffer_bytes),
        proc.wait(),
    )
    deadline_hit = False
    try:
        await asyncio.wait_for(work, timeout=timeout_sec)
    except TimeoutError:
        deadline_hit = True
        _kill_group(proc)
    exit_code = await proc.wait()
    return exit_code, deadline_hit


class CommandRunner:
    """Spawns commands under the limits of an ``ExecutionConfig``."""

    def __init__(self, config: ExecutionConfig | None = None) -> None:
        self._config = config or ExecutionConfig()

    @property
    def config(self) -> ExecutionConfig:
        return self._config

    async def stream(
        self,
        command: str,
        *,
        timeout_sec: float | None = None,
        max_buffer_bytes: int | None = None,
        fatal_patterns: Sequence[FatalPattern] = (),
        on_fatal_match: Callable[[str], None] | None = None,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> StreamingResult:
        """Run a shell command, streaming output.

        Args:
            command: Shell command line
            timeout_sec: Deadline; on expiry the process is killed and the
                result is marked ``timed_out``
            max_buffer_bytes: stdout cap; exceeding it raises
            fatal_patterns: Checked in order against every output chunk; the
                first match kills the process
            on_fatal_match: Called synchronously with the matched text
            cwd: Working directory
            env: Environment (defaults to the current one)

        Raises:
            ExecutionError: Spawn failure or buffer overflow
        """
        timeout = timeout_sec or self._config.stream_timeout_sec
        limit = max_buffer_bytes or self._config.max_buffer_bytes
        collector = _OutputCollector(
            patterns=compile_patterns(fatal_patterns),
            on_fatal_match=on_fatal_match,
        )

        log.debug("command_started", command=command, timeout_sec=timeout)
        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=env,
                start_new_session=True,
            )
        except OSError as e:
            raise ExecutionError.spawn_failed(command, str(e)) from e

        exit_code, deadline_hit = await _collect(
            proc, collector, timeout_sec=timeout, max_buffer_bytes=limit
        )
        if collector.overflow:
            raise ExecutionError.buffer_exceeded(command, limit)

        result = StreamingResult(
            stdout=collector.stdout,
            stderr=collector.stderr,
            exit_code=exit_code,
            # A fatal match that races the deadline still counts as the fatal ending
            timed_out=deadline_hit and collector.fatal_match is None,
            fatal_match=collector.fatal_match,
        )
        log.info(
            "command_finished",
            ending=result.ending,
            exit_code=exit_code,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        return result

    async def run(
        self,
        args: Sequence[str],
        *,
        cwd: str | None = None,
        timeout_sec: float | None = None,
        max_buffer_bytes: int | None = None,
    ) -> CommandResult:
        """Run an argv command without a shell.

        Non-zero exit codes are returned, not raised.

        Raises:
            ExecutionError: Spawn failure, timeout or buffer overflow
        """
        timeout = timeout_sec or self._config.command_timeout_sec
        limit = max_buffer_bytes or self._config.max_buffer_bytes
        command = shlex.join(args)
        collector = _OutputCollector()

        log.debug("command_started", command=command, timeout_sec=timeout)
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                start_new_session=True,
            )
        except OSError as e:
            raise ExecutionError.spawn_failed(command, str(e)) from e

        exit_code, deadline_hit = await _collect(
            proc, collector, timeout_sec=timeout, max_buffer_bytes=limit
        )
        if collector.overflow:
            raise ExecutionError.buffer_exceeded(command, limit)
        if deadline_hit:
            raise ExecutionError.timed_out(command, timeout)
        return CommandResult(stdout=collector.stdout, stderr=collector.stderr, exit_code=exit_code)
