"""Cancellable delayed task queue used for debounced background work.

Tasks are keyed; scheduling a key that is already pending replaces the
earlier task, so bursts of mutations coalesce into a single run.

When an asyncio loop is running at schedule time, the task is armed on the
loop (sleep, then run). Otherwise it stays pending until ``flush()`` is
called. Tests and shutdown paths call ``flush()`` to run work
deterministically instead of racing a timer.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

import structlog

log = structlog.get_logger(__name__)


@dataclass
class _Pending:
    fn: Callable[[], None]
    delay: float
    task: asyncio.Task[None] | None = None


class DelayedTaskQueue:
    """Keyed, debounced, fire-and-forget callbacks."""

    def __init__(self) -> None:
        self._pending: dict[str, _Pending] = {}

    def schedule(self, key: str, delay: float, fn: Callable[[], None]) -> None:
        """Schedule ``fn`` to run after ``delay`` seconds, replacing any pending ``key``."""
        self.cancel(key)
        pending = _Pending(fn=fn, delay=delay)
        self._pending[key] = pending

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        pending.task = loop.create_task(self._run_later(key, pending))

    def cancel(self, key: str) -> bool:
        """Drop a pending task without running it."""
        pending = self._pending.pop(key, None)
        if pending is None:
            return False
        if pending.task is not None and not pending.task.done():
            pending.task.cancel()
        return True

    def pending(self) -> list[str]:
        return list(self._pending)

    def flush(self, prefix: str | None = None) -> int:
        """Run pending tasks now. Returns the number of tasks run."""
        keys = [k for k in self._pending if prefix is None or k.startswith(prefix)]
        for key in keys:
            pending = self._pending.pop(key, None)
            if pending is None:
                continue
            if pending.task is not None and not pending.task.done():
                pending.task.cancel()
            self._invoke(key, pending)
        return len(keys)

    async def _run_later(self, key: str, pending: _Pending) -> None:
        await asyncio.sleep(pending.delay)
        # A flush or reschedule may have replaced us while sleeping
        if self._pending.get(key) is not pending:
            return
        del self._pending[key]
        self._invoke(key, pending)

    @staticmethod
    def _invoke(key: str, pending: _Pending) -> None:
        try:
            pending.fn()
        except Exception:
            log.exception("scheduled_task_failed", key=key)
