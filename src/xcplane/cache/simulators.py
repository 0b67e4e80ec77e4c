"""Simulator state cache with usage-based ranking.

The device listing is an immutable snapshot fetched from a listing source and
replaced wholesale once it is older than the TTL. Usage counters and
last-used/last-booted times live in a side table keyed by udid, so they
survive refreshes and are re-applied to every new snapshot. Only the side
table is persisted; the listing itself is always re-fetched.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any, Protocol

import structlog

from xcplane.cache.base import PersistedCache
from xcplane.cache.persistence import DisabledPersistence, PersistenceStore
from xcplane.cache.projects import project_identity
from xcplane.config.constants import SIMULATORS_STATE_KEY
from xcplane.core.errors import ExecutionError
from xcplane.core.scheduling import DelayedTaskQueue
from xcplane.execution.runner import CommandRunner
from xcplane.models import SimulatorDevice, SimulatorListing
from xcplane.parsing.simctl import parse_simctl_list

log = structlog.get_logger(__name__)

DEFAULT_TTL_SEC = 60 * 60

SIMCTL_LIST_ARGS = ("xcrun", "simctl", "list", "devices", "-j")


class SimulatorListingSource(Protocol):
    """Sole source of truth for the device listing."""

    async def fetch(self) -> SimulatorListing: ...


class SimctlListingSource:
    """Lists devices with ``xcrun simctl list devices -j``."""

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    async def fetch(self) -> SimulatorListing:
        result = await self._runner.run(SIMCTL_LIST_ARGS)
        if not result.ok:
            raise ExecutionError.command_failed(
                " ".join(SIMCTL_LIST_ARGS), result.exit_code, result.stderr
            )
        return parse_simctl_list(result.stdout)


@dataclass
class _DeviceUsage:
    counts: dict[str, int] = field(default_factory=dict)
    last_used: float | None = None
    last_booted: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"counts": self.counts, "last_used": self.last_used, "last_booted": self.last_booted}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> _DeviceUsage:
        return cls(
            counts={str(k): int(v) for k, v in (data.get("counts") or {}).items()},
            last_used=data.get("last_used"),
            last_booted=data.get("last_booted"),
        )


@dataclass(frozen=True)
class SimulatorSuggestion:
    """A chosen device plus the fallback rule that chose it."""

    device: SimulatorDevice
    reason: str


def _latest(a: float | None, b: float | None) -> float | None:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


class SimulatorCache(PersistedCache):
    """Known simulators, per-project usage and best-target selection."""

    state_key = SIMULATORS_STATE_KEY

    def __init__(
        self,
        source: SimulatorListingSource,
        *,
        persistence: PersistenceStore | None = None,
        tasks: DelayedTaskQueue | None = None,
        ttl_sec: float = DEFAULT_TTL_SEC,
        debounce_sec: float = 1.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._source = source
        self._ttl_sec = ttl_sec
        self._clock = clock
        self._listing: SimulatorListing | None = None
        self._usage: dict[str, _DeviceUsage] = {}
        super().__init__(
            persistence=persistence or DisabledPersistence(),
            tasks=tasks or DelayedTaskQueue(),
            debounce_sec=debounce_sec,
        )

    @property
    def snapshot(self) -> SimulatorListing | None:
        """Current snapshot without refreshing."""
        return self._listing

    def _is_stale(self) -> bool:
        if self._listing is None:
            return True
        return self._clock() - self._listing.last_updated >= self._ttl_sec

    async def get_simulator_list(self, force_refresh: bool = False) -> SimulatorListing:
        """Snapshot, refreshed from the source when absent, stale or forced."""
        if not force_refresh and not self._is_stale() and self._listing is not None:
            return self._listing

        fetched = await self._source.fetch()
        listing = self._apply_usage(replace(fetched, last_updated=self._clock()))
        self._listing = listing
        log.info(
            "simulator_list_refreshed",
            runtimes=len(listing.devices),
            devices=sum(len(b) for b in listing.devices.values()),
        )
        return listing

    def invalidate(self) -> None:
        """Force the next ``get_simulator_list`` to re-fetch."""
        self._listing = None

    def _apply_usage(self, listing: SimulatorListing) -> SimulatorListing:
        devices = {
            runtime: tuple(self._with_usage(d) for d in bucket)
            for runtime, bucket in listing.devices.items()
        }
        return replace(listing, devices=devices)

    def _with_usage(self, device: SimulatorDevice) -> SimulatorDevice:
        usage = self._usage.get(device.udid)
        if usage is None:
            return device
        return replace(
            device,
            usage=dict(usage.counts),
            last_used=_latest(device.last_used, usage.last_used),
            last_booted=_latest(device.last_booted, usage.last_booted),
        )

    def _refresh_device(self, udid: str) -> None:
        if self._listing is None:
            return
        device = self._listing.find(udid)
        if device is not None:
            self._listing = self._listing.with_device(self._with_usage(device))

    def record_simulator_usage(self, udid: str, project: str) -> None:
        """Count one use of ``udid`` for ``project`` and stamp last-used."""
        key = project_identity(project)
        usage = self._usage.setdefault(udid, _DeviceUsage())
        usage.counts[key] = usage.counts.get(key, 0) + 1
        usage.last_used = self._clock()
        self._refresh_device(udid)
        self._schedule_save()
        log.debug("simulator_usage_recorded", udid=udid, project=key, count=usage.counts[key])

    def record_simulator_boot(self, udid: str) -> None:
        usage = self._usage.setdefault(udid, _DeviceUsage())
        usage.last_booted = self._clock()
        self._refresh_device(udid)
        self._schedule_save()

    async def get_preferred_simulator(self, project: str) -> SimulatorDevice | None:
        """Available device most used by ``project``; ties go to listing order."""
        key = project_identity(project)
        listing = await self.get_simulator_list()
        best: SimulatorDevice | None = None
        for device in listing.available_devices():
            count = device.usage_for(key)
            if count > 0 and (best is None or count > best.usage_for(key)):
                best = device
        return best

    async def get_best_simulator(self, project: str) -> SimulatorSuggestion | None:
        """Pick a device by a fixed fallback chain.

        project preference, then latest last-booted, then any device in the
        Booted state, then the first available device in listing order.
        """
        preferred = await self.get_preferred_simulator(project)
        if preferred is not None:
            return SimulatorSuggestion(preferred, "project_preference")

        available = (await self.get_simulator_list()).available_devices()
        booted_before = [d for d in available if d.last_booted is not None]
        if booted_before:
            latest = max(booted_before, key=lambda d: d.last_booted or 0.0)
            return SimulatorSuggestion(latest, "recently_booted")

        for device in available:
            if device.is_booted:
                return SimulatorSuggestion(device, "currently_booted")

        if available:
            return SimulatorSuggestion(available[0], "first_available")
        return None

    async def find_simulator_by_udid(self, udid: str) -> SimulatorDevice | None:
        return (await self.get_simulator_list()).find(udid)

    def _restore(self, blob: dict[str, Any]) -> None:
        for udid, raw in (blob.get("usage") or {}).items():
            if udid in self._usage:
                continue
            try:
                self._usage[udid] = _DeviceUsage.from_dict(raw)
            except (AttributeError, TypeError, ValueError) as e:
                log.warning("simulator_usage_skipped", udid=udid, error=str(e))
        if self._listing is not None:
            self._listing = self._apply_usage(self._listing)
        log.info("simulator_usage_restored", devices=len(self._usage))

    def _snapshot(self) -> dict[str, Any]:
        return {"usage": {udid: usage.to_dict() for udid, usage in self._usage.items()}}
