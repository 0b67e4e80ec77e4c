"""Domain records shared by the caches, parsers and workflows.

Timestamps are epoch seconds (``time.time()``) so that records survive a
round trip through JSON persistence unchanged.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import asdict, dataclass, field, replace
from typing import Any

Scalar = str | int | float | bool | None
"""Allowed metadata value types."""


def is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, str | int | float | bool)


# =============================================================================
# Response Cache
# =============================================================================


@dataclass
class CachedResponse:
    """One captured command execution."""

    handle: str
    tool: str
    created_at: float
    stdout: str
    stderr: str
    exit_code: int
    command: str
    metadata: dict[str, Scalar] = field(default_factory=dict)

    @property
    def output_size_bytes(self) -> int:
        return len(self.stdout.encode("utf-8")) + len(self.stderr.encode("utf-8"))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CachedResponse:
        return cls(
            handle=str(data["handle"]),
            tool=str(data["tool"]),
            created_at=float(data["created_at"]),
            stdout=str(data.get("stdout", "")),
            stderr=str(data.get("stderr", "")),
            exit_code=int(data.get("exit_code", 0)),
            command=str(data.get("command", "")),
            metadata={k: v for k, v in dict(data.get("metadata") or {}).items() if is_scalar(v)},
        )


# =============================================================================
# Project Preferences
# =============================================================================


@dataclass(frozen=True)
class BuildConfig:
    """A build configuration that can be reapplied to a later request."""

    scheme: str
    configuration: str | None = None
    destination: str | None = None
    sdk: str | None = None
    derived_data_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BuildConfig:
        return cls(
            scheme=str(data["scheme"]),
            configuration=data.get("configuration"),
            destination=data.get("destination"),
            sdk=data.get("sdk"),
            derived_data_path=data.get("derived_data_path"),
        )


@dataclass(frozen=True)
class BuildOutcome:
    """Result of one build, kept in per-project history."""

    timestamp: float
    success: bool
    duration_ms: int
    error_count: int = 0
    warning_count: int = 0
    output_size_bytes: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BuildOutcome:
        return cls(
            timestamp=float(data["timestamp"]),
            success=bool(data["success"]),
            duration_ms=int(data.get("duration_ms", 0)),
            error_count=int(data.get("error_count", 0)),
            warning_count=int(data.get("warning_count", 0)),
            output_size_bytes=int(data.get("output_size_bytes", 0)),
        )


# =============================================================================
# Simulators
# =============================================================================


@dataclass(frozen=True)
class SimulatorDevice:
    """A simulator target. Identity is ``udid``."""

    udid: str
    name: str
    runtime: str
    state: str = "Shutdown"
    is_available: bool = True
    device_type_identifier: str | None = None
    last_used: float | None = None
    last_booted: float | None = None
    # project identity -> builds/installs against this device
    usage: Mapping[str, int] = field(default_factory=dict, compare=False)

    @property
    def is_booted(self) -> bool:
        return self.state == "Booted"

    def usage_for(self, project: str) -> int:
        return self.usage.get(project, 0)


@dataclass(frozen=True)
class SimulatorListing:
    """Point-in-time snapshot: runtime identifier -> devices under it.

    Never mutated; ``with_device`` returns a new snapshot.
    """

    devices: Mapping[str, tuple[SimulatorDevice, ...]]
    last_updated: float

    def all_devices(self) -> Iterator[SimulatorDevice]:
        for devices in self.devices.values():
            yield from devices

    def available_devices(self) -> list[SimulatorDevice]:
        return [d for d in self.all_devices() if d.is_available]

    def find(self, udid: str) -> SimulatorDevice | None:
        for device in self.all_devices():
            if device.udid == udid:
                return device
        return None

    def with_device(self, updated: SimulatorDevice) -> SimulatorListing:
        """Copy of this snapshot with the device of the same udid replaced."""
        devices = {
            runtime: tuple(updated if d.udid == updated.udid else d for d in bucket)
            for runtime, bucket in self.devices.items()
        }
        return replace(self, devices=devices)
