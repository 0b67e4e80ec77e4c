"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages, and
provides shared fakes for the clock, the simulator listing source and the
persistence store.
"""

import sys
from pathlib import Path

# Insert local src directory at the beginning of sys.path
# This ensures that the local xcplane package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of xcplane modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("xcplane"):
        del sys.modules[module_name]

from typing import Any  # noqa: E402

import pytest  # noqa: E402

from xcplane.core.scheduling import DelayedTaskQueue  # noqa: E402
from xcplane.models import SimulatorDevice, SimulatorListing  # noqa: E402

IOS_RUNTIME = "com.apple.CoreSimulator.SimRuntime.iOS-18-0"
TVOS_RUNTIME = "com.apple.CoreSimulator.SimRuntime.tvOS-18-0"
WATCHOS_RUNTIME = "com.apple.CoreSimulator.SimRuntime.watchOS-11-0"
XROS_RUNTIME = "com.apple.CoreSimulator.SimRuntime.xrOS-2-0"


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MemoryPersistence:
    """In-memory PersistenceStore recording every call."""

    def __init__(self, enabled: bool = True, state: dict[str, dict[str, Any]] | None = None) -> None:
        self.enabled = enabled
        self.state: dict[str, dict[str, Any]] = dict(state or {})
        self.loads: list[str] = []
        self.saves: list[str] = []

    def is_enabled(self) -> bool:
        return self.enabled

    def load_state(self, key: str) -> dict[str, Any] | None:
        self.loads.append(key)
        return self.state.get(key)

    def save_state(self, key: str, blob: dict[str, Any]) -> None:
        self.saves.append(key)
        self.state[key] = blob


class StaticListingSource:
    """SimulatorListingSource returning a fixed listing and counting fetches."""

    def __init__(self, listing: SimulatorListing) -> None:
        self.listing = listing
        self.fetches = 0

    async def fetch(self) -> SimulatorListing:
        self.fetches += 1
        return self.listing


def make_device(udid: str, runtime: str = IOS_RUNTIME, **kwargs: Any) -> SimulatorDevice:
    kwargs.setdefault("name", f"Device {udid}")
    return SimulatorDevice(udid=udid, runtime=runtime, **kwargs)


def make_listing(*devices: SimulatorDevice, last_updated: float = 0.0) -> SimulatorListing:
    buckets: dict[str, list[SimulatorDevice]] = {}
    for device in devices:
        buckets.setdefault(device.runtime, []).append(device)
    return SimulatorListing(
        devices={runtime: tuple(bucket) for runtime, bucket in buckets.items()},
        last_updated=last_updated,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tasks() -> DelayedTaskQueue:
    return DelayedTaskQueue()


@pytest.fixture
def persistence() -> MemoryPersistence:
    return MemoryPersistence()


@pytest.fixture
def project(tmp_path: Path) -> str:
    """An existing (empty) .xcodeproj directory."""
    path = tmp_path / "App" / "App.xcodeproj"
    path.mkdir(parents=True)
    return str(path)
