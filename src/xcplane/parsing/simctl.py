"""Parsing and summarizing simctl device listings."""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from xcplane.config.constants import SIMULATOR_RUNTIME_PREFIX
from xcplane.models import SimulatorDevice, SimulatorListing

_RUNTIME_VERSION_RE = re.compile(r"(iOS|tvOS|watchOS|xrOS|visionOS)-(\d+)-(\d+)")

# Checked in order; first fragment found in the device name wins
_DEVICE_TYPES: tuple[tuple[str, str], ...] = (
    ("iPhone", "iPhone"),
    ("iPad", "iPad"),
    ("Apple Watch", "Apple Watch"),
    ("Apple TV", "Apple TV"),
    ("Vision", "Apple Vision Pro"),
)

_SUMMARY_TOP_N = 5
_RECENT_TOP_N = 3


# =============================================================================
# Listing
# =============================================================================


def _parse_iso(value: Any) -> float | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


def parse_simctl_list(content: str, now: float | None = None) -> SimulatorListing:
    """Parse ``xcrun simctl list devices -j`` output into a snapshot.

    Malformed device records are skipped. Raises ``ValueError`` when the
    document itself is not JSON with a ``devices`` mapping.
    """
    data = json.loads(content)
    raw_devices = data.get("devices") if isinstance(data, dict) else None
    if not isinstance(raw_devices, dict):
        raise ValueError("simctl listing has no 'devices' mapping")

    devices: dict[str, tuple[SimulatorDevice, ...]] = {}
    for runtime, entries in raw_devices.items():
        bucket: list[SimulatorDevice] = []
        for entry in entries or []:
            if not isinstance(entry, dict) or "udid" not in entry:
                continue
            bucket.append(
                SimulatorDevice(
                    udid=str(entry["udid"]),
                    name=str(entry.get("name", entry["udid"])),
                    runtime=runtime,
                    state=str(entry.get("state", "Shutdown")),
                    is_available=bool(entry.get("isAvailable", True)),
                    device_type_identifier=entry.get("deviceTypeIdentifier"),
                    last_booted=_parse_iso(entry.get("lastBootedAt")),
                )
            )
        devices[runtime] = tuple(bucket)

    return SimulatorListing(devices=devices, last_updated=time.time() if now is None else now)


def format_runtime_name(runtime: str) -> str:
    """``com.apple.CoreSimulator.SimRuntime.iOS-18-0`` -> ``iOS 18.0``."""
    match = _RUNTIME_VERSION_RE.search(runtime)
    if match:
        return f"{match.group(1)} {match.group(2)}.{match.group(3)}"
    if runtime.startswith(SIMULATOR_RUNTIME_PREFIX):
        return runtime.removeprefix(SIMULATOR_RUNTIME_PREFIX).replace("-", " ")
    return runtime


def device_type_label(name: str) -> str:
    for fragment, label in _DEVICE_TYPES:
        if fragment in name:
            return label
    return "Other"


def format_time_ago(timestamp: float, now: float | None = None) -> str:
    diff = max(0.0, (time.time() if now is None else now) - timestamp)
    for unit, seconds in (("day", 86400), ("hour", 3600), ("minute", 60)):
        count = int(diff // seconds)
        if count > 0:
            return f"{count} {unit}{'s' if count > 1 else ''} ago"
    return "Just now"


@dataclass
class SimulatorFilters:
    """Narrowing applied to a listing before it is returned in full."""

    device_type: str | None = None
    runtime: str | None = None
    available_only: bool = False

    def matches(self, device: SimulatorDevice) -> bool:
        if self.available_only and not device.is_available:
            return False
        if self.device_type and self.device_type.lower() not in device.name.lower():
            return False
        if self.runtime:
            needle = self.runtime.lower()
            label = format_runtime_name(device.runtime).lower()
            if needle not in label and needle not in device.runtime.lower():
                return False
        return True


def filter_listing(listing: SimulatorListing, filters: SimulatorFilters) -> SimulatorListing:
    """Snapshot restricted to matching devices; emptied runtimes are dropped."""
    devices = {
        runtime: kept
        for runtime, bucket in listing.devices.items()
        if (kept := tuple(d for d in bucket if filters.matches(d)))
    }
    return SimulatorListing(devices=devices, last_updated=listing.last_updated)


def listing_to_dict(listing: SimulatorListing) -> dict[str, Any]:
    """Full JSON-friendly form of a snapshot (stored behind a handle)."""
    return {
        "last_updated": listing.last_updated,
        "devices": {
            runtime: [
                {
                    "udid": d.udid,
                    "name": d.name,
                    "state": d.state,
                    "is_available": d.is_available,
                    "device_type_identifier": d.device_type_identifier,
                    "runtime": format_runtime_name(runtime),
                    "last_used": d.last_used,
                    "last_booted": d.last_booted,
                }
                for d in bucket
            ]
            for runtime, bucket in listing.devices.items()
        },
    }


# =============================================================================
# Summary
# =============================================================================


@dataclass
class SimulatorSummary:
    total_devices: int
    available_devices: int
    booted_devices: int
    device_types: list[str]
    common_runtimes: list[str]
    last_updated: float
    cache_age: str
    booted_list: list[dict[str, str]] = field(default_factory=list)
    recently_used: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_devices": self.total_devices,
            "available_devices": self.available_devices,
            "booted_devices": self.booted_devices,
            "device_types": list(self.device_types),
            "common_runtimes": list(self.common_runtimes),
            "last_updated": datetime.fromtimestamp(self.last_updated).isoformat(),
            "cache_age": self.cache_age,
        }


def extract_simulator_summary(
    listing: SimulatorListing, now: float | None = None
) -> SimulatorSummary:
    """Counts, labels and quick-access views over a snapshot."""
    all_devices = list(listing.all_devices())
    available = [d for d in all_devices if d.is_available]
    booted = [d for d in available if d.is_booted]

    device_types: list[str] = []
    for device in available:
        label = device_type_label(device.name)
        if label not in device_types:
            device_types.append(label)

    runtimes = [
        format_runtime_name(r)
        for r, bucket in listing.devices.items()
        if any(d.is_available for d in bucket)
    ]

    recent = sorted(
        (d for d in available if d.last_used is not None),
        key=lambda d: d.last_used or 0.0,
        reverse=True,
    )[:_RECENT_TOP_N]

    return SimulatorSummary(
        total_devices=len(all_devices),
        available_devices=len(available),
        booted_devices=len(booted),
        device_types=device_types[:_SUMMARY_TOP_N],
        common_runtimes=runtimes[:_SUMMARY_TOP_N],
        last_updated=listing.last_updated,
        cache_age=format_time_ago(listing.last_updated, now),
        booted_list=[
            {
                "name": d.name,
                "udid": d.udid,
                "state": d.state,
                "runtime": format_runtime_name(d.runtime),
            }
            for d in booted
        ],
        recently_used=[
            {
                "name": d.name,
                "udid": d.udid,
                "last_used": format_time_ago(d.last_used or 0.0, now),
            }
            for d in recent
        ],
    )


def build_progressive_simulator_response(
    summary: SimulatorSummary,
    handle: str,
    filters: SimulatorFilters | None = None,
) -> dict[str, Any]:
    """Compact listing response; the full listing stays behind ``handle``."""
    filters = filters or SimulatorFilters()
    top_runtime = summary.common_runtimes[0] if summary.common_runtimes else "iOS 18.5"
    recommended = summary.booted_list[:1] if summary.booted_list else summary.recently_used[:1]

    return {
        "cache_id": handle,
        "summary": summary.to_dict(),
        "quick_access": {
            "booted_devices": summary.booted_list,
            "recently_used": summary.recently_used,
            "recommended_for_build": recommended,
        },
        "next_steps": [
            f"Found {summary.available_devices} available simulators",
            f"Use 'xcp details {handle}' for the full device list",
            f"Use filters: device_type={filters.device_type or 'iPhone'}, "
            f"runtime={filters.runtime or top_runtime}",
        ],
        "available_details": ["full-log", "summary", "command", "metadata"],
        "smart_filters": {
            "common_device_types": ["iPhone", "iPad"],
            "common_runtimes": summary.common_runtimes[:2],
            "suggested_filters": f"device_type=iPhone runtime='{top_runtime}'",
        },
    }
