"""Destination resolution for xcodebuild invocations.

Decides which ``-destination`` to pass from, in strict precedence:

1. an explicit, non-blank destination (never overridden);
2. the project's cached destination, when its platform is compatible with
   the requested SDK;
3. nothing, for macOS SDKs and physical-device SDKs;
4. a simulator picked from the Simulator Cache whose runtime matches the
   SDK's platform;
5. nothing, leaving xcodebuild to apply its own default.

Platform hints are coarse OS families: ios, macos, tvos, watchos, visionos.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from xcplane.cache.simulators import SimulatorCache
from xcplane.core.errors import XcPlaneError
from xcplane.models import BuildConfig, SimulatorDevice
from xcplane.parsing.destination import destination_fields

log = structlog.get_logger(__name__)

# Order matters: "visionos" must not fall through to ios, "macosx" must hit mac
_PLATFORM_FRAGMENTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("mac",), "macos"),
    (("vision", "xros", "xrsimulator"), "visionos"),
    (("watch",), "watchos"),
    (("tvos", "appletv"), "tvos"),
    (("iphone", "ios"), "ios"),
)

_DEVICE_PLATFORMS = frozenset({"ios", "tvos", "watchos", "visionos"})

_PLATFORM_LABELS = {
    "ios": "iOS",
    "tvos": "tvOS",
    "watchos": "watchOS",
    "visionos": "visionOS",
}

_NON_LETTERS_RE = re.compile(r"[^a-z]")

SOURCE_EXPLICIT = "explicit"
SOURCE_CACHED = "cached"
SOURCE_SIMULATOR = "simulator"
SOURCE_NONE = "none"


def _match_platform(text: str | None) -> str | None:
    if not text:
        return None
    lowered = text.lower()
    for fragments, platform in _PLATFORM_FRAGMENTS:
        if any(fragment in lowered for fragment in fragments):
            return platform
    return None


def platform_from_sdk(sdk: str | None) -> str | None:
    """``iphonesimulator`` -> ``ios``; unknown SDKs keep their letters."""
    if not sdk or not sdk.strip():
        return None
    platform = _match_platform(sdk)
    if platform is not None:
        return platform
    letters = _NON_LETTERS_RE.sub("", sdk.lower())
    return letters or None


def platform_from_destination(destination: str | None) -> str | None:
    """Platform of a specifier, read from its ``platform=`` component."""
    if not destination:
        return None
    return _match_platform(destination_fields(destination).get("platform"))


def platform_from_runtime(runtime: str | None) -> str | None:
    """``com.apple.CoreSimulator.SimRuntime.tvOS-18-0`` -> ``tvos``."""
    if not runtime:
        return None
    return _match_platform(runtime.rsplit(".", 1)[-1])


def is_compatible(left: str | None, right: str | None) -> bool:
    """Unknown on either side is compatible; otherwise platforms must match."""
    return left is None or right is None or left == right


def simulator_destination(device: SimulatorDevice) -> str:
    label = _PLATFORM_LABELS.get(platform_from_runtime(device.runtime) or "", "iOS")
    return f"platform={label} Simulator,id={device.udid}"


@dataclass(frozen=True)
class DestinationResolution:
    destination: str | None
    source: str
    platform_hint: str | None = None

    @property
    def used_smart_destination(self) -> bool:
        return self.source in (SOURCE_CACHED, SOURCE_SIMULATOR)


def _matches_hint(device: SimulatorDevice, hint: str | None) -> bool:
    return hint is None or platform_from_runtime(device.runtime) == hint


async def _suggest_simulator(
    simulators: SimulatorCache, project: str, hint: str | None
) -> SimulatorDevice | None:
    preferred = await simulators.get_preferred_simulator(project)
    if preferred is not None and _matches_hint(preferred, hint):
        return preferred

    listing = await simulators.get_simulator_list()
    for device in listing.available_devices():
        if _matches_hint(device, hint):
            return device
    return None


async def resolve_destination(
    *,
    explicit: str | None,
    sdk: str | None,
    preferred_config: BuildConfig | None,
    project: str,
    simulators: SimulatorCache | None,
) -> DestinationResolution:
    """Pick the destination for a build of ``project``.

    Never raises for listing problems; a failed simulator lookup resolves
    to no destination.
    """
    if explicit and explicit.strip():
        return DestinationResolution(explicit.strip(), SOURCE_EXPLICIT)

    hint = platform_from_sdk(sdk)

    cached = preferred_config.destination if preferred_config else None
    if cached and is_compatible(platform_from_destination(cached), hint):
        return DestinationResolution(cached, SOURCE_CACHED, hint)

    if hint == "macos":
        return DestinationResolution(None, SOURCE_NONE, hint)

    if hint in _DEVICE_PLATFORMS and "simulator" not in (sdk or "").lower():
        return DestinationResolution(None, SOURCE_NONE, hint)

    if simulators is not None:
        try:
            device = await _suggest_simulator(simulators, project, hint)
        except (XcPlaneError, ValueError) as e:
            log.warning("simulator_suggestion_failed", project=project, error=str(e))
            device = None
        if device is not None:
            return DestinationResolution(simulator_destination(device), SOURCE_SIMULATOR, hint)

    return DestinationResolution(None, SOURCE_NONE, hint)
