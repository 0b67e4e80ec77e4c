"""Smart-default resolution."""

from xcplane.resolve.destination import (
    DestinationResolution,
    is_compatible,
    platform_from_destination,
    platform_from_runtime,
    platform_from_sdk,
    resolve_destination,
    simulator_destination,
)

__all__ = [
    "DestinationResolution",
    "is_compatible",
    "platform_from_destination",
    "platform_from_runtime",
    "platform_from_sdk",
    "resolve_destination",
    "simulator_destination",
]
