"""Helpers for xcodebuild ``-destination`` specifier strings.

A specifier is a comma-separated list of ``key=value`` pairs, e.g.
``platform=iOS Simulator,id=1A2B-...`` or ``generic/platform=macOS,name=Any Mac``.
"""

from __future__ import annotations


def destination_fields(destination: str) -> dict[str, str]:
    """Parse ``key=value`` pairs; a ``generic/`` key prefix is dropped."""
    fields: dict[str, str] = {}
    for part in destination.split(","):
        key, sep, value = part.partition("=")
        if not sep:
            continue
        key = key.strip().removeprefix("generic/")
        fields[key] = value.strip()
    return fields


def destination_udid(destination: str | None) -> str | None:
    if not destination:
        return None
    return destination_fields(destination).get("id") or None


def is_simulator_destination(destination: str | None) -> bool:
    if not destination:
        return False
    return "simulator" in destination_fields(destination).get("platform", "").lower()
