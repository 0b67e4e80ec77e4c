"""Command-line builders for xcodebuild and simctl.

Every value is shell-quoted; the results are run through a shell.
"""

from __future__ import annotations

import shlex
from collections.abc import Sequence

_SIMCTL_DEVICE_ACTIONS = frozenset({"boot", "shutdown", "delete"})
_SIMCTL_JSON_ACTIONS = frozenset({"list"})


def build_xcodebuild_command(
    action: str,
    project_path: str,
    *,
    scheme: str | None = None,
    configuration: str | None = None,
    destination: str | None = None,
    sdk: str | None = None,
    derived_data_path: str | None = None,
    only_testing: Sequence[str] = (),
    workspace: bool = False,
    json: bool = False,
) -> str:
    """Build an ``xcodebuild`` shell command line.

    ``.xcworkspace`` paths (or ``workspace=True``) use ``-workspace``,
    everything else ``-project``. The action goes after the options and
    ``-only-testing:`` filters after the action.
    """
    parts = ["xcodebuild"]

    if workspace or project_path.endswith(".xcworkspace"):
        parts += ["-workspace", shlex.quote(project_path)]
    else:
        parts += ["-project", shlex.quote(project_path)]

    options = (
        ("-scheme", scheme),
        ("-configuration", configuration),
        ("-destination", destination),
        ("-sdk", sdk),
        ("-derivedDataPath", derived_data_path),
    )
    for flag, value in options:
        if value:
            parts += [flag, shlex.quote(value)]
    if json:
        parts.append("-json")
    if action:
        parts.append(action)
    parts += [shlex.quote(f"-only-testing:{target}") for target in only_testing]

    return " ".join(parts)


def build_simctl_command(
    action: str,
    *,
    device_id: str | None = None,
    device_type: str | None = None,
    runtime: str | None = None,
    name: str | None = None,
    json: bool = False,
) -> str:
    """Build an ``xcrun simctl`` shell command line."""
    parts = ["xcrun", "simctl", action]

    if json and action in _SIMCTL_JSON_ACTIONS:
        parts.append("-j")
    if device_id and action in _SIMCTL_DEVICE_ACTIONS:
        parts.append(shlex.quote(device_id))
    if action == "create" and name and device_type and runtime:
        parts += [shlex.quote(name), shlex.quote(device_type), shlex.quote(runtime)]

    return " ".join(parts)
