"""Configuration constants.

Values here are NOT user-configurable: output-format anchors of the wrapped
tools and hard caps. For configurable values, see models.py.
"""

# =============================================================================
# Hard Caps
# =============================================================================

MAX_BUFFER_BYTES_LIMIT = 512 * 1024 * 1024
"""Upper bound for any configured stdout buffer."""

SUMMARY_LIST_LIMIT = 10
"""Errors/warnings exposed inline in a build summary."""

RECENT_DEFAULT_LIMIT = 5
"""Default result count for get_recent_by_tool."""

# =============================================================================
# Wrapped Tool Output
# =============================================================================

SIMULATOR_RUNTIME_PREFIX = "com.apple.CoreSimulator.SimRuntime."
"""Prefix of simctl runtime identifiers."""

BUILD_FATAL_PATTERNS: tuple[str, ...] = (
    r'Failed to start remote service "com\.apple\.mobile\.notification_proxy"',
    r"The device is passcode protected",
    r"Unable to find a device matching the provided destination specifier",
)
"""xcodebuild output that means retrying is pointless (case-insensitive)."""

# =============================================================================
# Persistence Keys
# =============================================================================

RESPONSES_STATE_KEY = "responses"
PROJECTS_STATE_KEY = "projects"
SIMULATORS_STATE_KEY = "simulators"
