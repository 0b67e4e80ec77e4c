"""Best-effort parsers for wrapped tool output."""

from xcplane.parsing.destination import (
    destination_fields,
    destination_udid,
    is_simulator_destination,
)
from xcplane.parsing.simctl import (
    SimulatorFilters,
    SimulatorSummary,
    build_progressive_simulator_response,
    extract_simulator_summary,
    filter_listing,
    format_runtime_name,
    parse_simctl_list,
)
from xcplane.parsing.xcodebuild import (
    BuildSummary,
    TestSummary,
    error_lines,
    extract_build_summary,
    extract_test_summary,
    warning_lines,
)

__all__ = [
    "BuildSummary",
    "SimulatorFilters",
    "SimulatorSummary",
    "TestSummary",
    "build_progressive_simulator_response",
    "destination_fields",
    "destination_udid",
    "error_lines",
    "extract_build_summary",
    "extract_simulator_summary",
    "extract_test_summary",
    "filter_listing",
    "format_runtime_name",
    "is_simulator_destination",
    "parse_simctl_list",
    "warning_lines",
]
