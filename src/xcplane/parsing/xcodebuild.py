"""Best-effort summaries of xcodebuild build and test output.

xcodebuild's text output is not a stable contract. These parsers accept any
text and never raise; they look for a handful of anchor strings:

- ``error:`` / ``** BUILD FAILED **`` lines count as errors
- ``warning:`` lines count as warnings
- ``** BUILD SUCCEEDED **`` / ``Build completed`` mark success; without one a
  zero exit code is NOT treated as success
- ``Total time: <seconds> seconds`` and ``Building target <name> with
  configuration`` are optional extras
- ``Test Suite ... passed|failed`` decides test success; every ``<N> test(s)``
  occurrence is summed into ``tests_run``. A tool that prints both per-suite
  and total counts is therefore double counted.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from xcplane.config.constants import SUMMARY_LIST_LIMIT

_ERROR_MARKERS = ("error:", "** BUILD FAILED **")
_WARNING_MARKER = "warning:"
_SUCCESS_MARKERS = ("** BUILD SUCCEEDED **", "Build completed")

_TOTAL_TIME_RE = re.compile(r"Total time: (\d+\.\d+) seconds")
_TARGET_RE = re.compile(r"Building target (.+?) with configuration")
_SUITE_RESULT_RE = re.compile(r"Test Suite .+ (passed|failed)")
_TEST_COUNT_RE = re.compile(r"(\d+) tests?")
_TEST_RESULT_MARKERS = ("Test Suite", "executed", "passed", "failed")


def _lines(stdout: str, stderr: str) -> list[str]:
    return f"{stdout}\n{stderr}".split("\n")


def error_lines(text: str) -> list[str]:
    """Every line carrying an error marker, stripped."""
    return [line.strip() for line in text.split("\n") if any(m in line for m in _ERROR_MARKERS)]


def warning_lines(text: str) -> list[str]:
    return [line.strip() for line in text.split("\n") if _WARNING_MARKER in line]


@dataclass
class BuildSummary:
    """Compact view of one build log."""

    success: bool
    exit_code: int
    error_count: int
    warning_count: int
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    duration_sec: float | None = None
    target: str | None = None
    output_size_bytes: int = 0

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    @property
    def has_warnings(self) -> bool:
        return self.warning_count > 0

    @property
    def first_error(self) -> str | None:
        return self.errors[0] if self.errors else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "exit_code": self.exit_code,
            "error_count": self.error_count,
            "warning_count": self.warning_count,
            "duration_sec": self.duration_sec,
            "target": self.target,
            "has_errors": self.has_errors,
            "has_warnings": self.has_warnings,
            "first_error": self.first_error,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "output_size_bytes": self.output_size_bytes,
        }


def extract_build_summary(stdout: str, stderr: str, exit_code: int) -> BuildSummary:
    """Summarize a build log. Exposes the first 10 errors/warnings, counts all."""
    lines = _lines(stdout, stderr)

    combined = "\n".join(lines)
    errors = error_lines(combined)
    warnings = warning_lines(combined)
    succeeded = any(any(m in line for m in _SUCCESS_MARKERS) for line in lines)

    timing = _TOTAL_TIME_RE.search(stdout)
    target = _TARGET_RE.search(stdout)

    return BuildSummary(
        success=exit_code == 0 and succeeded,
        exit_code=exit_code,
        error_count=len(errors),
        warning_count=len(warnings),
        errors=errors[:SUMMARY_LIST_LIMIT],
        warnings=warnings[:SUMMARY_LIST_LIMIT],
        duration_sec=float(timing.group(1)) if timing else None,
        target=target.group(1) if target else None,
        output_size_bytes=len(stdout) + len(stderr),
    )


@dataclass
class TestSummary:
    """Compact view of one test run."""

    __test__ = False  # not a pytest class

    success: bool
    exit_code: int
    tests_run: int
    passed: bool
    result_lines: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "exit_code": self.exit_code,
            "tests_run": self.tests_run,
            "passed": self.passed,
            "result_lines": list(self.result_lines),
        }


def extract_test_summary(stdout: str, stderr: str, exit_code: int) -> TestSummary:
    """Summarize a test run."""
    lines = _lines(stdout, stderr)
    result_lines = [
        line for line in lines if any(marker in line for marker in _TEST_RESULT_MARKERS)
    ]

    completion = _SUITE_RESULT_RE.search(stdout)
    passed = completion is not None and completion.group(1) == "passed"
    tests_run = sum(int(m.group(1)) for m in _TEST_COUNT_RE.finditer(stdout))

    return TestSummary(
        success=exit_code == 0 and passed,
        exit_code=exit_code,
        tests_run=tests_run,
        passed=passed,
        result_lines=result_lines[-3:],
    )
