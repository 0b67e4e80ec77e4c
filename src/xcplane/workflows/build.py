"""Build, test and auto-install orchestration.

Glue over the caches, the resolver and the process executor:

    request -> smart defaults (project cache + destination resolver)
            -> xcodebuild (streamed, fatal patterns, deadline)
            -> summary -> response cache (handle)
            -> project/simulator cache updates
            -> compact response with ``intelligence`` metadata

Build and test failures come back as structured results. Only invalid input
and executor failures (spawn, buffer) raise.
"""

from __future__ import annotations

import json
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from xcplane.cache.projects import ProjectCache, project_identity
from xcplane.cache.responses import ResponseCache
from xcplane.cache.simulators import SimulatorCache
from xcplane.config.constants import BUILD_FATAL_PATTERNS
from xcplane.config.models import ExecutionConfig
from xcplane.core.errors import ExecutionError, InputError, WorkflowError
from xcplane.core.logging import clear_request_id, set_request_id
from xcplane.execution.commands import build_simctl_command, build_xcodebuild_command
from xcplane.execution.models import StreamingResult
from xcplane.execution.runner import CommandRunner
from xcplane.models import BuildConfig, BuildOutcome, CachedResponse
from xcplane.parsing.destination import destination_udid, is_simulator_destination
from xcplane.parsing.simctl import (
    SimulatorFilters,
    build_progressive_simulator_response,
    extract_simulator_summary,
    filter_listing,
    listing_to_dict,
)
from xcplane.parsing.xcodebuild import (
    error_lines,
    extract_build_summary,
    extract_test_summary,
    warning_lines,
)
from xcplane.resolve.destination import DestinationResolution, resolve_destination
from xcplane.workflows.artifacts import ArtifactLocator

log = structlog.get_logger(__name__)

BUILD_TOOL = "xcodebuild-build"
TEST_TOOL = "xcodebuild-test"
SIMCTL_LIST_TOOL = "simctl-list"

DEFAULT_CONFIGURATION = "Debug"
PROJECT_SUFFIXES = (".xcodeproj", ".xcworkspace")

DETAIL_TYPES = ("full-log", "errors-only", "warnings-only", "summary", "command", "metadata")
DEFAULT_DETAIL_LINES = 100


@dataclass
class BuildRequest:
    project_path: str
    scheme: str
    configuration: str | None = None
    destination: str | None = None
    sdk: str | None = None
    derived_data_path: str | None = None
    auto_install: bool = False
    simulator_udid: str | None = None
    boot_simulator: bool = True


@dataclass
class TestRequest:
    __test__ = False  # not a pytest class

    project_path: str
    scheme: str
    configuration: str | None = None
    destination: str | None = None
    sdk: str | None = None
    derived_data_path: str | None = None
    only_testing: tuple[str, ...] = ()


@dataclass(frozen=True)
class _Plan:
    """Resolved inputs for one xcodebuild invocation."""

    project: str
    config: BuildConfig
    resolution: DestinationResolution
    has_preferred_config: bool
    used_smart_configuration: bool


@contextmanager
def _request_scope(tool: str) -> Iterator[str]:
    request_id = set_request_id()
    log.debug("request_started", tool=tool)
    try:
        yield request_id
    finally:
        clear_request_id()


def _validate(project_path: str, scheme: str) -> str:
    if not scheme or not scheme.strip():
        raise InputError.invalid_argument("scheme", "must not be blank")
    if not project_path.endswith(PROJECT_SUFFIXES):
        raise InputError.invalid_argument(
            "project_path", "must be an .xcodeproj or .xcworkspace"
        )
    path = Path(project_path).expanduser()
    if not path.exists():
        raise InputError.project_not_found(project_path)
    return project_identity(path)


class BuildWorkflow:
    """The operations exposed to callers of the build tools."""

    def __init__(
        self,
        *,
        runner: CommandRunner,
        responses: ResponseCache,
        projects: ProjectCache,
        simulators: SimulatorCache,
        artifacts: ArtifactLocator | None = None,
        config: ExecutionConfig | None = None,
    ) -> None:
        self._runner = runner
        self._responses = responses
        self._projects = projects
        self._simulators = simulators
        self._artifacts = artifacts or ArtifactLocator(runner)
        self._config = config or runner.config

    # =========================================================================
    # Smart defaults
    # =========================================================================

    async def _plan(
        self,
        project_path: str,
        scheme: str,
        *,
        configuration: str | None,
        destination: str | None,
        sdk: str | None,
        derived_data_path: str | None,
    ) -> _Plan:
        project = _validate(project_path, scheme)
        preferred = self._projects.get_preferred_build_config(project)

        cached_configuration = preferred.configuration if preferred else None
        resolution = await resolve_destination(
            explicit=destination,
            sdk=sdk,
            preferred_config=preferred,
            project=project,
            simulators=self._simulators,
        )
        config = BuildConfig(
            scheme=scheme.strip(),
            configuration=configuration or cached_configuration or DEFAULT_CONFIGURATION,
            destination=resolution.destination,
            sdk=sdk or (preferred.sdk if preferred else None),
            derived_data_path=derived_data_path or (preferred.derived_data_path if preferred else None),
        )
        log.info(
            "build_plan_resolved",
            project=project,
            configuration=config.configuration,
            destination=config.destination,
            destination_source=resolution.source,
        )
        return _Plan(
            project=project,
            config=config,
            resolution=resolution,
            has_preferred_config=preferred is not None,
            used_smart_configuration=not configuration and cached_configuration is not None,
        )

    async def _execute(self, command: str) -> tuple[StreamingResult, int]:
        start = time.monotonic()
        result = await self._runner.stream(
            command,
            timeout_sec=self._config.build_timeout_sec,
            max_buffer_bytes=self._config.build_max_buffer_bytes,
            fatal_patterns=BUILD_FATAL_PATTERNS,
            on_fatal_match=lambda text: log.warning("fatal_output_detected", match=text),
        )
        return result, int((time.monotonic() - start) * 1000)

    def _record_usage(self, plan: _Plan) -> bool:
        udid = destination_udid(plan.config.destination)
        if not udid or not is_simulator_destination(plan.config.destination):
            return False
        self._simulators.record_simulator_usage(udid, plan.project)
        return True

    def _device_name(self, destination: str | None) -> str | None:
        udid = destination_udid(destination)
        snapshot = self._simulators.snapshot
        if not udid or snapshot is None:
            return None
        device = snapshot.find(udid)
        return device.name if device else None

    # =========================================================================
    # Build
    # =========================================================================

    async def build(self, request: BuildRequest) -> dict[str, Any]:
        """Build with smart defaults and return a compact result.

        Raises:
            InputError: Bad project path or scheme
            ExecutionError: xcodebuild could not be spawned or flooded stdout
        """
        with _request_scope(BUILD_TOOL):
            return await self._build(request)

    async def _build(self, request: BuildRequest) -> dict[str, Any]:
        plan = await self._plan(
            request.project_path,
            request.scheme,
            configuration=request.configuration,
            destination=request.destination,
            sdk=request.sdk,
            derived_data_path=request.derived_data_path,
        )
        config = plan.config
        command = build_xcodebuild_command(
            "build",
            plan.project,
            scheme=config.scheme,
            configuration=config.configuration,
            destination=config.destination,
            sdk=config.sdk,
            derived_data_path=config.derived_data_path,
        )
        result, duration_ms = await self._execute(command)

        summary = extract_build_summary(result.stdout, result.stderr, result.exit_code)
        success = summary.success and not result.timed_out
        timeout_sec = self._config.build_timeout_sec

        errors = list(summary.errors)
        if result.fatal_match:
            errors.insert(0, f"Detected fatal xcodebuild output: {result.fatal_match}")
        if result.timed_out:
            errors.insert(0, f"Build aborted after {timeout_sec}s (timeout)")
        first_error = summary.first_error or result.fatal_match
        if first_error is None and result.timed_out:
            first_error = f"Build timed out after {timeout_sec}s"

        self._projects.record_build_result(
            plan.project,
            config,
            BuildOutcome(
                timestamp=time.time(),
                success=success,
                duration_ms=duration_ms,
                error_count=summary.error_count,
                warning_count=summary.warning_count,
                output_size_bytes=summary.output_size_bytes,
            ),
            device_name=self._device_name(config.destination) if success else None,
        )
        usage_recorded = self._record_usage(plan)

        handle = self._responses.store(
            BUILD_TOOL,
            stdout=result.stdout,
            stderr=result.stderr,
            exit_code=result.exit_code,
            command=command,
            metadata={
                "project_path": plan.project,
                "scheme": config.scheme,
                "configuration": config.configuration,
                "destination": config.destination,
                "sdk": config.sdk,
                "duration_ms": duration_ms,
                "success": success,
                "error_count": summary.error_count,
                "warning_count": summary.warning_count,
                "smart_destination_used": plan.resolution.used_smart_destination,
                "smart_configuration_used": plan.used_smart_configuration,
                "timed_out": result.timed_out,
                "fatal_match": result.fatal_match,
            },
        )
        log.info(
            "build_finished",
            build_id=handle,
            success=success,
            ending=result.ending,
            duration_ms=duration_ms,
            errors=summary.error_count,
            warnings=summary.warning_count,
        )

        install_result: dict[str, Any] | None = None
        if request.auto_install and success:
            try:
                install_result = await self.auto_install(
                    project_path=plan.project,
                    scheme=config.scheme,
                    configuration=config.configuration or DEFAULT_CONFIGURATION,
                    sdk=config.sdk,
                    simulator_udid=request.simulator_udid,
                    boot_simulator=request.boot_simulator,
                )
            except (WorkflowError, ExecutionError) as e:
                log.warning("auto_install_failed", error=str(e))
                install_result = {"success": False, "error": e.message}

        summary_view = summary.to_dict()
        summary_view.pop("errors")
        warnings = summary_view.pop("warnings")
        summary_view.update(
            success=success,
            first_error=first_error,
            scheme=config.scheme,
            configuration=config.configuration,
            destination=config.destination,
            duration_ms=duration_ms,
        )

        return {
            "build_id": handle,
            "success": success,
            "errors": errors or None,
            "warnings": warnings or None,
            "summary": summary_view,
            "auto_install": install_result,
            "intelligence": {
                "used_smart_destination": plan.resolution.used_smart_destination,
                "used_smart_configuration": plan.used_smart_configuration,
                "has_preferred_config": plan.has_preferred_config,
                "simulator_usage_recorded": usage_recorded,
                "configuration_learned": success,
                "auto_install_attempted": request.auto_install and success,
                "destination_source": plan.resolution.source,
            },
            "guidance": self._build_guidance(
                success=success,
                handle=handle,
                plan=plan,
                result=result,
                duration_ms=duration_ms,
                error_count=summary.error_count,
                warning_count=summary.warning_count,
                first_error=first_error,
                install_result=install_result,
                auto_install=request.auto_install,
            ),
            "cache_details": {
                "note": f"Use 'xcp details {handle} --type <type>' for full logs",
                "available_types": list(DETAIL_TYPES),
            },
        }

    def _build_guidance(
        self,
        *,
        success: bool,
        handle: str,
        plan: _Plan,
        result: StreamingResult,
        duration_ms: int,
        error_count: int,
        warning_count: int,
        first_error: str | None,
        install_result: dict[str, Any] | None,
        auto_install: bool,
    ) -> list[str]:
        smart = plan.resolution.used_smart_destination
        if not success:
            guidance = [
                f"Build failed with {error_count} errors, {warning_count} warnings",
                f"First error: {first_error or 'Unknown error'}",
                f"Use 'xcp details {handle}' for full logs and errors",
            ]
            if smart:
                guidance.append("Try 'xcp simulators' to see other available simulators")
            if result.timed_out:
                guidance.append(f"Build aborted after {self._config.build_timeout_sec}s (timeout)")
            if result.fatal_match:
                guidance.append(f"Detected fatal log output: {result.fatal_match}")
            return guidance

        guidance = [f"Build completed successfully in {duration_ms}ms"]
        if warning_count:
            guidance.append(f"{warning_count} warning(s) detected")
        if smart:
            guidance.append(f"Used smart destination: {plan.config.destination}")
        if plan.has_preferred_config:
            guidance.append("Applied cached project preferences")
        guidance.append(f"Use 'xcp details {handle}' for full logs")
        guidance.append("Successful configuration cached for future builds")
        if auto_install and install_result is not None:
            if install_result.get("success"):
                guidance.append(
                    f"Auto-install succeeded. Launch with: xcrun simctl launch "
                    f"{install_result['udid']} {install_result.get('bundle_id')}"
                )
            else:
                guidance.append(f"Auto-install failed: {install_result.get('error')}")
        return guidance

    # =========================================================================
    # Test
    # =========================================================================

    async def test(self, request: TestRequest) -> dict[str, Any]:
        """Run ``xcodebuild test`` with the same smart defaults as ``build``.

        The test outcome is not fed into the project preference history.
        """
        with _request_scope(TEST_TOOL):
            plan = await self._plan(
                request.project_path,
                request.scheme,
                configuration=request.configuration,
                destination=request.destination,
                sdk=request.sdk,
                derived_data_path=request.derived_data_path,
            )
            config = plan.config
            command = build_xcodebuild_command(
                "test",
                plan.project,
                scheme=config.scheme,
                configuration=config.configuration,
                destination=config.destination,
                sdk=config.sdk,
                derived_data_path=config.derived_data_path,
                only_testing=request.only_testing,
            )

            result, duration_ms = await self._execute(command)
            summary = extract_test_summary(result.stdout, result.stderr, result.exit_code)
            success = summary.success and not result.timed_out
            usage_recorded = self._record_usage(plan)

            handle = self._responses.store(
                TEST_TOOL,
                stdout=result.stdout,
                stderr=result.stderr,
                exit_code=result.exit_code,
                command=command,
                metadata={
                    "project_path": plan.project,
                    "scheme": config.scheme,
                    "configuration": config.configuration,
                    "destination": config.destination,
                    "duration_ms": duration_ms,
                    "success": success,
                    "tests_run": summary.tests_run,
                    "timed_out": result.timed_out,
                    "fatal_match": result.fatal_match,
                },
            )
            log.info("test_finished", test_id=handle, success=success, tests_run=summary.tests_run)

            guidance = [
                f"Tests {'passed' if success else 'failed'} ({summary.tests_run} tests reported)",
                f"Use 'xcp details {handle}' for the full test log",
            ]
            if result.fatal_match:
                guidance.append(f"Detected fatal log output: {result.fatal_match}")
            if result.timed_out:
                guidance.append(f"Tests aborted after {self._config.build_timeout_sec}s (timeout)")

            return {
                "test_id": handle,
                "success": success,
                "summary": {**summary.to_dict(), "success": success, "duration_ms": duration_ms},
                "intelligence": {
                    "used_smart_destination": plan.resolution.used_smart_destination,
                    "used_smart_configuration": plan.used_smart_configuration,
                    "has_preferred_config": plan.has_preferred_config,
                    "simulator_usage_recorded": usage_recorded,
                    "destination_source": plan.resolution.source,
                },
                "guidance": guidance,
            }

    # =========================================================================
    # Auto-install
    # =========================================================================

    async def auto_install(
        self,
        *,
        project_path: str,
        scheme: str,
        configuration: str,
        sdk: str | None = None,
        simulator_udid: str | None = None,
        boot_simulator: bool = True,
    ) -> dict[str, Any]:
        """Locate the built app, pick a simulator, boot it and install.

        A failed boot is tolerated (the device may already be booted).

        Raises:
            WorkflowError: No .app product, no simulator or install failed
        """
        artifacts = await self._artifacts.find(project_path, scheme, configuration, sdk)
        if not artifacts.app_path:
            raise WorkflowError.artifact_not_found(scheme)

        if simulator_udid:
            udid = simulator_udid
            device = await self._simulators.find_simulator_by_udid(udid)
            name = device.name if device else udid
        else:
            suggestion = await self._simulators.get_best_simulator(project_path)
            if suggestion is None:
                raise WorkflowError.no_simulator()
            udid = suggestion.device.udid
            name = suggestion.device.name
            log.info("simulator_auto_selected", udid=udid, name=name, reason=suggestion.reason)

        if boot_simulator:
            await self._boot(udid)

        install = await self._runner.run(["xcrun", "simctl", "install", udid, artifacts.app_path])
        if not install.ok:
            raise WorkflowError.install_failed(udid, install.stderr or "Unknown error")

        log.info("app_installed", udid=udid, app_path=artifacts.app_path)
        return {
            "success": True,
            "udid": udid,
            "simulator_name": name,
            "app_path": artifacts.app_path,
            "bundle_id": artifacts.bundle_identifier,
        }

    async def _boot(self, udid: str) -> None:
        try:
            result = await self._runner.run(["xcrun", "simctl", "boot", udid])
        except ExecutionError as e:
            log.warning("simulator_boot_failed", udid=udid, error=str(e))
            return
        if result.ok:
            self._simulators.record_simulator_boot(udid)
        else:
            log.warning("simulator_boot_failed", udid=udid, error=result.stderr)

    # =========================================================================
    # Progressive disclosure
    # =========================================================================

    def get_details(
        self,
        handle: str,
        detail_type: str = "full-log",
        *,
        max_lines: int = DEFAULT_DETAIL_LINES,
    ) -> dict[str, Any]:
        """Full detail for a previously returned handle.

        Raises:
            InputError: Unknown/expired handle or unsupported detail type
        """
        if detail_type not in DETAIL_TYPES:
            raise InputError.invalid_argument(
                "detail_type", f"must be one of {', '.join(DETAIL_TYPES)}"
            )
        entry = self._responses.get(handle)
        if entry is None:
            raise InputError.handle_not_found(handle)

        base = {"id": handle, "tool": entry.tool, "detail_type": detail_type}
        if detail_type == "full-log":
            lines = f"{entry.stdout}\n{entry.stderr}".strip().split("\n")
            return {
                **base,
                "output": "\n".join(lines[:max_lines]),
                "total_lines": len(lines),
                "showing_lines": min(len(lines), max_lines),
                "truncated": len(lines) > max_lines,
            }
        if detail_type == "errors-only":
            errors = error_lines(f"{entry.stdout}\n{entry.stderr}")
            return {**base, "errors": errors, "count": len(errors)}
        if detail_type == "warnings-only":
            warnings = warning_lines(f"{entry.stdout}\n{entry.stderr}")
            return {**base, "warnings": warnings, "count": len(warnings)}
        if detail_type == "summary":
            return {**base, "summary": self._summarize(entry)}
        if detail_type == "command":
            return {
                **base,
                "command": entry.command,
                "exit_code": entry.exit_code,
                "executed_at": entry.created_at,
            }
        return {**base, "metadata": dict(entry.metadata)}

    @staticmethod
    def _summarize(entry: CachedResponse) -> dict[str, Any]:
        if entry.tool == BUILD_TOOL:
            return extract_build_summary(entry.stdout, entry.stderr, entry.exit_code).to_dict()
        if entry.tool == TEST_TOOL:
            return extract_test_summary(entry.stdout, entry.stderr, entry.exit_code).to_dict()
        return {
            **entry.metadata,
            "exit_code": entry.exit_code,
            "output_size_bytes": entry.output_size_bytes,
        }

    async def list_simulators(
        self,
        filters: SimulatorFilters | None = None,
        *,
        force_refresh: bool = False,
    ) -> dict[str, Any]:
        """Summary of the simulator listing; the full listing goes behind a handle."""
        with _request_scope(SIMCTL_LIST_TOOL):
            filters = filters or SimulatorFilters()
            listing = await self._simulators.get_simulator_list(force_refresh=force_refresh)
            filtered = filter_listing(listing, filters)
            summary = extract_simulator_summary(filtered)

            handle = self._responses.store(
                SIMCTL_LIST_TOOL,
                stdout=json.dumps(listing_to_dict(filtered), indent=2),
                command=build_simctl_command("list", json=True),
                metadata={
                    "total_devices": summary.total_devices,
                    "available_devices": summary.available_devices,
                    "booted_devices": summary.booted_devices,
                    "device_type": filters.device_type,
                    "runtime": filters.runtime,
                    "available_only": filters.available_only,
                },
            )
            return build_progressive_simulator_response(summary, handle, filters)
