"""Tests for the xcp CLI.

Covers:
- build/test argument mapping and exit codes
- details, simulators and cache subcommands against a real composition root
- error translation to click errors
- config loading when no app is injected
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner
from conftest import IOS_RUNTIME, MemoryPersistence, StaticListingSource, make_device, make_listing

from xcplane.app import XcPlane
from xcplane.cli.main import cli
from xcplane.config.models import PersistenceConfig, XcPlaneConfig
from xcplane.core.errors import InputError
from xcplane.models import BuildConfig, BuildOutcome
from xcplane.workflows.build import BuildRequest, TestRequest


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def app(tmp_path: Path) -> XcPlane:
    listing = make_listing(
        make_device("PHONE-1", IOS_RUNTIME, name="iPhone 16", state="Booted"),
        make_device("PHONE-2", IOS_RUNTIME, name="iPhone 16 Pro"),
    )
    config = XcPlaneConfig(persistence=PersistenceConfig(state_dir=str(tmp_path / "state")))
    return XcPlane.create(
        config, persistence=MemoryPersistence(), listing_source=StaticListingSource(listing)
    )


@pytest.fixture
def mocked_workflow(app: XcPlane) -> MagicMock:
    workflow = MagicMock()
    workflow.build = AsyncMock(return_value={"build_id": "b1", "success": True})
    workflow.test = AsyncMock(return_value={"test_id": "t1", "success": True})
    app.workflow = workflow
    return workflow


class TestBuildCommand:
    """Tests for xcp build."""

    def test_maps_options_to_request(
        self, runner: CliRunner, app: XcPlane, mocked_workflow: MagicMock, project: str
    ) -> None:
        """Every option lands on the BuildRequest."""
        result = runner.invoke(
            cli,
            [
                "build",
                project,
                "-s",
                "App",
                "-c",
                "Release",
                "--sdk",
                "iphonesimulator",
                "--auto-install",
                "--simulator-udid",
                "PHONE-2",
                "--no-boot",
            ],
            obj={"app": app},
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == {"build_id": "b1", "success": True}
        mocked_workflow.build.assert_awaited_once_with(
            BuildRequest(
                project_path=project,
                scheme="App",
                configuration="Release",
                sdk="iphonesimulator",
                auto_install=True,
                simulator_udid="PHONE-2",
                boot_simulator=False,
            )
        )

    def test_failed_build_exits_nonzero(
        self, runner: CliRunner, app: XcPlane, mocked_workflow: MagicMock, project: str
    ) -> None:
        """A failed build still prints the result but exits 1."""
        mocked_workflow.build.return_value = {"build_id": "b2", "success": False}

        result = runner.invoke(cli, ["build", project, "-s", "App"], obj={"app": app})

        assert result.exit_code == 1
        assert json.loads(result.stdout)["build_id"] == "b2"

    def test_input_error_becomes_click_error(
        self, runner: CliRunner, app: XcPlane, mocked_workflow: MagicMock, project: str
    ) -> None:
        """XcPlaneError is reported as 'Error: ...' with exit code 1."""
        mocked_workflow.build.side_effect = InputError.invalid_argument("scheme", "must not be blank")

        result = runner.invoke(cli, ["build", project, "-s", " "], obj={"app": app})

        assert result.exit_code == 1
        assert "INVALID_ARGUMENT" in result.stderr

    def test_scheme_is_required(self, runner: CliRunner, app: XcPlane, project: str) -> None:
        result = runner.invoke(cli, ["build", project], obj={"app": app})

        assert result.exit_code == 2
        assert "--scheme" in result.stderr

    def test_missing_project_path_rejected(self, runner: CliRunner, app: XcPlane, tmp_path: Path) -> None:
        result = runner.invoke(
            cli, ["build", str(tmp_path / "Nope.xcodeproj"), "-s", "App"], obj={"app": app}
        )

        assert result.exit_code == 2


class TestTestCommand:
    """Tests for xcp test."""

    def test_only_testing_is_repeatable(
        self, runner: CliRunner, app: XcPlane, mocked_workflow: MagicMock, project: str
    ) -> None:
        result = runner.invoke(
            cli,
            ["test", project, "-s", "App", "--only-testing", "AppTests/A", "--only-testing", "AppTests/B"],
            obj={"app": app},
        )

        assert result.exit_code == 0, result.output
        mocked_workflow.test.assert_awaited_once_with(
            TestRequest(project_path=project, scheme="App", only_testing=("AppTests/A", "AppTests/B"))
        )


class TestDetailsCommand:
    """Tests for xcp details."""

    def test_shows_requested_detail(self, runner: CliRunner, app: XcPlane) -> None:
        handle = app.responses.store(
            "xcodebuild-build", stdout="** BUILD SUCCEEDED **", command="xcodebuild build"
        )

        result = runner.invoke(cli, ["details", handle, "-t", "command"], obj={"app": app})

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["command"] == "xcodebuild build"
        assert data["exit_code"] == 0

    def test_unknown_handle(self, runner: CliRunner, app: XcPlane) -> None:
        result = runner.invoke(cli, ["details", "missing"], obj={"app": app})

        assert result.exit_code == 1
        assert "HANDLE_NOT_FOUND" in result.stderr

    def test_invalid_type_rejected_by_click(self, runner: CliRunner, app: XcPlane) -> None:
        result = runner.invoke(cli, ["details", "h", "-t", "everything"], obj={"app": app})

        assert result.exit_code == 2


class TestSimulatorsCommand:
    """Tests for xcp simulators."""

    def test_json_summary(self, runner: CliRunner, app: XcPlane) -> None:
        result = runner.invoke(cli, ["simulators", "--json"], obj={"app": app})

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["summary"]["total_devices"] == 2
        assert data["summary"]["booted_devices"] == 1
        assert app.responses.get(data["cache_id"]) is not None

    def test_table_output(self, runner: CliRunner, app: XcPlane) -> None:
        result = runner.invoke(cli, ["simulators", "--device-type", "Pro"], obj={"app": app})

        assert result.exit_code == 0, result.output
        assert "iPhone 16 Pro" in result.stdout
        assert "PHONE-1" not in result.stdout


class TestCacheCommands:
    """Tests for xcp cache stats / clear."""

    @pytest.fixture
    def populated(self, app: XcPlane, project: str) -> XcPlane:
        app.responses.store("xcodebuild-build", stdout="log")
        app.projects.record_build_result(
            project,
            BuildConfig(scheme="App", configuration="Release"),
            BuildOutcome(timestamp=1.0, success=True, duration_ms=10),
        )
        return app

    def test_stats(self, runner: CliRunner, populated: XcPlane) -> None:
        result = runner.invoke(cli, ["cache", "stats"], obj={"app": populated})

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["responses"]["total_entries"] == 1
        assert len(data["projects"]) == 1
        assert data["simulators"] == {"cached": False, "devices": 0}

    def test_clear_with_yes(self, runner: CliRunner, populated: XcPlane) -> None:
        result = runner.invoke(cli, ["cache", "clear", "--yes"], obj={"app": populated})

        assert result.exit_code == 0, result.output
        assert len(populated.responses) == 0
        assert populated.projects.projects() == []

    def test_clear_responses_only(self, runner: CliRunner, populated: XcPlane) -> None:
        result = runner.invoke(
            cli, ["cache", "clear", "-y", "--responses-only"], obj={"app": populated}
        )

        assert result.exit_code == 0, result.output
        assert len(populated.responses) == 0
        assert len(populated.projects.projects()) == 1

    def test_clear_cancelled_at_prompt(self, runner: CliRunner, populated: XcPlane) -> None:
        """Answering 'No' leaves everything in place."""
        with patch("xcplane.cli.cache.questionary.select") as select:
            select.return_value.ask.return_value = False
            result = runner.invoke(cli, ["cache", "clear"], obj={"app": populated})

        assert result.exit_code == 0, result.output
        assert "Cancelled" in result.stderr
        assert len(populated.responses) == 1


class TestAppFromConfig:
    """Tests for building the app from a config file."""

    def test_config_file_is_loaded(self, runner: CliRunner, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            f"persistence:\n  enabled: false\n  state_dir: {tmp_path / 'state'}\n"
            "cache:\n  response_max_entries: 3\n"
        )

        result = runner.invoke(cli, ["--config", str(config_file), "cache", "stats"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["responses"]["total_entries"] == 0
        assert not (tmp_path / "state").exists()

    def test_invalid_config_reported(self, runner: CliRunner, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("cache:\n  response_max_entries: 0\n")

        result = runner.invoke(cli, ["--config", str(config_file), "cache", "stats"])

        assert result.exit_code == 1
        assert "CONFIG_INVALID_VALUE" in result.stderr

    def test_logging_section_is_applied(self, runner: CliRunner, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "xcp.jsonl"
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "persistence:\n  enabled: false\n"
            "logging:\n  level: DEBUG\n  outputs:\n"
            f"    - format: json\n      destination: {log_file}\n"
        )

        try:
            result = runner.invoke(cli, ["--config", str(config_file), "cache", "stats"])
        finally:
            for handler in logging.getLogger().handlers:
                handler.close()
            logging.getLogger().handlers.clear()

        assert result.exit_code == 0, result.output
        events = [json.loads(line)["event"] for line in log_file.read_text().splitlines()]
        assert "xcplane_created" in events


def test_version(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert "0.1.0" in result.output
