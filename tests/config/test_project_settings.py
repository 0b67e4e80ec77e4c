"""Tests for the per-project settings store."""

from __future__ import annotations

from pathlib import Path

import yaml

from xcplane.config.project_settings import ProjectSettingsStore


class TestProjectSettingsStore:
    def test_settings_live_next_to_project(self, project: str) -> None:
        store = ProjectSettingsStore()

        path = store.settings_path(project)

        assert path == Path(project).parent / ".xcplane" / "settings.yaml"

    def test_load_missing_returns_none(self, project: str) -> None:
        assert ProjectSettingsStore().load(project) is None

    def test_record_successful_build_writes_yaml(self, project: str) -> None:
        store = ProjectSettingsStore()

        store.record_successful_build(project, "UDID-1", "iPhone 16")

        path = store.settings_path(project)
        text = path.read_text()
        assert text.startswith("# AUTO-GENERATED")
        data = yaml.safe_load(text)
        assert data["last_simulator_udid"] == "UDID-1"
        assert data["last_simulator_name"] == "iPhone 16"
        assert data["successful_builds"] == 1

    def test_successive_builds_increment_counter(self, project: str) -> None:
        store = ProjectSettingsStore()

        store.record_successful_build(project, "UDID-1")
        settings = store.record_successful_build(project, "UDID-2", "iPad")

        assert settings.successful_builds == 2
        loaded = store.load(project)
        assert loaded is not None
        assert loaded.last_simulator_udid == "UDID-2"

    def test_unreadable_file_loads_as_none(self, project: str) -> None:
        store = ProjectSettingsStore()
        path = store.settings_path(project)
        path.parent.mkdir(parents=True)
        path.write_text("successful_builds: -3\n")

        assert store.load(project) is None
