"""Per-project persisted settings.

Remembers the simulator that last produced a successful build, next to the
project itself in ``<project dir>/.xcplane/settings.yaml``. Callers treat
this store as best-effort.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError

log = structlog.get_logger(__name__)

SETTINGS_DIRNAME = ".xcplane"
SETTINGS_FILENAME = "settings.yaml"

SETTINGS_HEADER = """\
# AUTO-GENERATED - DO NOT EDIT MANUALLY
# Remembers the simulator used by the last successful build of this project.

"""


class ProjectSettings(BaseModel):
    """Settings remembered for one project."""

    last_simulator_udid: str | None = None
    last_simulator_name: str | None = None
    last_successful_build_at: str | None = None
    successful_builds: int = Field(default=0, ge=0)


class ProjectSettingsStore:
    """YAML-backed store keyed by project path."""

    def settings_path(self, project: str | Path) -> Path:
        return Path(project).parent / SETTINGS_DIRNAME / SETTINGS_FILENAME

    def load(self, project: str | Path) -> ProjectSettings | None:
        """Load settings for a project, or None if absent or unreadable."""
        path = self.settings_path(project)
        if not path.exists():
            return None
        try:
            with path.open() as f:
                data = yaml.safe_load(f) or {}
            return ProjectSettings.model_validate(data)
        except (OSError, yaml.YAMLError, ValidationError) as e:
            log.warning("project_settings_unreadable", path=str(path), error=str(e))
            return None

    def record_successful_build(
        self,
        project: str | Path,
        udid: str,
        name: str | None = None,
    ) -> ProjectSettings:
        """Remember the simulator of a successful build. Raises OSError on write failure."""
        settings = self.load(project) or ProjectSettings()
        settings.last_simulator_udid = udid
        settings.last_simulator_name = name
        settings.last_successful_build_at = datetime.now(UTC).isoformat()
        settings.successful_builds += 1

        path = self.settings_path(project)
        path.parent.mkdir(parents=True, exist_ok=True)
        body = yaml.safe_dump(settings.model_dump(), sort_keys=False)
        path.write_text(SETTINGS_HEADER + body)
        log.debug("project_settings_saved", path=str(path), udid=udid)
        return settings
