"""Build artifact discovery via ``xcodebuild -showBuildSettings``."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from xcplane.core.errors import ExecutionError
from xcplane.execution.runner import CommandRunner

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BuildArtifacts:
    app_path: str | None = None
    bundle_identifier: str | None = None


def _app_settings(entries: list[dict[str, Any]]) -> dict[str, Any] | None:
    for entry in entries:
        settings = entry.get("buildSettings") or {}
        product = settings.get("FULL_PRODUCT_NAME") or settings.get("WRAPPER_NAME") or ""
        if product.endswith(".app"):
            return settings
    return None


def parse_build_settings(content: str) -> BuildArtifacts:
    """Pick the first ``.app`` product from ``-showBuildSettings -json`` output."""
    try:
        entries = json.loads(content)
    except ValueError:
        return BuildArtifacts()
    if not isinstance(entries, list):
        return BuildArtifacts()

    settings = _app_settings([e for e in entries if isinstance(e, dict)])
    if settings is None:
        return BuildArtifacts()

    build_dir = settings.get("TARGET_BUILD_DIR") or settings.get("BUILT_PRODUCTS_DIR")
    product = settings.get("FULL_PRODUCT_NAME") or settings.get("WRAPPER_NAME")
    return BuildArtifacts(
        app_path=str(Path(build_dir) / product) if build_dir and product else None,
        bundle_identifier=settings.get("PRODUCT_BUNDLE_IDENTIFIER"),
    )


class ArtifactLocator:
    """Finds the built ``.app`` for a scheme."""

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    async def find(
        self,
        project: str,
        scheme: str,
        configuration: str,
        sdk: str | None = None,
    ) -> BuildArtifacts:
        flag = "-workspace" if project.endswith(".xcworkspace") else "-project"
        args = [
            "xcodebuild",
            flag,
            project,
            "-scheme",
            scheme,
            "-configuration",
            configuration,
        ]
        if sdk:
            args += ["-sdk", sdk]
        args += ["-showBuildSettings", "-json"]

        result = await self._runner.run(args)
        if not result.ok:
            raise ExecutionError.command_failed(" ".join(args), result.exit_code, result.stderr)

        artifacts = parse_build_settings(result.stdout)
        log.debug(
            "build_artifacts_located",
            scheme=scheme,
            app_path=artifacts.app_path,
            bundle_identifier=artifacts.bundle_identifier,
        )
        return artifacts
