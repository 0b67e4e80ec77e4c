"""Tool workflows built on the caches and the executor."""

from xcplane.workflows.artifacts import ArtifactLocator, BuildArtifacts
from xcplane.workflows.build import BuildRequest, BuildWorkflow, TestRequest

__all__ = [
    "ArtifactLocator",
    "BuildArtifacts",
    "BuildRequest",
    "BuildWorkflow",
    "TestRequest",
]
