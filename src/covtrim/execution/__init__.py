"""Per-test coverage collection."""

from covtrim.execution.orchestrator import (
    CollectionResult,
    CoverageOrchestrator,
    coverage_artifact_name,
)
from covtrim.execution.runner import GoTestRunner, TestRunner

__all__ = [
    "CollectionResult",
    "CoverageOrchestrator",
    "GoTestRunner",
    "TestRunner",
    "coverage_artifact_name",
]
