"""Coverage-driven test selection."""

from covtrim.selection.models import (
    AnalysisReport,
    BaselinePattern,
    BaselineSet,
    KeptTest,
    RunFailure,
    SelectionResult,
    Shortfall,
    TestIdentity,
)
from covtrim.selection.selector import (
    BlockSetModel,
    BlockState,
    CoverageModel,
    GreedySelector,
    PercentMapModel,
    compute_targets,
)
from covtrim.selection.validator import validate_selection

__all__ = [
    "AnalysisReport",
    "BaselinePattern",
    "BaselineSet",
    "BlockSetModel",
    "BlockState",
    "CoverageModel",
    "GreedySelector",
    "KeptTest",
    "PercentMapModel",
    "RunFailure",
    "SelectionResult",
    "Shortfall",
    "TestIdentity",
    "compute_targets",
    "validate_selection",
]
