"""Config module exports."""

from covtrim.config.loader import load_config
from covtrim.config.models import (
    BaselineTestSpec,
    CoverageConfig,
    CovtrimConfig,
    ExecutionConfig,
    LoggingConfig,
    RedundancyConfig,
    SelectionConfig,
)

__all__ = [
    "load_config",
    "BaselineTestSpec",
    "CoverageConfig",
    "CovtrimConfig",
    "ExecutionConfig",
    "LoggingConfig",
    "RedundancyConfig",
    "SelectionConfig",
]
