"""Core module exports."""

from covtrim.core.errors import (
    ConfigError,
    CoverageParseError,
    CovtrimError,
    DiscoveryError,
    ErrorCode,
    MalformedRecordError,
    NoUsableCoverageError,
    OperationCancelledError,
    PipelineError,
    TestRunFailure,
)
from covtrim.core.logging import (
    clear_run_id,
    configure_logging,
    get_logger,
    get_run_id,
    set_run_id,
)
from covtrim.core.progress import pluralize, spinner, status, task

__all__ = [
    # Errors
    "ConfigError",
    "CoverageParseError",
    "CovtrimError",
    "DiscoveryError",
    "ErrorCode",
    "MalformedRecordError",
    "NoUsableCoverageError",
    "OperationCancelledError",
    "PipelineError",
    "TestRunFailure",
    # Logging
    "clear_run_id",
    "configure_logging",
    "get_logger",
    "get_run_id",
    "set_run_id",
    # Progress
    "pluralize",
    "spinner",
    "status",
    "task",
]
