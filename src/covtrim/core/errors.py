"""covtrim error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Coverage data
- 4xxx: Test execution
- 5xxx: Selection
- 6xxx: Discovery
- 9xxx: Internal / pipeline
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002

    # Coverage (3xxx)
    MALFORMED_RECORD = 3001
    COVERAGE_PARSE_ERROR = 3002

    # Execution (4xxx)
    TEST_RUN_FAILURE = 4001
    NO_USABLE_COVERAGE = 4002
    OPERATION_CANCELLED = 4003

    # Selection (5xxx)
    UNREACHABLE_TARGET = 5001
    VALIDATION_SHORTFALL = 5002

    # Discovery (6xxx)
    DISCOVERY_FAILED = 6001

    # Internal (9xxx)
    PIPELINE_STAGE_FAILED = 9001


@dataclass(frozen=True, slots=True)
class CovtrimError(Exception):
    """Base error with structured context for reports and JSON output."""

    code: ErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'NO_USABLE_COVERAGE')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(CovtrimError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class MalformedRecordError(CovtrimError):
    """A single coverage line could not be parsed. Never fatal on its own."""

    @classmethod
    def for_line(cls, line: str, reason: str) -> "MalformedRecordError":
        return cls(
            code=ErrorCode.MALFORMED_RECORD,
            message=f"Malformed coverage record ({reason}): {line!r}",
            details={"line": line, "reason": reason},
        )


class CoverageParseError(CovtrimError):
    """A whole coverage profile is unusable (missing mode line, unreadable)."""

    @classmethod
    def unreadable(cls, path: str, reason: str) -> "CoverageParseError":
        return cls(
            code=ErrorCode.COVERAGE_PARSE_ERROR,
            message=f"Failed to read coverage profile {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def missing_mode(cls, first_line: str) -> "CoverageParseError":
        return cls(
            code=ErrorCode.COVERAGE_PARSE_ERROR,
            message="Invalid coverage profile: missing mode line",
            details={"first_line": first_line},
        )


class TestRunFailure(CovtrimError):
    """The test runner exited non-zero or produced unusable output."""

    __test__ = False

    @classmethod
    def for_test(cls, qualified_name: str, reason: str) -> "TestRunFailure":
        return cls(
            code=ErrorCode.TEST_RUN_FAILURE,
            message=f"{qualified_name}: {reason}",
            details={"test": qualified_name, "reason": reason},
        )


class NoUsableCoverageError(CovtrimError):
    """Every candidate test failed to run; there is nothing to select from."""

    @classmethod
    def after_runs(cls, attempted: int) -> "NoUsableCoverageError":
        return cls(
            code=ErrorCode.NO_USABLE_COVERAGE,
            message=f"No usable coverage data: all {attempted} test runs failed",
            details={"attempted": attempted},
        )


class OperationCancelledError(CovtrimError):
    """The run was cancelled upstream; no partial result is exposed."""

    @classmethod
    def during(cls, stage: str) -> "OperationCancelledError":
        return cls(
            code=ErrorCode.OPERATION_CANCELLED,
            message=f"Operation cancelled during {stage}",
            details={"stage": stage},
        )


class DiscoveryError(CovtrimError):
    """Listing packages or tests failed."""

    @classmethod
    def listing_failed(cls, pattern: str, reason: str) -> "DiscoveryError":
        return cls(
            code=ErrorCode.DISCOVERY_FAILED,
            message=f"Failed to list {pattern}: {reason}",
            details={"pattern": pattern, "reason": reason},
        )


class PipelineError(CovtrimError):
    """A pipeline stage failed; wraps the underlying cause."""

    @classmethod
    def stage_failed(cls, stage: str, cause: Exception) -> "PipelineError":
        return cls(
            code=ErrorCode.PIPELINE_STAGE_FAILED,
            message=f"{stage} failed: {cause}",
            details={"stage": stage, "cause": str(cause)},
        )
