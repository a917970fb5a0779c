"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config() (CLI flags land here)
2. Environment variables (COVTRIM__SECTION__KEY)
3. Repo YAML (.covtrim.yaml)
4. Global YAML (~/.config/covtrim/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    COVTRIM__<SECTION>__<KEY>=<VALUE>

Examples:
    COVTRIM__REDUNDANCY__COVERAGE_THRESHOLD=90
    COVTRIM__EXECUTION__MAX_WORKERS=4
    COVTRIM__LOGGING__LEVEL=DEBUG
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        COVTRIM__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="WARNING",
        description="Root log level. Progress output goes through the console regardless.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class BaselineTestSpec(BaseModel):
    """A baseline (must-keep, preferred) test selector.

    With no name_pattern every test in the package is baseline. With a
    name_pattern, tests in the resolved package whose name starts with the
    pattern are baseline.
    """

    package: str
    name_pattern: str | None = None

    @field_validator("package")
    @classmethod
    def validate_package(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Baseline package must not be empty")
        return v


class RedundancyConfig(BaseModel):
    """What to analyze and the coverage level that must be preserved.

    Env vars:
        COVTRIM__REDUNDANCY__COVERAGE_THRESHOLD: Required per-function percent
        COVTRIM__REDUNDANCY__PACKAGE_TO_ANALYZE: Package pattern holding the tests
        COVTRIM__REDUNDANCY__COVERAGE_PACKAGES: Value passed to -coverpkg
    """

    baseline_tests: list[BaselineTestSpec] = Field(default_factory=list)
    coverage_threshold: float = Field(
        default=80.0,
        description="Minimum per-function coverage percent (inclusive) that must not regress.",
    )
    package_to_analyze: str = Field(
        default="./...",
        description="Package pattern whose tests are candidates for trimming.",
    )
    coverage_packages: str = Field(
        default="./...",
        description="Packages to measure coverage for (-coverpkg).",
    )

    @field_validator("coverage_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not (0.0 <= v <= 100.0):
            raise ValueError(f"Threshold must be 0-100, got {v}")
        return v

    @field_validator("coverage_packages")
    @classmethod
    def default_coverage_packages(cls, v: str) -> str:
        return v.strip() or "./..."


class ExecutionConfig(BaseModel):
    """Test execution configuration.

    Env vars:
        COVTRIM__EXECUTION__MAX_WORKERS: Concurrent parallel-safe test processes
        COVTRIM__EXECUTION__TIMEOUT_SEC: Per-test timeout
        COVTRIM__EXECUTION__KEEP_ARTIFACTS: Keep per-test coverage files
    """

    max_workers: int | None = Field(
        default=None,
        description="Concurrent test processes for parallel-safe tests. Default: CPU count.",
    )
    timeout_sec: float = Field(
        default=600.0,
        description="Per-test timeout. A test exceeding it counts as a run failure.",
    )
    keep_artifacts: bool = Field(
        default=False,
        description="Keep per-test coverage profiles instead of deleting them at exit.",
    )
    artifact_dir: str | None = Field(
        default=None,
        description="Directory for per-test coverage profiles. Default: a temporary directory.",
    )

    @field_validator("max_workers")
    @classmethod
    def validate_max_workers(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError(f"max_workers must be >= 1, got {v}")
        return v


class CoverageConfig(BaseModel):
    """Coverage profile handling.

    Env vars:
        COVTRIM__COVERAGE__EXCLUDED_SUFFIXES: JSON list of file suffixes to drop
    """

    excluded_suffixes: list[str] = Field(
        default_factory=lambda: [".qtpl"],
        description="Blocks whose file ends with one of these suffixes are dropped "
        "(generated template sources).",
    )


class SelectionConfig(BaseModel):
    """Greedy selection configuration.

    Env vars:
        COVTRIM__SELECTION__INCLUDE_ALL_BASELINE: Keep every baseline test unconditionally
        COVTRIM__SELECTION__EVAL_WORKERS: Threads used to score candidates
    """

    include_all_baseline: bool = Field(
        default=False,
        description="Commit every baseline test before greedy filling, even with zero "
        "contribution. Default prefers baseline tests at each step instead.",
    )
    eval_workers: int = Field(
        default=1,
        description="Threads used to score candidates in each greedy iteration.",
    )

    @field_validator("eval_workers")
    @classmethod
    def validate_eval_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"eval_workers must be >= 1, got {v}")
        return v


class CovtrimConfig(BaseModel):
    """Root configuration for covtrim."""

    redundancy: RedundancyConfig = Field(default_factory=RedundancyConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    coverage: CoverageConfig = Field(default_factory=CoverageConfig)
    selection: SelectionConfig = Field(default_factory=SelectionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
