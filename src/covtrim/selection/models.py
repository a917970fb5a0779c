"""Selection data models: test identities, baseline sets and results."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True, order=True)
class TestIdentity:
    """A single Go test, identified by import path and function name."""

    __test__ = False

    package: str
    name: str

    @property
    def qualified_name(self) -> str:
        return f"{self.package}:{self.name}"

    @classmethod
    def parse(cls, qualified_name: str) -> TestIdentity:
        """Inverse of qualified_name; the last ':' separates the name."""
        package, sep, name = qualified_name.rpartition(":")
        if not sep or not package or not name:
            raise ValueError(f"not a qualified test name: {qualified_name!r}")
        return cls(package=package, name=name)

    def __str__(self) -> str:
        return self.qualified_name


@dataclass(frozen=True, slots=True)
class BaselinePattern:
    """All tests in package whose name starts with prefix."""

    package: str
    prefix: str

    def matches(self, test: TestIdentity) -> bool:
        return test.package == self.package and test.name.startswith(self.prefix)


@dataclass
class BaselineSet:
    """Resolved baseline: exact qualified names plus prefix patterns."""

    exact: set[str] = field(default_factory=set)
    patterns: list[BaselinePattern] = field(default_factory=list)

    @classmethod
    def of(cls, tests: Iterable[TestIdentity]) -> BaselineSet:
        return cls(exact={t.qualified_name for t in tests})

    def add_pattern(self, package: str, prefix: str) -> None:
        self.patterns.append(BaselinePattern(package=package, prefix=prefix))

    def is_baseline(self, test: TestIdentity) -> bool:
        if test.qualified_name in self.exact:
            return True
        return any(p.matches(test) for p in self.patterns)

    def __bool__(self) -> bool:
        return bool(self.exact or self.patterns)


@dataclass(frozen=True, slots=True)
class KeptTest:
    """A test the selector committed, in commit order."""

    test: TestIdentity
    is_baseline: bool
    gaps_filled: int  # target functions improved when this test was added

    @property
    def kind(self) -> str:
        return "baseline" if self.is_baseline else "unit"


@dataclass(frozen=True, slots=True)
class RunFailure:
    """A test whose coverage run failed. Neither kept nor redundant."""

    test: TestIdentity
    reason: str


@dataclass(frozen=True, slots=True)
class Shortfall:
    """A target function the kept set fails to cover to threshold."""

    function: str
    percent: float
    threshold: float

    @property
    def deficit(self) -> float:
        return self.threshold - self.percent


def _report_order(tests: Iterable[TestIdentity]) -> list[TestIdentity]:
    return sorted(tests, key=lambda t: (t.package, t.name))


@dataclass
class SelectionResult:
    """Outcome of greedy selection.

    ``kept`` is in commit order; ``redundant`` is in discovery order.
    ``unreachable`` maps targets that no remaining test could improve to
    the percent reached when selection stopped.
    """

    kept: list[KeptTest] = field(default_factory=list)
    redundant: list[TestIdentity] = field(default_factory=list)
    redundant_is_baseline: dict[TestIdentity, bool] = field(default_factory=dict)
    unreachable: dict[str, float] = field(default_factory=dict)
    shortfalls: list[Shortfall] = field(default_factory=list)

    @property
    def kept_tests(self) -> list[str]:
        return [k.test.qualified_name for k in self.kept]

    @property
    def redundant_tests(self) -> list[str]:
        return [t.qualified_name for t in self.redundant]

    @property
    def redundant_baseline(self) -> list[TestIdentity]:
        """Baseline tests that could be trimmed, sorted by package then name."""
        return _report_order(t for t in self.redundant if self.redundant_is_baseline.get(t))

    @property
    def redundant_non_baseline(self) -> list[TestIdentity]:
        """Non-baseline redundant tests, sorted by package then name."""
        return _report_order(
            t for t in self.redundant if not self.redundant_is_baseline.get(t)
        )

    @property
    def validated(self) -> bool:
        return not self.shortfalls


@dataclass
class AnalysisReport:
    """Everything a `find` run produced, for rendering or JSON output."""

    threshold: float
    total_tests: int
    baseline_count: int
    target_functions: list[str] = field(default_factory=list)
    selection: SelectionResult = field(default_factory=SelectionResult)
    failures: list[RunFailure] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def kept_count(self) -> int:
        return len(self.selection.kept)

    @property
    def redundant_count(self) -> int:
        return len(self.selection.redundant)
