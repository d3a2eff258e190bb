"""
Check Models

Dataclass models for per-host check pipeline results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class CheckStage(Enum):
    """Check pipeline stages, in execution order."""

    LINT = "lint"
    EVAL = "eval"
    TEST = "test"


class CheckOutcome(Enum):
    """Outcome of a single check stage."""

    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"


@dataclass(frozen=True)
class CheckResult:
    """Result of one check stage for one host."""

    host_id: str
    stage: CheckStage
    outcome: CheckOutcome
    diagnostics: tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        return self.outcome == CheckOutcome.PASS

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "host": self.host_id,
            "stage": self.stage.value,
            "outcome": self.outcome.value,
            "diagnostics": list(self.diagnostics),
        }

    def __repr__(self) -> str:
        return f"CheckResult(host={self.host_id}, stage={self.stage.value}, outcome={self.outcome.value})"


@dataclass(frozen=True)
class EvaluatedGraph:
    """Opaque handle to a host's evaluated configuration graph."""

    host_id: str
    config_ref: str
    payload: str = ""


@dataclass
class CheckReport:
    """All check results for a host plus the graph produced by eval."""

    host_id: str
    results: list[CheckResult] = field(default_factory=list)
    graph: Optional[EvaluatedGraph] = None
    strict: bool = False

    def get(self, stage: CheckStage) -> Optional[CheckResult]:
        for result in self.results:
            if result.stage == stage:
                return result
        return None

    @property
    def is_clear(self) -> bool:
        """A host is clear to build iff eval and test pass (and lint, when strict)."""
        eval_result = self.get(CheckStage.EVAL)
        test_result = self.get(CheckStage.TEST)
        if eval_result is None or not eval_result.passed:
            return False
        if test_result is None or not test_result.passed:
            return False
        if self.strict:
            lint_result = self.get(CheckStage.LINT)
            return lint_result is not None and lint_result.passed
        return True

    @property
    def blocking_result(self) -> Optional[CheckResult]:
        """First result that keeps the host from building, if any."""
        for result in self.results:
            if result.passed:
                continue
            if result.stage == CheckStage.LINT and not self.strict:
                continue
            return result
        return None

    @property
    def advisories(self) -> list[str]:
        """Non-blocking lint diagnostics."""
        lint_result = self.get(CheckStage.LINT)
        if lint_result is None or lint_result.passed or self.strict:
            return []
        return list(lint_result.diagnostics)
