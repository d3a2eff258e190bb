"""
Deployment Models

Dataclass models for deployment plans and fleet outcomes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from fleetgen.constants import (
    EXIT_ABORTED,
    EXIT_PARTIAL_FAILURE,
    EXIT_SUCCESS,
)


class RollbackPolicy(Enum):
    """Fleet-wide reaction to a host failure."""

    ABORT = "abort-fleet-on-first-failure"
    CONTINUE = "best-effort-continue"

    @classmethod
    def from_option(cls, value: str) -> "RollbackPolicy":
        """Accept the short CLI spelling (abort/continue) or the full value."""
        aliases = {"abort": cls.ABORT, "continue": cls.CONTINUE}
        if value in aliases:
            return aliases[value]
        return cls(value)


class HostOutcome(Enum):
    """Final result of one host's pipeline."""

    SUCCESS = "success"
    CHECKED_FAILED = "checked-failed"
    BUILD_FAILED = "build-failed"
    ACTIVATION_FAILED = "activation-failed"
    UNVERIFIED = "activation-succeeded-but-unverified"
    ROLLED_BACK = "rolled-back"
    SKIPPED = "skipped"

    @property
    def is_failure(self) -> bool:
        """Failures that trip the abort policy."""
        return self in (
            HostOutcome.CHECKED_FAILED,
            HostOutcome.BUILD_FAILED,
            HostOutcome.ACTIVATION_FAILED,
        )

    @property
    def is_ok(self) -> bool:
        return self in (HostOutcome.SUCCESS, HostOutcome.ROLLED_BACK)


class FleetStatus(Enum):
    """Aggregated status of a fleet-wide invocation."""

    SUCCESS = "success"
    PARTIAL_FAILURE = "partial-failure"
    ABORTED = "aborted"


@dataclass(frozen=True)
class DeploymentPlan:
    """Immutable description of one fleet invocation."""

    hosts: tuple[str, ...]
    concurrency: int = 1
    policy: RollbackPolicy = RollbackPolicy.CONTINUE
    strict_lint: bool = False
    dry_run: bool = False

    def __post_init__(self) -> None:
        if not self.hosts:
            raise ValueError("hosts cannot be empty")
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
        if len(set(self.hosts)) != len(self.hosts):
            raise ValueError("hosts must not repeat")


@dataclass
class HostResult:
    """Outcome of one host's pipeline with the stage that decided it."""

    host_id: str
    outcome: HostOutcome
    stage: Optional[str] = None
    generation: Optional[int] = None
    diagnostics: list[str] = field(default_factory=list)
    unchanged: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "host": self.host_id,
            "outcome": self.outcome.value,
            "stage": self.stage,
            "generation": self.generation,
            "unchanged": self.unchanged,
            "diagnostics": self.diagnostics,
        }

    def __repr__(self) -> str:
        return f"HostResult(host={self.host_id}, outcome={self.outcome.value}, stage={self.stage})"


@dataclass
class DeploymentOutcome:
    """Per-host results plus the aggregated fleet status."""

    results: Dict[str, HostResult] = field(default_factory=dict)
    aborted: bool = False
    cancelled: bool = False

    def add(self, result: HostResult) -> None:
        self.results[result.host_id] = result

    def get(self, host_id: str) -> Optional[HostResult]:
        return self.results.get(host_id)

    @property
    def failures(self) -> list[HostResult]:
        return [r for r in self.results.values() if not r.outcome.is_ok]

    @property
    def status(self) -> FleetStatus:
        if self.aborted or self.cancelled:
            return FleetStatus.ABORTED
        if self.failures:
            return FleetStatus.PARTIAL_FAILURE
        return FleetStatus.SUCCESS

    @property
    def exit_code(self) -> int:
        return {
            FleetStatus.SUCCESS: EXIT_SUCCESS,
            FleetStatus.PARTIAL_FAILURE: EXIT_PARTIAL_FAILURE,
            FleetStatus.ABORTED: EXIT_ABORTED,
        }[self.status]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "status": self.status.value,
            "exit_code": self.exit_code,
            "hosts": [r.to_dict() for r in self.results.values()],
        }

    def __repr__(self) -> str:
        return f"DeploymentOutcome(status={self.status.value}, hosts={len(self.results)})"
